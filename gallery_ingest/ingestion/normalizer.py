"""
URL Normalizer Module
=====================

Canonicalizes raw URLs into stable dedup keys for galleries and pages.

Rules, applied in order:
- a bare host is assumed to be https
- scheme and host are lower-cased and leading ``www.`` labels are stripped
- default ports (80 for http, 443 for https) are dropped; 443 is also
  dropped from http URLs since the key is always https
- the fragment is dropped
- tracking query parameters (utm_*, fbclid, gclid, ref, ref_) are dropped
- remaining query parameters are sorted by key (stable for repeated keys)
- trailing slashes are stripped from the path; the root path renders empty
- http is collapsed to https
"""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from gallery_ingest.core.exceptions import MalformedURL

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*://", re.IGNORECASE)

TRACKING_PARAM_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^utm_", re.IGNORECASE),
    re.compile(r"^fbclid$", re.IGNORECASE),
    re.compile(r"^gclid$", re.IGNORECASE),
    re.compile(r"^ref$", re.IGNORECASE),
    re.compile(r"^ref_$", re.IGNORECASE),
)

_DEFAULT_PORTS = {"http": 80, "https": 443}


def is_tracking_param(key: str) -> bool:
    """Check whether a query parameter name is a known tracking parameter."""
    return any(pattern.search(key) for pattern in TRACKING_PARAM_PATTERNS)


def normalize_url(raw: str) -> str:
    """
    Normalize a URL into its canonical dedup form.

    Args:
        raw: URL string; the scheme is optional.

    Returns:
        Canonical URL string, e.g. ``https://example.com/events?a=1``.

    Raises:
        MalformedURL: If the input is empty, has no host, uses a
            non-web scheme or carries an invalid port.
    """
    if raw is None or not str(raw).strip():
        raise MalformedURL(raw, "empty URL")

    text = str(raw).strip()
    if not _SCHEME_RE.match(text):
        text = f"https://{text}"

    try:
        parts = urlsplit(text)
        port = parts.port
    except ValueError as e:
        raise MalformedURL(raw, str(e)) from e

    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        raise MalformedURL(raw, f"unsupported scheme {scheme!r}")

    host = (parts.hostname or "").lower()
    while host.startswith("www."):
        host = host[4:]
    if not host:
        raise MalformedURL(raw, "missing host")

    # Keys are always https.
    if port in (_DEFAULT_PORTS[scheme], _DEFAULT_PORTS["https"]):
        port = None

    netloc = f"[{host}]" if ":" in host else host
    if port is not None:
        netloc = f"{netloc}:{port}"
    userinfo, sep, _ = parts.netloc.rpartition("@")
    if sep:
        netloc = f"{userinfo}@{netloc}"

    kept = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not is_tracking_param(key)
    ]
    kept.sort(key=lambda kv: kv[0])
    query = urlencode(kept)

    path = parts.path.rstrip("/")

    return urlunsplit(("https", netloc, path, query, ""))
