"""
Page Fetch Module
=================

Client for the page-rendering service that turns a URL into markdown and
lists the outbound links of a page. The default implementation talks to
the Firecrawl REST API over httpx with per-domain rate limiting and
retries with exponential backoff.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

import httpx

from gallery_ingest.config import FetcherConfig, RateLimitConfig
from gallery_ingest.core.exceptions import FetchError

logger = logging.getLogger(__name__)

# Status codes worth retrying; everything else in 4xx is a permanent failure.
RETRYABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})


@dataclass
class ScrapeResult:
    """Result of scraping a URL."""

    url: str
    markdown: str | None
    status_code: int = 200
    fetched_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def has_markdown(self) -> bool:
        """Check if the scrape produced any markdown text."""
        return bool(self.markdown and self.markdown.strip())


class TokenBucket:
    """
    Token bucket rate limiter for per-domain rate limiting.

    Allows bursting up to burst_limit requests, then enforces
    the steady-state rate of requests_per_second.
    """

    def __init__(self, requests_per_second: float, burst_limit: int) -> None:
        self.requests_per_second = requests_per_second
        self.burst_limit = burst_limit
        self.tokens = float(burst_limit)
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """
        Acquire a token, waiting if necessary.

        This method blocks until a token is available.
        """
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self.last_update
            self.last_update = now

            self.tokens = min(
                self.burst_limit, self.tokens + elapsed * self.requests_per_second
            )

            if self.tokens < 1.0:
                wait_time = (1.0 - self.tokens) / self.requests_per_second
                await asyncio.sleep(wait_time)
                self.tokens = 0.0
            else:
                self.tokens -= 1.0


class PageFetcher(ABC):
    """Abstract page-fetch service."""

    @abstractmethod
    async def scrape(self, url: str) -> ScrapeResult:
        """
        Render a URL and return its markdown.

        Raises:
            FetchError: If the service cannot return content.
        """

    @abstractmethod
    async def map_links(self, url: str, limit: int = 100) -> list[str]:
        """
        List outbound links found on a page, in service order.

        Raises:
            FetchError: If the service cannot list links.
        """

    async def close(self) -> None:
        """Release any held resources."""
        return None


class FirecrawlFetcher(PageFetcher):
    """
    Firecrawl REST API client.

    Features:
    - Per-domain rate limiting with token bucket algorithm
    - Retries with exponential backoff on timeouts, 429 and 5xx
    - A single pooled httpx.AsyncClient, created lazily
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.firecrawl.dev",
        timeout: float = 60.0,
        max_retries: int = 3,
        user_agent: str = "GalleryIngest/0.1",
        rate_limit: RateLimitConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("Firecrawl API key is required (set FIRECRAWL_API_KEY)")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.user_agent = user_agent
        self.rate_limit = rate_limit or RateLimitConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._rate_limiters: dict[str, TokenBucket] = {}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "User-Agent": self.user_agent,
                },
            )
        return self._client

    def _get_rate_limiter(self, url: str) -> TokenBucket:
        """Get or create a rate limiter for the target URL's domain."""
        domain = urlparse(url).netloc
        if domain not in self._rate_limiters:
            self._rate_limiters[domain] = TokenBucket(
                requests_per_second=self.rate_limit.requests_per_second,
                burst_limit=self.rate_limit.burst_limit,
            )
        return self._rate_limiters[domain]

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST to the service with rate limiting and retries."""
        target = payload["url"]
        await self._get_rate_limiter(target).acquire()

        last_error = "Unknown error"
        last_status: int | None = None
        for attempt in range(self.max_retries):
            try:
                response = await self._get_client().post(path, json=payload)
                last_status = response.status_code
                if response.status_code in RETRYABLE_STATUS_CODES:
                    last_error = f"HTTP {response.status_code}"
                    logger.warning(
                        f"Firecrawl {path} returned {response.status_code} for {target} "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                elif response.status_code >= 400:
                    raise FetchError(
                        f"Firecrawl {path} failed for {target}: HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                else:
                    try:
                        body = response.json()
                    except ValueError as e:
                        raise FetchError(
                            f"Firecrawl {path} returned invalid JSON for {target}",
                            status_code=response.status_code,
                        ) from e
                    if body.get("success") is False:
                        raise FetchError(
                            f"Firecrawl {path} failed for {target}: {body.get('error', 'unknown error')}",
                            status_code=response.status_code,
                        )
                    return body
            except httpx.TimeoutException:
                last_error = f"Timeout after {self.timeout}s"
                logger.warning(
                    f"Timeout calling Firecrawl {path} for {target} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
            except httpx.HTTPError as e:
                last_error = str(e)
                logger.warning(
                    f"HTTP error calling Firecrawl {path} for {target}: {e} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )

            if attempt < self.max_retries - 1:
                await asyncio.sleep(2**attempt)

        raise FetchError(f"Firecrawl {path} failed for {target}: {last_error}", status_code=last_status)

    async def scrape(self, url: str) -> ScrapeResult:
        body = await self._post("/v1/scrape", {"url": url, "formats": ["markdown"]})
        data = body.get("data") or {}
        markdown = data.get("markdown")
        metadata = data.get("metadata") or {}
        return ScrapeResult(
            url=url,
            markdown=markdown if markdown else None,
            status_code=int(metadata.get("statusCode", 200)),
            metadata=metadata,
        )

    async def map_links(self, url: str, limit: int = 100) -> list[str]:
        body = await self._post("/v1/map", {"url": url, "limit": limit})
        links: list[str] = []
        for item in body.get("links") or []:
            # v1 returns plain strings; newer responses return {"url": ...}
            link = item.get("url") if isinstance(item, dict) else item
            if isinstance(link, str) and link:
                links.append(link)
        return links[:limit]

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def get_fetcher(config: FetcherConfig | None = None, api_key: str | None = None) -> FirecrawlFetcher:
    """
    Build the default page fetcher from configuration and environment.

    Args:
        config: Fetcher settings (defaults used when None).
        api_key: Explicit key; falls back to FIRECRAWL_API_KEY.

    Returns:
        A FirecrawlFetcher instance.
    """
    config = config or FetcherConfig()
    return FirecrawlFetcher(
        api_key=api_key or os.environ.get("FIRECRAWL_API_KEY", ""),
        base_url=config.base_url,
        timeout=float(config.request_timeout),
        max_retries=config.max_retries,
        user_agent=config.user_agent,
        rate_limit=config.rate_limit,
    )
