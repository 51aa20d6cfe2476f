"""
Link Discovery Module
=====================

Expands listing pages into new Page Registry rows. Outbound links are
fetched through the page-fetch service, normalized, deduplicated within the
batch and against the registry, and inserted as ``init`` pages. Existing
pages are never modified.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy.orm import Session

from gallery_ingest.core.exceptions import MalformedURL
from gallery_ingest.db.repositories import PageRepository
from gallery_ingest.ingestion.crawler import PageFetcher
from gallery_ingest.ingestion.normalizer import normalize_url

logger = logging.getLogger(__name__)

DEFAULT_LINK_LIMIT = 100


class LinkDiscoverer:
    """
    Discovers candidate pages from listing URLs.

    Discovery is split into two idempotent halves so a workflow can
    memoize each separately: `fetch_links` (remote call) and
    `insert_links` (registry write).
    """

    def __init__(
        self,
        session: Session,
        fetcher: PageFetcher,
        default_limit: int = DEFAULT_LINK_LIMIT,
    ) -> None:
        self.session = session
        self.fetcher = fetcher
        self.default_limit = default_limit
        self.pages = PageRepository(session)

    async def fetch_links(self, list_url: str, limit: int | None = None) -> list[str]:
        """
        Fetch outbound links of a listing page, keeping the first `limit`.

        Raises:
            FetchError: If the page-fetch service fails.
        """
        limit = self.default_limit if limit is None else limit
        links = await self.fetcher.map_links(list_url, limit=limit)
        logger.info(f"Fetched {len(links)} links from {list_url}")
        return links[:limit]

    def insert_links(self, gallery_id: str | None, links: Sequence[str]) -> int:
        """
        Insert links that are not yet in the registry.

        Links that fail normalization are skipped with a warning.

        Returns:
            Number of newly inserted pages.
        """
        seen: set[str] = set()
        candidates: list[tuple[str, str]] = []
        for link in links:
            try:
                normalized = normalize_url(link)
            except MalformedURL as e:
                logger.warning(f"Skipping malformed link: {e}")
                continue
            if normalized in seen:
                continue
            seen.add(normalized)
            candidates.append((link, normalized))

        if not candidates:
            return 0

        existing = self.pages.find_existing_normalized_urls(n for _, n in candidates)
        new_rows = [(url, normalized) for url, normalized in candidates if normalized not in existing]
        if not new_rows:
            return 0

        try:
            inserted = self.pages.insert_discovered(gallery_id, new_rows)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(f"Inserted {len(inserted)} new pages for gallery {gallery_id}")
        return len(inserted)

    async def discover(
        self,
        gallery_id: str | None,
        list_urls: Sequence[str],
        limit: int | None = None,
    ) -> dict[str, int]:
        """
        Discover new pages from every listing URL.

        Args:
            gallery_id: Owning gallery of the discovered pages.
            list_urls: Listing pages to expand.
            limit: Per-listing cap on links to keep.

        Returns:
            Mapping of listing URL to number of newly inserted pages.
        """
        counts: dict[str, int] = {}
        for list_url in list_urls:
            links = await self.fetch_links(list_url, limit)
            counts[list_url] = self.insert_links(gallery_id, links) if links else 0
        total = sum(counts.values())
        logger.info(f"Discovery complete - {total} new links from {len(list_urls)} listing pages")
        return counts
