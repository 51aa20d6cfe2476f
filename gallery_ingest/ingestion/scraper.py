"""
Content Scraper Module
======================

Fetches markdown for registry pages and records the outcome on each page.
Pages are processed independently by a bounded asyncio worker pool; one
page's failure never aborts the batch.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session

from gallery_ingest.core.enums import FetchStatus
from gallery_ingest.core.schema import Page
from gallery_ingest.db.repositories import PageRepository
from gallery_ingest.ingestion.crawler import PageFetcher

logger = logging.getLogger(__name__)


@dataclass
class ScrapeSummary:
    """Outcome of a scrape batch."""

    ok: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {"ok": self.ok, "failed": self.failed, "missing": self.missing}


class ContentScraper:
    """Scrapes pages through the page-fetch service into PageContent."""

    def __init__(self, session: Session, fetcher: PageFetcher, concurrency: int = 5) -> None:
        self.session = session
        self.fetcher = fetcher
        self.concurrency = max(1, concurrency)
        self.pages = PageRepository(session)

    async def scrape_page(self, page: Page) -> dict[str, Any]:
        """
        Scrape one page and persist the result.

        Markdown is persisted even when empty (as null) so "fetched but
        empty" stays distinguishable from "never fetched".

        Returns:
            ``{"page_id", "ok", "error"}``; never raises for fetch failures.
        """
        try:
            result = await self.fetcher.scrape(page.normalized_url)
        except Exception as e:
            logger.warning(f"Scrape failed for {page.normalized_url}: {e}")
            self._mark_error(page.id)
            return {"page_id": page.id, "ok": False, "error": str(e)}

        try:
            self.pages.upsert_content(page.id, result.markdown if result.has_markdown else None)
            self.pages.mark_fetched(page.id, FetchStatus.OK, fetched_at=datetime.now(UTC))
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.exception(f"Failed to save content for {page.normalized_url}")
            self._mark_error(page.id)
            return {"page_id": page.id, "ok": False, "error": str(e)}

        logger.info(
            f"Scraped {page.normalized_url} "
            f"({len(result.markdown) if result.has_markdown else 0} chars)"
        )
        return {"page_id": page.id, "ok": True, "error": None}

    def _mark_error(self, page_id: str) -> None:
        try:
            self.pages.mark_fetched(page_id, FetchStatus.ERROR, fetched_at=datetime.now(UTC))
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.exception(f"Failed to mark page {page_id} as errored")

    async def scrape_pages(self, page_ids: Sequence[str], step: Any = None) -> ScrapeSummary:
        """
        Scrape a batch of pages with bounded concurrency.

        Args:
            page_ids: Pages to scrape.
            step: Optional durable step runner; when given each page is
                scraped inside its own memoized ``scrape:<page_id>`` step.

        Returns:
            ScrapeSummary with ok, failed and unknown page ids.
        """
        pages = self.pages.get_many(dict.fromkeys(page_ids))
        found = {p.id for p in pages}
        summary = ScrapeSummary(missing=[str(p) for p in page_ids if str(p) not in found])
        if summary.missing:
            logger.warning(f"No pages found for ids: {', '.join(summary.missing)}")

        semaphore = asyncio.Semaphore(self.concurrency)

        async def scrape_with_semaphore(page: Page) -> dict[str, Any]:
            async with semaphore:
                if step is None:
                    return await self.scrape_page(page)
                return await step.do(f"scrape:{page.id}", lambda: self.scrape_page(page))

        outcomes = await asyncio.gather(*(scrape_with_semaphore(p) for p in pages))
        for outcome in outcomes:
            (summary.ok if outcome["ok"] else summary.failed).append(outcome["page_id"])

        logger.info(
            f"Scrape complete - {len(summary.ok)} successes, {len(summary.failed)} errors"
        )
        return summary
