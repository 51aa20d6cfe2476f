"""
Page Extraction Module
======================

Runs the completion service over scraped markdown:

- PageClassifier: triages ``init`` pages into a page kind.
- PageExtractor: extracts a tagged page variant (with an event payload for
  event detail pages) into PageStructured.
- GalleryExtractor: extracts gallery-level facts and weekly opening hours.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session

from gallery_ingest.core.enums import PageKind, ParseStatus
from gallery_ingest.core.exceptions import DataAccessError
from gallery_ingest.core.extraction import SCHEMA_VERSION
from gallery_ingest.core.schema import GalleryHours, PageStructured
from gallery_ingest.db.repositories import GalleryRepository, PageRepository
from gallery_ingest.services.ai.client import AIClient

logger = logging.getLogger(__name__)

EMPTY_MARKDOWN_ERROR = "No markdown to extract"


@dataclass
class ClassifySummary:
    """Outcome of a classification batch."""

    classified: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def event_page_ids(self) -> list[str]:
        """Pages classified into an event kind."""
        return [pid for pid, kind in self.classified.items() if PageKind(kind).is_event]

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "classified": self.classified,
            "skipped": self.skipped,
            "errors": self.errors,
        }


class PageClassifier:
    """Assigns a page kind to pages discovered as ``init``."""

    def __init__(self, session: Session, ai: AIClient) -> None:
        self.session = session
        self.ai = ai
        self.pages = PageRepository(session)

    def classify_page(self, page_id: str) -> PageKind | None:
        """
        Classify one page and store its kind.

        Returns:
            The new kind, or None when the page was skipped (unknown page,
            already classified, or no markdown).

        Raises:
            AIServiceError: If the completion call fails.
        """
        page = self.pages.get_by_id(page_id)
        if page is None:
            logger.warning(f"Page {page_id} not found, skipping classification")
            return None
        if page.kind != PageKind.INIT:
            logger.info(f"Skipping {page.normalized_url} - already classified as {page.kind.value}")
            return None

        content = self.pages.get_content(page_id)
        if content is None or not content.has_text:
            logger.info(f"Skipping {page.normalized_url} - no markdown available")
            return None

        kind = self.ai.classify_page(content.markdown or "", page.url or page.normalized_url)
        try:
            self.pages.set_kind(page_id, kind)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(f"Classified {page.normalized_url} as {kind.value}")
        return kind

    def classify_pages(self, page_ids: Sequence[str]) -> ClassifySummary:
        """Classify a batch of pages; per-page errors are logged and counted."""
        summary = ClassifySummary()
        for page_id in page_ids:
            try:
                kind = self.classify_page(page_id)
            except Exception as e:
                logger.error(f"Error while classifying page {page_id}: {e}")
                summary.errors[page_id] = str(e)
                continue
            if kind is None:
                summary.skipped.append(page_id)
            else:
                summary.classified[page_id] = kind.value

        logger.info(
            f"Classification complete - {len(summary.classified)} classified, "
            f"{len(summary.skipped)} skipped, {len(summary.errors)} errors"
        )
        return summary


class PageExtractor:
    """Extracts structured page data and records the parse state."""

    def __init__(self, session: Session, ai: AIClient) -> None:
        self.session = session
        self.ai = ai
        self.pages = PageRepository(session)

    def _save(self, structured: PageStructured) -> PageStructured:
        try:
            self.pages.upsert_structured(structured)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return structured

    def extract_page(self, page_id: str) -> PageStructured:
        """
        Extract one page.

        The row moves ``queued`` -> ``ok`` or ``error``. Extraction failures
        are recorded on the row (message verbatim) rather than raised.

        Raises:
            DataAccessError: If the page does not exist.
        """
        page = self.pages.get_by_id(page_id)
        if page is None:
            raise DataAccessError("extract_page", f"Page {page_id} not found")

        self._save(PageStructured(page_id=page.id, parse_status=ParseStatus.QUEUED))

        content = self.pages.get_content(page.id)
        if content is None or not content.has_text:
            logger.info(f"No markdown for {page.normalized_url}, recording extraction error")
            return self._save(
                PageStructured(
                    page_id=page.id,
                    parse_status=ParseStatus.ERROR,
                    extraction_error=EMPTY_MARKDOWN_ERROR,
                    parsed_at=datetime.now(UTC),
                )
            )

        try:
            extraction = self.ai.extract_page(content.markdown or "", page.url or page.normalized_url)
        except Exception as e:
            logger.error(f"Extraction failed for {page.normalized_url}: {e}")
            return self._save(
                PageStructured(
                    page_id=page.id,
                    parse_status=ParseStatus.ERROR,
                    extraction_error=str(e),
                    parsed_at=datetime.now(UTC),
                )
            )

        structured = PageStructured(
            page_id=page.id,
            parse_status=ParseStatus.OK,
            extracted_page_kind=extraction.page_kind,
            data=extraction.model_dump(mode="json"),
            parsed_at=datetime.now(UTC),
            schema_version=SCHEMA_VERSION,
        )
        try:
            self.pages.upsert_structured(structured)
            if page.kind.is_provisional and page.kind != extraction.page_kind:
                self.pages.set_kind(page.id, extraction.page_kind)
                logger.info(f"Updated page {page.id} kind={extraction.page_kind.value}")
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(f"Extracted {page.normalized_url} as {extraction.page_kind.value}")
        return structured

    def extract_pages(self, page_ids: Sequence[str]) -> list[PageStructured]:
        """Extract a batch of pages, skipping unknown ids."""
        results: list[PageStructured] = []
        for page_id in page_ids:
            try:
                results.append(self.extract_page(page_id))
            except DataAccessError as e:
                logger.warning(str(e))
        ok = sum(1 for r in results if r.parse_status == ParseStatus.OK)
        logger.info(f"Extraction complete - {ok} successes, {len(results) - ok} errors")
        return results


def event_payload(structured: PageStructured | None) -> dict[str, Any] | None:
    """Return the event payload of a successful event_detail extraction."""
    if structured is None or structured.parse_status != ParseStatus.OK or not structured.data:
        return None
    if structured.data.get("type") != PageKind.EVENT_DETAIL.value:
        return None
    return structured.data.get("payload")


class GalleryExtractor:
    """Extracts gallery facts and opening hours into GalleryInfo/GalleryHours."""

    def __init__(self, session: Session, ai: AIClient) -> None:
        self.session = session
        self.ai = ai
        self.galleries = GalleryRepository(session)
        self.pages = PageRepository(session)

    def extract_gallery(self, gallery_id: str) -> dict[str, Any]:
        """
        Extract gallery-level facts from the main and about pages.

        Skipped when the gallery already has an ``about`` or ``email``.
        Operator-seeded name and address are preserved.

        Returns:
            ``{"ok", "skipped", "reason"?}``.

        Raises:
            DataAccessError: If the gallery does not exist.
            AIServiceError: If the completion call fails.
        """
        gallery = self.galleries.get_by_id(gallery_id)
        if gallery is None:
            raise DataAccessError("extract_gallery", f"Gallery {gallery_id} not found")

        info = self.galleries.get_info(gallery_id)
        if info is not None and (info.about or info.email):
            logger.info(f"Gallery {gallery_id} already has extracted data, skipping extraction")
            return {"ok": True, "skipped": True}

        pages = self.pages.list_by_gallery(
            gallery_id, kinds=[PageKind.GALLERY_MAIN, PageKind.GALLERY_ABOUT]
        )
        main = next((p for p in pages if p.kind == PageKind.GALLERY_MAIN), None)
        about = next((p for p in pages if p.kind == PageKind.GALLERY_ABOUT), None)

        parts: list[str] = []
        for page in (main, about):
            if page is None:
                continue
            content = self.pages.get_content(page.id)
            if content is not None and content.has_text:
                parts.append(content.markdown or "")
        combined = "\n\n".join(parts)
        if not combined.strip():
            logger.info(f"No content to extract for gallery {gallery_id}")
            return {"ok": False, "skipped": False, "reason": "No content to extract"}

        primary = main or about
        url = primary.url if primary else gallery.main_url
        logger.info(f"Extracting gallery {gallery_id} from {len(combined)} chars of markdown")
        result = self.ai.extract_gallery(combined, url)

        try:
            self.galleries.upsert_info(
                gallery_id,
                name=None if info is not None and info.name else result.name,
                about=result.about,
                district=result.district,
                email=result.email,
                phone=result.phone,
                tags=result.tags,
                data=result.model_dump(mode="json"),
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(f"Saved gallery_info for gallery {gallery_id}")
        return {"ok": True, "skipped": False}

    def extract_opening_hours(self, gallery_id: str, text: str) -> list[GalleryHours]:
        """
        Parse free-text opening hours and store one row per weekday.

        Raises:
            AIServiceError: If the completion call fails or the result is invalid.
        """
        parsed = self.ai.extract_opening_hours(text)
        saved: list[GalleryHours] = []
        try:
            for day in parsed.days:
                ranges = [(r.open_minute, r.close_minute) for r in day.ranges]
                saved.append(self.galleries.upsert_hours(gallery_id, day.dow, ranges))
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(f"Saved opening hours for {len(saved)} days of gallery {gallery_id}")
        return saved
