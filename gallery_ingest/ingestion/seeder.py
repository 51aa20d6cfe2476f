"""
Gallery Seeder Module
=====================

Registers a gallery from operator input: the Gallery row keyed by its
normalized main URL, operator-supplied GalleryInfo fields, and one seed
page per distinct normalized URL. Re-seeding the same input is a no-op
apart from timestamps.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from gallery_ingest.core.enums import PageKind
from gallery_ingest.core.schema import Gallery, SeedRequest
from gallery_ingest.db.repositories import GalleryRepository, PageRepository
from gallery_ingest.ingestion.normalizer import normalize_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeedPage:
    """A page the seeder will register."""

    label: str
    url: str
    normalized_url: str
    kind: PageKind


@dataclass
class SeedResult:
    """Outcome of seeding a gallery."""

    gallery_id: str
    page_ids: list[str] = field(default_factory=list)
    list_urls: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "gallery_id": self.gallery_id,
            "page_ids": self.page_ids,
            "list_urls": self.list_urls,
        }


def plan_seed_pages(request: SeedRequest) -> list[SeedPage]:
    """
    Build the seed pages for a request, one per distinct normalized URL.

    When two inputs normalize to the same URL the first kind wins
    (main, then about, then events).

    Raises:
        MalformedURL: If any supplied URL cannot be normalized.
    """
    candidates = [
        ("main", request.main_url, PageKind.GALLERY_MAIN),
        ("about", request.about_url, PageKind.GALLERY_ABOUT),
        ("events", request.events_url, PageKind.EVENT_LIST),
    ]
    seen: set[str] = set()
    pages: list[SeedPage] = []
    for label, url, kind in candidates:
        if not url:
            continue
        normalized = normalize_url(url)
        if normalized in seen:
            logger.info(f"Skipping {label} page - normalized URL already seeded ({normalized})")
            continue
        seen.add(normalized)
        pages.append(SeedPage(label=label, url=url, normalized_url=normalized, kind=kind))
    return pages


class GallerySeeder:
    """Creates or updates a gallery and its seed pages."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.galleries = GalleryRepository(session)
        self.pages = PageRepository(session)

    def _commit(self) -> None:
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def upsert_gallery(self, request: SeedRequest) -> Gallery:
        """Upsert the Gallery row on its normalized main URL."""
        normalized_main_url = normalize_url(request.main_url)
        try:
            gallery = self.galleries.upsert(
                main_url=request.main_url,
                normalized_main_url=normalized_main_url,
                about_url=request.about_url,
                events_page=request.events_url,
            )
        except Exception:
            self.session.rollback()
            raise
        self._commit()
        logger.info(f"Gallery created/updated: {gallery.id} ({normalized_main_url})")
        return gallery

    def upsert_info(self, gallery_id: str, request: SeedRequest) -> None:
        """Write operator-supplied GalleryInfo fields; absent fields are left alone."""
        try:
            self.galleries.upsert_info(
                gallery_id,
                name=request.name,
                address=request.address,
                instagram=request.instagram,
                opening_hours=request.opening_hours,
            )
        except Exception:
            self.session.rollback()
            raise
        self._commit()
        logger.info(
            f"Gallery info created/updated: name={request.name}, "
            f"address={request.address}, instagram={request.instagram}"
        )

    def upsert_page(self, gallery_id: str, seed_page: SeedPage) -> str:
        """Upsert one seed page and return its id."""
        try:
            page = self.pages.upsert_seed_page(
                gallery_id, seed_page.url, seed_page.normalized_url, seed_page.kind
            )
        except Exception:
            self.session.rollback()
            raise
        self._commit()
        logger.info(f"Upserted {seed_page.label} page id: {page.id} for URL {seed_page.url}")
        return page.id

    def seed(self, request: SeedRequest) -> SeedResult:
        """
        Seed a gallery in one call.

        Returns:
            SeedResult with the gallery id, seeded page ids and the seed
            URLs to use as discovery sources.
        """
        seed_pages = plan_seed_pages(request)
        gallery = self.upsert_gallery(request)
        self.upsert_info(gallery.id, request)

        result = SeedResult(gallery_id=gallery.id)
        for seed_page in seed_pages:
            result.page_ids.append(self.upsert_page(gallery.id, seed_page))
            if seed_page.url not in result.list_urls:
                result.list_urls.append(seed_page.url)

        logger.info(f"Seeded gallery {gallery.id} with {len(result.page_ids)} pages")
        return result
