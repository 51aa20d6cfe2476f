"""Repository classes for database operations.

Upserts are written as dialect-specific ``INSERT ... ON CONFLICT`` statements
against the natural keys so concurrent writers cannot create duplicates.
"""

import json
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import Table, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from gallery_ingest.core.enums import FetchStatus, PageKind, ParseStatus, RunStatus
from gallery_ingest.core.exceptions import DataAccessError
from gallery_ingest.core.extraction import Prices
from gallery_ingest.core.schema import (
    Event,
    EventInfo,
    Gallery,
    GalleryHours,
    GalleryInfo,
    Page,
    PageContent,
    PageStructured,
    WorkflowRun,
    WorkflowStep,
)
from gallery_ingest.db.models import (
    EventDB,
    EventInfoDB,
    GalleryDB,
    GalleryHoursDB,
    GalleryInfoDB,
    PageContentDB,
    PageDB,
    PageStructuredDB,
    WorkflowRunDB,
    WorkflowStepDB,
)


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def _dumps(value: Any) -> str | None:
    return None if value is None else json.dumps(value, default=str)


def _loads(raw: str | None, default: Any = None) -> Any:
    return default if raw is None else json.loads(raw)


def _fresh(stmt):
    """Refresh rows already in the identity map; core upserts bypass it."""
    return stmt.execution_options(populate_existing=True)


def _insert(session: Session, table: Table):
    """Return the dialect-specific insert construct supporting ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(table)
    if dialect == "sqlite":
        return sqlite_insert(table)
    raise DataAccessError("upsert", f"Unsupported database dialect: {dialect}")


class GalleryRepository:
    """Repository for Gallery, GalleryInfo and GalleryHours operations."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, gallery_id: str) -> Gallery | None:
        """Get a gallery by ID."""
        stmt = select(GalleryDB).where(GalleryDB.id == str(gallery_id))
        db_item = self.session.execute(_fresh(stmt)).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def get_by_normalized_url(self, normalized_main_url: str) -> Gallery | None:
        """Get a gallery by its normalized main URL."""
        stmt = select(GalleryDB).where(GalleryDB.normalized_main_url == normalized_main_url)
        db_item = self.session.execute(_fresh(stmt)).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def list_all(self, limit: int = 100, offset: int = 0) -> list[Gallery]:
        """List galleries with pagination."""
        stmt = select(GalleryDB).order_by(GalleryDB.created_at).limit(limit).offset(offset)
        return [self._to_domain(g) for g in self.session.execute(_fresh(stmt)).scalars().all()]

    def upsert(
        self,
        main_url: str,
        normalized_main_url: str,
        about_url: str | None = None,
        events_page: str | None = None,
    ) -> Gallery:
        """
        Insert a gallery or update the URLs of the existing one.

        Args:
            main_url: Main URL as supplied by the operator.
            normalized_main_url: Dedup key.
            about_url: Optional about page URL.
            events_page: Optional events listing URL.

        Returns:
            The stored Gallery.
        """
        now = _utc_now()
        table = GalleryDB.__table__
        stmt = _insert(self.session, table).values(
            id=str(uuid4()),
            main_url=main_url,
            about_url=about_url,
            events_page=events_page,
            normalized_main_url=normalized_main_url,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["normalized_main_url"],
            set_={
                "main_url": stmt.excluded.main_url,
                "about_url": stmt.excluded.about_url,
                "events_page": stmt.excluded.events_page,
                "updated_at": now,
            },
        )
        self.session.execute(stmt)
        gallery = self.get_by_normalized_url(normalized_main_url)
        if gallery is None:
            raise DataAccessError("upsert_gallery", f"No row returned for {normalized_main_url}")
        return gallery

    # ------------------------------------------------------------------
    # GalleryInfo
    # ------------------------------------------------------------------

    def get_info(self, gallery_id: str) -> GalleryInfo | None:
        """Get the info row for a gallery."""
        stmt = select(GalleryInfoDB).where(GalleryInfoDB.gallery_id == str(gallery_id))
        db_item = self.session.execute(_fresh(stmt)).scalar_one_or_none()
        return self._info_to_domain(db_item) if db_item else None

    def upsert_info(
        self,
        gallery_id: str,
        *,
        name: str | None = None,
        about: str | None = None,
        address: str | None = None,
        district: str | None = None,
        email: str | None = None,
        phone: str | None = None,
        instagram: str | None = None,
        tags: list[str] | None = None,
        opening_hours: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> GalleryInfo:
        """
        Upsert a gallery's info row.

        Only non-None arguments are written; existing values are never
        overwritten with nulls.
        """
        fields: dict[str, Any] = {
            "name": name,
            "about": about,
            "address": address,
            "district": district,
            "email": email,
            "phone": phone,
            "instagram": instagram,
            "opening_hours": opening_hours,
        }
        values = {k: v for k, v in fields.items() if v is not None}
        if tags is not None:
            values["tags_json"] = json.dumps(tags)
        if data is not None:
            values["data_json"] = json.dumps(data, default=str)
        values["updated_at"] = _utc_now()
        return self._upsert_info_values(gallery_id, values)

    def save_embedding(self, gallery_id: str, vector: list[float], model: str) -> GalleryInfo:
        """Store a gallery embedding, creating the info row if needed."""
        now = _utc_now()
        return self._upsert_info_values(
            gallery_id,
            {
                "embedding_json": json.dumps(vector),
                "embedding_model": model,
                "embedding_created_at": now,
                "updated_at": now,
            },
        )

    def _upsert_info_values(self, gallery_id: str, values: dict[str, Any]) -> GalleryInfo:
        table = GalleryInfoDB.__table__
        stmt = _insert(self.session, table).values(gallery_id=str(gallery_id), **values)
        stmt = stmt.on_conflict_do_update(index_elements=["gallery_id"], set_=values)
        self.session.execute(stmt)
        info = self.get_info(gallery_id)
        if info is None:
            raise DataAccessError("upsert_gallery_info", f"No row returned for {gallery_id}")
        return info

    # ------------------------------------------------------------------
    # GalleryHours
    # ------------------------------------------------------------------

    def upsert_hours(
        self, gallery_id: str, dow: int, open_minutes: Sequence[tuple[int, int]]
    ) -> GalleryHours:
        """Insert or replace the opening ranges for one weekday."""
        ranges = [[int(o), int(c)] for o, c in open_minutes]
        table = GalleryHoursDB.__table__
        stmt = _insert(self.session, table).values(
            id=str(uuid4()),
            gallery_id=str(gallery_id),
            dow=dow,
            open_minutes_json=json.dumps(ranges),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["gallery_id", "dow"],
            set_={"open_minutes_json": stmt.excluded.open_minutes_json},
        )
        self.session.execute(stmt)
        return GalleryHours(
            gallery_id=str(gallery_id), dow=dow, open_minutes=[tuple(r) for r in ranges]
        )

    def list_hours(self, gallery_id: str) -> list[GalleryHours]:
        """List opening hours for a gallery ordered by weekday."""
        stmt = (
            select(GalleryHoursDB)
            .where(GalleryHoursDB.gallery_id == str(gallery_id))
            .order_by(GalleryHoursDB.dow)
        )
        return [
            GalleryHours(
                gallery_id=row.gallery_id,
                dow=row.dow,
                open_minutes=[tuple(r) for r in json.loads(row.open_minutes_json)],
            )
            for row in self.session.execute(_fresh(stmt)).scalars().all()
        ]

    def _to_domain(self, db_item: GalleryDB) -> Gallery:
        """Convert DB model to domain model."""
        return Gallery(
            id=db_item.id,
            main_url=db_item.main_url,
            about_url=db_item.about_url,
            events_page=db_item.events_page,
            normalized_main_url=db_item.normalized_main_url,
            created_at=db_item.created_at,
            updated_at=db_item.updated_at,
        )

    def _info_to_domain(self, db_item: GalleryInfoDB) -> GalleryInfo:
        """Convert DB model to domain model."""
        return GalleryInfo(
            gallery_id=db_item.gallery_id,
            name=db_item.name,
            about=db_item.about,
            address=db_item.address,
            district=db_item.district,
            email=db_item.email,
            phone=db_item.phone,
            instagram=db_item.instagram,
            tags=_loads(db_item.tags_json, []),
            opening_hours=db_item.opening_hours,
            data=_loads(db_item.data_json),
            embedding=_loads(db_item.embedding_json),
            embedding_model=db_item.embedding_model,
            embedding_created_at=db_item.embedding_created_at,
            updated_at=db_item.updated_at,
        )


class PageRepository:
    """Repository for the page registry (Page, PageContent, PageStructured)."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, page_id: str) -> Page | None:
        """Get a page by ID."""
        stmt = select(PageDB).where(PageDB.id == str(page_id))
        db_item = self.session.execute(_fresh(stmt)).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def get_many(self, page_ids: Iterable[str]) -> list[Page]:
        """Get pages by ID, preserving the order of `page_ids`."""
        ids = [str(p) for p in page_ids]
        if not ids:
            return []
        stmt = select(PageDB).where(PageDB.id.in_(ids))
        by_id = {p.id: p for p in self.session.execute(_fresh(stmt)).scalars().all()}
        return [self._to_domain(by_id[i]) for i in ids if i in by_id]

    def get_by_normalized_url(self, normalized_url: str) -> Page | None:
        """Get a page by its normalized URL."""
        stmt = select(PageDB).where(PageDB.normalized_url == normalized_url)
        db_item = self.session.execute(_fresh(stmt)).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def list_by_gallery(
        self, gallery_id: str, kinds: Sequence[PageKind] | None = None
    ) -> list[Page]:
        """List pages for a gallery, optionally filtered by kind."""
        stmt = select(PageDB).where(PageDB.gallery_id == str(gallery_id))
        if kinds:
            stmt = stmt.where(PageDB.kind.in_([k.value for k in kinds]))
        stmt = stmt.order_by(PageDB.created_at)
        return [self._to_domain(p) for p in self.session.execute(_fresh(stmt)).scalars().all()]

    def find_existing_normalized_urls(self, normalized_urls: Iterable[str]) -> set[str]:
        """Return the subset of `normalized_urls` already present in the registry."""
        urls = list(normalized_urls)
        if not urls:
            return set()
        stmt = select(PageDB.normalized_url).where(PageDB.normalized_url.in_(urls))
        return set(self.session.execute(_fresh(stmt)).scalars().all())

    def upsert_seed_page(
        self, gallery_id: str, url: str, normalized_url: str, kind: PageKind
    ) -> Page:
        """
        Insert a seeded page or re-attach an existing one.

        On conflict the gallery, URL and kind are updated; fetch status is
        left untouched.
        """
        now = _utc_now()
        table = PageDB.__table__
        stmt = _insert(self.session, table).values(
            id=str(uuid4()),
            gallery_id=str(gallery_id),
            url=url,
            normalized_url=normalized_url,
            kind=kind.value,
            fetch_status=FetchStatus.NEVER.value,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["normalized_url"],
            set_={
                "gallery_id": stmt.excluded.gallery_id,
                "url": stmt.excluded.url,
                "kind": stmt.excluded.kind,
                "updated_at": now,
            },
        )
        self.session.execute(stmt)
        page = self.get_by_normalized_url(normalized_url)
        if page is None:
            raise DataAccessError("upsert_page", f"No row returned for {normalized_url}")
        return page

    def insert_discovered(
        self, gallery_id: str | None, links: Sequence[tuple[str, str]]
    ) -> list[str]:
        """
        Insert discovered links as `init` pages, ignoring known URLs.

        Args:
            gallery_id: Owning gallery.
            links: (url, normalized_url) pairs.

        Returns:
            Normalized URLs that were actually inserted.
        """
        inserted: list[str] = []
        table = PageDB.__table__
        for url, normalized_url in links:
            now = _utc_now()
            stmt = (
                _insert(self.session, table)
                .values(
                    id=str(uuid4()),
                    gallery_id=str(gallery_id) if gallery_id else None,
                    url=url,
                    normalized_url=normalized_url,
                    kind=PageKind.INIT.value,
                    fetch_status=FetchStatus.NEVER.value,
                    created_at=now,
                    updated_at=now,
                )
                .on_conflict_do_nothing(index_elements=["normalized_url"])
            )
            result = self.session.execute(stmt)
            if result.rowcount:
                inserted.append(normalized_url)
        return inserted

    def set_kind(self, page_id: str, kind: PageKind) -> Page | None:
        """Set the kind of a page."""
        db_item = self._get_db(page_id)
        if db_item is None:
            return None
        db_item.kind = kind.value
        db_item.updated_at = _utc_now()
        self.session.flush()
        return self._to_domain(db_item)

    def mark_fetched(
        self, page_id: str, status: FetchStatus, fetched_at: datetime | None = None
    ) -> Page | None:
        """Record the outcome of a fetch attempt."""
        db_item = self._get_db(page_id)
        if db_item is None:
            return None
        db_item.fetch_status = status.value
        if fetched_at is not None:
            db_item.fetched_at = fetched_at
        db_item.updated_at = _utc_now()
        self.session.flush()
        return self._to_domain(db_item)

    # ------------------------------------------------------------------
    # PageContent
    # ------------------------------------------------------------------

    def get_content(self, page_id: str) -> PageContent | None:
        """Get the stored markdown for a page."""
        stmt = select(PageContentDB).where(PageContentDB.page_id == str(page_id))
        db_item = self.session.execute(_fresh(stmt)).scalar_one_or_none()
        if db_item is None:
            return None
        return PageContent(
            page_id=db_item.page_id, markdown=db_item.markdown, parsed_at=db_item.parsed_at
        )

    def upsert_content(self, page_id: str, markdown: str | None) -> PageContent:
        """Insert or replace the markdown for a page."""
        now = _utc_now()
        table = PageContentDB.__table__
        stmt = _insert(self.session, table).values(
            page_id=str(page_id), markdown=markdown, parsed_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["page_id"],
            set_={"markdown": stmt.excluded.markdown, "parsed_at": now},
        )
        self.session.execute(stmt)
        return PageContent(page_id=str(page_id), markdown=markdown, parsed_at=now)

    # ------------------------------------------------------------------
    # PageStructured
    # ------------------------------------------------------------------

    def get_structured(self, page_id: str) -> PageStructured | None:
        """Get the extraction state for a page."""
        stmt = select(PageStructuredDB).where(PageStructuredDB.page_id == str(page_id))
        db_item = self.session.execute(_fresh(stmt)).scalar_one_or_none()
        if db_item is None:
            return None
        return PageStructured(
            page_id=db_item.page_id,
            parse_status=ParseStatus(db_item.parse_status),
            extracted_page_kind=(
                PageKind(db_item.extracted_page_kind) if db_item.extracted_page_kind else None
            ),
            data=_loads(db_item.data_json),
            extraction_error=db_item.extraction_error,
            parsed_at=db_item.parsed_at,
            schema_version=db_item.schema_version,
        )

    def upsert_structured(self, structured: PageStructured) -> PageStructured:
        """Insert or fully replace the extraction state for a page."""
        values = {
            "parse_status": structured.parse_status.value,
            "extracted_page_kind": (
                structured.extracted_page_kind.value if structured.extracted_page_kind else None
            ),
            "data_json": _dumps(structured.data),
            "extraction_error": structured.extraction_error,
            "parsed_at": structured.parsed_at,
            "schema_version": structured.schema_version,
        }
        table = PageStructuredDB.__table__
        stmt = _insert(self.session, table).values(page_id=structured.page_id, **values)
        stmt = stmt.on_conflict_do_update(index_elements=["page_id"], set_=values)
        self.session.execute(stmt)
        return structured

    def _get_db(self, page_id: str) -> PageDB | None:
        stmt = select(PageDB).where(PageDB.id == str(page_id))
        return self.session.execute(_fresh(stmt)).scalar_one_or_none()

    def _to_domain(self, db_item: PageDB) -> Page:
        """Convert DB model to domain model."""
        return Page(
            id=db_item.id,
            gallery_id=db_item.gallery_id,
            url=db_item.url,
            normalized_url=db_item.normalized_url,
            kind=PageKind(db_item.kind),
            fetch_status=FetchStatus(db_item.fetch_status),
            fetched_at=db_item.fetched_at,
            created_at=db_item.created_at,
            updated_at=db_item.updated_at,
        )


class EventRepository:
    """Repository for Event and EventInfo operations."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, event_id: str) -> Event | None:
        """Get an event by ID."""
        stmt = select(EventDB).where(EventDB.id == str(event_id))
        db_item = self.session.execute(_fresh(stmt)).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def get_by_page_id(self, page_id: str) -> Event | None:
        """Get the event materialized from a page."""
        stmt = select(EventDB).where(EventDB.page_id == str(page_id))
        db_item = self.session.execute(_fresh(stmt)).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def list_by_gallery(self, gallery_id: str) -> list[Event]:
        """List events for a gallery ordered by start time."""
        stmt = (
            select(EventDB)
            .where(EventDB.gallery_id == str(gallery_id))
            .order_by(EventDB.start_at)
        )
        return [self._to_domain(e) for e in self.session.execute(_fresh(stmt)).scalars().all()]

    def event_ids_by_page(self, page_ids: Iterable[str]) -> dict[str, str]:
        """Map page id to event id for pages that already have an event."""
        ids = [str(p) for p in page_ids]
        if not ids:
            return {}
        stmt = select(EventDB.page_id, EventDB.id).where(EventDB.page_id.in_(ids))
        return {page_id: event_id for page_id, event_id in self.session.execute(_fresh(stmt)).all()}

    def upsert(
        self,
        *,
        existing_id: str | None,
        gallery_id: str,
        page_id: str,
        title: str,
        start_at: datetime,
        end_at: datetime | None,
        timezone: str,
        status: str,
        ticket_url: str | None,
    ) -> Event:
        """
        Insert an event or update the one already materialized from `page_id`.

        The event id is preserved on update.
        """
        now = _utc_now()
        values = {
            "gallery_id": str(gallery_id),
            "title": title,
            "start_at": start_at,
            "end_at": end_at,
            "timezone": timezone,
            "status": status,
            "ticket_url": ticket_url,
            "updated_at": now,
        }
        table = EventDB.__table__
        stmt = _insert(self.session, table).values(
            id=existing_id or str(uuid4()), page_id=str(page_id), created_at=now, **values
        )
        stmt = stmt.on_conflict_do_update(index_elements=["page_id"], set_=values)
        self.session.execute(stmt)
        event = self.get_by_page_id(page_id)
        if event is None:
            raise DataAccessError("upsert_event", f"No row returned for page {page_id}")
        return event

    def get_info(self, event_id: str) -> EventInfo | None:
        """Get the info row for an event."""
        stmt = select(EventInfoDB).where(EventInfoDB.event_id == str(event_id))
        db_item = self.session.execute(_fresh(stmt)).scalar_one_or_none()
        return self._info_to_domain(db_item) if db_item else None

    def upsert_info(self, info: EventInfo) -> EventInfo:
        """Insert or update event detail; an existing embedding is kept."""
        values = {
            "source_page_id": info.source_page_id,
            "description": info.description,
            "artists_json": json.dumps(info.artists),
            "tags_json": json.dumps(info.tags),
            "images_json": json.dumps(info.images),
            "prices_json": _dumps(info.prices.model_dump() if info.prices else None),
            "data_json": _dumps(info.data),
        }
        table = EventInfoDB.__table__
        stmt = _insert(self.session, table).values(event_id=str(info.event_id), **values)
        stmt = stmt.on_conflict_do_update(index_elements=["event_id"], set_=values)
        self.session.execute(stmt)
        stored = self.get_info(info.event_id)
        if stored is None:
            raise DataAccessError("upsert_event_info", f"No row returned for {info.event_id}")
        return stored

    def save_embedding(self, event_id: str, vector: list[float], model: str) -> None:
        """Store an event embedding, creating the info row if needed."""
        values = {
            "embedding_json": json.dumps(vector),
            "embedding_model": model,
            "embedding_created_at": _utc_now(),
        }
        table = EventInfoDB.__table__
        stmt = _insert(self.session, table).values(event_id=str(event_id), **values)
        stmt = stmt.on_conflict_do_update(index_elements=["event_id"], set_=values)
        self.session.execute(stmt)

    def _to_domain(self, db_item: EventDB) -> Event:
        """Convert DB model to domain model."""
        return Event(
            id=db_item.id,
            gallery_id=db_item.gallery_id,
            page_id=db_item.page_id,
            title=db_item.title,
            start_at=db_item.start_at,
            end_at=db_item.end_at,
            timezone=db_item.timezone,
            status=db_item.status,
            ticket_url=db_item.ticket_url,
            created_at=db_item.created_at,
            updated_at=db_item.updated_at,
        )

    def _info_to_domain(self, db_item: EventInfoDB) -> EventInfo:
        """Convert DB model to domain model."""
        prices = _loads(db_item.prices_json)
        return EventInfo(
            event_id=db_item.event_id,
            source_page_id=db_item.source_page_id,
            description=db_item.description,
            artists=_loads(db_item.artists_json, []),
            tags=_loads(db_item.tags_json, []),
            images=_loads(db_item.images_json, []),
            prices=Prices.model_validate(prices) if prices else None,
            data=_loads(db_item.data_json),
            embedding=_loads(db_item.embedding_json),
            embedding_model=db_item.embedding_model,
            embedding_created_at=db_item.embedding_created_at,
        )


class WorkflowRepository:
    """Repository for workflow runs and their step log."""

    def __init__(self, session: Session):
        self.session = session

    def create_run(
        self,
        workflow: str,
        params: dict[str, Any],
        run_id: str | None = None,
        status: RunStatus = RunStatus.QUEUED,
    ) -> WorkflowRun:
        """Create a new workflow run."""
        db_item = WorkflowRunDB(
            id=run_id or str(uuid4()),
            workflow=workflow,
            params_json=json.dumps(params, default=str),
            status=status.value,
            created_at=_utc_now(),
        )
        self.session.add(db_item)
        self.session.flush()
        return self._to_domain(db_item)

    def get_run(self, run_id: str) -> WorkflowRun | None:
        """Get a workflow run by ID."""
        stmt = select(WorkflowRunDB).where(WorkflowRunDB.id == str(run_id))
        db_item = self.session.execute(_fresh(stmt)).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def list_runs(self, workflow: str | None = None, limit: int = 50) -> list[WorkflowRun]:
        """List recent runs, newest first."""
        stmt = select(WorkflowRunDB)
        if workflow:
            stmt = stmt.where(WorkflowRunDB.workflow == workflow)
        stmt = stmt.order_by(WorkflowRunDB.created_at.desc()).limit(limit)
        return [self._to_domain(r) for r in self.session.execute(_fresh(stmt)).scalars().all()]

    def set_status(
        self,
        run_id: str,
        status: RunStatus,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> WorkflowRun:
        """Update the status of a run, recording its result or error."""
        stmt = select(WorkflowRunDB).where(WorkflowRunDB.id == str(run_id))
        db_item = self.session.execute(_fresh(stmt)).scalar_one_or_none()
        if db_item is None:
            raise DataAccessError("set_run_status", f"Workflow run {run_id} not found")

        db_item.status = status.value
        if result is not None:
            db_item.result_json = json.dumps(result, default=str)
        db_item.error = error
        if status in (RunStatus.COMPLETED, RunStatus.FAILED):
            db_item.completed_at = _utc_now()
        self.session.flush()
        return self._to_domain(db_item)

    def get_step(self, run_id: str, step_name: str) -> WorkflowStep | None:
        """Get a completed step, if it has been recorded."""
        stmt = select(WorkflowStepDB).where(
            WorkflowStepDB.run_id == str(run_id), WorkflowStepDB.step_name == step_name
        )
        db_item = self.session.execute(_fresh(stmt)).scalar_one_or_none()
        return self._step_to_domain(db_item) if db_item else None

    def list_steps(self, run_id: str) -> list[WorkflowStep]:
        """List completed steps of a run in completion order."""
        stmt = (
            select(WorkflowStepDB)
            .where(WorkflowStepDB.run_id == str(run_id))
            .order_by(WorkflowStepDB.created_at)
        )
        return [self._step_to_domain(s) for s in self.session.execute(_fresh(stmt)).scalars().all()]

    def save_step(self, run_id: str, step_name: str, result: Any, attempts: int = 1) -> None:
        """Record a completed step. A step recorded twice keeps its first result."""
        table = WorkflowStepDB.__table__
        stmt = (
            _insert(self.session, table)
            .values(
                id=str(uuid4()),
                run_id=str(run_id),
                step_name=step_name,
                status="completed",
                result_json=json.dumps(result, default=str),
                attempts=attempts,
                created_at=_utc_now(),
            )
            .on_conflict_do_nothing(index_elements=["run_id", "step_name"])
        )
        self.session.execute(stmt)

    def _to_domain(self, db_item: WorkflowRunDB) -> WorkflowRun:
        """Convert DB model to domain model."""
        return WorkflowRun(
            id=db_item.id,
            workflow=db_item.workflow,
            params=json.loads(db_item.params_json or "{}"),
            status=RunStatus(db_item.status),
            result=_loads(db_item.result_json),
            error=db_item.error,
            created_at=db_item.created_at,
            completed_at=db_item.completed_at,
        )

    def _step_to_domain(self, db_item: WorkflowStepDB) -> WorkflowStep:
        """Convert DB model to domain model."""
        return WorkflowStep(
            run_id=db_item.run_id,
            step_name=db_item.step_name,
            result=json.loads(db_item.result_json),
            attempts=db_item.attempts,
            created_at=db_item.created_at,
        )
