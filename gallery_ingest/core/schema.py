"""Pydantic v2 domain models for Gallery Ingest.

These models mirror the persisted entities:
- Gallery, GalleryInfo, GalleryHours (gallery entities)
- Page, PageContent, PageStructured (page registry)
- Event, EventInfo (materialized events)
- WorkflowRun (durable workflow bookkeeping)

Repositories return these models; ORM rows never leave the db package.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from gallery_ingest.core.enums import EventStatus, FetchStatus, PageKind, ParseStatus, RunStatus
from gallery_ingest.core.extraction import Prices


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


# ============================================================================
# Gallery Entities
# ============================================================================


class SeedRequest(BaseModel):
    """
    Operator input for seeding a gallery.

    Only `main_url` is required; optional fields are written to
    GalleryInfo when present and never overwrite with nulls.
    """

    main_url: str
    about_url: str | None = None
    events_url: str | None = None
    name: str | None = None
    address: str | None = None
    instagram: str | None = None
    opening_hours: str | None = None

    @field_validator("main_url")
    @classmethod
    def main_url_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("main_url cannot be empty")
        return v.strip()

    @field_validator("about_url", "events_url", "name", "address", "instagram", "opening_hours")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None


class Gallery(BaseModel):
    """A gallery identified by its normalized main URL."""

    id: str
    main_url: str
    about_url: str | None = None
    events_page: str | None = None
    normalized_main_url: str
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class GalleryInfo(BaseModel):
    """Descriptive facts about a gallery, seeded by operators or extracted."""

    gallery_id: str
    name: str | None = None
    about: str | None = None
    address: str | None = None
    district: str | None = None
    email: str | None = None
    phone: str | None = None
    instagram: str | None = None
    tags: list[str] = Field(default_factory=list)
    opening_hours: str | None = None
    data: dict[str, Any] | None = None
    embedding: list[float] | None = None
    embedding_model: str | None = None
    embedding_created_at: datetime | None = None
    updated_at: datetime = Field(default_factory=_utc_now)

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)


class GalleryHours(BaseModel):
    """Opening ranges for one weekday, in minutes since midnight."""

    gallery_id: str
    dow: int = Field(ge=0, le=6)
    open_minutes: list[tuple[int, int]] = Field(default_factory=list)


# ============================================================================
# Page Registry
# ============================================================================


class Page(BaseModel):
    """A URL known to the pipeline."""

    id: str
    gallery_id: str | None = None
    url: str
    normalized_url: str
    kind: PageKind = PageKind.INIT
    fetch_status: FetchStatus = FetchStatus.NEVER
    fetched_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class PageContent(BaseModel):
    """Raw markdown retrieved for a page. `markdown` is None when fetched but empty."""

    page_id: str
    markdown: str | None = None
    parsed_at: datetime = Field(default_factory=_utc_now)

    @property
    def has_text(self) -> bool:
        return bool(self.markdown and self.markdown.strip())


class PageStructured(BaseModel):
    """Structured extraction state for a page."""

    page_id: str
    parse_status: ParseStatus = ParseStatus.NEVER
    extracted_page_kind: PageKind | None = None
    data: dict[str, Any] | None = None
    extraction_error: str | None = None
    parsed_at: datetime | None = None
    schema_version: str | None = None


# ============================================================================
# Events
# ============================================================================


class Event(BaseModel):
    """An event materialized from exactly one event_detail page."""

    id: str
    gallery_id: str
    page_id: str
    title: str
    start_at: datetime
    end_at: datetime | None = None
    timezone: str
    status: EventStatus = EventStatus.SCHEDULED
    ticket_url: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class EventInfo(BaseModel):
    """Descriptive detail and embedding for an event."""

    event_id: str
    source_page_id: str | None = None
    description: str | None = None
    artists: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
    prices: Prices | None = None
    data: dict[str, Any] | None = None
    embedding: list[float] | None = None
    embedding_model: str | None = None
    embedding_created_at: datetime | None = None


# ============================================================================
# Workflows
# ============================================================================


class WorkflowRun(BaseModel):
    """One execution of a named workflow."""

    id: str
    workflow: str
    params: dict[str, Any] = Field(default_factory=dict)
    status: RunStatus = RunStatus.QUEUED
    result: dict[str, Any] | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    completed_at: datetime | None = None

    @property
    def is_finished(self) -> bool:
        return self.status in (RunStatus.COMPLETED, RunStatus.FAILED)


class WorkflowStep(BaseModel):
    """A completed, memoized step of a workflow run."""

    run_id: str
    step_name: str
    result: Any = None
    attempts: int = 1
    created_at: datetime = Field(default_factory=_utc_now)
