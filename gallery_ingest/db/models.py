"""SQLAlchemy ORM models for the Gallery Ingest database.

These models define the tables for the ingestion pipeline:
- GalleryDB, GalleryInfoDB, GalleryHoursDB (gallery entities)
- PageDB, PageContentDB, PageStructuredDB (page registry)
- EventDB, EventInfoDB (materialized events)
- WorkflowRunDB, WorkflowStepDB (durable workflow state)
"""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def _generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ============================================================================
# Gallery Entities
# ============================================================================


class GalleryDB(Base):
    """
    Database model for galleries.

    A gallery is identified by its normalized main URL.
    """

    __tablename__ = "galleries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    main_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    about_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    events_page: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    normalized_main_url: Mapped[str] = mapped_column(String(2048), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    def __repr__(self) -> str:
        return f"<GalleryDB(id={self.id}, url='{self.normalized_main_url}')>"


class GalleryInfoDB(Base):
    """
    Database model for gallery descriptive facts.

    Holds operator-seeded fields, extracted fields and the gallery embedding.
    """

    __tablename__ = "gallery_info"

    gallery_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("galleries.id"), primary_key=True
    )
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    about: Mapped[str | None] = mapped_column(Text, nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    district: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(100), nullable=True)
    instagram: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tags_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    opening_hours: Mapped[str | None] = mapped_column(Text, nullable=True)
    data_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # raw extraction
    embedding_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON float array
    embedding_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    embedding_created_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    def __repr__(self) -> str:
        return f"<GalleryInfoDB(gallery_id={self.gallery_id}, name='{self.name}')>"


class GalleryHoursDB(Base):
    """Database model for per-weekday opening hours."""

    __tablename__ = "gallery_hours"
    __table_args__ = (UniqueConstraint("gallery_id", "dow", name="uq_gallery_hours_gallery_dow"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    gallery_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("galleries.id"), nullable=False, index=True
    )
    dow: Mapped[int] = mapped_column(Integer, nullable=False)  # 0 = Monday
    open_minutes_json: Mapped[str] = mapped_column(Text, default="[]")  # [[open, close], ...]

    def __repr__(self) -> str:
        return f"<GalleryHoursDB(gallery_id={self.gallery_id}, dow={self.dow})>"


# ============================================================================
# Page Registry
# ============================================================================


class PageDB(Base):
    """
    Database model for pages.

    Every URL known to the pipeline, deduplicated on its normalized form.
    """

    __tablename__ = "pages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    gallery_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("galleries.id"), nullable=True, index=True
    )
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    normalized_url: Mapped[str] = mapped_column(String(2048), nullable=False, unique=True)
    kind: Mapped[str] = mapped_column(String(30), default="init", index=True)
    fetch_status: Mapped[str] = mapped_column(String(20), default="never", index=True)
    fetched_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    def __repr__(self) -> str:
        return f"<PageDB(id={self.id}, kind='{self.kind}', url='{self.normalized_url}')>"


class PageContentDB(Base):
    """Database model for fetched page markdown."""

    __tablename__ = "page_content"

    page_id: Mapped[str] = mapped_column(String(36), ForeignKey("pages.id"), primary_key=True)
    markdown: Mapped[str | None] = mapped_column(Text, nullable=True)
    parsed_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    def __repr__(self) -> str:
        size = len(self.markdown) if self.markdown else 0
        return f"<PageContentDB(page_id={self.page_id}, chars={size})>"


class PageStructuredDB(Base):
    """Database model for page extraction state and payload."""

    __tablename__ = "page_structured"

    page_id: Mapped[str] = mapped_column(String(36), ForeignKey("pages.id"), primary_key=True)
    parse_status: Mapped[str] = mapped_column(String(20), default="never", index=True)
    extracted_page_kind: Mapped[str | None] = mapped_column(String(30), nullable=True)
    data_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    extraction_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    parsed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    schema_version: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def __repr__(self) -> str:
        return f"<PageStructuredDB(page_id={self.page_id}, status='{self.parse_status}')>"


# ============================================================================
# Events
# ============================================================================


class EventDB(Base):
    """
    Database model for events.

    At most one event exists per source page.
    """

    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    gallery_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("galleries.id"), nullable=False, index=True
    )
    page_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("pages.id"), nullable=False, unique=True
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="scheduled")
    ticket_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    def __repr__(self) -> str:
        return f"<EventDB(id={self.id}, title='{self.title}')>"


class EventInfoDB(Base):
    """Database model for event detail and embedding."""

    __tablename__ = "event_info"

    event_id: Mapped[str] = mapped_column(String(36), ForeignKey("events.id"), primary_key=True)
    source_page_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    artists_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    tags_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    images_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    prices_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON object
    data_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    embedding_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    embedding_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    embedding_created_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<EventInfoDB(event_id={self.event_id})>"


# ============================================================================
# Workflows
# ============================================================================


class WorkflowRunDB(Base):
    """Database model for workflow runs."""

    __tablename__ = "workflow_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    workflow: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    params_json: Mapped[str] = mapped_column(Text, default="{}")
    status: Mapped[str] = mapped_column(String(20), default="queued", index=True)
    result_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<WorkflowRunDB(id={self.id}, workflow='{self.workflow}', status='{self.status}')>"


class WorkflowStepDB(Base):
    """
    Database model for completed workflow steps.

    A row exists only once the step has completed; its result is replayed
    when the run is resumed.
    """

    __tablename__ = "workflow_steps"
    __table_args__ = (UniqueConstraint("run_id", "step_name", name="uq_workflow_steps_run_step"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    run_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("workflow_runs.id"), nullable=False, index=True
    )
    step_name: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="completed")
    result_json: Mapped[str] = mapped_column(Text, default="null")
    attempts: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    def __repr__(self) -> str:
        return f"<WorkflowStepDB(run_id={self.run_id}, step='{self.step_name}')>"
