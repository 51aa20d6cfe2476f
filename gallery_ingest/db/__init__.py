"""Database initialization and persistence layer."""

from gallery_ingest.db.engine import (
    get_database_url,
    get_session,
    init_db,
    reset_engine,
    run_migrations,
)
from gallery_ingest.db.models import (
    Base,
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
from gallery_ingest.db.repositories import (
    EventRepository,
    GalleryRepository,
    PageRepository,
    WorkflowRepository,
)

__all__ = [
    # Engine
    "get_database_url",
    "get_session",
    "init_db",
    "reset_engine",
    "run_migrations",
    # Models
    "Base",
    "GalleryDB",
    "GalleryInfoDB",
    "GalleryHoursDB",
    "PageDB",
    "PageContentDB",
    "PageStructuredDB",
    "EventDB",
    "EventInfoDB",
    "WorkflowRunDB",
    "WorkflowStepDB",
    # Repositories
    "GalleryRepository",
    "PageRepository",
    "EventRepository",
    "WorkflowRepository",
]
