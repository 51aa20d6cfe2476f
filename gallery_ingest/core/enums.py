"""Enums for pipeline entities and workflow state."""

from enum import Enum


class PageKind(str, Enum):
    """Role of a page within a gallery site."""

    INIT = "init"
    GALLERY_MAIN = "gallery_main"
    GALLERY_ABOUT = "gallery_about"
    EVENT_LIST = "event_list"
    EVENT_CANDIDATE = "event_candidate"
    EVENT_DETAIL = "event_detail"
    OTHER = "other"

    @property
    def is_provisional(self) -> bool:
        """Provisional kinds may be overwritten by an extraction result."""
        return self in (PageKind.INIT, PageKind.EVENT_CANDIDATE)

    @property
    def is_event(self) -> bool:
        return self in (PageKind.EVENT_CANDIDATE, PageKind.EVENT_DETAIL)


# Kinds created by the seeder, in seeding order.
SEED_PAGE_KINDS = (PageKind.GALLERY_MAIN, PageKind.GALLERY_ABOUT, PageKind.EVENT_LIST)


class FetchStatus(str, Enum):
    """Whether raw content was retrieved for a page."""

    NEVER = "never"
    OK = "ok"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self != FetchStatus.NEVER


class ParseStatus(str, Enum):
    """Whether structured extraction succeeded for a page."""

    NEVER = "never"
    QUEUED = "queued"
    OK = "ok"
    ERROR = "error"


class EventStatus(str, Enum):
    """Scheduling status of an event."""

    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    POSTPONED = "postponed"
    RESCHEDULED = "rescheduled"
    UNKNOWN = "unknown"


class RunStatus(str, Enum):
    """Status of a workflow run."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
