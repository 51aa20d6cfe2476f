"""Pydantic schemas for completion-service outputs.

Every object returned by the completion service is validated against one
of these models before it is persisted:
- PageClassification (page-kind triage)
- PageExtraction (tagged union: no-payload kinds vs. event_detail)
- GalleryExtraction (gallery-level facts)
- OpeningHoursExtraction (per-weekday minute ranges)
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from gallery_ingest.core.enums import EventStatus, PageKind

SCHEMA_VERSION = "1"


def _none_to_empty_list(value: Any) -> Any:
    return [] if value is None else value


# ============================================================================
# Event payload
# ============================================================================


class Prices(BaseModel):
    """Ticket price range."""

    min: float | None = None
    max: float | None = None
    currency: str | None = None


class EventOccurrence(BaseModel):
    """A single dated occurrence of an event."""

    start_at: datetime
    end_at: datetime | None = None
    timezone: str | None = None


class EventExtraction(BaseModel):
    """Structured facts extracted from an event detail page."""

    title: str = Field(min_length=1)
    start_at: datetime | None = None
    end_at: datetime | None = None
    timezone: str | None = None
    status: EventStatus | None = None
    ticket_url: str | None = None
    description: str | None = None
    prices: Prices | None = None
    artists: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
    occurrences: list[EventOccurrence] = Field(default_factory=list)

    @field_validator("artists", "tags", "images", "occurrences", mode="before")
    @classmethod
    def nulls_to_lists(cls, v: Any) -> Any:
        return _none_to_empty_list(v)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title cannot be blank")
        return v.strip()


# ============================================================================
# Page extraction variants
# ============================================================================


class _PageVariant(BaseModel):
    model_config = ConfigDict(frozen=True)

    @property
    def page_kind(self) -> PageKind:
        return PageKind(self.type)  # type: ignore[attr-defined]


class GalleryMainPage(_PageVariant):
    type: Literal["gallery_main"] = "gallery_main"


class GalleryAboutPage(_PageVariant):
    type: Literal["gallery_about"] = "gallery_about"


class EventListPage(_PageVariant):
    type: Literal["event_list"] = "event_list"


class OtherPage(_PageVariant):
    type: Literal["other"] = "other"


class EventDetailPage(_PageVariant):
    type: Literal["event_detail"] = "event_detail"
    payload: EventExtraction


PageExtraction = Annotated[
    Union[GalleryMainPage, GalleryAboutPage, EventListPage, OtherPage, EventDetailPage],
    Field(discriminator="type"),
]

_page_extraction_adapter: TypeAdapter[PageExtraction] = TypeAdapter(PageExtraction)


def parse_page_extraction(data: Any) -> PageExtraction:
    """Validate a raw dict into one of the page extraction variants."""
    return _page_extraction_adapter.validate_python(data)


def page_extraction_json_schema() -> dict[str, Any]:
    """JSON schema for the page extraction union (used in prompts)."""
    return _page_extraction_adapter.json_schema()


class PageClassification(BaseModel):
    """Result of page-kind triage."""

    kind: PageKind


# ============================================================================
# Gallery facts
# ============================================================================


class GalleryExtraction(BaseModel):
    """Gallery-level facts extracted from main/about pages."""

    name: str | None = None
    about: str = ""
    email: str | None = None
    phone: str | None = None
    district: str | None = None
    tags: list[str] = Field(default_factory=list)

    @field_validator("about", mode="before")
    @classmethod
    def about_null_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("tags", mode="before")
    @classmethod
    def tags_null_to_list(cls, v: Any) -> Any:
        return _none_to_empty_list(v)


# ============================================================================
# Opening hours
# ============================================================================

MINUTES_PER_DAY = 24 * 60


class MinuteRange(BaseModel):
    """An open interval expressed as minutes since midnight."""

    open_minute: int = Field(ge=0, le=MINUTES_PER_DAY)
    close_minute: int = Field(ge=0, le=MINUTES_PER_DAY)

    @model_validator(mode="after")
    def close_after_open(self) -> "MinuteRange":
        if self.close_minute <= self.open_minute:
            raise ValueError(
                f"close_minute ({self.close_minute}) must be after open_minute ({self.open_minute})"
            )
        return self


class DayHours(BaseModel):
    """Opening ranges for one weekday (0 = Monday)."""

    dow: int = Field(ge=0, le=6)
    ranges: list[MinuteRange] = Field(default_factory=list)


class OpeningHoursExtraction(BaseModel):
    """Weekly opening hours parsed from free text."""

    days: list[DayHours] = Field(default_factory=list)

    @field_validator("days")
    @classmethod
    def unique_days(cls, v: list[DayHours]) -> list[DayHours]:
        seen: set[int] = set()
        for day in v:
            if day.dow in seen:
                raise ValueError(f"duplicate weekday {day.dow}")
            seen.add(day.dow)
        return v
