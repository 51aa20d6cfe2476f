"""
Event Materializer Module
=========================

Turns successful event_detail extractions into Event and EventInfo rows.
Exactly one Event exists per source page; re-materializing a page updates
the event in place and keeps its id.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError
from sqlalchemy.orm import Session

from gallery_ingest.core.enums import EventStatus
from gallery_ingest.core.extraction import EventExtraction
from gallery_ingest.core.schema import EventInfo, Page
from gallery_ingest.db.repositories import EventRepository, PageRepository
from gallery_ingest.ingestion.extractor import event_payload

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Warsaw"


def _zone(name: str | None, fallback: str) -> tuple[str, ZoneInfo]:
    for candidate in (name, fallback):
        if not candidate:
            continue
        try:
            return candidate, ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone {candidate!r}, falling back")
    return "UTC", ZoneInfo("UTC")


def to_utc(value: datetime | None, zone: ZoneInfo) -> datetime | None:
    """Convert to UTC; naive values are read as wall time in `zone`."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=zone)
    return value.astimezone(UTC)


class EventMaterializer:
    """Creates or updates events from extracted event payloads."""

    def __init__(self, session: Session, default_timezone: str = DEFAULT_TIMEZONE) -> None:
        self.session = session
        self.default_timezone = default_timezone
        self.pages = PageRepository(session)
        self.events = EventRepository(session)

    def materialize_page(self, page: Page) -> str | None:
        """
        Materialize the event extracted from one page.

        Returns:
            The event id, or None when the page has no gallery or no
            successful event_detail extraction.
        """
        if not page.gallery_id:
            logger.info(f"Skipping event processing for page {page.id} - missing gallery")
            return None

        raw = event_payload(self.pages.get_structured(page.id))
        if raw is None:
            logger.info(f"Skipping page {page.id} - no event payload")
            return None
        try:
            payload = EventExtraction.model_validate(raw)
        except ValidationError as e:
            logger.error(f"Failed parsing structured data for {page.id}: {e}")
            return None

        first = payload.occurrences[0] if payload.occurrences else None
        timezone, zone = _zone(
            (first.timezone if first else None) or payload.timezone, self.default_timezone
        )
        start_at = first.start_at if first else payload.start_at
        end_at = (first.end_at if first else None) or payload.end_at
        if start_at is None:
            logger.warning(f'Event "{payload.title}" has no start_at, using current timestamp')
            start_at = datetime.now(UTC)

        existing_id = self.events.event_ids_by_page([page.id]).get(page.id)
        try:
            event = self.events.upsert(
                existing_id=existing_id,
                gallery_id=page.gallery_id,
                page_id=page.id,
                title=payload.title,
                start_at=to_utc(start_at, zone),
                end_at=to_utc(end_at, zone),
                timezone=timezone,
                status=(payload.status or EventStatus.UNKNOWN).value,
                ticket_url=payload.ticket_url,
            )
            self.events.upsert_info(
                EventInfo(
                    event_id=event.id,
                    source_page_id=page.id,
                    description=payload.description,
                    artists=payload.artists,
                    tags=payload.tags,
                    images=payload.images,
                    prices=payload.prices,
                    data=payload.model_dump(mode="json"),
                )
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(f'Processed event "{payload.title}" for page {page.id} (event {event.id})')
        return event.id

    def materialize(self, page_ids: Sequence[str]) -> list[str]:
        """
        Materialize events for a batch of pages.

        Returns:
            Ids of created or updated events.
        """
        event_ids: list[str] = []
        for page in self.pages.get_many(page_ids):
            event_id = self.materialize_page(page)
            if event_id:
                event_ids.append(event_id)
        logger.info(f"Event processing complete - {len(event_ids)} events linked")
        return event_ids
