"""
Embedding Module
================

Computes embedding vectors for events and galleries through the completion
service and stores them with the model id and a timestamp.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from gallery_ingest.db.repositories import EventRepository, GalleryRepository
from gallery_ingest.services.ai.client import AIClient

logger = logging.getLogger(__name__)


@dataclass
class EmbedSummary:
    """Outcome of an embedding batch."""

    embedded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {"embedded": self.embedded, "skipped": self.skipped, "errors": self.errors}


class Embedder:
    """Embeds events and galleries; one entity's failure never stops the batch."""

    def __init__(self, session: Session, ai: AIClient) -> None:
        self.session = session
        self.ai = ai
        self.events = EventRepository(session)
        self.galleries = GalleryRepository(session)

    def event_text(self, event_id: str) -> str:
        """Text to embed for an event: its description, else its title."""
        info = self.events.get_info(event_id)
        if info is not None and info.description and info.description.strip():
            return info.description.strip()
        event = self.events.get_by_id(event_id)
        return event.title.strip() if event else ""

    def gallery_text(self, gallery_id: str) -> str:
        """Text to embed for a gallery: labeled name/tags/about lines, else its main URL."""
        info = self.galleries.get_info(gallery_id)
        lines: list[str] = []
        if info is not None:
            if info.name:
                lines.append(f"Name: {info.name}")
            if info.tags:
                lines.append(f"Tags: {', '.join(info.tags)}")
            if info.about:
                lines.append(f"About: {info.about}")
        if lines:
            return "\n".join(lines).strip()
        gallery = self.galleries.get_by_id(gallery_id)
        return gallery.main_url.strip() if gallery else ""

    def embed_event(self, event_id: str) -> bool:
        """Embed one event. Returns False when there was no text to embed."""
        text = self.event_text(event_id)
        if not text:
            logger.info(f"No text to embed for event {event_id}")
            return False
        vector = self.ai.embed(text)
        try:
            self.events.save_embedding(event_id, vector, self.ai.embedding_model)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return True

    def embed_gallery(self, gallery_id: str) -> bool:
        """
        Embed one gallery.

        Returns False when the gallery already has an embedding or there is
        no text to embed; no completion call is made in either case.
        """
        info = self.galleries.get_info(gallery_id)
        if info is not None and info.has_embedding:
            logger.info(f"Gallery {gallery_id} already has an embedding, skipping")
            return False
        text = self.gallery_text(gallery_id)
        if not text:
            logger.info(f"No text to embed for gallery {gallery_id}")
            return False
        vector = self.ai.embed(text)
        try:
            self.galleries.save_embedding(gallery_id, vector, self.ai.embedding_model)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return True

    def _embed_all(self, kind: str, ids: Sequence[str], embed_one) -> EmbedSummary:
        summary = EmbedSummary()
        for entity_id in ids:
            try:
                done = embed_one(entity_id)
            except Exception as e:
                logger.error(f"Embedding failed for {kind} {entity_id}: {e}")
                summary.errors[entity_id] = str(e)
                continue
            (summary.embedded if done else summary.skipped).append(entity_id)
        logger.info(
            f"Embedded {len(summary.embedded)} {kind}s "
            f"({len(summary.skipped)} skipped, {len(summary.errors)} errors)"
        )
        return summary

    def embed_events(self, event_ids: Sequence[str]) -> EmbedSummary:
        """Embed a batch of events; events are always re-embedded."""
        return self._embed_all("event", event_ids, self.embed_event)

    def embed_galleries(self, gallery_ids: Sequence[str]) -> EmbedSummary:
        """Embed a batch of galleries, skipping those already embedded."""
        return self._embed_all("gallery", gallery_ids, self.embed_gallery)
