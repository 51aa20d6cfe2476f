"""Test doubles for the page-fetch and completion services."""

from collections import Counter
from typing import Any

from gallery_ingest.core.enums import PageKind
from gallery_ingest.core.exceptions import FetchError
from gallery_ingest.core.extraction import (
    GalleryExtraction,
    OpeningHoursExtraction,
    PageExtraction,
    parse_page_extraction,
)
from gallery_ingest.ingestion.crawler import PageFetcher, ScrapeResult
from gallery_ingest.services.ai.client import AIClient, AIProvider


class FakeFetcher(PageFetcher):
    """In-memory page-fetch service keyed by normalized URL."""

    def __init__(
        self,
        markdown: dict[str, str | None] | None = None,
        links: dict[str, list[str]] | None = None,
        failures: set[str] | None = None,
    ) -> None:
        self.markdown = markdown or {}
        self.links = links or {}
        self.failures = failures or set()
        self.scraped: list[str] = []
        self.mapped: list[str] = []

    async def scrape(self, url: str) -> ScrapeResult:
        self.scraped.append(url)
        if url in self.failures:
            raise FetchError(f"Fetch failed for {url}", status_code=500)
        return ScrapeResult(url=url, markdown=self.markdown.get(url, f"# Page {url}"))

    async def map_links(self, url: str, limit: int = 100) -> list[str]:
        self.mapped.append(url)
        if url in self.failures:
            raise FetchError(f"Map failed for {url}")
        return self.links.get(url, [])[:limit]


class FakeAIClient(AIClient):
    """
    Completion service double.

    Structured operations answer from the configured tables keyed by page
    URL; `_complete` pops queued raw responses so the parsing layer can be
    exercised directly.
    """

    provider = AIProvider.OPENAI
    model = "fake-chat"
    embedding_model = "fake-embedding"

    def __init__(self) -> None:
        self.kinds: dict[str, PageKind] = {}
        self.extractions: dict[str, dict[str, Any] | Exception] = {}
        self.gallery = GalleryExtraction(
            name="Extracted Name",
            about="A contemporary art space.",
            email="hello@acme-gallery.com",
            district="Mokotow",
            tags=["contemporary", "painting"],
        )
        self.hours = OpeningHoursExtraction.model_validate(
            {
                "days": [
                    {"dow": 1, "ranges": [{"open_minute": 720, "close_minute": 1080}]},
                    {"dow": 2, "ranges": [{"open_minute": 720, "close_minute": 1080}]},
                ]
            }
        )
        self.embed_error: Exception | None = None
        self.responses: list[str] = []
        self.calls: Counter[str] = Counter()

    def _complete(self, system: str, prompt: str) -> str:
        self.calls["complete"] += 1
        return self.responses.pop(0)

    def embed(self, text: str) -> list[float]:
        self.calls["embed"] += 1
        if self.embed_error is not None:
            raise self.embed_error
        return [0.1, 0.2, 0.3]

    def classify_page(self, markdown: str, url: str) -> PageKind:
        self.calls["classify"] += 1
        return self.kinds.get(url, PageKind.OTHER)

    def extract_page(self, markdown: str, url: str) -> PageExtraction:
        self.calls["extract_page"] += 1
        value = self.extractions.get(url, {"type": "other"})
        if isinstance(value, Exception):
            raise value
        return parse_page_extraction(value)

    def extract_gallery(self, markdown: str, url: str) -> GalleryExtraction:
        self.calls["extract_gallery"] += 1
        return self.gallery

    def extract_opening_hours(self, text: str) -> OpeningHoursExtraction:
        self.calls["extract_opening_hours"] += 1
        return self.hours


def event_detail(title: str = "Spring Show", **payload: Any) -> dict[str, Any]:
    """Build an event_detail extraction as the completion service returns it."""
    payload.setdefault("start_at", "2026-05-01T18:00:00")
    return {"type": "event_detail", "payload": {"title": title, **payload}}
