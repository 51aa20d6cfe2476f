"""Page-level workflows: discovery, scraping, classification and event extraction."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

from gallery_ingest.core.enums import ParseStatus
from gallery_ingest.core.exceptions import DataAccessError
from gallery_ingest.ingestion.discovery import LinkDiscoverer
from gallery_ingest.ingestion.extractor import ClassifySummary, PageClassifier, PageExtractor
from gallery_ingest.ingestion.materializer import EventMaterializer
from gallery_ingest.ingestion.scraper import ContentScraper
from gallery_ingest.workflows.runner import PipelineContext, workflow
from gallery_ingest.workflows.steps import StepRunner

logger = logging.getLogger(__name__)


class PageIdsParams(BaseModel):
    """Parameters of workflows operating on a set of pages."""

    page_ids: list[str] = Field(default_factory=list)

    def unique_ids(self) -> list[str]:
        return list(dict.fromkeys(self.page_ids))


class DiscoverLinksParams(BaseModel):
    """Parameters of the discover_links workflow."""

    gallery_id: str | None = None
    list_urls: list[str] = Field(default_factory=list)
    limit: int | None = Field(default=None, ge=1)


@workflow("discover_links")
async def discover_links(
    step: StepRunner, ctx: PipelineContext, params: dict[str, Any]
) -> dict[str, Any]:
    """Expand listing pages into new ``init`` pages."""
    p = DiscoverLinksParams.model_validate(params)
    discoverer = LinkDiscoverer(
        ctx.session, ctx.get_fetcher(), default_limit=ctx.config.discovery.default_limit
    )
    logger.info(f"Discovering links for gallery {p.gallery_id} from {len(p.list_urls)} list URLs")

    inserted: dict[str, int] = {}
    for list_url in p.list_urls:
        links = await step.do(
            f"fetch_links:{list_url}", lambda url=list_url: discoverer.fetch_links(url, p.limit)
        )
        if not links:
            inserted[list_url] = 0
            continue
        inserted[list_url] = await step.do(
            f"insert_pages:{list_url}",
            lambda links=links: discoverer.insert_links(p.gallery_id, links),
        )

    total = sum(inserted.values())
    logger.info(f"Discovered {total} new links total")
    return {"ok": True, "inserted": inserted, "total": total}


@workflow("scrape_pages")
async def scrape_pages(
    step: StepRunner, ctx: PipelineContext, params: dict[str, Any]
) -> dict[str, Any]:
    """Scrape pages into PageContent."""
    p = PageIdsParams.model_validate(params)
    scraper = ContentScraper(
        ctx.session, ctx.get_fetcher(), concurrency=ctx.config.fetcher.scrape_concurrency
    )
    summary = await scraper.scrape_pages(p.unique_ids(), step=step)
    return {"ok": True, **summary.to_dict()}


@workflow("classify_pages")
async def classify_pages(
    step: StepRunner, ctx: PipelineContext, params: dict[str, Any]
) -> dict[str, Any]:
    """Classify ``init`` pages and extract the ones classified as events."""
    p = PageIdsParams.model_validate(params)
    classifier = PageClassifier(ctx.session, ctx.get_ai())

    summary = ClassifySummary()
    for page_id in p.unique_ids():
        try:
            kind = await step.do(
                f"classify:{page_id}",
                lambda pid=page_id: _kind_value(classifier.classify_page(pid)),
            )
        except Exception as e:
            logger.error(f"Error while classifying page {page_id}: {e}")
            summary.errors[page_id] = str(e)
            continue
        if kind is None:
            summary.skipped.append(page_id)
        else:
            summary.classified[page_id] = kind

    result: dict[str, Any] = summary.to_dict()
    event_ids = summary.event_page_ids
    if event_ids:
        result["extract_run_id"] = await step.do(
            "trigger-extract-event-pages",
            lambda: ctx.trigger("extract_event_pages", {"page_ids": event_ids}),
        )
    return result


def _kind_value(kind: Any) -> str | None:
    return kind.value if kind is not None else None


def _extract_one(extractor: PageExtractor, page_id: str) -> dict[str, Any]:
    try:
        structured = extractor.extract_page(page_id)
    except DataAccessError as e:
        logger.warning(str(e))
        return {"page_id": page_id, "parse_status": None, "error": str(e)}
    return {
        "page_id": page_id,
        "parse_status": structured.parse_status.value,
        "extracted_page_kind": (
            structured.extracted_page_kind.value if structured.extracted_page_kind else None
        ),
        "error": structured.extraction_error,
    }


@workflow("extract_event_pages")
async def extract_event_pages(
    step: StepRunner, ctx: PipelineContext, params: dict[str, Any]
) -> dict[str, Any]:
    """Extract pages, materialize their events and queue the events for embedding."""
    p = PageIdsParams.model_validate(params)
    extractor = PageExtractor(ctx.session, ctx.get_ai())
    materializer = EventMaterializer(ctx.session, ctx.config.events.default_timezone)

    processed: list[str] = []
    errors: dict[str, str] = {}
    for page_id in p.unique_ids():
        outcome = await step.do(
            f"extract:{page_id}", lambda pid=page_id: _extract_one(extractor, pid)
        )
        if outcome["parse_status"] == ParseStatus.OK.value:
            processed.append(page_id)
        else:
            errors[page_id] = outcome["error"] or "unknown error"
    logger.info(f"Extraction complete - {len(processed)} successes, {len(errors)} errors")

    event_ids: list[str] = []
    for page_id in processed:
        linked = await step.do(
            f"upsert-event:{page_id}", lambda pid=page_id: materializer.materialize([pid])
        )
        event_ids.extend(linked)

    result: dict[str, Any] = {
        "ok": True,
        "processed": len(processed),
        "errors": errors,
        "event_ids": event_ids,
    }
    if event_ids:
        result["embed_run_id"] = await step.do(
            "trigger-embedding", lambda: ctx.trigger("embed", {"event_ids": event_ids})
        )
    return result
