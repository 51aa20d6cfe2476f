"""
Composite Workflows
===================

End-to-end compositions of the page and gallery workflows:

- scrape_and_extract: scrape pages, wait for markdown, extract each page
  and wait for its event. Exhausting a wait raises PipelineTimeout. A page
  whose extraction errors or yields a non-event kind fails the run at once
  with PipelineError, the base class of PipelineTimeout; catch
  PipelineError to handle both.
- seed_and_startup_gallery: seed (when needed), wait for the seed pages to
  scrape, then extract, embed and parse opening hours. Waits and failures
  after seeding are collected as warnings instead of failing the run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from gallery_ingest.core.enums import SEED_PAGE_KINDS, FetchStatus, PageKind, ParseStatus
from gallery_ingest.core.exceptions import PipelineError, PipelineTimeout
from gallery_ingest.core.schema import SeedRequest
from gallery_ingest.db.repositories import EventRepository, GalleryRepository, PageRepository
from gallery_ingest.ingestion.embedder import Embedder
from gallery_ingest.ingestion.extractor import GalleryExtractor
from gallery_ingest.ingestion.normalizer import normalize_url
from gallery_ingest.workflows.pages import PageIdsParams
from gallery_ingest.workflows.runner import PipelineContext, workflow
from gallery_ingest.workflows.steps import StepRunner

logger = logging.getLogger(__name__)


async def poll(
    step: StepRunner,
    ctx: PipelineContext,
    label: str,
    check: Callable[[], dict[str, Any]],
) -> dict[str, Any]:
    """
    Run `check` as a memoized step until it reports ``done``.

    Attempts and the sleep between them come from the polling config.

    Returns:
        The last check result; ``result["done"]`` is False when the
        attempt budget ran out.
    """
    attempts = max(1, ctx.config.polling.attempts)
    interval = ctx.config.polling.interval_seconds
    outcome: dict[str, Any] = {"done": False}
    for attempt in range(attempts):
        outcome = await step.do(f"{label}:{attempt}", check)
        if outcome.get("done"):
            return outcome
        if attempt < attempts - 1:
            await step.sleep(f"{label}-sleep:{attempt}", interval)
    return outcome


@workflow("scrape_and_extract")
async def scrape_and_extract(
    step: StepRunner, ctx: PipelineContext, params: dict[str, Any]
) -> dict[str, Any]:
    """Scrape and extract event pages, finishing with one Event per page."""
    page_ids = PageIdsParams.model_validate(params).unique_ids()
    if not page_ids:
        logger.info("No page IDs provided")
        return {"queued": 0}

    pages = PageRepository(ctx.session)
    events = EventRepository(ctx.session)

    scrape_run_id = await step.do(
        "scrape-pages", lambda: ctx.trigger("scrape_pages", {"page_ids": page_ids})
    )

    def markdown_ready() -> dict[str, Any]:
        pending = []
        for page_id in page_ids:
            content = pages.get_content(page_id)
            if content is None or not content.has_text:
                pending.append(page_id)
        return {"done": not pending, "pending": pending}

    outcome = await poll(step, ctx, "await-markdown", markdown_ready)
    if not outcome["done"]:
        raise PipelineTimeout(
            f"Markdown never appeared for pages: {', '.join(outcome['pending'])}",
            pending=outcome["pending"],
        )

    extract_run_ids: dict[str, str] = {}
    for page_id in page_ids:
        extract_run_ids[page_id] = await step.do(
            f"extract-page:{page_id}",
            lambda pid=page_id: ctx.trigger("extract_event_pages", {"page_ids": [pid]}),
        )

    def events_ready() -> dict[str, Any]:
        linked = events.event_ids_by_page(page_ids)
        pending: list[str] = []
        failed: dict[str, str] = {}
        for page_id in page_ids:
            if page_id in linked:
                continue
            structured = pages.get_structured(page_id)
            if structured is None or structured.parse_status in (
                ParseStatus.NEVER,
                ParseStatus.QUEUED,
            ):
                pending.append(page_id)
            elif structured.parse_status == ParseStatus.ERROR:
                failed[page_id] = structured.extraction_error or "extraction failed"
            elif structured.extracted_page_kind != PageKind.EVENT_DETAIL:
                kind = structured.extracted_page_kind
                failed[page_id] = f"extracted as {kind.value if kind else 'unknown'}"
            else:
                pending.append(page_id)
        return {"done": not pending, "pending": pending, "failed": failed, "events": linked}

    outcome = await poll(step, ctx, "await-events", events_ready)
    if outcome["failed"]:
        details = "; ".join(f"{pid}: {err}" for pid, err in outcome["failed"].items())
        raise PipelineError(f"No event extracted for pages: {details}")
    if not outcome["done"]:
        raise PipelineTimeout(
            f"Events never appeared for pages: {', '.join(outcome['pending'])}",
            pending=outcome["pending"],
        )

    def finalize_kinds() -> list[str]:
        try:
            for page_id in page_ids:
                pages.set_kind(page_id, PageKind.EVENT_DETAIL)
            ctx.session.commit()
        except Exception:
            ctx.session.rollback()
            raise
        return page_ids

    await step.do("finalize-kinds", finalize_kinds)
    logger.info(f"Scrape-and-extract complete for {len(page_ids)} pages")
    return {
        "queued": len(page_ids),
        "scrape_run_id": scrape_run_id,
        "extract_run_ids": extract_run_ids,
        "events": outcome["events"],
    }


@workflow("seed_and_startup_gallery")
async def seed_and_startup_gallery(
    step: StepRunner, ctx: PipelineContext, params: dict[str, Any]
) -> dict[str, Any]:
    """Bring a gallery from operator input to extracted, embedded data."""
    request = SeedRequest.model_validate(params)
    normalized_main_url = normalize_url(request.main_url)
    galleries = GalleryRepository(ctx.session)
    pages = PageRepository(ctx.session)
    warnings: list[str] = []

    def lookup_gallery() -> str | None:
        gallery = galleries.get_by_normalized_url(normalized_main_url)
        return gallery.id if gallery else None

    gallery_id = await step.do("lookup-gallery", lookup_gallery)
    seeded = gallery_id is None
    if seeded:
        await step.do(
            "trigger-seed-gallery",
            lambda: ctx.trigger("seed_gallery", request.model_dump(exclude_none=True)),
        )

        def gallery_seeded() -> dict[str, Any]:
            found = lookup_gallery()
            return {"done": found is not None, "gallery_id": found}

        outcome = await poll(step, ctx, "await-gallery", gallery_seeded)
        if not outcome["done"]:
            raise PipelineTimeout(f"Gallery {normalized_main_url} never appeared after seeding")
        gallery_id = outcome["gallery_id"]
    else:
        logger.info(f"Gallery {gallery_id} already exists for {normalized_main_url}")

        def unscraped_seed_pages() -> list[str]:
            return [
                p.id
                for p in pages.list_by_gallery(gallery_id, kinds=SEED_PAGE_KINDS)
                if p.fetch_status == FetchStatus.NEVER
            ]

        pending_ids = await step.do("find-unscraped-pages", unscraped_seed_pages)
        if pending_ids:
            await step.do(
                "trigger-scrape-pages",
                lambda: ctx.trigger("scrape_pages", {"page_ids": pending_ids}),
            )

    def seed_pages_scraped() -> dict[str, Any]:
        seed_pages = pages.list_by_gallery(gallery_id, kinds=SEED_PAGE_KINDS)
        pending = [p.id for p in seed_pages if not p.fetch_status.is_terminal]
        failed = [p.url for p in seed_pages if p.fetch_status == FetchStatus.ERROR]
        return {"done": bool(seed_pages) and not pending, "pending": pending, "failed": failed}

    outcome = await poll(step, ctx, "await-gallery-scrape", seed_pages_scraped)
    warnings.extend(f"Scrape failed for {url}" for url in outcome.get("failed", []))
    if not outcome["done"]:
        warnings.append("Timed out waiting for gallery pages to scrape")

    extractor = GalleryExtractor(ctx.session, ctx.get_ai())
    extracted = False
    try:
        extraction = await step.do("extract-gallery", lambda: extractor.extract_gallery(gallery_id))
        extracted = bool(extraction.get("ok"))
        if not extracted:
            warnings.append(f"Gallery extraction skipped: {extraction.get('reason')}")
    except Exception as e:
        logger.warning(f"Gallery extraction failed for {gallery_id}: {e}")
        warnings.append(f"Gallery extraction failed: {e}")

    embedder = Embedder(ctx.session, ctx.get_ai())
    embedding = await step.do("embed-gallery", lambda: embedder.embed_galleries([gallery_id]))
    info = galleries.get_info(gallery_id)
    embedded = info is not None and info.has_embedding
    warnings.extend(f"Embedding failed: {err}" for err in embedding["errors"].values())

    hours_saved = 0
    hours_text = request.opening_hours
    if hours_text:
        try:
            saved = await step.do(
                "extract-opening-hours",
                lambda: extractor.extract_opening_hours(gallery_id, hours_text),
            )
            hours_saved = len(saved)
        except Exception as e:
            logger.warning(f"Opening hours extraction failed for {gallery_id}: {e}")
            warnings.append(f"Opening hours extraction failed: {e}")

    logger.info(f"Startup complete for gallery {gallery_id} ({len(warnings)} warnings)")
    return {
        "gallery_id": gallery_id,
        "seeded": seeded,
        "warnings": warnings,
        "extracted": extracted,
        "embedded": embedded,
        "hours_saved": hours_saved,
    }
