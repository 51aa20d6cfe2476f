"""Gallery-level workflows: seeding, gallery extraction and embedding."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

from gallery_ingest.core.schema import SeedRequest
from gallery_ingest.ingestion.embedder import Embedder
from gallery_ingest.ingestion.extractor import GalleryExtractor
from gallery_ingest.ingestion.seeder import GallerySeeder, plan_seed_pages
from gallery_ingest.workflows.runner import PipelineContext, workflow
from gallery_ingest.workflows.steps import StepRunner

logger = logging.getLogger(__name__)


class GalleryIdParams(BaseModel):
    """Parameters of workflows operating on one gallery."""

    gallery_id: str


class EmbedParams(BaseModel):
    """Parameters of the embed workflow."""

    event_ids: list[str] = Field(default_factory=list)
    gallery_ids: list[str] = Field(default_factory=list)


@workflow("seed_gallery")
async def seed_gallery(
    step: StepRunner, ctx: PipelineContext, params: dict[str, Any]
) -> dict[str, Any]:
    """
    Register a gallery with its seed pages, then start scraping the seed
    pages and discovering links from them.
    """
    request = SeedRequest.model_validate(params)
    seed_pages = plan_seed_pages(request)
    seeder = GallerySeeder(ctx.session)
    logger.info(
        f"Seeding gallery - name: {request.name or 'none'}, main: {request.main_url}, "
        f"about: {request.about_url or 'none'}, events: {request.events_url or 'none'}"
    )

    gallery = await step.do("upsert_gallery", lambda: seeder.upsert_gallery(request))
    gallery_id = gallery["id"]
    await step.do("upsert_gallery_info", lambda: seeder.upsert_info(gallery_id, request))

    page_ids: list[str] = []
    for seed_page in seed_pages:
        page_id = await step.do(
            f"upsert_page_{seed_page.label}",
            lambda sp=seed_page: seeder.upsert_page(gallery_id, sp),
        )
        page_ids.append(page_id)
    list_urls = list(dict.fromkeys(sp.url for sp in seed_pages))

    result: dict[str, Any] = {"gallery_id": gallery_id, "page_ids": page_ids}
    if page_ids:
        result["scrape_run_id"] = await step.do(
            "auto-scrape-pages", lambda: ctx.trigger("scrape_pages", {"page_ids": page_ids})
        )
        result["discover_run_id"] = await step.do(
            "discover-pages",
            lambda: ctx.trigger(
                "discover_links", {"gallery_id": gallery_id, "list_urls": list_urls}
            ),
        )

    logger.info(f"Seeded gallery {gallery_id} with {len(page_ids)} pages")
    return result


@workflow("extract_gallery")
async def extract_gallery(
    step: StepRunner, ctx: PipelineContext, params: dict[str, Any]
) -> dict[str, Any]:
    """Extract gallery facts from the main/about pages, then embed the gallery."""
    p = GalleryIdParams.model_validate(params)
    extractor = GalleryExtractor(ctx.session, ctx.get_ai())

    outcome = await step.do("extract-gallery", lambda: extractor.extract_gallery(p.gallery_id))
    result: dict[str, Any] = {"gallery_id": p.gallery_id, **outcome}
    if outcome.get("ok"):
        result["embed_run_id"] = await step.do(
            "trigger-embedding", lambda: ctx.trigger("embed", {"gallery_ids": [p.gallery_id]})
        )
    return result


@workflow("embed")
async def embed(step: StepRunner, ctx: PipelineContext, params: dict[str, Any]) -> dict[str, Any]:
    """Compute embeddings for events and galleries."""
    p = EmbedParams.model_validate(params)
    embedder = Embedder(ctx.session, ctx.get_ai())

    result: dict[str, Any] = {"ok": True}
    if p.event_ids:
        result["events"] = await step.do(
            "embed:events", lambda: embedder.embed_events(list(dict.fromkeys(p.event_ids)))
        )
    if p.gallery_ids:
        result["galleries"] = await step.do(
            "embed:galleries",
            lambda: embedder.embed_galleries(list(dict.fromkeys(p.gallery_ids))),
        )
    return result
