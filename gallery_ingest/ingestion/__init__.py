"""
Gallery Ingest Ingestion Components
===================================

Building blocks of the gallery/event pipeline, composed into durable runs
by ``gallery_ingest.workflows``.

Pipeline Stages:
1. Normalize - Canonicalize URLs into dedup keys
2. Discover - Expand listing pages into new registry pages
3. Scrape - Fetch markdown for pages via the page-fetch service
4. Classify/Extract - Triage pages and extract structured data with the AI service
5. Seed - Register galleries and their seed pages
6. Materialize - Turn event extractions into Event rows
7. Embed - Compute vectors for events and galleries
"""

from gallery_ingest.ingestion.normalizer import (
    TRACKING_PARAM_PATTERNS,
    is_tracking_param,
    normalize_url,
)
from gallery_ingest.ingestion.crawler import (
    FirecrawlFetcher,
    PageFetcher,
    ScrapeResult,
    TokenBucket,
    get_fetcher,
)
from gallery_ingest.ingestion.discovery import LinkDiscoverer
from gallery_ingest.ingestion.scraper import ContentScraper, ScrapeSummary
from gallery_ingest.ingestion.extractor import (
    ClassifySummary,
    GalleryExtractor,
    PageClassifier,
    PageExtractor,
)
from gallery_ingest.ingestion.seeder import GallerySeeder, SeedPage, SeedResult, plan_seed_pages
from gallery_ingest.ingestion.materializer import EventMaterializer
from gallery_ingest.ingestion.embedder import EmbedSummary, Embedder
from gallery_ingest.ingestion.jobs import (
    enqueue_workflow,
    get_job_status,
    run_workflow_job,
)

__all__ = [
    # Normalizer
    "TRACKING_PARAM_PATTERNS",
    "is_tracking_param",
    "normalize_url",
    # Page fetch
    "FirecrawlFetcher",
    "PageFetcher",
    "ScrapeResult",
    "TokenBucket",
    "get_fetcher",
    # Components
    "LinkDiscoverer",
    "ContentScraper",
    "ScrapeSummary",
    "ClassifySummary",
    "GalleryExtractor",
    "PageClassifier",
    "PageExtractor",
    "GallerySeeder",
    "SeedPage",
    "SeedResult",
    "plan_seed_pages",
    "EventMaterializer",
    "EmbedSummary",
    "Embedder",
    # Jobs
    "enqueue_workflow",
    "get_job_status",
    "run_workflow_job",
]
