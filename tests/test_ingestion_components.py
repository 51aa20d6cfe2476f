"""Tests for the ingestion components."""

from datetime import UTC, datetime

import pytest

from gallery_ingest.core.enums import EventStatus, FetchStatus, PageKind, ParseStatus
from gallery_ingest.core.exceptions import AIServiceError, DataAccessError, FetchError
from gallery_ingest.core.schema import SeedRequest
from gallery_ingest.db.repositories import EventRepository, GalleryRepository, PageRepository
from gallery_ingest.ingestion.discovery import LinkDiscoverer
from gallery_ingest.ingestion.embedder import Embedder
from gallery_ingest.ingestion.extractor import (
    EMPTY_MARKDOWN_ERROR,
    GalleryExtractor,
    PageClassifier,
    PageExtractor,
)
from gallery_ingest.ingestion.materializer import EventMaterializer
from gallery_ingest.ingestion.scraper import ContentScraper
from gallery_ingest.ingestion.seeder import GallerySeeder, plan_seed_pages

from tests.fakes import FakeFetcher, event_detail

MAIN_URL = "https://acme-gallery.com"


@pytest.fixture
def seeded(session):
    """A gallery seeded with only a main URL."""
    return GallerySeeder(session).seed(SeedRequest(main_url=MAIN_URL))


def add_page(session, gallery_id, url, kind=PageKind.INIT, markdown=None):
    pages = PageRepository(session)
    page = pages.upsert_seed_page(gallery_id, url, url, kind)
    if markdown is not None:
        pages.upsert_content(page.id, markdown)
        pages.mark_fetched(page.id, FetchStatus.OK)
    session.commit()
    return page


class TestGallerySeeder:
    """Tests for the gallery seeder."""

    def test_plan_dedups_normalized_urls(self) -> None:
        """Test that inputs normalizing to the same URL yield one page."""
        request = SeedRequest(
            main_url="https://acme-gallery.com",
            about_url="http://www.acme-gallery.com/",
            events_url="https://acme-gallery.com/shows",
        )

        pages = plan_seed_pages(request)

        assert [(p.label, p.kind) for p in pages] == [
            ("main", PageKind.GALLERY_MAIN),
            ("events", PageKind.EVENT_LIST),
        ]

    def test_main_only_scenario(self, session, seeded) -> None:
        """Test seeding a bare main URL creates one never-fetched main page."""
        pages = PageRepository(session).list_by_gallery(seeded.gallery_id)

        assert len(pages) == 1
        assert pages[0].kind == PageKind.GALLERY_MAIN
        assert pages[0].fetch_status == FetchStatus.NEVER
        assert pages[0].normalized_url == MAIN_URL

    def test_seed_is_idempotent(self, session, seeded) -> None:
        """Test that seeding the same main URL again keeps identity and pages."""
        again = GallerySeeder(session).seed(SeedRequest(main_url="http://www.acme-gallery.com/"))

        assert again.gallery_id == seeded.gallery_id
        assert again.page_ids == seeded.page_ids
        assert len(GalleryRepository(session).list_all()) == 1

    def test_operator_fields_written(self, session) -> None:
        result = GallerySeeder(session).seed(
            SeedRequest(main_url=MAIN_URL, name="Acme", instagram="@acme", address="  ")
        )

        info = GalleryRepository(session).get_info(result.gallery_id)
        assert info.name == "Acme"
        assert info.instagram == "@acme"
        assert info.address is None

    def test_reseed_without_fields_keeps_info(self, session) -> None:
        seeder = GallerySeeder(session)
        result = seeder.seed(SeedRequest(main_url=MAIN_URL, name="Acme"))
        seeder.seed(SeedRequest(main_url=MAIN_URL))

        assert GalleryRepository(session).get_info(result.gallery_id).name == "Acme"


class TestLinkDiscoverer:
    """Tests for link discovery."""

    @pytest.mark.asyncio
    async def test_dedup_within_and_across_sources(self, session, seeded) -> None:
        """Test that the same URL found twice produces a single page."""
        fetcher = FakeFetcher(
            links={
                "https://acme-gallery.com/shows": [
                    "https://acme-gallery.com/shows/spring",
                    "https://www.acme-gallery.com/shows/spring/",
                    "https://acme-gallery.com/shows/summer?utm_source=x",
                ],
                "https://acme-gallery.com/archive": [
                    "http://acme-gallery.com/shows/spring",
                    "https://acme-gallery.com/shows/summer",
                    "ftp://acme-gallery.com/catalogue.pdf",
                ],
            }
        )
        discoverer = LinkDiscoverer(session, fetcher)

        counts = await discoverer.discover(
            seeded.gallery_id,
            ["https://acme-gallery.com/shows", "https://acme-gallery.com/archive"],
        )

        assert counts == {"https://acme-gallery.com/shows": 2, "https://acme-gallery.com/archive": 0}
        normalized = [p.normalized_url for p in PageRepository(session).list_by_gallery(seeded.gallery_id)]
        assert sorted(normalized) == [
            "https://acme-gallery.com",
            "https://acme-gallery.com/shows/spring",
            "https://acme-gallery.com/shows/summer",
        ]

    @pytest.mark.asyncio
    async def test_existing_pages_untouched(self, session, seeded) -> None:
        """Test that rediscovering the main page does not change its kind."""
        fetcher = FakeFetcher(links={MAIN_URL: [MAIN_URL + "/"]})

        inserted = await LinkDiscoverer(session, fetcher).discover(seeded.gallery_id, [MAIN_URL])

        assert inserted == {MAIN_URL: 0}
        page = PageRepository(session).get_by_normalized_url(MAIN_URL)
        assert page.kind == PageKind.GALLERY_MAIN

    @pytest.mark.asyncio
    async def test_limit(self, session, seeded) -> None:
        fetcher = FakeFetcher(links={MAIN_URL: [f"{MAIN_URL}/p{i}" for i in range(10)]})

        links = await LinkDiscoverer(session, fetcher, default_limit=3).fetch_links(MAIN_URL)

        assert len(links) == 3

    @pytest.mark.asyncio
    async def test_fetch_failure_raises(self, session, seeded) -> None:
        fetcher = FakeFetcher(failures={MAIN_URL})

        with pytest.raises(FetchError):
            await LinkDiscoverer(session, fetcher).discover(seeded.gallery_id, [MAIN_URL])


class TestContentScraper:
    """Tests for the content scraper."""

    @pytest.mark.asyncio
    async def test_failure_isolated(self, session, seeded) -> None:
        """Test that one failing page in a batch of five leaves the rest ok."""
        urls = [f"{MAIN_URL}/p{i}" for i in range(1, 6)]
        page_ids = [add_page(session, seeded.gallery_id, url).id for url in urls]
        fetcher = FakeFetcher(failures={urls[2]})

        summary = await ContentScraper(session, fetcher, concurrency=2).scrape_pages(page_ids)

        pages = PageRepository(session)
        statuses = [pages.get_by_id(pid).fetch_status for pid in page_ids]
        assert statuses == [
            FetchStatus.OK,
            FetchStatus.OK,
            FetchStatus.ERROR,
            FetchStatus.OK,
            FetchStatus.OK,
        ]
        assert summary.failed == [page_ids[2]]
        assert sorted(summary.ok) == sorted(page_ids[:2] + page_ids[3:])

    @pytest.mark.asyncio
    async def test_scrape_main_page_scenario(self, session, seeded) -> None:
        """Test that scraping the seeded main page stores its markdown."""
        fetcher = FakeFetcher(markdown={MAIN_URL: "# Acme Gallery"})

        await ContentScraper(session, fetcher).scrape_pages(seeded.page_ids)

        pages = PageRepository(session)
        page_id = seeded.page_ids[0]
        assert pages.get_by_id(page_id).fetch_status == FetchStatus.OK
        assert pages.get_by_id(page_id).fetched_at is not None
        assert pages.get_content(page_id).markdown == "# Acme Gallery"

    @pytest.mark.asyncio
    async def test_empty_markdown_stored_as_null(self, session, seeded) -> None:
        fetcher = FakeFetcher(markdown={MAIN_URL: "   "})

        await ContentScraper(session, fetcher).scrape_pages(seeded.page_ids)

        pages = PageRepository(session)
        page_id = seeded.page_ids[0]
        assert pages.get_by_id(page_id).fetch_status == FetchStatus.OK
        assert pages.get_content(page_id).markdown is None

    @pytest.mark.asyncio
    async def test_unknown_ids_reported(self, session, seeded) -> None:
        summary = await ContentScraper(session, FakeFetcher()).scrape_pages(
            [seeded.page_ids[0], "missing"]
        )

        assert summary.missing == ["missing"]
        assert summary.ok == [seeded.page_ids[0]]


class TestPageClassifier:
    """Tests for page classification."""

    def test_classifies_init_pages(self, session, seeded, ai) -> None:
        url = f"{MAIN_URL}/shows/spring"
        page = add_page(session, seeded.gallery_id, url, markdown="# Spring")
        ai.kinds[url] = PageKind.EVENT_DETAIL

        kind = PageClassifier(session, ai).classify_page(page.id)

        assert kind == PageKind.EVENT_DETAIL
        assert PageRepository(session).get_by_id(page.id).kind == PageKind.EVENT_DETAIL

    def test_skips_classified_and_empty(self, session, seeded, ai) -> None:
        """Test that non-init pages and pages without markdown make no AI call."""
        empty = add_page(session, seeded.gallery_id, f"{MAIN_URL}/empty")

        summary = PageClassifier(session, ai).classify_pages(
            [seeded.page_ids[0], empty.id, "missing"]
        )

        assert summary.skipped == [seeded.page_ids[0], empty.id, "missing"]
        assert ai.calls["classify"] == 0

    def test_event_page_ids(self, session, seeded, ai) -> None:
        show = add_page(session, seeded.gallery_id, f"{MAIN_URL}/show", markdown="# Show")
        other = add_page(session, seeded.gallery_id, f"{MAIN_URL}/contact", markdown="# Contact")
        ai.kinds[f"{MAIN_URL}/show"] = PageKind.EVENT_CANDIDATE

        summary = PageClassifier(session, ai).classify_pages([show.id, other.id])

        assert summary.classified == {show.id: "event_candidate", other.id: "other"}
        assert summary.event_page_ids == [show.id]


class TestPageExtractor:
    """Tests for page extraction."""

    def test_empty_markdown_scenario(self, session, seeded, ai) -> None:
        """Test that a page with empty markdown records an error and no event."""
        page = add_page(session, seeded.gallery_id, f"{MAIN_URL}/blank", markdown="")

        structured = PageExtractor(session, ai).extract_page(page.id)
        EventMaterializer(session).materialize([page.id])

        assert structured.parse_status == ParseStatus.ERROR
        stored = PageRepository(session).get_structured(page.id)
        assert stored.parse_status == ParseStatus.ERROR
        assert stored.extraction_error == EMPTY_MARKDOWN_ERROR
        assert EventRepository(session).get_by_page_id(page.id) is None
        assert ai.calls["extract_page"] == 0

    def test_event_extraction_updates_kind(self, session, seeded, ai) -> None:
        url = f"{MAIN_URL}/show"
        page = add_page(session, seeded.gallery_id, url, markdown="# Show")
        ai.extractions[url] = event_detail("Spring Show")

        structured = PageExtractor(session, ai).extract_page(page.id)

        assert structured.parse_status == ParseStatus.OK
        assert structured.extracted_page_kind == PageKind.EVENT_DETAIL
        assert structured.data["payload"]["title"] == "Spring Show"
        assert PageRepository(session).get_by_id(page.id).kind == PageKind.EVENT_DETAIL

    def test_seeded_kind_not_overwritten(self, session, seeded, ai) -> None:
        """Test that a non-provisional kind survives extraction."""
        ai.extractions[MAIN_URL] = {"type": "other"}
        PageRepository(session).upsert_content(seeded.page_ids[0], "# Home")
        session.commit()

        PageExtractor(session, ai).extract_page(seeded.page_ids[0])

        assert PageRepository(session).get_by_id(seeded.page_ids[0]).kind == PageKind.GALLERY_MAIN

    def test_ai_failure_recorded(self, session, seeded, ai) -> None:
        url = f"{MAIN_URL}/broken"
        page = add_page(session, seeded.gallery_id, url, markdown="# Broken")
        ai.extractions[url] = AIServiceError("API error: overloaded")

        structured = PageExtractor(session, ai).extract_page(page.id)

        assert structured.parse_status == ParseStatus.ERROR
        assert structured.extraction_error == "API error: overloaded"

    def test_missing_page(self, session, ai) -> None:
        with pytest.raises(DataAccessError):
            PageExtractor(session, ai).extract_page("missing")


class TestEventMaterializer:
    """Tests for event materialization."""

    def extract(self, session, ai, gallery_id, url, **payload):
        page = add_page(session, gallery_id, url, markdown="# Event")
        ai.extractions[url] = event_detail(**payload)
        PageExtractor(session, ai).extract_page(page.id)
        return page

    def test_at_most_one_event_per_page(self, session, seeded, ai) -> None:
        """Test that re-extracting a page updates its single event."""
        url = f"{MAIN_URL}/show"
        page = self.extract(session, ai, seeded.gallery_id, url, title="Show")
        materializer = EventMaterializer(session)
        first = materializer.materialize([page.id])

        ai.extractions[url] = event_detail(title="Show (extended)")
        PageExtractor(session, ai).extract_page(page.id)
        second = materializer.materialize([page.id])

        events = EventRepository(session).list_by_gallery(seeded.gallery_id)
        assert first == second
        assert len(events) == 1
        assert events[0].title == "Show (extended)"

    def test_naive_times_use_default_timezone(self, session, seeded, ai) -> None:
        """Test that naive wall times are read in Europe/Warsaw."""
        page = self.extract(
            session, ai, seeded.gallery_id, f"{MAIN_URL}/show",
            start_at="2026-07-01T18:00:00", end_at="2026-07-01T21:00:00",
        )

        [event_id] = EventMaterializer(session).materialize([page.id])

        event = EventRepository(session).get_by_id(event_id)
        assert event.timezone == "Europe/Warsaw"
        assert event.start_at.replace(tzinfo=None) == datetime(2026, 7, 1, 16, 0)
        assert event.end_at.replace(tzinfo=None) == datetime(2026, 7, 1, 19, 0)
        assert event.status == EventStatus.UNKNOWN

    def test_first_occurrence_wins(self, session, seeded, ai) -> None:
        page = self.extract(
            session, ai, seeded.gallery_id, f"{MAIN_URL}/series",
            start_at="2026-01-01T10:00:00Z",
            status="cancelled",
            occurrences=[
                {"start_at": "2026-03-02T12:00:00Z", "timezone": "UTC"},
                {"start_at": "2026-03-09T12:00:00Z"},
            ],
        )

        [event_id] = EventMaterializer(session).materialize([page.id])

        event = EventRepository(session).get_by_id(event_id)
        assert event.start_at.replace(tzinfo=None) == datetime(2026, 3, 2, 12, 0)
        assert event.timezone == "UTC"
        assert event.status == EventStatus.CANCELLED

    def test_missing_start_defaults_to_now(self, session, seeded, ai) -> None:
        page = self.extract(session, ai, seeded.gallery_id, f"{MAIN_URL}/tba", start_at=None)
        before = datetime.now(UTC).replace(tzinfo=None)

        [event_id] = EventMaterializer(session).materialize([page.id])

        event = EventRepository(session).get_by_id(event_id)
        assert event.start_at.replace(tzinfo=None) >= before.replace(microsecond=0)

    def test_event_info_written(self, session, seeded, ai) -> None:
        page = self.extract(
            session, ai, seeded.gallery_id, f"{MAIN_URL}/show",
            description="Paintings", artists=["Ann"], prices={"min": 0, "currency": "PLN"},
        )

        [event_id] = EventMaterializer(session).materialize([page.id])

        info = EventRepository(session).get_info(event_id)
        assert info.source_page_id == page.id
        assert info.description == "Paintings"
        assert info.artists == ["Ann"]
        assert info.prices.currency == "PLN"

    def test_skips_non_event_and_unowned_pages(self, session, seeded, ai) -> None:
        url = f"{MAIN_URL}/list"
        page = add_page(session, seeded.gallery_id, url, markdown="# Shows")
        ai.extractions[url] = {"type": "event_list"}
        PageExtractor(session, ai).extract_page(page.id)

        pages = PageRepository(session)
        pages.insert_discovered(None, [("https://elsewhere.com/e", "https://elsewhere.com/e")])
        orphan = pages.get_by_normalized_url("https://elsewhere.com/e")
        session.commit()

        assert EventMaterializer(session).materialize([page.id, orphan.id]) == []


class TestEmbedder:
    """Tests for embedding."""

    def test_gallery_embedding_skipped_second_time(self, session, seeded, ai) -> None:
        """Test that an embedded gallery makes zero AI calls on the next run."""
        embedder = Embedder(session, ai)

        first = embedder.embed_galleries([seeded.gallery_id])
        calls_after_first = ai.calls["embed"]
        second = embedder.embed_galleries([seeded.gallery_id])

        assert first.embedded == [seeded.gallery_id]
        assert second.skipped == [seeded.gallery_id]
        assert calls_after_first == 1
        assert ai.calls["embed"] == 1
        info = GalleryRepository(session).get_info(seeded.gallery_id)
        assert info.embedding_model == "fake-embedding"

    def test_gallery_text(self, session, seeded, ai) -> None:
        embedder = Embedder(session, ai)
        assert embedder.gallery_text(seeded.gallery_id) == MAIN_URL

        GalleryRepository(session).upsert_info(
            seeded.gallery_id, name="Acme", tags=["a", "b"], about="Art"
        )
        session.commit()

        assert embedder.gallery_text(seeded.gallery_id) == "Name: Acme\nTags: a, b\nAbout: Art"

    def test_event_embedding(self, session, seeded, ai) -> None:
        """Test that events embed their description and fall back to the title."""
        page = add_page(session, seeded.gallery_id, f"{MAIN_URL}/show", markdown="# Show")
        ai.extractions[f"{MAIN_URL}/show"] = event_detail("Spring Show")
        PageExtractor(session, ai).extract_page(page.id)
        [event_id] = EventMaterializer(session).materialize([page.id])
        embedder = Embedder(session, ai)

        assert embedder.event_text(event_id) == "Spring Show"
        summary = embedder.embed_events([event_id, "missing"])

        assert summary.embedded == [event_id]
        assert summary.skipped == ["missing"]
        assert EventRepository(session).get_info(event_id).embedding == [0.1, 0.2, 0.3]

    def test_event_errors_isolated(self, session, seeded, ai) -> None:
        page = add_page(session, seeded.gallery_id, f"{MAIN_URL}/show", markdown="# Show")
        ai.extractions[f"{MAIN_URL}/show"] = event_detail("Spring Show", description="Paintings")
        PageExtractor(session, ai).extract_page(page.id)
        [event_id] = EventMaterializer(session).materialize([page.id])
        ai.embed_error = AIServiceError("Embedding error: quota")

        summary = Embedder(session, ai).embed_events([event_id])

        assert summary.errors == {event_id: "Embedding error: quota"}
        assert summary.embedded == []


class TestGalleryExtractor:
    """Tests for gallery extraction."""

    def test_extract_keeps_operator_name(self, session, ai) -> None:
        result = GallerySeeder(session).seed(
            SeedRequest(main_url=MAIN_URL, about_url=f"{MAIN_URL}/about", name="Acme")
        )
        pages = PageRepository(session)
        for page_id in result.page_ids:
            pages.upsert_content(page_id, "# Acme content")
        session.commit()

        outcome = GalleryExtractor(session, ai).extract_gallery(result.gallery_id)

        assert outcome == {"ok": True, "skipped": False}
        info = GalleryRepository(session).get_info(result.gallery_id)
        assert info.name == "Acme"
        assert info.email == "hello@acme-gallery.com"
        assert info.tags == ["contemporary", "painting"]

        assert GalleryExtractor(session, ai).extract_gallery(result.gallery_id)["skipped"] is True
        assert ai.calls["extract_gallery"] == 1

    def test_no_content(self, session, seeded, ai) -> None:
        outcome = GalleryExtractor(session, ai).extract_gallery(seeded.gallery_id)

        assert outcome["ok"] is False
        assert outcome["reason"] == "No content to extract"
        assert ai.calls["extract_gallery"] == 0

    def test_opening_hours(self, session, seeded, ai) -> None:
        saved = GalleryExtractor(session, ai).extract_opening_hours(
            seeded.gallery_id, "Tue-Wed 12-18"
        )

        assert [h.dow for h in saved] == [1, 2]
        hours = GalleryRepository(session).list_hours(seeded.gallery_id)
        assert hours[0].open_minutes == [(720, 1080)]
