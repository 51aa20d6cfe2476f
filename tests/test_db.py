"""Tests for database repositories."""

from datetime import UTC, datetime

import pytest

from gallery_ingest.core.enums import FetchStatus, PageKind, ParseStatus, RunStatus
from gallery_ingest.core.exceptions import DataAccessError
from gallery_ingest.core.schema import EventInfo, PageStructured
from gallery_ingest.db.engine import get_database_url, get_session, init_db, reset_engine
from gallery_ingest.db.repositories import (
    EventRepository,
    GalleryRepository,
    PageRepository,
    WorkflowRepository,
)

SHOW_URL = "https://acme-gallery.com/show"


@pytest.fixture
def gallery(session):
    gallery = GalleryRepository(session).upsert(
        main_url="https://acme-gallery.com/", normalized_main_url="https://acme-gallery.com"
    )
    session.commit()
    return gallery


class TestDatabaseUrl:
    """Tests for database URL resolution."""

    def test_bare_path(self, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that a bare path becomes a SQLite URL and its directory is created."""
        db_file = tmp_path / "data" / "x.db"
        monkeypatch.setenv("DATABASE_URL", str(db_file))

        assert get_database_url() == f"sqlite:///{db_file}"
        assert db_file.parent.is_dir()

    def test_env_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "postgresql://user@localhost/gallery")
        assert get_database_url() == "postgresql://user@localhost/gallery"

    def test_reset_engine_rereads_url(self, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that sessions follow DATABASE_URL after the engine is reset."""
        for name in ("first", "second"):
            monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / name}.db")
            reset_engine()
            init_db()
            with get_session() as session:
                WorkflowRepository(session).create_run(name, {})
                session.commit()

        with get_session() as session:
            runs = WorkflowRepository(session).list_runs()
        reset_engine()

        assert [run.workflow for run in runs] == ["second"]
        assert (tmp_path / "first.db").exists()


class TestGalleryRepository:
    """Tests for GalleryRepository."""

    def test_upsert_is_idempotent(self, session, gallery) -> None:
        """Test that upserting the same normalized URL keeps the identity."""
        repo = GalleryRepository(session)
        again = repo.upsert(
            main_url="http://www.acme-gallery.com",
            normalized_main_url="https://acme-gallery.com",
            about_url="https://acme-gallery.com/about",
        )
        session.commit()

        assert again.id == gallery.id
        assert again.main_url == "http://www.acme-gallery.com"
        assert again.about_url == "https://acme-gallery.com/about"
        assert len(repo.list_all()) == 1

    def test_upsert_info_never_writes_nulls(self, session, gallery) -> None:
        """Test that None arguments leave existing info fields alone."""
        repo = GalleryRepository(session)
        repo.upsert_info(gallery.id, name="Acme", address="1 Main St")
        repo.upsert_info(gallery.id, about="About Acme", tags=["photo"])
        session.commit()

        info = repo.get_info(gallery.id)
        assert info.name == "Acme"
        assert info.address == "1 Main St"
        assert info.about == "About Acme"
        assert info.tags == ["photo"]
        assert info.has_embedding is False

    def test_save_embedding(self, session, gallery) -> None:
        repo = GalleryRepository(session)
        repo.save_embedding(gallery.id, [0.1, 0.2], "model-x")
        session.commit()

        info = repo.get_info(gallery.id)
        assert info.embedding == [0.1, 0.2]
        assert info.embedding_model == "model-x"
        assert info.embedding_created_at is not None

    def test_upsert_hours_replaces_day(self, session, gallery) -> None:
        repo = GalleryRepository(session)
        repo.upsert_hours(gallery.id, 2, [(600, 1080)])
        repo.upsert_hours(gallery.id, 2, [(660, 720), (780, 1140)])
        repo.upsert_hours(gallery.id, 0, [(600, 900)])
        session.commit()

        hours = repo.list_hours(gallery.id)
        assert [h.dow for h in hours] == [0, 2]
        assert hours[1].open_minutes == [(660, 720), (780, 1140)]


class TestPageRepository:
    """Tests for PageRepository."""

    def test_insert_discovered_ignores_known(self, session, gallery) -> None:
        """Test that known normalized URLs are never inserted twice."""
        repo = PageRepository(session)
        url = "https://acme-gallery.com/a"
        first = repo.insert_discovered(gallery.id, [(url, url)])
        second = repo.insert_discovered(
            gallery.id,
            [
                ("https://www.acme-gallery.com/a/", "https://acme-gallery.com/a"),
                ("https://acme-gallery.com/b", "https://acme-gallery.com/b"),
            ],
        )
        session.commit()

        assert first == ["https://acme-gallery.com/a"]
        assert second == ["https://acme-gallery.com/b"]
        pages = repo.list_by_gallery(gallery.id)
        assert len(pages) == 2
        assert all(p.kind == PageKind.INIT and p.fetch_status == FetchStatus.NEVER for p in pages)

    def test_seed_page_keeps_fetch_status(self, session, gallery) -> None:
        """Test that re-seeding a page does not reset its fetch status."""
        repo = PageRepository(session)
        page = repo.upsert_seed_page(
            gallery.id, "https://acme-gallery.com", "https://acme-gallery.com", PageKind.GALLERY_MAIN
        )
        repo.mark_fetched(page.id, FetchStatus.OK, fetched_at=datetime.now(UTC))
        again = repo.upsert_seed_page(
            gallery.id, "https://acme-gallery.com/", "https://acme-gallery.com", PageKind.GALLERY_MAIN
        )
        session.commit()

        assert again.id == page.id
        assert again.fetch_status == FetchStatus.OK

    def test_get_many_preserves_order(self, session, gallery) -> None:
        repo = PageRepository(session)
        repo.insert_discovered(
            gallery.id,
            [("https://acme-gallery.com/a", "https://acme-gallery.com/a"),
             ("https://acme-gallery.com/b", "https://acme-gallery.com/b")],
        )
        a = repo.get_by_normalized_url("https://acme-gallery.com/a")
        b = repo.get_by_normalized_url("https://acme-gallery.com/b")

        assert [p.id for p in repo.get_many([b.id, "missing", a.id])] == [b.id, a.id]

    def test_content_and_structured(self, session, gallery) -> None:
        repo = PageRepository(session)
        page = repo.upsert_seed_page(
            gallery.id, "https://acme-gallery.com", "https://acme-gallery.com", PageKind.GALLERY_MAIN
        )
        repo.upsert_content(page.id, "# Acme")
        repo.upsert_content(page.id, None)
        repo.upsert_structured(
            PageStructured(page_id=page.id, parse_status=ParseStatus.ERROR, extraction_error="bad")
        )
        session.commit()

        content = repo.get_content(page.id)
        assert content.markdown is None
        assert content.has_text is False
        structured = repo.get_structured(page.id)
        assert structured.parse_status == ParseStatus.ERROR
        assert structured.extraction_error == "bad"


class TestEventRepository:
    """Tests for EventRepository."""

    def test_upsert_keeps_one_event_per_page(self, session, gallery) -> None:
        """Test that a second upsert for the same page updates in place."""
        page = PageRepository(session).upsert_seed_page(
            gallery.id, SHOW_URL, SHOW_URL, PageKind.EVENT_DETAIL
        )
        repo = EventRepository(session)
        kwargs = dict(
            gallery_id=gallery.id,
            page_id=page.id,
            start_at=datetime(2026, 5, 1, 16, 0, tzinfo=UTC),
            end_at=None,
            timezone="Europe/Warsaw",
            status="scheduled",
            ticket_url=None,
        )
        first = repo.upsert(existing_id=None, title="Show", **kwargs)
        second = repo.upsert(existing_id=None, title="Show (updated)", **kwargs)
        session.commit()

        assert second.id == first.id
        assert second.title == "Show (updated)"
        assert repo.event_ids_by_page([page.id]) == {page.id: first.id}
        assert len(repo.list_by_gallery(gallery.id)) == 1

    def test_upsert_info_keeps_embedding(self, session, gallery) -> None:
        page = PageRepository(session).upsert_seed_page(
            gallery.id, SHOW_URL, SHOW_URL, PageKind.EVENT_DETAIL
        )
        repo = EventRepository(session)
        event = repo.upsert(
            existing_id=None,
            gallery_id=gallery.id,
            page_id=page.id,
            title="Show",
            start_at=datetime(2026, 5, 1, 16, 0, tzinfo=UTC),
            end_at=None,
            timezone="UTC",
            status="scheduled",
            ticket_url=None,
        )
        repo.save_embedding(event.id, [1.0], "m")
        repo.upsert_info(EventInfo(event_id=event.id, description="New text", artists=["A"]))
        session.commit()

        info = repo.get_info(event.id)
        assert info.description == "New text"
        assert info.artists == ["A"]
        assert info.embedding == [1.0]


class TestWorkflowRepository:
    """Tests for WorkflowRepository."""

    def test_run_lifecycle(self, session) -> None:
        repo = WorkflowRepository(session)
        run = repo.create_run("embed", {"event_ids": ["e1"]})
        assert run.status == RunStatus.QUEUED

        done = repo.set_status(run.id, RunStatus.COMPLETED, result={"ok": True})
        session.commit()

        assert done.result == {"ok": True}
        assert done.completed_at is not None
        assert done.is_finished
        assert repo.get_run(run.id).params == {"event_ids": ["e1"]}
        assert [r.id for r in repo.list_runs(workflow="embed")] == [run.id]

    def test_set_status_unknown_run(self, session) -> None:
        with pytest.raises(DataAccessError):
            WorkflowRepository(session).set_status("missing", RunStatus.FAILED)

    def test_step_saved_once(self, session) -> None:
        """Test that a step recorded twice keeps its first result."""
        repo = WorkflowRepository(session)
        run = repo.create_run("embed", {})
        repo.save_step(run.id, "embed:events", {"n": 1})
        repo.save_step(run.id, "embed:events", {"n": 2})
        session.commit()

        assert repo.get_step(run.id, "embed:events").result == {"n": 1}
        assert len(repo.list_steps(run.id)) == 1
