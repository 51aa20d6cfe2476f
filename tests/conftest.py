"""Shared fixtures for the pipeline tests."""

import tempfile
from contextlib import contextmanager
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from gallery_ingest.config import PipelineConfig, PollingConfig, StepConfig
from gallery_ingest.db.models import Base

from tests.fakes import FakeAIClient, FakeFetcher


@pytest.fixture
def temp_db_path():
    """Create a temporary database file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def test_engine(temp_db_path):
    """Create a test database engine."""
    engine = create_engine(
        f"sqlite:///{temp_db_path}", echo=False, connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(test_engine):
    """Create a database session for testing."""
    SessionLocal = sessionmaker(bind=test_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def session_scope(session):
    """A get_session() replacement that hands out the test session."""

    @contextmanager
    def mock_get_session():
        yield session

    return mock_get_session


@pytest.fixture
def config() -> PipelineConfig:
    """Pipeline config with instant polling and retries."""
    return PipelineConfig(
        polling=PollingConfig(attempts=3, interval_seconds=0),
        steps=StepConfig(max_attempts=3, backoff_base_seconds=0),
    )


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def ai() -> FakeAIClient:
    return FakeAIClient()


@pytest.fixture
def ctx(session, config, fetcher, ai):
    """Pipeline context running child workflows inline."""
    from gallery_ingest.workflows import InlineDispatcher, PipelineContext

    return PipelineContext(
        session=session,
        config=config,
        fetcher=fetcher,
        ai=ai,
        dispatcher=InlineDispatcher(),
    )
