"""
Database Engine
===============

One lazily created engine per process, bound to the URL in DATABASE_URL.
DATABASE_URL may be any SQLAlchemy URL (sqlite or postgresql) or a bare
path to a SQLite file; without it the pipeline uses a SQLite file under
``~/.gallery_ingest``.

SQLite connections wait up to 30 seconds for locks held by other worker
jobs.
"""

import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_DB_PATH = Path.home() / ".gallery_ingest" / "gallery_ingest.db"
ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"
SQLITE_LOCK_TIMEOUT_SECONDS = 30

_engine: Engine | None = None
_sessions: sessionmaker[Session] | None = None


def get_database_url() -> str:
    """Resolve the datastore URL from DATABASE_URL or the default SQLite file."""
    configured = os.environ.get("DATABASE_URL", "").strip()
    if configured.startswith(("sqlite", "postgresql")):
        return configured

    path = Path(configured) if configured else DEFAULT_DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def _get_engine() -> Engine:
    global _engine
    if _engine is None:
        url = get_database_url()
        if url.startswith("sqlite"):
            # Workflow steps run in worker threads.
            connect_args = {
                "check_same_thread": False,
                "timeout": SQLITE_LOCK_TIMEOUT_SECONDS,
            }
            _engine = create_engine(url, connect_args=connect_args)
        else:
            _engine = create_engine(url, pool_pre_ping=True)
    return _engine


@contextmanager
def get_session() -> Iterator[Session]:
    """
    Open a session on the process engine; callers commit explicitly.

    Usage:
        with get_session() as session:
            WorkflowRepository(session).get_run(run_id)
    """
    global _sessions
    if _sessions is None:
        _sessions = sessionmaker(bind=_get_engine(), autoflush=False)
    with _sessions() as session:
        yield session


def reset_engine() -> None:
    """Dispose the engine so the next session re-reads DATABASE_URL."""
    global _engine, _sessions
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _sessions = None


def init_db() -> None:
    """Create any missing tables. Deployments use `run_migrations` instead."""
    from gallery_ingest.db.models import Base

    Base.metadata.create_all(bind=_get_engine())


def run_migrations() -> None:
    """Upgrade the datastore to the latest Alembic revision."""
    if not ALEMBIC_INI.exists():
        raise FileNotFoundError(f"Alembic config not found: {ALEMBIC_INI}")

    config = Config(str(ALEMBIC_INI))
    config.set_main_option("sqlalchemy.url", get_database_url())
    command.upgrade(config, "head")
