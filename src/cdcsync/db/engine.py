"""SQLModel engine singleton and session dependency for the application DB."""
import logging
from typing import Generator

from sqlmodel import Session, SQLModel, create_engine

from cdcsync.config import get_settings

logger = logging.getLogger(__name__)

_engine = None


def build_engine(database_url: str):
    """Create an engine for `database_url` and bring its schema up to date."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False  # sessions cross the executor threads
    engine = create_engine(database_url, connect_args=connect_args)
    init_schema(engine)
    return engine


def init_schema(engine) -> None:
    """Create all tables (idempotent) and apply migrations."""
    # Import all models so metadata is populated before create_all
    from cdcsync.models.connection import ConnectionProfile  # noqa
    from cdcsync.models.task import SyncTask, TaskLog  # noqa
    SQLModel.metadata.create_all(engine)
    from cdcsync.db.migrations import run_migrations
    run_migrations(engine)


def get_engine():
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.database_url)
        logger.info("Application database ready")
    return _engine


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session."""
    with Session(get_engine()) as session:
        yield session
