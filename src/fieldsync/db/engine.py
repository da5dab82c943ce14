"""SQLModel engine construction and the process-wide default engine."""
from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from fieldsync.config import get_settings

_engine: Optional[Engine] = None


def build_engine(database_url: str) -> Engine:
    """Create an engine, its tables, and apply pending column migrations."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False  # FastAPI worker threads share it
    engine = create_engine(database_url, connect_args=connect_args)

    # Import all models so metadata is populated before create_all
    from fieldsync.models.audit import Audit  # noqa
    from fieldsync.models.cache import Earning, JobCard, Schedule  # noqa
    SQLModel.metadata.create_all(engine)
    from fieldsync.db.migrations import run_migrations
    run_migrations(engine)
    return engine


def get_engine() -> Engine:
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings().database_url)
    return _engine
