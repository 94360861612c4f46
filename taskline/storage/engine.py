"""
Database engine and session factory for the task store.

SQLite by default (``storage.database_url``).  Tables are created on
init if they do not exist.
"""

import logging
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""

    pass


def get_engine(database_url: str) -> Engine:
    """Create a SQLAlchemy engine for the given database URL.

    For file-backed SQLite URLs the parent directory is created first.

    Args:
        database_url: e.g. ``sqlite:///data/taskline.db``.

    Returns:
        SQLAlchemy Engine instance.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, pool_pre_ping=True, echo=False)


def get_session_factory(engine: Engine) -> "sessionmaker[Session]":
    """Create a session factory bound to the engine."""
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def init_db(engine: Engine) -> None:
    """Create all tables if they do not exist.

    Idempotent: safe to call on every startup.
    """
    from taskline.storage.models import TaskRecordModel  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured", extra={"url": str(engine.url)})
