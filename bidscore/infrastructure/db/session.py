"""
Database engine and sessions for the scoring store.

One engine per process, created lazily from Settings. Request handlers get a
short-lived Session through get_db(); use-cases commit or roll back themselves.
"""
import logging

import psycopg
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session

from bidscore.config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for scoring and collaborator tables"""
    pass


_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def _engine_options(url: str) -> dict:
    settings = get_settings()
    options = {"pool_pre_ping": True, "echo": settings.DB_ECHO}
    # SQLite (tests, local tooling) uses its own pool without sizing knobs
    if not url.startswith("sqlite"):
        options["pool_size"] = settings.DB_POOL_SIZE
        options["max_overflow"] = settings.DB_MAX_OVERFLOW
    return options


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        url = get_settings().get_sqlalchemy_url()
        _engine = create_engine(url, **_engine_options(url))
        logger.info("Database engine created (%s)", _engine.url.render_as_string(hide_password=True))
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=True)
    return _session_factory


def dispose_engine() -> None:
    """Close pooled connections and forget the engine (app shutdown)."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def get_db():
    """
    FastAPI dependency: one session per request, closed afterwards.

    A request aborted mid-flight never commits, so closing the session
    discards any pending score/history writes.
    """
    db: Session = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def check_db_connection() -> None:
    """
    Readiness check against PostgreSQL with a raw psycopg connection.

    Raises:
        psycopg.OperationalError: if the database is unavailable
    """
    settings = get_settings()
    with psycopg.connect(settings.DATABASE_URL, connect_timeout=settings.DB_CONNECT_TIMEOUT) as conn:
        conn.execute("SELECT 1").fetchone()
