"""
Database configuration for the embedded sequence store.

Provides the SQLite engine factory, session helpers and a health check.
Every new connection gets foreign keys switched on so that deleting a
sequence cascades to its thoughts.
"""

import time
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the sequence store.

    SQLite connections are shared across the thread pool that serves sync
    endpoints, so same-thread checking is disabled; writes to a sequence are
    serialized by the engine's per-sequence locks instead. In-memory
    databases use a single static connection so every session sees the same
    data.
    """
    kwargs = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    db_engine = create_engine(database_url, **kwargs)

    if db_engine.dialect.name == "sqlite":
        event.listen(db_engine, "connect", _set_sqlite_pragmas)

    return db_engine


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    """Enable cascading foreign keys and WAL on every new connection."""
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
    finally:
        cursor.close()


def create_session_factory(db_engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


def init_db(db_engine: Engine) -> None:
    """Create tables, indexes, the full-text index and its sync triggers."""
    # Registers the models (and their DDL listeners) on Base.metadata
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=db_engine)


engine = create_db_engine(settings.database_url)

SessionLocal = create_session_factory(engine)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Transactional scope around a series of operations.
    Commits on success, rolls back on any error.
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def check_database_health(db_engine: Engine = None) -> dict:
    """
    Check database health and connectivity.

    Returns:
        Dictionary with health status and metrics
    """
    db_engine = db_engine or engine
    try:
        start_time = time.time()
        with db_engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        response_time = (time.time() - start_time) * 1000  # Convert to ms

        return {
            "status": "healthy",
            "response_time_ms": round(response_time, 2),
            "dialect": db_engine.dialect.name,
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        return {
            "status": "unhealthy",
            "error": str(e),
        }
