"""Database engine and session management."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from sipcoin.config import get_settings
from sipcoin.db.models import Base

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None
_engine_lock = threading.Lock()
logger = logging.getLogger(__name__)


def _enable_sqlite_wal(dbapi_connection, connection_record) -> None:  # noqa: ARG001
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def get_engine(database_path: Path | None = None) -> Engine:
    """Return a shared SQLAlchemy engine configured for SQLite."""
    global _engine, _session_factory

    with _engine_lock:
        if _engine is not None:
            return _engine

        settings = get_settings()
        db_path = database_path or settings.database_path
        db_path.parent.mkdir(parents=True, exist_ok=True)

        engine = create_engine(
            f"sqlite:///{db_path}",
            future=True,
            echo=False,
            connect_args={"check_same_thread": False},
        )
        event.listen(engine, "connect", _enable_sqlite_wal)
        Base.metadata.create_all(engine)
        logger.debug("Database ready at %s", db_path)
        _session_factory = sessionmaker(
            bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
        )
        _engine = engine
        return _engine


def get_session() -> Session:
    """Return a new SQLAlchemy session."""

    if _session_factory is None:
        get_engine()
    assert _session_factory is not None  # for mypy
    return _session_factory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Context manager yielding a session with automatic commit/rollback."""
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def reset_repository_state() -> None:
    """Reset cached engine/session state (intended for testing)."""

    global _engine, _session_factory
    with _engine_lock:
        if _engine is not None:
            _engine.dispose()
        _engine = None
        _session_factory = None


__all__ = ["get_engine", "get_session", "session_scope", "reset_repository_state"]
