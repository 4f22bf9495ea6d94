"""Database session helpers."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..config import get_database_url
from .models import Base

# -----------------------------------------------------------------------------
# Engine / URL helpers
# -----------------------------------------------------------------------------

# Module-level engine and session factory for connection pooling
_engine: Optional[Engine] = None
_Session: Optional[sessionmaker] = None


def build_engine(url: str, statement_timeout_ms: Optional[int] = None, **engine_kwargs) -> Engine:
    """Create an engine with per-dialect safe defaults and a statement timeout."""
    kwargs = {"pool_pre_ping": True, "future": True}
    if url.startswith("sqlite"):
        # busy timeout in seconds; sqlite has no per-statement limit
        timeout = (statement_timeout_ms or 30000) / 1000.0
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": timeout}
    elif statement_timeout_ms and url.startswith("postgresql"):
        kwargs["connect_args"] = {"options": f"-c statement_timeout={int(statement_timeout_ms)}"}
    kwargs.update(engine_kwargs)
    engine = create_engine(url, **kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _sqlite_connect(dbapi_conn, _record):
            # let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest correctly
            dbapi_conn.isolation_level = None
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()

        @event.listens_for(engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


def get_engine(url: str | None = None, statement_timeout_ms: Optional[int] = None) -> Engine:
    """Return the module-level engine, creating it from DATABASE_URL on first use.

    Raises ConfigurationError when no URL is available.
    """
    global _engine
    if _engine is None:
        _engine = build_engine(get_database_url(url), statement_timeout_ms)
    return _engine


def reset_engine() -> None:
    """Dispose the module-level engine (tests, CLI re-configuration)."""
    global _engine, _Session
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _Session = None


def create_all(engine: Engine | None = None) -> None:
    """Create all tables defined in :mod:`peptidedb.db.models`."""
    Base.metadata.create_all(engine or get_engine())


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def _get_session_factory() -> sessionmaker:
    global _Session
    if _Session is None:
        _Session = make_session_factory(get_engine())
    return _Session

# -----------------------------------------------------------------------------
# Context managers
# -----------------------------------------------------------------------------

@contextmanager
def session_scope(factory: Callable[[], Session] | None = None) -> Iterator[Session]:
    """
    Provide a transactional scope around a series of operations.

    Usage:
        with session_scope() as s:
            s.execute(...)
    """
    session: Session = (factory or _get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "build_engine",
    "get_engine",
    "reset_engine",
    "create_all",
    "make_session_factory",
    "session_scope",
    "Base",
]
