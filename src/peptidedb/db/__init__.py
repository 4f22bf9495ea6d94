# Re-export session helpers so callers can do: from peptidedb.db import session_scope
from .session import (
    build_engine,
    get_engine,
    reset_engine,
    create_all,
    make_session_factory,
    session_scope,
    Base,
)

__all__ = [
    "build_engine",
    "get_engine",
    "reset_engine",
    "create_all",
    "make_session_factory",
    "session_scope",
    "Base",
]
