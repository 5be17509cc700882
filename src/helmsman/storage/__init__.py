"""Helmsman storage layer: SQLAlchemy schema, engine and session store."""

from helmsman.storage.engine import create_helmsman_engine, create_session_factory, init_db
from helmsman.storage.store import SessionInfo, SessionStore

__all__ = [
    "SessionInfo",
    "SessionStore",
    "create_helmsman_engine",
    "create_session_factory",
    "init_db",
]
