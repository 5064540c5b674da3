"""Database engine and session management."""

from bookswap.db.session import (
    create_all,
    create_engine,
    create_session_factory,
    session_scope,
)

__all__ = [
    "create_all",
    "create_engine",
    "create_session_factory",
    "session_scope",
]
