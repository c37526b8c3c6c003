"""Database engine and session management."""

from workforce_sync.database.database import (
    DatabaseConfig,
    build_session_factory,
    get_db,
    get_db_context,
    get_engine,
    get_session_factory,
    init_db,
    session_scope,
)

__all__ = [
    "DatabaseConfig",
    "build_session_factory",
    "get_db",
    "get_db_context",
    "get_engine",
    "get_session_factory",
    "init_db",
    "session_scope",
]
