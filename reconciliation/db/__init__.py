"""PostgreSQL database module."""

from .client import init_db, close_db, create_schema, get_db_session, get_async_engine

__all__ = [
    "init_db",
    "close_db",
    "create_schema",
    "get_db_session",
    "get_async_engine",
]
