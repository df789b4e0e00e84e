"""Database package: declarative base, engine lifecycle, and session factory."""

from app.db.base import Base, build_session_factory, close_db, create_tables, get_session_factory, init_db

__all__ = [
    "Base",
    "build_session_factory",
    "close_db",
    "create_tables",
    "get_session_factory",
    "init_db",
]
