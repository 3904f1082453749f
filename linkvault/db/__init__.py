"""Persistence layer: declarative base, engine, and sessions."""

from linkvault.db.base import Base, TimestampMixin
from linkvault.db.session import build_engine, dispose_engine, get_db_session, get_session_factory

__all__ = [
    "Base",
    "TimestampMixin",
    "build_engine",
    "dispose_engine",
    "get_db_session",
    "get_session_factory",
]
