"""Async engine and request-scoped sessions for the linkvault database."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from linkvault.config import DatabaseSettings, get_settings


def build_engine(database: DatabaseSettings) -> AsyncEngine:
    """Create an asyncpg engine sized by the configured pool settings."""
    return create_async_engine(
        database.url,
        pool_size=database.pool_size,
        max_overflow=database.max_overflow,
        pool_timeout=database.pool_timeout_seconds,
        pool_recycle=database.pool_recycle_seconds,
        pool_pre_ping=True,
        echo=database.echo,
    )


@lru_cache
def get_engine() -> AsyncEngine:
    return build_engine(get_settings().database)


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Sessions keep loaded rows usable after commit so routers can serialize them."""
    return async_sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield one session per request; it closes when the response is sent."""
    async with get_session_factory()() as session:
        yield session


async def dispose_engine() -> None:
    """Close pooled connections, dropping the cached engine so a new loop gets a fresh one."""
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
    get_session_factory.cache_clear()
    get_engine.cache_clear()
