"""Shared integration-test fixtures using Postgres and Redis testcontainers."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from typing import Any

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from testcontainers.postgres import PostgresContainer
from testcontainers.redis import RedisContainer

from docker.errors import DockerException


def _clear_dependency_caches() -> None:
    """Clear all relevant singleton/lru-cache dependencies between test phases."""
    from linkvault.config import get_settings
    from linkvault.core.github import get_github_oauth_client
    from linkvault.core.redis_client import get_redis_client
    from linkvault.core.tokens import get_token_service
    from linkvault.db.session import get_engine, get_session_factory
    from linkvault.services.analytics_service import get_analytics_service
    from linkvault.services.connection_service import get_connection_service
    from linkvault.services.oauth_service import get_oauth_service
    from linkvault.services.user_service import get_user_service

    get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()
    get_token_service.cache_clear()
    get_redis_client.cache_clear()
    get_github_oauth_client.cache_clear()
    get_oauth_service.cache_clear()
    get_user_service.cache_clear()
    get_connection_service.cache_clear()
    get_analytics_service.cache_clear()


async def _dispose_async_singletons() -> None:
    """Dispose loop-bound async resources before changing event loops."""
    from linkvault.core.redis_client import get_redis_client
    from linkvault.db.session import dispose_engine, get_engine

    if get_redis_client.cache_info().currsize:
        await get_redis_client().aclose()
    if get_engine.cache_info().currsize:
        await dispose_engine()


def _redis_connection_url(redis: RedisContainer) -> str:
    """Return a redis:// URL from the container's mapped host and port."""
    host = redis.get_container_host_ip()
    port = redis.get_exposed_port(6379)
    return f"redis://{host}:{port}/0"


def _postgres_async_url(postgres: PostgresContainer) -> str:
    """Return a postgresql+asyncpg URL for the running container."""
    postgres_url = postgres.get_connection_url(driver=None)
    if postgres_url.startswith("postgresql+"):
        postgres_url = "postgresql://" + postgres_url.split("://", 1)[1]
    return postgres_url.replace("postgresql://", "postgresql+asyncpg://", 1)


def _set_env_values(env_values: dict[str, str]) -> tuple[dict[str, str], Callable[[], None]]:
    """Apply env vars and return a restore callback."""
    original: dict[str, str] = {}
    missing: set[str] = set()
    for key, value in env_values.items():
        current = os.environ.get(key)
        if current is None:
            missing.add(key)
            original[key] = ""
        else:
            original[key] = current
        os.environ[key] = value

    def _restore() -> None:
        for key in env_values:
            if key in missing:
                os.environ.pop(key, None)
            else:
                os.environ[key] = original[key]

    return original, _restore


@pytest.fixture(scope="session")
def integration_env() -> Iterator[dict[str, str]]:
    """Start Postgres/Redis containers and configure app settings for integration tests."""
    try:
        postgres = PostgresContainer("postgres:16")
        redis = RedisContainer("redis:7")
        postgres.start()
        redis.start()
    except DockerException as exc:
        if os.environ.get("CI", "").lower() in {"1", "true", "yes"}:
            pytest.fail(
                f"Docker daemon unavailable in CI for testcontainers-backed integration tests: {exc}"
            )
        pytest.skip(f"Docker daemon unavailable for testcontainers-backed integration tests: {exc}")

    database_url = _postgres_async_url(postgres)
    redis_url = _redis_connection_url(redis)

    env_values = {
        "APP__ENVIRONMENT": "development",
        "APP__SERVICE": "linkvault-api",
        "APP__LOG_LEVEL": "INFO",
        "APP__FRONTEND_URL": "http://localhost:5173",
        "APP__BACKEND_URL": "http://localhost:3001",
        "DATABASE__URL": database_url,
        "REDIS__URL": redis_url,
        "JWT__SECRET_KEY": "integration-signing-secret-0123456789abcdef",
        "JWT__ACCESS_TOKEN_TTL_SECONDS": "604800",
        "GITHUB__CLIENT_ID": "integration-github-client-id",
        "GITHUB__CLIENT_SECRET": "integration-github-client-secret",
        "GITHUB__REDIRECT_URI": "http://localhost:3001/auth/oauth/github/callback",
        "RATE_LIMIT__DEFAULT_REQUESTS_PER_MINUTE": "10000",
        "RATE_LIMIT__LOGIN_REQUESTS_PER_MINUTE": "10000",
        "RATE_LIMIT__REGISTER_REQUESTS_PER_MINUTE": "10000",
        "RATE_LIMIT__OAUTH_REQUESTS_PER_MINUTE": "10000",
    }

    _, restore_env = _set_env_values(env_values)
    _clear_dependency_caches()

    alembic_cfg = Config("alembic.ini")
    alembic_cfg.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(alembic_cfg, "head")

    try:
        yield {"database_url": database_url, "redis_url": redis_url}
    finally:
        try:
            _clear_dependency_caches()
        finally:
            restore_env()
            postgres.stop()
            redis.stop()


@pytest.fixture(scope="function")
async def reset_state(
    integration_env: dict[str, str],
) -> Iterator[None]:
    """Clear DB tables and flush Redis; isolate async singletons per event loop."""
    del integration_env
    from linkvault.core.redis_client import get_redis_client
    from linkvault.db.session import get_session_factory
    from linkvault.models.analytics_event import AnalyticsEvent
    from linkvault.models.connection import Connection
    from linkvault.models.user import User

    await _dispose_async_singletons()
    _clear_dependency_caches()

    session_factory = get_session_factory()
    async with session_factory() as session:
        await session.execute(delete(AnalyticsEvent))
        await session.execute(delete(Connection))
        await session.execute(delete(User))
        await session.commit()

    redis_client = get_redis_client()
    await redis_client.flushdb()
    try:
        yield
    finally:
        await _dispose_async_singletons()
        _clear_dependency_caches()


@pytest.fixture(scope="function")
async def db_session_factory(
    integration_env: dict[str, str],
    reset_state: None,
) -> async_sessionmaker[AsyncSession]:
    """Expose async session factory bound to integration Postgres."""
    del integration_env, reset_state
    from linkvault.db.session import get_session_factory

    return get_session_factory()


@pytest.fixture(scope="function")
async def db_session(
    db_session_factory: async_sessionmaker[AsyncSession],
) -> Iterator[AsyncSession]:
    """Yield a write-capable async DB session for test seeding and assertions."""
    async with db_session_factory() as session:
        yield session


@pytest.fixture(scope="function")
def app_factory(integration_env: dict[str, str], reset_state: None) -> Callable[[], Any]:
    """Build isolated FastAPI app instances for integration tests."""
    del integration_env, reset_state
    from linkvault.main import create_app

    def _factory() -> Any:
        return create_app()

    return _factory


@pytest.fixture(scope="function")
async def user_factory(
    db_session: AsyncSession,
) -> Callable[..., Any]:
    """Create password users with hashed bcrypt passwords."""
    from linkvault.models.user import User
    from linkvault.services.user_service import UserService

    user_service = UserService()

    async def _create(email: str, password: str | None = "secret1", **fields: Any) -> User:
        user = User(
            email=email,
            password_hash=user_service.hash_password(password) if password else None,
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", "User"),
            **fields,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create
