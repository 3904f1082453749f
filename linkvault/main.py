"""FastAPI application factory."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from linkvault.config import Settings, configure_structlog, get_settings
from linkvault.core.redis_client import get_redis_client
from linkvault.db.session import dispose_engine
from linkvault.error_handlers import register_exception_handlers
from linkvault.middleware import (
    CorrelationIdMiddleware,
    LoggingMiddleware,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
    build_policies,
)
from linkvault.routers import analytics, auth, connections, health, oauth, users


@asynccontextmanager
async def _lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    await dispose_engine()
    await get_redis_client().aclose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    configure_structlog(settings)

    app = FastAPI(title=settings.app.service, lifespan=_lifespan)
    register_exception_handlers(app, settings.app.environment)

    # Starlette runs the last-added middleware first.
    app.add_middleware(
        RateLimitMiddleware,
        redis_client=get_redis_client(),
        policies=build_policies(settings.rate_limit),
    )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, environment=settings.app.environment)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Correlation-ID"],
        expose_headers=["X-Correlation-ID"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(auth.router)
    app.include_router(oauth.router)
    app.include_router(users.router)
    app.include_router(connections.router)
    app.include_router(analytics.router)
    app.include_router(health.router)
    return app


app = create_app()
