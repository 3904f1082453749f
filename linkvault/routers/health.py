"""Health check router endpoints."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from linkvault.core.redis_client import get_redis_client
from linkvault.db.session import get_engine

router = APIRouter(prefix="/health", tags=["health"])
logger = structlog.get_logger(__name__)


async def check_postgres_ready() -> bool:
    """Return True when Postgres accepts a lightweight query."""
    try:
        async with get_engine().connect() as connection:
            await connection.execute(select(1))
        return True
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("readiness_check_failed", dependency="postgres", error=str(exc))
        return False


async def check_redis_ready() -> bool:
    """Return True when Redis responds to PING."""
    try:
        return bool(await get_redis_client().ping())
    except (RedisError, OSError) as exc:
        logger.warning("readiness_check_failed", dependency="redis", error=str(exc))
        return False


@router.get("/live")
async def live() -> dict[str, str]:
    """Liveness probe endpoint."""
    return {"status": "live"}


@router.get("/ready", response_model=None)
async def ready(
    postgres_ready: Annotated[bool, Depends(check_postgres_ready)],
    redis_ready: Annotated[bool, Depends(check_redis_ready)],
) -> dict[str, str] | JSONResponse:
    """Readiness probe requiring both Postgres and Redis."""
    if not postgres_ready or not redis_ready:
        return JSONResponse(
            status_code=503,
            content={
                "error": "Service not ready",
                "details": [
                    {"dependency": "postgres", "ready": postgres_ready},
                    {"dependency": "redis", "ready": redis_ready},
                ],
            },
        )
    return {"status": "ready"}
