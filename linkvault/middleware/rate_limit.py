"""Redis-backed sliding-window rate limiting for credential endpoints."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Protocol
from uuid import uuid4

import structlog
from fastapi import Request
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from linkvault.config import RateLimitSettings

logger = structlog.get_logger(__name__)
_WINDOW_SECONDS = 60


class SlidingWindowRedis(Protocol):
    """Redis operations used by the rate limiter."""

    async def zremrangebyscore(self, key: str, min: str | int, max: int) -> int: ...

    async def zcard(self, key: str) -> int: ...

    async def zadd(self, key: str, mapping: dict[str, int]) -> int: ...

    async def expire(self, key: str, ttl_seconds: int) -> bool: ...


@dataclass(frozen=True)
class RatePolicy:
    """Per-minute limit applied to paths starting with ``prefix``."""

    prefix: str
    requests_per_minute: int


def build_policies(settings: RateLimitSettings) -> list[RatePolicy]:
    """Path policies, most specific first; the last entry is the catch-all."""
    return [
        RatePolicy("/auth/login", settings.login_requests_per_minute),
        RatePolicy("/auth/register", settings.register_requests_per_minute),
        RatePolicy("/auth/oauth", settings.oauth_requests_per_minute),
        RatePolicy("/", settings.default_requests_per_minute),
    ]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Apply per-client, per-policy sliding-window request limits."""

    def __init__(
        self,
        app,
        redis_client: SlidingWindowRedis,
        policies: list[RatePolicy],
    ) -> None:
        super().__init__(app)
        self._redis = redis_client
        self._policies = policies
        self._window_milliseconds = _WINDOW_SECONDS * 1000

    async def dispatch(self, request: Request, call_next) -> Response:
        """Reject requests exceeding the matching policy's per-minute threshold."""
        if request.url.path.startswith("/health"):
            return await call_next(request)

        policy = self.resolve_policy(request.url.path)
        bucket_key = f"rate_limit:{policy.prefix}:{self._extract_client_id(request)}"
        now_ms = int(time.time() * 1000)
        window_start = now_ms - self._window_milliseconds

        try:
            await self._redis.zremrangebyscore(bucket_key, "-inf", window_start)
            current_count = await self._redis.zcard(bucket_key)
            if current_count >= policy.requests_per_minute:
                logger.warning(
                    "rate_limited",
                    path=request.url.path,
                    policy=policy.prefix,
                    limit=policy.requests_per_minute,
                )
                return JSONResponse(
                    status_code=429,
                    content={"error": "Too many requests"},
                    headers={"Retry-After": str(_WINDOW_SECONDS)},
                )

            await self._redis.zadd(bucket_key, {f"{now_ms}:{uuid4()}": now_ms})
            await self._redis.expire(bucket_key, math.ceil(self._window_milliseconds / 1000) + 1)
        except RedisError:
            # Redis outage degrades to no limiting.
            logger.warning(
                "rate_limit_backend_unavailable",
                path=request.url.path,
                method=request.method,
            )

        return await call_next(request)

    def resolve_policy(self, path: str) -> RatePolicy:
        for policy in self._policies:
            if path.startswith(policy.prefix):
                return policy
        return self._policies[-1]

    @staticmethod
    def _extract_client_id(request: Request) -> str:
        forwarded_for = request.headers.get("x-forwarded-for", "").strip()
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        client = request.client
        return client.host if client else "unknown"
