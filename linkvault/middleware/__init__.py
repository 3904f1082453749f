"""Middleware package exports."""

from linkvault.middleware.correlation_id import CorrelationIdMiddleware
from linkvault.middleware.logging import LoggingMiddleware
from linkvault.middleware.rate_limit import RateLimitMiddleware, RatePolicy, build_policies
from linkvault.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "CorrelationIdMiddleware",
    "LoggingMiddleware",
    "RateLimitMiddleware",
    "RatePolicy",
    "SecurityHeadersMiddleware",
    "build_policies",
]
