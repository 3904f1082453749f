"""Application settings and logging configuration."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any, Literal

import structlog
from pydantic import AnyHttpUrl, BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_CONTEXT: dict[str, str] = {"environment": "development", "service": "linkvault-api"}


class AppSettings(BaseModel):
    """Application identity and runtime settings."""

    environment: Literal["development", "staging", "production"]
    service: str = "linkvault-api"
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    frontend_url: str = "http://localhost:5173"
    backend_url: str = "http://localhost:3001"

    @field_validator("frontend_url", "backend_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        """Normalize public base URLs so paths can be appended directly."""
        return value.rstrip("/")


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = Field(description="Async SQLAlchemy URL using asyncpg driver.")
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    pool_timeout_seconds: float = Field(default=30.0, gt=0)
    pool_recycle_seconds: int = Field(default=1800, ge=-1)
    echo: bool = False

    @field_validator("url")
    @classmethod
    def validate_asyncpg_url(cls, value: str) -> str:
        """Ensure SQLAlchemy uses the asyncpg driver."""
        if not value.startswith("postgresql+asyncpg://"):
            raise ValueError("database.url must start with 'postgresql+asyncpg://'.")
        return value


class RedisSettings(BaseModel):
    """Redis connection settings."""

    url: str = Field(description="Redis URL.")

    @field_validator("url")
    @classmethod
    def validate_redis_url(cls, value: str) -> str:
        """Ensure the Redis URL uses a supported scheme."""
        if not value.startswith(("redis://", "rediss://")):
            raise ValueError("redis.url must start with 'redis://' or 'rediss://'.")
        return value


class JWTSettings(BaseModel):
    """Bearer token signing and lifetime settings."""

    algorithm: Literal["HS256", "HS384", "HS512"] = "HS256"
    secret_key: SecretStr
    access_token_ttl_seconds: int = Field(default=604800, ge=1)

    @field_validator("secret_key")
    @classmethod
    def validate_secret_length(cls, value: SecretStr) -> SecretStr:
        """Refuse to start with a missing or trivially short signing secret."""
        if len(value.get_secret_value().strip()) < 32:
            raise ValueError("jwt.secret_key must be at least 32 characters.")
        return value


class GitHubSettings(BaseModel):
    """GitHub OAuth application settings."""

    client_id: str
    client_secret: SecretStr
    redirect_uri: AnyHttpUrl
    scope: str = "user:email read:user"
    request_timeout_seconds: float = Field(default=5.0, gt=0, le=30)
    state_ttl_seconds: int = Field(default=600, ge=30)
    recent_repo_limit: int = Field(default=10, ge=1, le=100)


class CORSSettings(BaseModel):
    """Cross-origin allow-list settings."""

    allowed_origins: list[str] = Field(default_factory=list)


class RateLimitSettings(BaseModel):
    """Rate limiting thresholds."""

    default_requests_per_minute: int = Field(default=300, ge=1)
    login_requests_per_minute: int = Field(default=10, ge=1)
    register_requests_per_minute: int = Field(default=5, ge=1)
    oauth_requests_per_minute: int = Field(default=30, ge=1)


class Settings(BaseSettings):
    """Root application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app: AppSettings
    database: DatabaseSettings
    redis: RedisSettings
    jwt: JWTSettings
    github: GitHubSettings
    cors: CORSSettings = Field(default_factory=CORSSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)

    def cors_origins(self) -> list[str]:
        """Return the explicit origin allow-list plus the configured frontend URL."""
        origins = [origin.rstrip("/") for origin in self.cors.allowed_origins]
        if self.app.frontend_url not in origins:
            origins.append(self.app.frontend_url)
        return origins


def _standard_log_fields(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Inject required structured logging fields."""
    context_vars = structlog.contextvars.get_contextvars()
    event_dict.setdefault("correlation_id", str(context_vars.get("correlation_id", "unknown")))
    event_dict.setdefault("environment", _LOG_CONTEXT["environment"])
    event_dict.setdefault("service", _LOG_CONTEXT["service"])
    event_dict.setdefault("timestamp", datetime.now(UTC).isoformat())
    return event_dict


def configure_structlog(settings: Settings) -> None:
    """Configure structlog for JSON output with required fields."""
    _LOG_CONTEXT["environment"] = settings.app.environment
    _LOG_CONTEXT["service"] = settings.app.service

    log_level = getattr(logging, settings.app.log_level, logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _standard_log_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@lru_cache
def get_settings() -> Settings:
    """Load and cache application settings from environment variables."""
    return Settings()
