"""Global exception handlers enforcing the API error envelope."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from linkvault.core.errors import LinkVaultError

logger = structlog.get_logger(__name__)

_LOCATION_PREFIXES = {"body", "query", "path", "header", "cookie"}


def _error_response(status_code: int, error: str, details: list[Any] | None = None) -> JSONResponse:
    """Build the ``{"error", "details"?}`` payload."""
    content: dict[str, Any] = {"error": error}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _field_name(location: tuple[Any, ...] | list[Any]) -> str:
    """Render a validation error location as a dotted field path."""
    parts = [str(part) for part in location]
    if parts and parts[0] in _LOCATION_PREFIXES:
        parts = parts[1:]
    return ".".join(parts) or "body"


def validation_details(errors: list[dict[str, Any]]) -> list[dict[str, str]]:
    """Map framework validation errors onto ``{"field", "message"}`` entries."""
    return [
        {"field": _field_name(error.get("loc", ())), "message": str(error.get("msg", "Invalid value"))}
        for error in errors
    ]


def _extract_client_ip(request: Request) -> str:
    """Extract request client IP with forwarding-header support."""
    forwarded_for = request.headers.get("x-forwarded-for", "").strip()
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    client = request.client
    return client.host if client else "unknown"


def _extract_user_id(request: Request) -> str | None:
    """Extract best-effort user id from request state."""
    user_state = getattr(request.state, "user", None)
    if isinstance(user_state, dict) and user_state.get("user_id"):
        return str(user_state["user_id"])
    return None


def _log_auth_failure(request: Request, status_code: int, detail: str) -> None:
    """Emit a WARNING-level log for rejected auth requests."""
    if status_code < 400 or status_code >= 500:
        return
    if status_code != 401 and not request.url.path.startswith("/auth"):
        return
    logger.warning(
        "auth_failure",
        event_type="auth_failure",
        user_id=_extract_user_id(request),
        auth_state=getattr(request.state, "auth_state", None),
        ip_address=_extract_client_ip(request),
        status_code=status_code,
        detail=detail,
        path=request.url.path,
        method=request.method,
    )


def register_exception_handlers(app: FastAPI, environment: str) -> None:
    """Register global exception handlers enforcing the error envelope."""

    @app.exception_handler(LinkVaultError)
    async def handle_domain_error(request: Request, exc: LinkVaultError) -> JSONResponse:
        """Render taxonomy errors with their own status."""
        _log_auth_failure(request=request, status_code=exc.status_code, detail=exc.detail)
        return _error_response(exc.status_code, exc.detail, exc.details)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Normalize framework HTTP exceptions to the envelope."""
        detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
        _log_auth_failure(request=request, status_code=exc.status_code, detail=detail)
        response = _error_response(exc.status_code, detail)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Map request validation errors to 400 with field-level detail."""
        details = validation_details(list(exc.errors()))
        _log_auth_failure(request=request, status_code=400, detail="Invalid input data")
        return _error_response(400, "Invalid input data", details)

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        """Mask internal errors outside development."""
        correlation_id = getattr(
            request.state,
            "correlation_id",
            request.headers.get("x-correlation-id", "unknown"),
        )
        logger.error(
            "unhandled_exception",
            correlation_id=correlation_id,
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        details = [str(exc)] if environment == "development" else None
        return _error_response(500, "Internal server error", details)
