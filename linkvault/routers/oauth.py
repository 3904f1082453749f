"""GitHub OAuth browser redirect routes."""

from __future__ import annotations

from typing import Annotated
from urllib.parse import quote, urlencode

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from linkvault.config import Settings, get_settings
from linkvault.core.errors import NotFoundError, UpstreamProviderError
from linkvault.dependencies import DatabaseSession
from linkvault.models.connection import Platform
from linkvault.services.oauth_service import OAuthFlowError, OAuthService, get_oauth_service

router = APIRouter(prefix="/auth/oauth", tags=["oauth"])
logger = structlog.get_logger(__name__)

SUPPORTED_PROVIDERS = frozenset({Platform.GITHUB.value})
GENERIC_FAILURE = "GitHub OAuth failed"


def _ensure_supported(provider: str) -> None:
    if provider not in SUPPORTED_PROVIDERS:
        raise NotFoundError("OAuth provider not supported")


def _login_error_redirect(settings: Settings, reason: str) -> RedirectResponse:
    """Send the browser to the client login page with an encoded reason."""
    url = f"{settings.app.frontend_url}/login?error={quote(reason, safe='')}"
    return RedirectResponse(url=url, status_code=302)


def _log_callback_failure(request: Request, provider: str, reason: str) -> None:
    logger.warning(
        "oauth_callback_failed",
        provider=provider,
        reason=reason,
        path=request.url.path,
    )


@router.get("/{provider}")
async def oauth_login(
    provider: str,
    oauth_service: Annotated[OAuthService, Depends(get_oauth_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> RedirectResponse:
    """Redirect to the provider's authorization page with fresh server-side state."""
    _ensure_supported(provider)
    try:
        authorization_url = await oauth_service.build_login_url()
    except OAuthFlowError as exc:
        return _login_error_redirect(settings, exc.reason)
    return RedirectResponse(url=authorization_url, status_code=302)


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: str,
    request: Request,
    db_session: DatabaseSession,
    oauth_service: Annotated[OAuthService, Depends(get_oauth_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    code: Annotated[str | None, Query()] = None,
    state: Annotated[str | None, Query()] = None,
    error: Annotated[str | None, Query()] = None,
) -> RedirectResponse:
    """Complete linking and hand the token to the client application."""
    _ensure_supported(provider)
    if error:
        _log_callback_failure(request, provider, f"provider_error:{error}")
        return _login_error_redirect(settings, f"{provider}_oauth_failed")
    if not code:
        _log_callback_failure(request, provider, "missing_code")
        return _login_error_redirect(settings, "missing_code")

    try:
        result = await oauth_service.complete_callback(
            db_session=db_session,
            state=state,
            code=code,
        )
    except OAuthFlowError as exc:
        _log_callback_failure(request, provider, exc.reason)
        return _login_error_redirect(settings, exc.reason)
    except UpstreamProviderError as exc:
        _log_callback_failure(request, provider, exc.reason)
        return _login_error_redirect(settings, exc.detail)
    except Exception:
        # The browser is mid-redirect and cannot consume a JSON error body.
        logger.exception("oauth_callback_failed", provider=provider, reason="unexpected")
        return _login_error_redirect(settings, GENERIC_FAILURE)

    query = urlencode({"token": result.token})
    return RedirectResponse(
        url=f"{settings.app.frontend_url}/auth/{provider}/callback?{query}",
        status_code=302,
    )
