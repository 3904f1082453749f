"""Shared FastAPI dependency helpers: database session and bearer authentication."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from enum import Enum
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from linkvault.core.errors import AuthenticationError
from linkvault.core.tokens import TokenFailure, TokenService, extract_bearer, get_token_service
from linkvault.db.session import get_db_session
from linkvault.models.user import User
from linkvault.services.user_service import UserService, get_user_service, parse_user_id


async def get_database_session() -> AsyncGenerator[AsyncSession, None]:
    """Expose the request-scoped async database session dependency."""
    async for session in get_db_session():
        yield session


class AuthState(str, Enum):
    """Outcome of resolving the bearer credential on a request."""

    NO_TOKEN = "no_token"
    INVALID_TOKEN = "invalid_token"
    USER_MISSING = "user_missing"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class CurrentUser:
    """Identity attached to an authenticated request."""

    id: UUID
    email: str
    first_name: str
    last_name: str


@dataclass(frozen=True)
class AuthResolution:
    state: AuthState
    user: CurrentUser | None = None
    failure_reason: str | None = None


def _token_subject(request: Request, token_service: TokenService) -> AuthResolution | tuple[UUID, str]:
    token = extract_bearer(request.headers.get("authorization"))
    if token is None:
        return AuthResolution(state=AuthState.NO_TOKEN)
    verification = token_service.verify(token)
    if isinstance(verification, TokenFailure):
        return AuthResolution(state=AuthState.INVALID_TOKEN, failure_reason=verification.reason)
    subject_id = parse_user_id(verification.subject_id)
    if subject_id is None:
        return AuthResolution(state=AuthState.INVALID_TOKEN, failure_reason="invalid")
    return subject_id, verification.subject_email


async def resolve_authentication(
    request: Request,
    db_session: AsyncSession,
    token_service: TokenService,
    user_service: UserService,
) -> AuthResolution:
    """Run the full mandatory-auth state machine, including a fresh user lookup."""
    subject = _token_subject(request, token_service)
    if isinstance(subject, AuthResolution):
        return subject
    subject_id, _ = subject
    user: User | None = await user_service.get_user_by_id(db_session=db_session, user_id=subject_id)
    if user is None:
        return AuthResolution(state=AuthState.USER_MISSING)
    return AuthResolution(
        state=AuthState.AUTHENTICATED,
        user=CurrentUser(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
        ),
    )


async def get_current_user(
    request: Request,
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    token_service: Annotated[TokenService, Depends(get_token_service)],
    user_service: Annotated[UserService, Depends(get_user_service)],
) -> CurrentUser:
    """Require an authenticated caller whose account still exists."""
    resolution = await resolve_authentication(
        request=request,
        db_session=db_session,
        token_service=token_service,
        user_service=user_service,
    )
    request.state.auth_state = resolution.state.value
    if resolution.state is not AuthState.AUTHENTICATED or resolution.user is None:
        # Callers never learn which check failed.
        raise AuthenticationError()
    request.state.user = {"user_id": str(resolution.user.id), "email": resolution.user.email}
    return resolution.user


def get_optional_user(
    request: Request,
    token_service: Annotated[TokenService, Depends(get_token_service)],
) -> CurrentUser | None:
    """Best-effort identity from the token alone; any failure means anonymous."""
    subject = _token_subject(request, token_service)
    if isinstance(subject, AuthResolution):
        return None
    subject_id, subject_email = subject
    request.state.user = {"user_id": str(subject_id), "email": subject_email}
    return CurrentUser(id=subject_id, email=subject_email, first_name="", last_name="")


RequiredUser = Annotated[CurrentUser, Depends(get_current_user)]
OptionalUser = Annotated[CurrentUser | None, Depends(get_optional_user)]
DatabaseSession = Annotated[AsyncSession, Depends(get_database_session)]
