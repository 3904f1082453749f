"""Password authentication routes."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, status

from linkvault.core.errors import AuthenticationError, NotFoundError
from linkvault.core.tokens import TokenService, get_token_service
from linkvault.dependencies import DatabaseSession, RequiredUser
from linkvault.schemas.auth import AuthResponse, AuthUser, LoginRequest, MeResponse, RegisterRequest
from linkvault.services.user_service import UserService, get_user_service

router = APIRouter(prefix="/auth", tags=["auth"])
logger = structlog.get_logger(__name__)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    db_session: DatabaseSession,
    user_service: Annotated[UserService, Depends(get_user_service)],
    token_service: Annotated[TokenService, Depends(get_token_service)],
) -> AuthResponse:
    """Create a password account and issue its first token."""
    user = await user_service.register(
        db_session=db_session,
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    return AuthResponse(
        user=AuthUser.model_validate(user),
        token=token_service.issue(str(user.id), user.email),
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    payload: LoginRequest,
    db_session: DatabaseSession,
    user_service: Annotated[UserService, Depends(get_user_service)],
    token_service: Annotated[TokenService, Depends(get_token_service)],
) -> AuthResponse:
    """Verify email/password credentials and issue a token."""
    user = await user_service.authenticate_user(
        db_session=db_session,
        email=payload.email,
        password=payload.password,
    )
    if user is None:
        raise AuthenticationError("Invalid credentials")
    logger.info("user_logged_in", user_id=str(user.id), provider="password")
    return AuthResponse(
        user=AuthUser.model_validate(user),
        token=token_service.issue(str(user.id), user.email),
    )


@router.get("/me", response_model=MeResponse)
async def me(
    current_user: RequiredUser,
    db_session: DatabaseSession,
    user_service: Annotated[UserService, Depends(get_user_service)],
) -> MeResponse:
    """Return the authenticated caller's identity snapshot."""
    user = await user_service.get_user_by_id(db_session=db_session, user_id=current_user.id)
    if user is None:
        raise NotFoundError("User not found")
    return MeResponse.model_validate(user)
