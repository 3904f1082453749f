"""Profile, privacy, portfolio, and account deletion routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from linkvault.core.errors import NotFoundError
from linkvault.dependencies import DatabaseSession, OptionalUser, RequiredUser
from linkvault.models.analytics_event import EventKind
from linkvault.schemas.analytics import ProfileViewMetadata
from linkvault.schemas.user import (
    MessageResponse,
    PrivacyResponse,
    PrivacyUpdateRequest,
    ProfileResponse,
    ProfileUpdateRequest,
    PublicProfileResponse,
)
from linkvault.services.analytics_service import (
    AnalyticsService,
    get_analytics_service,
    visitor_from_request,
)
from linkvault.services.user_service import UserService, get_user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    current_user: RequiredUser,
    db_session: DatabaseSession,
    user_service: Annotated[UserService, Depends(get_user_service)],
) -> ProfileResponse:
    """Return the caller's full profile."""
    user = await user_service.get_profile(db_session=db_session, user_id=current_user.id)
    return ProfileResponse.model_validate(user)


@router.put("/profile", response_model=ProfileResponse)
async def update_profile(
    payload: ProfileUpdateRequest,
    current_user: RequiredUser,
    db_session: DatabaseSession,
    user_service: Annotated[UserService, Depends(get_user_service)],
) -> ProfileResponse:
    """Apply a partial profile update."""
    user = await user_service.update_profile(
        db_session=db_session,
        user_id=current_user.id,
        changes=payload.changes(),
    )
    return ProfileResponse.model_validate(user)


@router.put("/profile/privacy", response_model=PrivacyResponse)
async def update_privacy(
    payload: PrivacyUpdateRequest,
    current_user: RequiredUser,
    db_session: DatabaseSession,
    user_service: Annotated[UserService, Depends(get_user_service)],
) -> PrivacyResponse:
    """Update privacy flags."""
    user = await user_service.update_privacy(
        db_session=db_session,
        user_id=current_user.id,
        changes=payload.changes(),
    )
    return PrivacyResponse.model_validate(user)


@router.get(
    "/portfolio/{identifier}",
    response_model=PublicProfileResponse,
    response_model_exclude_unset=True,
)
async def get_portfolio(
    identifier: str,
    request: Request,
    viewer: OptionalUser,
    db_session: DatabaseSession,
    user_service: Annotated[UserService, Depends(get_user_service)],
    analytics_service: Annotated[AnalyticsService, Depends(get_analytics_service)],
) -> PublicProfileResponse:
    """Public profile filtered by privacy flags; non-owner views are tracked."""
    user = await user_service.find_by_identifier(db_session=db_session, identifier=identifier)
    if user is None:
        raise NotFoundError("User not found")

    viewer_id = viewer.id if viewer is not None else None
    projection = user_service.public_projection(user=user, viewer_id=viewer_id)
    if viewer_id != user.id:
        await analytics_service.record_event(
            db_session=db_session,
            user_id=user.id,
            kind=EventKind.PROFILE_VIEW,
            visitor=visitor_from_request(request),
            metadata=ProfileViewMetadata(),
        )
    return projection


@router.delete("/delete", response_model=MessageResponse)
async def delete_account(
    current_user: RequiredUser,
    db_session: DatabaseSession,
    user_service: Annotated[UserService, Depends(get_user_service)],
) -> MessageResponse:
    """Delete the caller's account and everything it owns."""
    await user_service.delete_user(db_session=db_session, user_id=current_user.id)
    return MessageResponse(message="Account deleted successfully")
