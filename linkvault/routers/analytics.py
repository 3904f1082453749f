"""Analytics reporting and custom event tracking routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status

from linkvault.core.errors import NotFoundError
from linkvault.dependencies import DatabaseSession, OptionalUser, RequiredUser
from linkvault.models.analytics_event import EventKind
from linkvault.schemas.analytics import (
    ActivityItem,
    CustomEventMetadata,
    OverviewResponse,
    PlatformClicks,
    SourceViews,
    TimeRange,
    TrackRequest,
    TrackResponse,
)
from linkvault.services.analytics_service import (
    AnalyticsService,
    get_analytics_service,
    visitor_from_request,
)
from linkvault.services.user_service import UserService, get_user_service

router = APIRouter(prefix="/analytics", tags=["analytics"])

AnalyticsServiceDep = Annotated[AnalyticsService, Depends(get_analytics_service)]
TimeRangeQuery = Annotated[TimeRange, Query(alias="timeRange")]


@router.get("/overview", response_model=OverviewResponse)
async def overview(
    current_user: RequiredUser,
    db_session: DatabaseSession,
    analytics_service: AnalyticsServiceDep,
    time_range: TimeRangeQuery = "7d",
) -> OverviewResponse:
    """Views, unique visitors, clicks, and CTR with period-over-period trends."""
    return await analytics_service.overview(
        db_session=db_session, user_id=current_user.id, time_range=time_range
    )


@router.get("/platforms", response_model=list[PlatformClicks])
async def platforms(
    current_user: RequiredUser,
    db_session: DatabaseSession,
    analytics_service: AnalyticsServiceDep,
    time_range: TimeRangeQuery = "7d",
) -> list[PlatformClicks]:
    return await analytics_service.platform_breakdown(
        db_session=db_session, user_id=current_user.id, time_range=time_range
    )


@router.get("/activity", response_model=list[ActivityItem])
async def activity(
    current_user: RequiredUser,
    db_session: DatabaseSession,
    analytics_service: AnalyticsServiceDep,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> list[ActivityItem]:
    return await analytics_service.recent_activity(
        db_session=db_session, user_id=current_user.id, limit=limit
    )


@router.get("/sources", response_model=list[SourceViews])
async def sources(
    current_user: RequiredUser,
    db_session: DatabaseSession,
    analytics_service: AnalyticsServiceDep,
    time_range: TimeRangeQuery = "7d",
) -> list[SourceViews]:
    return await analytics_service.traffic_sources(
        db_session=db_session, user_id=current_user.id, time_range=time_range
    )


@router.post("/track", response_model=TrackResponse, status_code=status.HTTP_202_ACCEPTED)
async def track(
    payload: TrackRequest,
    request: Request,
    viewer: OptionalUser,
    db_session: DatabaseSession,
    analytics_service: AnalyticsServiceDep,
    user_service: Annotated[UserService, Depends(get_user_service)],
) -> TrackResponse:
    """Record a custom event for an existing user; the owner's own activity is not counted."""
    user = await user_service.get_user_by_id(db_session=db_session, user_id=payload.user_id)
    if user is None:
        raise NotFoundError("User not found")
    if viewer is not None and viewer.id == user.id:
        return TrackResponse(tracked=False)
    tracked = await analytics_service.record_event(
        db_session=db_session,
        user_id=user.id,
        kind=EventKind.CUSTOM,
        visitor=visitor_from_request(request),
        metadata=CustomEventMetadata(name=payload.name, properties=payload.properties),
    )
    return TrackResponse(tracked=tracked)
