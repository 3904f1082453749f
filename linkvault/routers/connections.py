"""Connection CRUD, public listing, and click tracking routes."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status

from linkvault.core.errors import NotFoundError
from linkvault.dependencies import DatabaseSession, OptionalUser, RequiredUser
from linkvault.models.analytics_event import EventKind
from linkvault.models.connection import Platform
from linkvault.schemas.analytics import PlatformClickMetadata
from linkvault.schemas.connection import (
    ClickResponse,
    ConnectionCreateRequest,
    ConnectionResponse,
    ConnectionUpdateRequest,
    PublicConnectionResponse,
)
from linkvault.services.analytics_service import (
    AnalyticsService,
    get_analytics_service,
    visitor_from_request,
)
from linkvault.services.connection_service import ConnectionService, get_connection_service
from linkvault.services.user_service import UserService, get_user_service

router = APIRouter(prefix="/connections", tags=["connections"])

ConnectionServiceDep = Annotated[ConnectionService, Depends(get_connection_service)]


@router.get("", response_model=list[ConnectionResponse])
async def list_connections(
    current_user: RequiredUser,
    db_session: DatabaseSession,
    connection_service: ConnectionServiceDep,
) -> list[ConnectionResponse]:
    """List the caller's connections, newest first."""
    connections = await connection_service.list_for_owner(
        db_session=db_session, user_id=current_user.id
    )
    return [ConnectionResponse.from_connection(connection) for connection in connections]


@router.get("/user/{user_id}", response_model=list[PublicConnectionResponse])
async def list_public_connections(
    user_id: UUID,
    viewer: OptionalUser,
    db_session: DatabaseSession,
    connection_service: ConnectionServiceDep,
    user_service: Annotated[UserService, Depends(get_user_service)],
) -> list[PublicConnectionResponse]:
    """List a user's active connections, honoring the profile-public flag."""
    user = await user_service.get_user_by_id(db_session=db_session, user_id=user_id)
    if user is None:
        raise NotFoundError("User not found")
    user_service.public_projection(user=user, viewer_id=viewer.id if viewer else None)
    connections = await connection_service.list_public(db_session=db_session, user_id=user_id)
    return [PublicConnectionResponse.from_connection(connection) for connection in connections]


@router.post("", response_model=ConnectionResponse, status_code=status.HTTP_201_CREATED)
async def create_connection(
    payload: ConnectionCreateRequest,
    current_user: RequiredUser,
    db_session: DatabaseSession,
    connection_service: ConnectionServiceDep,
) -> ConnectionResponse:
    """Add a manual platform connection."""
    connection = await connection_service.create(
        db_session=db_session,
        user_id=current_user.id,
        platform=Platform(payload.platform),
        username=payload.username,
        url=payload.url,
        metadata=payload.metadata,
    )
    return ConnectionResponse.from_connection(connection)


@router.put("/{connection_id}", response_model=ConnectionResponse)
async def update_connection(
    connection_id: UUID,
    payload: ConnectionUpdateRequest,
    current_user: RequiredUser,
    db_session: DatabaseSession,
    connection_service: ConnectionServiceDep,
) -> ConnectionResponse:
    """Edit an owned connection."""
    connection = await connection_service.update(
        db_session=db_session,
        user_id=current_user.id,
        connection_id=connection_id,
        changes=payload.changes(),
    )
    return ConnectionResponse.from_connection(connection)


@router.delete("/{connection_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_connection(
    connection_id: UUID,
    current_user: RequiredUser,
    db_session: DatabaseSession,
    connection_service: ConnectionServiceDep,
) -> Response:
    """Remove an owned connection."""
    await connection_service.delete(
        db_session=db_session,
        user_id=current_user.id,
        connection_id=connection_id,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{connection_id}/click", response_model=ClickResponse)
async def track_click(
    connection_id: UUID,
    request: Request,
    db_session: DatabaseSession,
    connection_service: ConnectionServiceDep,
    analytics_service: Annotated[AnalyticsService, Depends(get_analytics_service)],
) -> ClickResponse:
    """Record a click on a public link and return its target URL."""
    connection = await connection_service.get_active(
        db_session=db_session, connection_id=connection_id
    )
    url = connection.url
    await analytics_service.record_event(
        db_session=db_session,
        user_id=connection.user_id,
        kind=EventKind.PLATFORM_CLICK,
        visitor=visitor_from_request(request),
        platform=connection.platform,
        metadata=PlatformClickMetadata(connection_id=connection.id),
    )
    return ClickResponse(url=url)
