"""Connection CRUD scoped to the owning user."""

from __future__ import annotations

from functools import lru_cache
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from linkvault.core.errors import NotFoundError, ValidationError
from linkvault.models.connection import Connection, Platform
from linkvault.schemas.connection import (
    GitHubMetadata,
    ManualMetadata,
    default_metadata,
    dump_metadata,
)

logger = structlog.get_logger(__name__)

DUPLICATE_CONNECTION_DETAIL = "Connection for this platform already exists"
_UPDATABLE_FIELDS = frozenset({"username", "url", "is_active"})


class ConnectionService:
    """Create, list, update, and delete platform connections.

    Rows owned by another user are reported as missing so callers cannot probe
    for their existence.
    """

    async def list_for_owner(self, db_session: AsyncSession, user_id: UUID) -> list[Connection]:
        """All of a user's connections, newest first."""
        statement = (
            select(Connection)
            .where(Connection.user_id == user_id)
            .order_by(Connection.created_at.desc(), Connection.id)
        )
        result = await db_session.execute(statement)
        return list(result.scalars().all())

    async def list_public(self, db_session: AsyncSession, user_id: UUID) -> list[Connection]:
        """Active connections of a user, newest first."""
        statement = (
            select(Connection)
            .where(Connection.user_id == user_id, Connection.is_active.is_(True))
            .order_by(Connection.created_at.desc(), Connection.id)
        )
        result = await db_session.execute(statement)
        return list(result.scalars().all())

    async def create(
        self,
        db_session: AsyncSession,
        user_id: UUID,
        platform: Platform,
        username: str,
        url: str,
        metadata: GitHubMetadata | ManualMetadata | None = None,
    ) -> Connection:
        """Add a manual connection; one per platform per user."""
        existing = await self.get_for_platform(
            db_session=db_session, user_id=user_id, platform=platform
        )
        if existing is not None:
            raise ValidationError(DUPLICATE_CONNECTION_DETAIL)

        connection = Connection(
            user_id=user_id,
            platform=platform.value,
            username=username,
            url=url,
            is_active=True,
            platform_metadata=dump_metadata(metadata or default_metadata(platform)),
        )
        db_session.add(connection)
        try:
            await db_session.flush()
            await db_session.commit()
        except IntegrityError as exc:
            await db_session.rollback()
            raise ValidationError(DUPLICATE_CONNECTION_DETAIL) from exc
        await db_session.refresh(connection)
        logger.info(
            "connection_created",
            user_id=str(user_id),
            connection_id=str(connection.id),
            platform=platform.value,
        )
        return connection

    async def update(
        self,
        db_session: AsyncSession,
        user_id: UUID,
        connection_id: UUID,
        changes: dict[str, Any],
    ) -> Connection:
        """Update username, url, or active flag of an owned connection."""
        connection = await self._get_owned(
            db_session=db_session, user_id=user_id, connection_id=connection_id
        )
        for field, value in changes.items():
            if field in _UPDATABLE_FIELDS:
                setattr(connection, field, value)
        await db_session.flush()
        await db_session.commit()
        await db_session.refresh(connection)
        return connection

    async def delete(self, db_session: AsyncSession, user_id: UUID, connection_id: UUID) -> None:
        """Hard-delete an owned connection."""
        connection = await self._get_owned(
            db_session=db_session, user_id=user_id, connection_id=connection_id
        )
        await db_session.delete(connection)
        await db_session.commit()

    async def get_active(self, db_session: AsyncSession, connection_id: UUID) -> Connection:
        """Resolve a click target; inactive links behave as missing."""
        statement = select(Connection).where(
            Connection.id == connection_id, Connection.is_active.is_(True)
        )
        result = await db_session.execute(statement)
        connection = result.scalar_one_or_none()
        if connection is None:
            raise NotFoundError("Connection not found")
        return connection

    async def get_for_platform(
        self,
        db_session: AsyncSession,
        user_id: UUID,
        platform: Platform | str,
    ) -> Connection | None:
        statement = select(Connection).where(
            Connection.user_id == user_id,
            Connection.platform == Platform(platform).value,
        )
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()

    async def _get_owned(
        self,
        db_session: AsyncSession,
        user_id: UUID,
        connection_id: UUID,
    ) -> Connection:
        statement = select(Connection).where(
            Connection.id == connection_id,
            Connection.user_id == user_id,
        )
        result = await db_session.execute(statement)
        connection = result.scalar_one_or_none()
        if connection is None:
            raise NotFoundError("Connection not found")
        return connection


@lru_cache
def get_connection_service() -> ConnectionService:
    """Create and cache connection service dependency."""
    return ConnectionService()
