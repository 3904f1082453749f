"""User registration, credential checks, and profile management."""

from __future__ import annotations

from functools import lru_cache
from typing import Any
from uuid import UUID

import structlog
from passlib.context import CryptContext
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from linkvault.core.errors import NotFoundError, PrivateResourceError, ValidationError
from linkvault.models.user import User
from linkvault.schemas.user import CLEARABLE_PROFILE_FIELDS, PublicProfileResponse

logger = structlog.get_logger(__name__)

_NAME_FIELDS = frozenset({"first_name", "last_name"})
_PRIVACY_FIELDS = frozenset({"public_profile", "show_email", "show_location"})


def parse_user_id(value: str | UUID) -> UUID | None:
    """Parse a user id, returning None for anything that is not a UUID."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(value.strip())
    except (AttributeError, ValueError):
        return None


class UserService:
    """Service responsible for user records and password verification."""

    def __init__(self) -> None:
        self._password_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

    async def register(
        self,
        db_session: AsyncSession,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
    ) -> User:
        """Create a password account; a taken email is rejected without a new row."""
        if await self.get_user_by_email(db_session=db_session, email=email) is not None:
            raise ValidationError("Email already registered")

        user = User(
            email=email,
            password_hash=self.hash_password(password),
            first_name=first_name,
            last_name=last_name,
        )
        db_session.add(user)
        try:
            await db_session.flush()
            await db_session.commit()
        except IntegrityError as exc:
            # Lost a race with a concurrent registration for the same email.
            await db_session.rollback()
            raise ValidationError("Email already registered") from exc
        await db_session.refresh(user)
        logger.info("user_registered", user_id=str(user.id))
        return user

    async def authenticate_user(
        self,
        db_session: AsyncSession,
        email: str,
        password: str,
    ) -> User | None:
        """Authenticate user credentials for password login."""
        user = await self.get_user_by_email(db_session=db_session, email=email)
        if user is None or user.password_hash is None:
            self._password_context.dummy_verify()
            return None
        if not self.verify_password(password=password, password_hash=user.password_hash):
            return None
        return user

    async def get_user_by_email(self, db_session: AsyncSession, email: str) -> User | None:
        """Fetch a user by case-insensitive email."""
        statement = select(User).where(func.lower(User.email) == email.strip().lower())
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()

    async def get_user_by_id(self, db_session: AsyncSession, user_id: UUID) -> User | None:
        """Fetch a user by primary key."""
        statement = select(User).where(User.id == user_id)
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()

    async def get_profile(self, db_session: AsyncSession, user_id: UUID) -> User:
        """Fetch the caller's own profile."""
        user = await self.get_user_by_id(db_session=db_session, user_id=user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def find_by_identifier(self, db_session: AsyncSession, identifier: str) -> User | None:
        """Resolve a portfolio identifier, which is either a user id or an email."""
        user_id = parse_user_id(identifier)
        if user_id is not None:
            return await self.get_user_by_id(db_session=db_session, user_id=user_id)
        if "@" in identifier:
            return await self.get_user_by_email(db_session=db_session, email=identifier)
        return None

    async def update_profile(
        self,
        db_session: AsyncSession,
        user_id: UUID,
        changes: dict[str, Any],
    ) -> User:
        """Apply a tri-state partial update; only keys present in ``changes`` are written."""
        user = await self._get_user_for_update(db_session=db_session, user_id=user_id)
        if user is None:
            raise NotFoundError("User not found")

        for field, value in changes.items():
            if field in _NAME_FIELDS:
                if value is None:
                    raise ValidationError(
                        "Invalid input data",
                        details=[{"field": field, "message": "cannot be null"}],
                    )
            elif field not in CLEARABLE_PROFILE_FIELDS:
                continue
            setattr(user, field, value)

        await db_session.flush()
        await db_session.commit()
        await db_session.refresh(user)
        return user

    async def update_privacy(
        self,
        db_session: AsyncSession,
        user_id: UUID,
        changes: dict[str, bool],
    ) -> User:
        """Update any subset of the three independent privacy flags."""
        user = await self._get_user_for_update(db_session=db_session, user_id=user_id)
        if user is None:
            raise NotFoundError("User not found")
        for field, value in changes.items():
            if field in _PRIVACY_FIELDS:
                setattr(user, field, bool(value))
        await db_session.flush()
        await db_session.commit()
        await db_session.refresh(user)
        return user

    async def delete_user(self, db_session: AsyncSession, user_id: UUID) -> None:
        """Hard-delete the account; connections and analytics go with it."""
        result = await db_session.execute(delete(User).where(User.id == user_id))
        if result.rowcount == 0:
            await db_session.rollback()
            raise NotFoundError("User not found")
        await db_session.commit()
        logger.info("user_deleted", user_id=str(user_id))

    def public_projection(self, user: User, viewer_id: UUID | None) -> PublicProfileResponse:
        """Filter a profile by its privacy flags for the given viewer."""
        is_owner = viewer_id is not None and viewer_id == user.id
        if not user.public_profile and not is_owner:
            raise PrivateResourceError("Profile is private")

        fields: dict[str, Any] = {
            "id": user.id,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "bio": user.bio,
            "website": user.website,
            "title": user.title,
            "company": user.company,
            "avatar_url": user.avatar_url,
            "created_at": user.created_at,
        }
        if user.show_email or is_owner:
            fields["email"] = user.email
        if user.show_location or is_owner:
            fields["location"] = user.location
        return PublicProfileResponse(**fields)

    def hash_password(self, password: str) -> str:
        """Generate a bcrypt hash for the provided password."""
        return str(self._password_context.hash(password))

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a plaintext password against the stored bcrypt hash."""
        return bool(self._password_context.verify(password, password_hash))

    async def _get_user_for_update(self, db_session: AsyncSession, user_id: UUID) -> User | None:
        """Fetch user row for mutation with row lock."""
        statement = select(User).where(User.id == user_id).with_for_update()
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()


@lru_cache
def get_user_service() -> UserService:
    """Create and cache user service dependency."""
    return UserService()
