"""User ORM model."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, String, Text, true
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from linkvault.db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from linkvault.models.analytics_event import AnalyticsEvent
    from linkvault.models.connection import Connection


class User(Base, TimestampMixin):
    """Account identity plus the profile shown on the public portfolio page."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Legacy single-provider link; further providers live on Connection only.
    github_id: Mapped[str | None] = mapped_column(String(50), nullable=True, unique=True)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    website: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    public_profile: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    show_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    show_location: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    connections: Mapped[list[Connection]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    analytics_events: Mapped[list[AnalyticsEvent]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
