"""Registration, login, and identity response schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field, field_validator

from linkvault.schemas.common import CamelModel, normalize_email


class RegisterRequest(CamelModel):
    """Password registration request payload."""

    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=6, max_length=256)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value)


class LoginRequest(CamelModel):
    """Password login request payload."""

    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=256)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return value.strip().lower()


class AuthUser(CamelModel):
    """Minimal identity returned alongside a freshly issued token."""

    id: UUID
    email: str
    first_name: str
    last_name: str


class AuthResponse(CamelModel):
    """Register/login response payload."""

    user: AuthUser
    token: str


class MeResponse(CamelModel):
    """Identity snapshot for the authenticated caller."""

    id: UUID
    email: str
    first_name: str
    last_name: str
    avatar_url: str | None = None
    location: str | None = None
    website: str | None = None
    bio: str | None = None
    public_profile: bool
    show_email: bool
    show_location: bool
    created_at: datetime
