"""Profile, privacy, and public portfolio schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field, field_validator, model_validator

from linkvault.schemas.common import CamelModel, ensure_http_url

# Fields a profile update may clear by sending an explicit null.
CLEARABLE_PROFILE_FIELDS = frozenset({"bio", "website", "location", "title", "company"})


class ProfileResponse(CamelModel):
    """Full profile as seen by its owner."""

    id: UUID
    email: str
    first_name: str
    last_name: str
    bio: str | None = None
    website: str | None = None
    location: str | None = None
    title: str | None = None
    company: str | None = None
    avatar_url: str | None = None
    public_profile: bool
    show_email: bool
    show_location: bool
    created_at: datetime
    updated_at: datetime


class ProfileUpdateRequest(CamelModel):
    """Partial profile update.

    Each field is tri-state: absent leaves the stored value untouched, a value
    replaces it, and an explicit ``null`` clears it. Names can never be cleared.
    """

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    bio: str | None = None
    website: str | None = Field(default=None, max_length=255)
    location: str | None = Field(default=None, max_length=255)
    title: str | None = Field(default=None, max_length=255)
    company: str | None = Field(default=None, max_length=255)

    @field_validator("website")
    @classmethod
    def validate_website(cls, value: str | None) -> str | None:
        # An empty string is accepted as a clear request.
        if value is None or value == "":
            return None
        return ensure_http_url(value)

    @model_validator(mode="after")
    def reject_cleared_names(self) -> ProfileUpdateRequest:
        for name in ("first_name", "last_name"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        """Return only the fields present in the request body, keyed by attribute name."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class PrivacyUpdateRequest(CamelModel):
    """Partial privacy flag update; absent flags are left unchanged."""

    public_profile: bool | None = None
    show_email: bool | None = None
    show_location: bool | None = None

    def changes(self) -> dict[str, bool]:
        return {
            name: value
            for name in self.model_fields_set
            if (value := getattr(self, name)) is not None
        }


class PrivacyResponse(CamelModel):
    """Current privacy flags."""

    public_profile: bool
    show_email: bool
    show_location: bool


class PublicProfileResponse(CamelModel):
    """Public portfolio projection.

    ``email`` and ``location`` are only ever set when visible to the viewer;
    the route serializes with ``exclude_unset`` so hidden keys are absent.
    """

    id: UUID
    first_name: str
    last_name: str
    bio: str | None = None
    website: str | None = None
    title: str | None = None
    company: str | None = None
    avatar_url: str | None = None
    created_at: datetime
    email: str | None = None
    location: str | None = None


class MessageResponse(CamelModel):
    """Plain confirmation message."""

    message: str
