"""Connection request/response schemas and platform metadata variants."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import ConfigDict, Field, TypeAdapter, field_validator, model_validator

from linkvault.models.connection import Connection, Platform
from linkvault.schemas.common import CamelModel, ensure_http_url


class RecentRepo(CamelModel):
    """One recently updated GitHub repository shown on the profile."""

    model_config = ConfigDict(extra="ignore")

    name: str
    description: str | None = None
    html_url: str
    stargazers_count: int = 0
    language: str | None = None
    updated_at: str | None = None


class GitHubMetadata(CamelModel):
    """Provider counters captured on each GitHub link or re-link."""

    model_config = ConfigDict(extra="ignore")

    platform: Literal["github"] = "github"
    repos: int = 0
    followers: int = 0
    following: int = 0
    recent_repos: list[RecentRepo] = Field(default_factory=list)


class ManualMetadata(CamelModel):
    """Metadata for manually added platforms."""

    model_config = ConfigDict(extra="ignore")

    platform: Literal["linkedin", "youtube", "instagram", "leetcode"]
    note: str | None = Field(default=None, max_length=500)


ConnectionMetadata = Annotated[GitHubMetadata | ManualMetadata, Field(discriminator="platform")]
_METADATA_ADAPTER: TypeAdapter[GitHubMetadata | ManualMetadata] = TypeAdapter(ConnectionMetadata)


def default_metadata(platform: Platform | str) -> GitHubMetadata | ManualMetadata:
    """Empty metadata variant for the given platform."""
    return _METADATA_ADAPTER.validate_python({"platform": Platform(platform).value})


def parse_metadata(platform: str, raw: dict[str, Any] | None) -> GitHubMetadata | ManualMetadata:
    """Load stored metadata, keyed by the owning connection's platform."""
    payload = dict(raw or {})
    payload["platform"] = platform
    return _METADATA_ADAPTER.validate_python(payload)


def dump_metadata(metadata: GitHubMetadata | ManualMetadata) -> dict[str, Any]:
    """Serialize metadata for the JSONB column."""
    return metadata.model_dump(by_alias=True, mode="json", exclude_none=True)


class ConnectionCreateRequest(CamelModel):
    """Manual connection creation payload."""

    platform: Platform
    username: str = Field(min_length=1, max_length=255)
    url: str = Field(min_length=1)
    metadata: ConnectionMetadata | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        return ensure_http_url(value)

    @model_validator(mode="after")
    def metadata_matches_platform(self) -> ConnectionCreateRequest:
        if self.metadata is not None and self.metadata.platform != self.platform.value:
            raise ValueError("metadata.platform must match platform")
        return self


class ConnectionUpdateRequest(CamelModel):
    """Partial connection update; absent or null fields are left unchanged."""

    username: str | None = Field(default=None, min_length=1, max_length=255)
    url: str | None = None
    is_active: bool | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return ensure_http_url(value)

    def changes(self) -> dict[str, Any]:
        return {
            name: value
            for name in self.model_fields_set
            if (value := getattr(self, name)) is not None
        }


class ConnectionResponse(CamelModel):
    """Connection as seen by its owner."""

    id: UUID
    platform: Platform
    username: str
    url: str
    is_active: bool
    metadata: ConnectionMetadata
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_connection(cls, connection: Connection) -> ConnectionResponse:
        return cls(
            id=connection.id,
            platform=Platform(connection.platform),
            username=connection.username,
            url=connection.url,
            is_active=connection.is_active,
            metadata=parse_metadata(connection.platform, connection.platform_metadata),
            created_at=connection.created_at,
            updated_at=connection.updated_at,
        )


class PublicConnectionResponse(CamelModel):
    """Active connection shown on a public profile."""

    id: UUID
    platform: Platform
    username: str
    url: str
    metadata: ConnectionMetadata
    created_at: datetime

    @classmethod
    def from_connection(cls, connection: Connection) -> PublicConnectionResponse:
        return cls(
            id=connection.id,
            platform=Platform(connection.platform),
            username=connection.username,
            url=connection.url,
            metadata=parse_metadata(connection.platform, connection.platform_metadata),
            created_at=connection.created_at,
        )


class ClickResponse(CamelModel):
    """Redirect target for a tracked connection click."""

    url: str
