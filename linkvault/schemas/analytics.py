"""Analytics event metadata variants and report schemas."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import Field, TypeAdapter

from linkvault.schemas.common import CamelModel

TimeRange = Literal["24h", "7d", "30d", "90d"]

TIME_RANGE_WINDOWS: dict[str, timedelta] = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}

ScalarValue = str | int | float | bool | None


class ProfileViewMetadata(CamelModel):
    kind: Literal["profile_view"] = "profile_view"


class PlatformClickMetadata(CamelModel):
    kind: Literal["platform_click"] = "platform_click"
    connection_id: UUID


class CustomEventMetadata(CamelModel):
    kind: Literal["custom"] = "custom"
    name: str = Field(min_length=1, max_length=100)
    properties: dict[str, ScalarValue] = Field(default_factory=dict)


EventMetadata = Annotated[
    ProfileViewMetadata | PlatformClickMetadata | CustomEventMetadata,
    Field(discriminator="kind"),
]
_EVENT_METADATA_ADAPTER: TypeAdapter[
    ProfileViewMetadata | PlatformClickMetadata | CustomEventMetadata
] = TypeAdapter(EventMetadata)


def parse_event_metadata(
    event_type: str, raw: dict[str, Any] | None
) -> ProfileViewMetadata | PlatformClickMetadata | CustomEventMetadata | None:
    """Load stored event metadata keyed by the row's event type."""
    if raw is None:
        return None
    payload = dict(raw)
    payload["kind"] = event_type
    return _EVENT_METADATA_ADAPTER.validate_python(payload)


class OverviewTotals(CamelModel):
    total_views: int
    unique_visitors: int
    total_clicks: int
    click_through_rate: float


class OverviewTrends(CamelModel):
    views_change: float
    visitors_change: float
    ctr_change: float


class OverviewResponse(CamelModel):
    """Totals for the selected window and percent change against the prior window."""

    overview: OverviewTotals
    trends: OverviewTrends


class PlatformClicks(CamelModel):
    platform: str
    clicks: int
    percentage: float


class SourceViews(CamelModel):
    source: str
    views: int
    percentage: float


class ActivityItem(CamelModel):
    """One recent analytics event; visitor IP is never exposed."""

    id: UUID
    event_type: str
    platform: str | None = None
    referrer: str | None = None
    metadata: EventMetadata | None = None
    created_at: datetime


class TrackRequest(CamelModel):
    """Custom event submitted by a public page."""

    user_id: UUID
    name: str = Field(min_length=1, max_length=100)
    properties: dict[str, ScalarValue] = Field(default_factory=dict)


class TrackResponse(CamelModel):
    tracked: bool
