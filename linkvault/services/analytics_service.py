"""Analytics event recording and reporting."""

from __future__ import annotations

import ipaddress
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any
from urllib.parse import urlsplit
from uuid import UUID

import structlog
from fastapi import Request
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from linkvault.models.analytics_event import AnalyticsEvent, EventKind
from linkvault.schemas.analytics import (
    TIME_RANGE_WINDOWS,
    ActivityItem,
    CustomEventMetadata,
    OverviewResponse,
    OverviewTotals,
    OverviewTrends,
    PlatformClickMetadata,
    PlatformClicks,
    ProfileViewMetadata,
    SourceViews,
    parse_event_metadata,
)

logger = structlog.get_logger(__name__)

# Reported trend when the prior window had nothing to compare against.
NO_BASELINE_TREND = 100.0
DIRECT_SOURCE = "direct"

EventMetadataModel = ProfileViewMetadata | PlatformClickMetadata | CustomEventMetadata


@dataclass(frozen=True)
class VisitorContext:
    """Best-effort request attributes stored with each event."""

    ip: str | None = None
    user_agent: str | None = None
    referrer: str | None = None


def _coerce_ip(value: str | None) -> str | None:
    """Normalize IP address strings to canonical values."""
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def visitor_from_request(request: Request) -> VisitorContext:
    """Extract visitor IP, user agent, and referrer from a request."""
    ip: str | None = None
    forwarded_for = request.headers.get("x-forwarded-for", "").strip()
    if forwarded_for:
        ip = _coerce_ip(forwarded_for.split(",")[0])
    if ip is None and request.client is not None:
        ip = _coerce_ip(request.client.host)
    return VisitorContext(
        ip=ip,
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer"),
    )


def percent_change(current: float, previous: float) -> float:
    """Period-over-period change, rounded to one decimal."""
    if previous <= 0:
        return NO_BASELINE_TREND
    return round((current - previous) / previous * 100, 1)


def click_through_rate(clicks: int, views: int) -> float:
    if views <= 0:
        return 0.0
    return clicks / views * 100


def referrer_source(referrer: str | None) -> str:
    """Collapse a referrer URL to its host, or ``direct`` when absent."""
    if not referrer:
        return DIRECT_SOURCE
    host = urlsplit(referrer.strip()).hostname
    if not host:
        return DIRECT_SOURCE
    return host.removeprefix("www.")


def _share(count: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(count / total * 100, 1)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class _WindowCounts:
    views: int
    visitors: int
    clicks: int


class AnalyticsService:
    """Append analytics facts and aggregate them per profile owner."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock

    async def record_event(
        self,
        db_session: AsyncSession,
        user_id: UUID,
        kind: EventKind,
        visitor: VisitorContext,
        platform: str | None = None,
        metadata: EventMetadataModel | None = None,
    ) -> bool:
        """Write one append-only event and swallow write failures.

        Returns False when the row could not be stored; the caller's primary
        response is never affected.
        """
        event = AnalyticsEvent(
            user_id=user_id,
            event_type=kind.value,
            platform=platform,
            visitor_ip=visitor.ip,
            user_agent=visitor.user_agent,
            referrer=visitor.referrer,
            event_metadata=(
                metadata.model_dump(by_alias=True, mode="json", exclude={"kind"})
                if metadata is not None
                else None
            ),
        )
        try:
            async with db_session.begin_nested():
                db_session.add(event)
            await db_session.commit()
        except Exception as exc:
            with suppress(SQLAlchemyError):
                await db_session.rollback()
            logger.error(
                "analytics_write_failed",
                user_id=str(user_id),
                event_type=kind.value,
                platform=platform,
                error=str(exc),
            )
            return False
        return True

    async def overview(
        self,
        db_session: AsyncSession,
        user_id: UUID,
        time_range: str = "7d",
    ) -> OverviewResponse:
        """Totals for the window ending now, with trends against the preceding window."""
        window = TIME_RANGE_WINDOWS.get(time_range, TIME_RANGE_WINDOWS["7d"])
        now = self._clock()
        start = now - window
        previous_start = start - window

        current = await self._window_counts(db_session, user_id, start, now, inclusive_end=True)
        previous = await self._window_counts(db_session, user_id, previous_start, start)

        ctr = click_through_rate(current.clicks, current.views)
        previous_ctr = click_through_rate(previous.clicks, previous.views)
        return OverviewResponse(
            overview=OverviewTotals(
                total_views=current.views,
                unique_visitors=current.visitors,
                total_clicks=current.clicks,
                click_through_rate=round(ctr, 2),
            ),
            trends=OverviewTrends(
                views_change=percent_change(current.views, previous.views),
                visitors_change=percent_change(current.visitors, previous.visitors),
                ctr_change=percent_change(ctr, previous_ctr),
            ),
        )

    async def platform_breakdown(
        self,
        db_session: AsyncSession,
        user_id: UUID,
        time_range: str = "7d",
    ) -> list[PlatformClicks]:
        """Click counts per platform with percentage share, largest first."""
        start = self._clock() - TIME_RANGE_WINDOWS.get(time_range, TIME_RANGE_WINDOWS["7d"])
        clicks = func.count(AnalyticsEvent.id).label("clicks")
        statement = (
            select(AnalyticsEvent.platform, clicks)
            .where(
                AnalyticsEvent.user_id == user_id,
                AnalyticsEvent.event_type == EventKind.PLATFORM_CLICK.value,
                AnalyticsEvent.created_at >= start,
                AnalyticsEvent.platform.is_not(None),
            )
            .group_by(AnalyticsEvent.platform)
            .order_by(clicks.desc(), AnalyticsEvent.platform)
        )
        rows = (await db_session.execute(statement)).all()
        total = sum(int(row.clicks) for row in rows)
        return [
            PlatformClicks(
                platform=str(row.platform),
                clicks=int(row.clicks),
                percentage=_share(int(row.clicks), total),
            )
            for row in rows
        ]

    async def traffic_sources(
        self,
        db_session: AsyncSession,
        user_id: UUID,
        time_range: str = "7d",
    ) -> list[SourceViews]:
        """Profile views per referrer host with percentage share."""
        start = self._clock() - TIME_RANGE_WINDOWS.get(time_range, TIME_RANGE_WINDOWS["7d"])
        statement = (
            select(AnalyticsEvent.referrer, func.count(AnalyticsEvent.id).label("views"))
            .where(
                AnalyticsEvent.user_id == user_id,
                AnalyticsEvent.event_type == EventKind.PROFILE_VIEW.value,
                AnalyticsEvent.created_at >= start,
            )
            .group_by(AnalyticsEvent.referrer)
        )
        rows = (await db_session.execute(statement)).all()

        # Several referrer URLs can share one host.
        by_source: dict[str, int] = {}
        for row in rows:
            source = referrer_source(row.referrer)
            by_source[source] = by_source.get(source, 0) + int(row.views)
        total = sum(by_source.values())
        ordered = sorted(by_source.items(), key=lambda item: (-item[1], item[0]))
        return [
            SourceViews(source=source, views=views, percentage=_share(views, total))
            for source, views in ordered
        ]

    async def recent_activity(
        self,
        db_session: AsyncSession,
        user_id: UUID,
        limit: int = 20,
    ) -> list[ActivityItem]:
        """Most recent events for the owner, newest first."""
        statement = (
            select(AnalyticsEvent)
            .where(AnalyticsEvent.user_id == user_id)
            .order_by(AnalyticsEvent.created_at.desc(), AnalyticsEvent.id)
            .limit(limit)
        )
        events = (await db_session.execute(statement)).scalars().all()
        return [
            ActivityItem(
                id=event.id,
                event_type=event.event_type,
                platform=event.platform,
                referrer=event.referrer,
                metadata=parse_event_metadata(event.event_type, event.event_metadata),
                created_at=event.created_at,
            )
            for event in events
        ]

    async def _window_counts(
        self,
        db_session: AsyncSession,
        user_id: UUID,
        start: datetime,
        end: datetime,
        inclusive_end: bool = False,
    ) -> _WindowCounts:
        end_clause = (
            AnalyticsEvent.created_at <= end if inclusive_end else AnalyticsEvent.created_at < end
        )
        filters: list[Any] = [
            AnalyticsEvent.user_id == user_id,
            AnalyticsEvent.created_at >= start,
            end_clause,
        ]
        views_statement = select(
            func.count(AnalyticsEvent.id),
            func.count(func.distinct(AnalyticsEvent.visitor_ip)),
        ).where(*filters, AnalyticsEvent.event_type == EventKind.PROFILE_VIEW.value)
        clicks_statement = select(func.count(AnalyticsEvent.id)).where(
            *filters, AnalyticsEvent.event_type == EventKind.PLATFORM_CLICK.value
        )
        views, visitors = (await db_session.execute(views_statement)).one()
        clicks = (await db_session.execute(clicks_statement)).scalar_one()
        return _WindowCounts(views=int(views or 0), visitors=int(visitors or 0), clicks=int(clicks or 0))


@lru_cache
def get_analytics_service() -> AnalyticsService:
    """Create and cache analytics service dependency."""
    return AnalyticsService()
