"""Integration tests for analytics router behavior with stubbed services."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from linkvault.core.tokens import TokenService, get_token_service
from linkvault.dependencies import get_database_session
from linkvault.error_handlers import register_exception_handlers
from linkvault.models.analytics_event import EventKind
from linkvault.models.user import User
from linkvault.routers.analytics import router
from linkvault.schemas.analytics import (
    ActivityItem,
    OverviewResponse,
    OverviewTotals,
    OverviewTrends,
    PlatformClickMetadata,
    PlatformClicks,
)
from linkvault.services.analytics_service import get_analytics_service
from linkvault.services.user_service import UserService, get_user_service

_SECRET = "analytics-router-secret-0123456789abcdef"


class _UserServiceStub(UserService):
    """User lookups served from memory."""

    def __init__(self, users: list[User]) -> None:
        super().__init__()
        self._users = {user.id: user for user in users}

    async def get_user_by_id(self, db_session: Any, user_id: UUID) -> User | None:
        return self._users.get(user_id)


class _AnalyticsServiceStub:
    """Canned reports; records arguments for assertions."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def overview(self, **kwargs: Any) -> OverviewResponse:
        self.calls.append(("overview", kwargs))
        return OverviewResponse(
            overview=OverviewTotals(
                total_views=5, unique_visitors=3, total_clicks=2, click_through_rate=40.0
            ),
            trends=OverviewTrends(views_change=100.0, visitors_change=100.0, ctr_change=100.0),
        )

    async def platform_breakdown(self, **kwargs: Any) -> list[PlatformClicks]:
        self.calls.append(("platforms", kwargs))
        return [PlatformClicks(platform="github", clicks=3, percentage=75.0)]

    async def traffic_sources(self, **kwargs: Any) -> list[Any]:
        self.calls.append(("sources", kwargs))
        return []

    async def recent_activity(self, **kwargs: Any) -> list[ActivityItem]:
        self.calls.append(("activity", kwargs))
        return [
            ActivityItem(
                id=uuid4(),
                event_type="platform_click",
                platform="github",
                metadata=PlatformClickMetadata(connection_id=UUID(int=1)),
                created_at=datetime(2026, 10, 18, tzinfo=UTC),
            )
        ]

    async def record_event(self, **kwargs: Any) -> bool:
        self.calls.append(("record_event", kwargs))
        return True


async def _fake_db_dependency() -> Any:
    """Provide a fake DB dependency object."""
    yield object()


def _user() -> User:
    now = datetime.now(UTC)
    return User(
        id=uuid4(),
        email="a@x.com",
        first_name="Ada",
        last_name="Lovelace",
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(secret_key=_SECRET, ttl_seconds=3600)


def _build_analytics_app(
    token_service: TokenService, users: list[User], analytics: _AnalyticsServiceStub
) -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app, environment="production")
    app.include_router(router)
    app.dependency_overrides[get_database_session] = _fake_db_dependency
    app.dependency_overrides[get_token_service] = lambda: token_service
    app.dependency_overrides[get_user_service] = lambda: _UserServiceStub(users)
    app.dependency_overrides[get_analytics_service] = lambda: analytics
    return app


def _auth(token_service: TokenService, user: User) -> dict[str, str]:
    return {"authorization": f"Bearer {token_service.issue(str(user.id), user.email)}"}


@pytest.mark.asyncio
async def test_overview_defaults_to_seven_days(token_service: TokenService) -> None:
    owner = _user()
    analytics = _AnalyticsServiceStub()
    app = _build_analytics_app(token_service, [owner], analytics)

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        response = await client.get("/analytics/overview", headers=_auth(token_service, owner))

    assert response.status_code == 200
    assert response.json() == {
        "overview": {"totalViews": 5, "uniqueVisitors": 3, "totalClicks": 2, "clickThroughRate": 40.0},
        "trends": {"viewsChange": 100.0, "visitorsChange": 100.0, "ctrChange": 100.0},
    }
    assert analytics.calls[0][1]["time_range"] == "7d"
    assert analytics.calls[0][1]["user_id"] == owner.id


@pytest.mark.asyncio
async def test_reports_accept_time_range_query(token_service: TokenService) -> None:
    owner = _user()
    analytics = _AnalyticsServiceStub()
    app = _build_analytics_app(token_service, [owner], analytics)

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        platforms = await client.get(
            "/analytics/platforms", params={"timeRange": "30d"}, headers=_auth(token_service, owner)
        )
        sources = await client.get(
            "/analytics/sources", params={"timeRange": "24h"}, headers=_auth(token_service, owner)
        )

    assert platforms.json() == [{"platform": "github", "clicks": 3, "percentage": 75.0}]
    assert sources.json() == []
    assert [(name, kwargs["time_range"]) for name, kwargs in analytics.calls] == [
        ("platforms", "30d"),
        ("sources", "24h"),
    ]


@pytest.mark.asyncio
async def test_unknown_time_range_is_rejected(token_service: TokenService) -> None:
    owner = _user()
    app = _build_analytics_app(token_service, [owner], _AnalyticsServiceStub())

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        response = await client.get(
            "/analytics/overview", params={"timeRange": "1y"}, headers=_auth(token_service, owner)
        )

    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "timeRange"


@pytest.mark.asyncio
async def test_activity_enforces_limit_bounds(token_service: TokenService) -> None:
    owner = _user()
    analytics = _AnalyticsServiceStub()
    app = _build_analytics_app(token_service, [owner], analytics)

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        ok = await client.get(
            "/analytics/activity", params={"limit": 5}, headers=_auth(token_service, owner)
        )
        too_large = await client.get(
            "/analytics/activity", params={"limit": 500}, headers=_auth(token_service, owner)
        )

    assert ok.status_code == 200
    item = ok.json()[0]
    assert item["eventType"] == "platform_click"
    assert item["metadata"] == {"kind": "platform_click", "connectionId": str(UUID(int=1))}
    assert "visitorIp" not in item
    assert too_large.status_code == 400
    assert analytics.calls[0][1]["limit"] == 5


@pytest.mark.asyncio
async def test_reports_require_authentication(token_service: TokenService) -> None:
    app = _build_analytics_app(token_service, [], _AnalyticsServiceStub())

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        response = await client.get("/analytics/overview")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_track_records_custom_event(token_service: TokenService) -> None:
    owner = _user()
    analytics = _AnalyticsServiceStub()
    app = _build_analytics_app(token_service, [owner], analytics)

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        response = await client.post(
            "/analytics/track",
            json={"userId": str(owner.id), "name": "cta_click", "properties": {"variant": "b"}},
        )

    assert response.status_code == 202
    assert response.json() == {"tracked": True}
    name, kwargs = analytics.calls[0]
    assert name == "record_event"
    assert kwargs["kind"] is EventKind.CUSTOM
    assert kwargs["metadata"].name == "cta_click"
    assert kwargs["metadata"].properties == {"variant": "b"}


@pytest.mark.asyncio
async def test_track_skips_owner_but_counts_other_viewers(token_service: TokenService) -> None:
    """An owner exercising their own profile is not recorded; other signed-in users are."""
    owner = _user()
    visitor = _user()
    analytics = _AnalyticsServiceStub()
    app = _build_analytics_app(token_service, [owner, visitor], analytics)
    body = {"userId": str(owner.id), "name": "cta_click"}

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        own = await client.post("/analytics/track", json=body, headers=_auth(token_service, owner))
        other = await client.post(
            "/analytics/track", json=body, headers=_auth(token_service, visitor)
        )

    assert own.status_code == other.status_code == 202
    assert own.json() == {"tracked": False}
    assert other.json() == {"tracked": True}
    assert [name for name, _ in analytics.calls] == ["record_event"]


@pytest.mark.asyncio
async def test_track_unknown_user_returns_404(token_service: TokenService) -> None:
    analytics = _AnalyticsServiceStub()
    app = _build_analytics_app(token_service, [], analytics)

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        response = await client.post(
            "/analytics/track", json={"userId": str(uuid4()), "name": "cta_click"}
        )

    assert response.status_code == 404
    assert analytics.calls == []
