"""Integration tests for users router behavior with stubbed services."""

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
from linkvault.routers.users import router
from linkvault.services.analytics_service import get_analytics_service
from linkvault.services.user_service import UserService, get_user_service

_SECRET = "users-router-secret-0123456789abcdef"


class _UserServiceStub(UserService):
    """User service backed by an in-memory list of users."""

    def __init__(self, users: list[User]) -> None:
        super().__init__()
        self._users = {user.id: user for user in users}
        self.deleted: list[UUID] = []

    async def get_user_by_id(self, db_session: Any, user_id: UUID) -> User | None:
        return self._users.get(user_id)

    async def get_user_by_email(self, db_session: Any, email: str) -> User | None:
        return next(
            (user for user in self._users.values() if user.email == email.strip().lower()),
            None,
        )

    async def update_profile(self, db_session: Any, user_id: UUID, changes: dict[str, Any]) -> User:
        user = self._users[user_id]
        for field, value in changes.items():
            setattr(user, field, value)
        return user

    async def delete_user(self, db_session: Any, user_id: UUID) -> None:
        self.deleted.append(user_id)
        self._users.pop(user_id)


class _AnalyticsServiceStub:
    """Record analytics writes instead of persisting them."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    async def record_event(self, **kwargs: Any) -> bool:
        self.events.append(kwargs)
        return True


async def _fake_db_dependency() -> Any:
    """Provide a fake DB dependency object."""
    yield object()


def _user(**overrides: Any) -> User:
    now = datetime.now(UTC)
    fields: dict[str, Any] = {
        "id": uuid4(),
        "email": "a@x.com",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "bio": "Analyst",
        "location": "London",
        "public_profile": True,
        "show_email": False,
        "show_location": True,
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    return User(**fields)


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(secret_key=_SECRET, ttl_seconds=3600)


def _build_users_app(
    token_service: TokenService,
    user_service: _UserServiceStub,
    analytics_service: _AnalyticsServiceStub,
) -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app, environment="production")
    app.include_router(router)
    app.dependency_overrides[get_database_session] = _fake_db_dependency
    app.dependency_overrides[get_token_service] = lambda: token_service
    app.dependency_overrides[get_user_service] = lambda: user_service
    app.dependency_overrides[get_analytics_service] = lambda: analytics_service
    return app


def _auth(token_service: TokenService, user: User) -> dict[str, str]:
    return {"authorization": f"Bearer {token_service.issue(str(user.id), user.email)}"}


@pytest.mark.asyncio
async def test_anonymous_portfolio_view_hides_private_fields_and_is_tracked(
    token_service: TokenService,
) -> None:
    owner = _user(show_email=False, show_location=False)
    analytics = _AnalyticsServiceStub()
    app = _build_users_app(token_service, _UserServiceStub([owner]), analytics)

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        response = await client.get(
            f"/users/portfolio/{owner.id}",
            headers={"referer": "https://www.google.com/", "user-agent": "pytest"},
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["firstName"] == "Ada"
    assert "email" not in payload
    assert "location" not in payload
    assert len(analytics.events) == 1
    assert analytics.events[0]["kind"] is EventKind.PROFILE_VIEW
    assert analytics.events[0]["user_id"] == owner.id
    assert analytics.events[0]["visitor"].referrer == "https://www.google.com/"


@pytest.mark.asyncio
async def test_owner_portfolio_view_is_not_tracked(token_service: TokenService) -> None:
    owner = _user(public_profile=False)
    analytics = _AnalyticsServiceStub()
    app = _build_users_app(token_service, _UserServiceStub([owner]), analytics)

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        response = await client.get(
            f"/users/portfolio/{owner.id}", headers=_auth(token_service, owner)
        )

    assert response.status_code == 200
    assert response.json()["email"] == "a@x.com"
    assert analytics.events == []


@pytest.mark.asyncio
async def test_portfolio_resolves_email_identifier(token_service: TokenService) -> None:
    owner = _user(show_email=True)
    app = _build_users_app(token_service, _UserServiceStub([owner]), _AnalyticsServiceStub())

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        response = await client.get("/users/portfolio/A@X.com")

    assert response.status_code == 200
    assert response.json()["id"] == str(owner.id)
    assert response.json()["email"] == "a@x.com"


@pytest.mark.asyncio
async def test_private_portfolio_is_forbidden_to_others(token_service: TokenService) -> None:
    owner = _user(public_profile=False)
    visitor = _user(email="b@x.com")
    analytics = _AnalyticsServiceStub()
    app = _build_users_app(token_service, _UserServiceStub([owner, visitor]), analytics)

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        response = await client.get(
            f"/users/portfolio/{owner.id}", headers=_auth(token_service, visitor)
        )

    assert response.status_code == 403
    assert response.json() == {"error": "Profile is private"}
    assert analytics.events == []


@pytest.mark.asyncio
async def test_unknown_portfolio_returns_404(token_service: TokenService) -> None:
    app = _build_users_app(token_service, _UserServiceStub([]), _AnalyticsServiceStub())

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        by_id = await client.get(f"/users/portfolio/{uuid4()}")
        by_garbage = await client.get("/users/portfolio/nobody")

    assert by_id.status_code == 404
    assert by_id.json() == {"error": "User not found"}
    assert by_garbage.status_code == 404


@pytest.mark.asyncio
async def test_profile_update_clears_explicit_nulls_only(token_service: TokenService) -> None:
    owner = _user(company="Engines Ltd")
    app = _build_users_app(token_service, _UserServiceStub([owner]), _AnalyticsServiceStub())

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        response = await client.put(
            "/users/profile",
            json={"bio": None, "title": "Mathematician"},
            headers=_auth(token_service, owner),
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["bio"] is None
    assert payload["title"] == "Mathematician"
    assert payload["company"] == "Engines Ltd"
    assert payload["location"] == "London"


@pytest.mark.asyncio
async def test_profile_update_rejects_null_first_name(token_service: TokenService) -> None:
    owner = _user()
    app = _build_users_app(token_service, _UserServiceStub([owner]), _AnalyticsServiceStub())

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        response = await client.put(
            "/users/profile",
            json={"firstName": None},
            headers=_auth(token_service, owner),
        )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid input data"
    assert owner.first_name == "Ada"


@pytest.mark.asyncio
async def test_profile_requires_authentication(token_service: TokenService) -> None:
    app = _build_users_app(token_service, _UserServiceStub([]), _AnalyticsServiceStub())

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        response = await client.get("/users/profile")

    assert response.status_code == 401
    assert response.json() == {"error": "Authentication required"}


@pytest.mark.asyncio
async def test_delete_account_confirms_and_invalidates_token(token_service: TokenService) -> None:
    """After deletion the same token no longer authenticates."""
    owner = _user()
    user_service = _UserServiceStub([owner])
    app = _build_users_app(token_service, user_service, _AnalyticsServiceStub())
    headers = _auth(token_service, owner)

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        deleted = await client.delete("/users/delete", headers=headers)
        after = await client.get("/users/profile", headers=headers)

    assert deleted.status_code == 200
    assert deleted.json() == {"message": "Account deleted successfully"}
    assert user_service.deleted == [owner.id]
    assert after.status_code == 401
