"""Unit tests for user service credentials, profile updates, and public projection."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import pytest

from linkvault.core.errors import NotFoundError, PrivateResourceError, ValidationError
from linkvault.models.user import User
from linkvault.services.user_service import UserService, parse_user_id


@dataclass
class _FakeResult:
    """Simple scalar result stub for async session tests."""

    user: User | None
    rowcount: int = 0

    def scalar_one_or_none(self) -> User | None:
        """Return the configured scalar value."""
        return self.user


class _FakeSession:
    """Minimal async session stub returning a fixed user."""

    def __init__(self, user: User | None, rowcount: int = 1) -> None:
        self._user = user
        self._rowcount = rowcount
        self.added: list[Any] = []
        self.commits = 0
        self.rollbacks = 0

    async def execute(self, _statement: object) -> _FakeResult:
        """Mimic AsyncSession.execute for unit tests."""
        return _FakeResult(user=self._user, rowcount=self._rowcount)

    def add(self, instance: Any) -> None:
        self.added.append(instance)

    async def flush(self) -> None:
        return None

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1

    async def refresh(self, _instance: Any) -> None:
        return None


def _build_user(password_hash: str | None = None, **overrides: Any) -> User:
    """Create a lightweight user model for service tests."""
    now = datetime.now(UTC)
    fields: dict[str, Any] = {
        "id": uuid4(),
        "email": "a@x.com",
        "password_hash": password_hash,
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


@pytest.mark.asyncio
async def test_authenticate_user_success() -> None:
    """Returns the user when password is valid."""
    service = UserService()
    user = _build_user(password_hash=service.hash_password("secret1"))

    authenticated = await service.authenticate_user(
        db_session=_FakeSession(user=user),  # type: ignore[arg-type]
        email="a@x.com",
        password="secret1",
    )

    assert authenticated is user


@pytest.mark.asyncio
async def test_authenticate_user_rejects_wrong_password() -> None:
    service = UserService()
    user = _build_user(password_hash=service.hash_password("secret1"))

    authenticated = await service.authenticate_user(
        db_session=_FakeSession(user=user),  # type: ignore[arg-type]
        email="a@x.com",
        password="wrong",
    )

    assert authenticated is None


@pytest.mark.asyncio
async def test_authenticate_user_rejects_oauth_only_account() -> None:
    """Accounts created through GitHub have no password to match."""
    service = UserService()

    authenticated = await service.authenticate_user(
        db_session=_FakeSession(user=_build_user(password_hash=None)),  # type: ignore[arg-type]
        email="a@x.com",
        password="secret1",
    )

    assert authenticated is None


@pytest.mark.asyncio
async def test_register_rejects_taken_email_without_insert() -> None:
    service = UserService()
    session = _FakeSession(user=_build_user())

    with pytest.raises(ValidationError) as exc_info:
        await service.register(
            db_session=session,  # type: ignore[arg-type]
            email="a@x.com",
            password="secret1",
            first_name="A",
            last_name="B",
        )

    assert exc_info.value.detail == "Email already registered"
    assert session.added == []


@pytest.mark.asyncio
async def test_register_stores_bcrypt_hash() -> None:
    service = UserService()
    session = _FakeSession(user=None)

    user = await service.register(
        db_session=session,  # type: ignore[arg-type]
        email="a@x.com",
        password="secret1",
        first_name="A",
        last_name="B",
    )

    assert session.added == [user]
    assert session.commits == 1
    assert user.password_hash != "secret1"
    assert service.verify_password("secret1", user.password_hash or "")


@pytest.mark.asyncio
async def test_update_profile_applies_only_present_fields() -> None:
    """Absent fields stay, explicit nulls clear, values replace."""
    service = UserService()
    user = _build_user(title="Engineer")

    updated = await service.update_profile(
        db_session=_FakeSession(user=user),  # type: ignore[arg-type]
        user_id=user.id,
        changes={"bio": None, "company": "Analytical Engines"},
    )

    assert updated.bio is None
    assert updated.company == "Analytical Engines"
    assert updated.title == "Engineer"
    assert updated.location == "London"


@pytest.mark.asyncio
async def test_update_profile_rejects_null_name() -> None:
    service = UserService()
    user = _build_user()

    with pytest.raises(ValidationError):
        await service.update_profile(
            db_session=_FakeSession(user=user),  # type: ignore[arg-type]
            user_id=user.id,
            changes={"first_name": None},
        )

    assert user.first_name == "Ada"


@pytest.mark.asyncio
async def test_update_privacy_changes_only_given_flags() -> None:
    service = UserService()
    user = _build_user()

    updated = await service.update_privacy(
        db_session=_FakeSession(user=user),  # type: ignore[arg-type]
        user_id=user.id,
        changes={"show_email": True},
    )

    assert updated.show_email is True
    assert updated.public_profile is True
    assert updated.show_location is True


@pytest.mark.asyncio
async def test_delete_user_reports_missing_account() -> None:
    service = UserService()
    session = _FakeSession(user=None, rowcount=0)

    with pytest.raises(NotFoundError):
        await service.delete_user(db_session=session, user_id=uuid4())  # type: ignore[arg-type]

    assert session.rollbacks == 1
    assert session.commits == 0


def test_public_projection_hides_email_key_for_anonymous_viewer() -> None:
    """Hidden fields are absent from the serialized payload, not null."""
    service = UserService()
    user = _build_user(show_email=False, show_location=False)

    payload = service.public_projection(user=user, viewer_id=None).model_dump(
        by_alias=True, exclude_unset=True
    )

    assert "email" not in payload
    assert "location" not in payload
    assert payload["firstName"] == "Ada"


def test_public_projection_includes_flagged_fields() -> None:
    service = UserService()
    user = _build_user(show_email=True, show_location=True)

    payload = service.public_projection(user=user, viewer_id=uuid4()).model_dump(
        by_alias=True, exclude_unset=True
    )

    assert payload["email"] == "a@x.com"
    assert payload["location"] == "London"


def test_public_projection_owner_sees_everything() -> None:
    service = UserService()
    user = _build_user(public_profile=False, show_email=False, show_location=False)

    payload = service.public_projection(user=user, viewer_id=user.id).model_dump(
        by_alias=True, exclude_unset=True
    )

    assert payload["email"] == "a@x.com"
    assert payload["location"] == "London"


def test_public_projection_rejects_private_profile_for_others() -> None:
    service = UserService()
    user = _build_user(public_profile=False)

    with pytest.raises(PrivateResourceError) as exc_info:
        service.public_projection(user=user, viewer_id=None)

    assert exc_info.value.detail == "Profile is private"
    assert exc_info.value.status_code == 403


def test_parse_user_id_accepts_only_uuids() -> None:
    user_id = uuid4()

    assert parse_user_id(str(user_id)) == user_id
    assert parse_user_id(user_id) == user_id
    assert parse_user_id("a@x.com") is None
    assert parse_user_id("") is None
