"""GitHub OAuth orchestration: state handling, provider calls, and account upsert."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from uuid import UUID

import structlog
from pydantic import ValidationError as PydanticValidationError
from redis.asyncio.client import Redis
from redis.exceptions import RedisError
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from linkvault.config import get_settings
from linkvault.core.errors import UpstreamProviderError
from linkvault.core.github import GitHubOAuthClient, GitHubProfile, get_github_oauth_client
from linkvault.core.redis_client import get_redis_client
from linkvault.core.tokens import TokenService, get_token_service
from linkvault.models.connection import Connection, Platform
from linkvault.models.user import User
from linkvault.schemas.connection import GitHubMetadata, RecentRepo, dump_metadata

logger = structlog.get_logger(__name__)

PLACEHOLDER_EMAIL_DOMAIN = "github.local"
_UPSERT_ATTEMPTS = 2


class OAuthFlowError(Exception):
    """Raised when the browser-facing OAuth flow must abort with a reason code."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class OAuthLinkResult:
    """Outcome of a completed callback."""

    user_id: str
    email: str
    token: str
    created_user: bool


def placeholder_email(login: str) -> str:
    """Synthesized address for GitHub users who keep their email private."""
    return f"{login}@{PLACEHOLDER_EMAIL_DOMAIN}".lower()


def split_display_name(name: str) -> tuple[str, str]:
    """Split a display name into first name and the remainder."""
    parts = name.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


class OAuthService:
    """Coordinates OAuth state, callback exchange, and account upsert."""

    def __init__(
        self,
        github_client: GitHubOAuthClient,
        redis_client: Redis,
        token_service: TokenService,
        state_ttl_seconds: int = 600,
    ) -> None:
        self._github = github_client
        self._redis = redis_client
        self._token_service = token_service
        self._state_ttl_seconds = state_ttl_seconds

    async def build_login_url(self) -> str:
        """Create the GitHub authorization URL and persist one-time state in Redis."""
        state = self._github.generate_state()
        try:
            await self._redis.setex(self._state_key(state), self._state_ttl_seconds, "1")
        except RedisError as exc:
            raise OAuthFlowError("oauth_unavailable") from exc
        return await self._github.create_authorization_url(state=state)

    async def complete_callback(
        self,
        db_session: AsyncSession,
        state: str | None,
        code: str,
    ) -> OAuthLinkResult:
        """Verify state, call GitHub, upsert user and connection, and issue a token."""
        await self._consume_state(state)

        access_token = await self._github.exchange_code(code)
        profile = await self._github.fetch_user(access_token)
        recent_repos = await self._fetch_recent_repos(access_token, profile.login)
        metadata = GitHubMetadata(
            repos=profile.public_repos,
            followers=profile.followers,
            following=profile.following,
            recent_repos=recent_repos,
        )

        user, created = await self._link_account(
            db_session=db_session,
            profile=profile,
            access_token=access_token,
            metadata=metadata,
        )
        token = self._token_service.issue(str(user.id), user.email)
        logger.info(
            "oauth_account_linked",
            user_id=str(user.id),
            provider=Platform.GITHUB.value,
            created_user=created,
        )
        return OAuthLinkResult(
            user_id=str(user.id),
            email=user.email,
            token=token,
            created_user=created,
        )

    async def _fetch_recent_repos(self, access_token: str, login: str) -> list[RecentRepo]:
        """Best-effort repository listing; failures yield an empty list."""
        try:
            payload = await self._github.fetch_recent_repos(access_token, login)
        except UpstreamProviderError as exc:
            logger.warning("github_repos_unavailable", login=login, reason=exc.reason)
            return []

        repos: list[RecentRepo] = []
        for item in payload:
            try:
                repos.append(RecentRepo.model_validate(item))
            except PydanticValidationError:
                logger.warning("github_repo_skipped", login=login)
        return repos

    async def _link_account(
        self,
        db_session: AsyncSession,
        profile: GitHubProfile,
        access_token: str,
        metadata: GitHubMetadata,
    ) -> tuple[User, bool]:
        """Upsert user and connection atomically; a lost insert race is retried as an update."""
        email = (profile.email or placeholder_email(profile.login)).lower()
        attempt = 1
        while True:
            try:
                async with db_session.begin_nested():
                    user, created = await self._upsert_user(db_session, profile, email)
                    await self._upsert_connection(db_session, user, profile, access_token, metadata)
                await db_session.commit()
                return user, created
            except IntegrityError:
                if attempt >= _UPSERT_ATTEMPTS:
                    await db_session.rollback()
                    raise
                attempt += 1
                logger.info("oauth_upsert_conflict_retry", provider=Platform.GITHUB.value)

    async def _upsert_user(
        self,
        db_session: AsyncSession,
        profile: GitHubProfile,
        email: str,
    ) -> tuple[User, bool]:
        statement = select(User).where(func.lower(User.email) == email).with_for_update()
        user = (await db_session.execute(statement)).scalar_one_or_none()
        first_name, last_name = split_display_name(profile.name or "")

        if user is None:
            user = User(
                email=email,
                github_id=profile.id,
                first_name=first_name or profile.login,
                last_name=last_name,
                bio=profile.bio,
                location=profile.location,
                website=profile.blog,
                avatar_url=profile.avatar_url,
            )
            await self._release_github_id(db_session, profile.id, keep_user_id=None)
            db_session.add(user)
            await db_session.flush()
            return user, True

        # Never overwrite what the user entered; only fill gaps.
        if profile.name and not user.first_name:
            user.first_name = first_name
            user.last_name = last_name
        if profile.bio and not user.bio:
            user.bio = profile.bio
        if profile.location and not user.location:
            user.location = profile.location
        if profile.blog and not user.website:
            user.website = profile.blog
        if user.github_id != profile.id:
            await self._release_github_id(db_session, profile.id, keep_user_id=user.id)
            user.github_id = profile.id
        user.avatar_url = profile.avatar_url
        await db_session.flush()
        return user, False

    async def _release_github_id(
        self,
        db_session: AsyncSession,
        github_id: str,
        keep_user_id: UUID | None,
    ) -> None:
        """Detach the legacy github id from any other account that still holds it."""
        statement = update(User).where(User.github_id == github_id)
        if keep_user_id is not None:
            statement = statement.where(User.id != keep_user_id)
        await db_session.execute(
            statement.values(github_id=None).execution_options(synchronize_session=False)
        )

    async def _upsert_connection(
        self,
        db_session: AsyncSession,
        user: User,
        profile: GitHubProfile,
        access_token: str,
        metadata: GitHubMetadata,
    ) -> Connection:
        statement = (
            select(Connection)
            .where(
                Connection.user_id == user.id,
                Connection.platform == Platform.GITHUB.value,
            )
            .with_for_update()
        )
        connection = (await db_session.execute(statement)).scalar_one_or_none()
        if connection is None:
            connection = Connection(
                user_id=user.id,
                platform=Platform.GITHUB.value,
                is_active=True,
            )
            db_session.add(connection)
        connection.username = profile.login
        connection.url = profile.html_url
        connection.access_token = access_token
        connection.platform_metadata = dump_metadata(metadata)
        await db_session.flush()
        return connection

    async def _consume_state(self, state: str | None) -> None:
        """Delete the one-time state; unknown, expired, or replayed values are rejected."""
        if not state:
            raise OAuthFlowError("invalid_state")
        try:
            stored = await self._redis.getdel(self._state_key(state))
        except RedisError as exc:
            raise OAuthFlowError("invalid_state") from exc
        if stored is None:
            raise OAuthFlowError("invalid_state")

    @staticmethod
    def _state_key(state: str) -> str:
        """Build Redis key for OAuth state."""
        return f"oauth_state:{state}"


@lru_cache
def get_oauth_service() -> OAuthService:
    """Build and cache OAuth service dependencies."""
    settings = get_settings()
    return OAuthService(
        github_client=get_github_oauth_client(),
        redis_client=get_redis_client(),
        token_service=get_token_service(),
        state_ttl_seconds=settings.github.state_ttl_seconds,
    )
