"""GitHub OAuth protocol operations and REST API reads."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import httpx
from authlib.integrations.httpx_client import AsyncOAuth2Client

from linkvault.config import get_settings
from linkvault.core.errors import UpstreamProviderError

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_API_BASE_URL = "https://api.github.com"
_API_HEADERS = {"Accept": "application/vnd.github+json", "X-GitHub-Api-Version": "2022-11-28"}


@dataclass(frozen=True)
class GitHubProfile:
    """Subset of the GitHub ``/user`` payload used for account linking."""

    id: str
    login: str
    html_url: str
    email: str | None = None
    name: str | None = None
    bio: str | None = None
    location: str | None = None
    blog: str | None = None
    avatar_url: str | None = None
    public_repos: int = 0
    followers: int = 0
    following: int = 0

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> GitHubProfile:
        raw_id = payload.get("id")
        login = payload.get("login")
        if raw_id is None or not isinstance(login, str) or not login:
            raise UpstreamProviderError("Failed to fetch GitHub user")
        return cls(
            id=str(raw_id),
            login=login,
            html_url=str(payload.get("html_url") or f"https://github.com/{login}"),
            email=_blank_to_none(payload.get("email")),
            name=_blank_to_none(payload.get("name")),
            bio=_blank_to_none(payload.get("bio")),
            location=_blank_to_none(payload.get("location")),
            blog=_blank_to_none(payload.get("blog")),
            avatar_url=_blank_to_none(payload.get("avatar_url")),
            public_repos=int(payload.get("public_repos") or 0),
            followers=int(payload.get("followers") or 0),
            following=int(payload.get("following") or 0),
        )


def _blank_to_none(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


class GitHubOAuthClient:
    """Authlib-backed GitHub OAuth client with bounded per-call timeouts."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scope: str,
        timeout_seconds: float,
        recent_repo_limit: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._scope = scope
        self._timeout_seconds = timeout_seconds
        self._recent_repo_limit = recent_repo_limit
        self._transport = transport

    def generate_state(self) -> str:
        """Generate OAuth state token."""
        return secrets.token_urlsafe(32)

    async def create_authorization_url(self, state: str) -> str:
        """Build the GitHub authorization URL for the given state."""
        client = self._build_oauth_client()
        try:
            authorization_url, _ = client.create_authorization_url(
                GITHUB_AUTHORIZE_URL, state=state
            )
        finally:
            await client.aclose()
        return authorization_url

    async def exchange_code(self, code: str) -> str:
        """Exchange an authorization code for a GitHub access token."""
        client = self._build_oauth_client()
        try:
            token = await client.fetch_token(
                GITHUB_TOKEN_URL,
                code=code,
                redirect_uri=self._redirect_uri,
            )
        except Exception as exc:
            raise UpstreamProviderError(
                "Failed to exchange code for token", reason="token_exchange_failed"
            ) from exc
        finally:
            await client.aclose()

        access_token = token.get("access_token") if isinstance(token, dict) else None
        if not access_token:
            raise UpstreamProviderError(
                "Failed to exchange code for token", reason="token_exchange_failed"
            )
        return str(access_token)

    async def fetch_user(self, access_token: str) -> GitHubProfile:
        """Fetch the authenticated GitHub user's profile."""
        async with self._build_api_client(access_token) as client:
            try:
                response = await client.get("/user")
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                raise UpstreamProviderError(
                    "Failed to fetch GitHub user", reason="profile_fetch_failed"
                ) from exc
        if not isinstance(payload, dict):
            raise UpstreamProviderError("Failed to fetch GitHub user", reason="profile_fetch_failed")
        return GitHubProfile.from_payload(payload)

    async def fetch_recent_repos(self, access_token: str, login: str) -> list[dict[str, Any]]:
        """Fetch the user's most recently updated repositories."""
        async with self._build_api_client(access_token) as client:
            try:
                response = await client.get(
                    f"/users/{login}/repos",
                    params={"sort": "updated", "per_page": self._recent_repo_limit},
                )
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                raise UpstreamProviderError(
                    "Failed to fetch GitHub repositories", reason="repos_fetch_failed"
                ) from exc
        if not isinstance(payload, list):
            raise UpstreamProviderError(
                "Failed to fetch GitHub repositories", reason="repos_fetch_failed"
            )
        return [item for item in payload[: self._recent_repo_limit] if isinstance(item, dict)]

    def _build_oauth_client(self) -> AsyncOAuth2Client:
        """Build authlib OAuth2 client for GitHub endpoints."""
        kwargs: dict[str, Any] = {}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return AsyncOAuth2Client(
            client_id=self._client_id,
            client_secret=self._client_secret,
            scope=self._scope,
            redirect_uri=self._redirect_uri,
            token_endpoint_auth_method="client_secret_post",
            timeout=self._timeout_seconds,
            **kwargs,
        )

    def _build_api_client(self, access_token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=GITHUB_API_BASE_URL,
            headers={**_API_HEADERS, "Authorization": f"Bearer {access_token}"},
            timeout=self._timeout_seconds,
            transport=self._transport,
        )


@lru_cache
def get_github_oauth_client() -> GitHubOAuthClient:
    """Build and cache the GitHub OAuth client from settings."""
    settings = get_settings()
    return GitHubOAuthClient(
        client_id=settings.github.client_id,
        client_secret=settings.github.client_secret.get_secret_value(),
        redirect_uri=str(settings.github.redirect_uri),
        scope=settings.github.scope,
        timeout_seconds=settings.github.request_timeout_seconds,
        recent_repo_limit=settings.github.recent_repo_limit,
    )
