"""Error taxonomy shared by services, dependencies, and exception handlers."""

from __future__ import annotations

from typing import Any


class LinkVaultError(Exception):
    """Base class for errors that map onto the public error envelope."""

    status_code = 500

    def __init__(self, detail: str, details: list[Any] | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.details = details


class ValidationError(LinkVaultError):
    """Client-supplied data failed a shape or constraint check."""

    status_code = 400


class AuthenticationError(LinkVaultError):
    """Missing, invalid, or expired credentials, or a vanished token subject."""

    status_code = 401

    def __init__(self, detail: str = "Authentication required") -> None:
        super().__init__(detail)


class PrivateResourceError(LinkVaultError):
    """Resource exists but its owner has not made it public."""

    status_code = 403


class NotFoundError(LinkVaultError):
    """Resource is absent or not owned by the caller."""

    status_code = 404


class UpstreamProviderError(LinkVaultError):
    """A call to the third-party OAuth provider failed."""

    status_code = 502

    def __init__(self, detail: str, reason: str = "oauth_provider_error") -> None:
        super().__init__(detail)
        self.reason = reason
