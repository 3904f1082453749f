"""Bearer token issuance, verification, and header parsing."""

from __future__ import annotations

import hmac
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Literal
from uuid import uuid4

from jose import jwt
from jose.exceptions import JWTError

from linkvault.config import get_settings

FailureReason = Literal["invalid", "expired"]


@dataclass(frozen=True)
class VerifiedToken:
    """Claims extracted from a token that passed signature and expiry checks."""

    subject_id: str
    subject_email: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class TokenFailure:
    """Typed verification failure; callers collapse both reasons to unauthenticated."""

    reason: FailureReason


TokenVerification = VerifiedToken | TokenFailure


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TokenService:
    """Issue and verify HMAC-signed bearer tokens for user identities."""

    def __init__(
        self,
        secret_key: str,
        ttl_seconds: int,
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret_key or not secret_key.strip():
            raise ValueError("Token signing secret is not configured.")
        if ttl_seconds <= 0:
            raise ValueError("Token lifetime must be positive.")
        self._secret_key = secret_key
        self._ttl_seconds = ttl_seconds
        self._algorithm = algorithm
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def issue(self, subject_id: str, subject_email: str) -> str:
        """Issue a signed token expiring a fixed lifetime after now."""
        # Claims are whole seconds; truncate so exp is exactly iat plus the lifetime.
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + timedelta(seconds=self._ttl_seconds)
        payload = {
            "jti": str(uuid4()),
            "sub": subject_id,
            "email": subject_email,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenVerification:
        """Verify signature first, then expiry; never raises for bad tokens."""
        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            return TokenFailure("invalid")
        if not hmac.compare_digest(str(header.get("alg", "")), self._algorithm):
            return TokenFailure("invalid")

        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={
                    "verify_aud": False,
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                },
            )
        except JWTError:
            return TokenFailure("invalid")

        subject_id = claims.get("sub")
        subject_email = claims.get("email")
        issued_at = claims.get("iat")
        expires_at = claims.get("exp")
        if not isinstance(subject_id, str) or not subject_id:
            return TokenFailure("invalid")
        if not isinstance(subject_email, str) or not subject_email:
            return TokenFailure("invalid")
        if not isinstance(issued_at, int) or not isinstance(expires_at, int):
            return TokenFailure("invalid")

        # Valid strictly before exp; the exact expiry instant is already expired.
        if int(self._clock().timestamp()) >= expires_at:
            return TokenFailure("expired")

        return VerifiedToken(
            subject_id=subject_id,
            subject_email=subject_email,
            issued_at=datetime.fromtimestamp(issued_at, tz=UTC),
            expires_at=datetime.fromtimestamp(expires_at, tz=UTC),
        )


def extract_bearer(header_value: str | None) -> str | None:
    """Parse an ``Authorization: Bearer <token>`` value; malformed input yields None."""
    if not header_value:
        return None
    scheme, _, token = header_value.strip().partition(" ")
    if not hmac.compare_digest(scheme.lower(), "bearer"):
        return None
    cleaned = token.strip()
    if not cleaned or " " in cleaned:
        return None
    return cleaned


@lru_cache
def get_token_service() -> TokenService:
    """Build and cache the token service from application settings."""
    settings = get_settings()
    return TokenService(
        secret_key=settings.jwt.secret_key.get_secret_value(),
        ttl_seconds=settings.jwt.access_token_ttl_seconds,
        algorithm=settings.jwt.algorithm,
    )
