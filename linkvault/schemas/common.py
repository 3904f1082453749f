"""Shared schema base classes and field validators."""

from __future__ import annotations

import re

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_HTTP_URL_ADAPTER = TypeAdapter(AnyHttpUrl)


class CamelModel(BaseModel):
    """Model serialized with camelCase keys and accepting either key style on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def normalize_email(value: str) -> str:
    """Trim and lowercase an email address after a basic shape check."""
    cleaned = value.strip().lower()
    if not _EMAIL_PATTERN.match(cleaned):
        raise ValueError("Invalid email address")
    return cleaned


def ensure_http_url(value: str) -> str:
    """Require an absolute http(s) URL while keeping the caller's spelling."""
    try:
        _HTTP_URL_ADAPTER.validate_python(value)
    except PydanticValidationError as exc:
        raise ValueError("Invalid url") from exc
    return value
