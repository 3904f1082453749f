"""ORM model exports."""

from linkvault.models.analytics_event import AnalyticsEvent, EventKind
from linkvault.models.connection import Connection, Platform
from linkvault.models.user import User

__all__ = [
    "AnalyticsEvent",
    "Connection",
    "EventKind",
    "Platform",
    "User",
]
