"""Shared modules for the Bluesky activity service."""

from .models import (
    ActivityBucket,
    ActivityCounts,
    ActivityEvent,
    ActivityPeriod,
    ActivitySummary,
    Granularity,
    NotificationPage,
    ProfileInfo,
    parse_instant,
)

__all__ = [
    "ActivityBucket",
    "ActivityCounts",
    "ActivityEvent",
    "ActivityPeriod",
    "ActivitySummary",
    "Granularity",
    "NotificationPage",
    "ProfileInfo",
    "parse_instant",
]
