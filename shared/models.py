"""Shared data models for the Bluesky activity service.

This module contains the core data structures used throughout the service
for representing notification events, per-bucket counters, and the
aggregated activity summary returned to clients.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass, field


class ActivityPeriod(str, Enum):
    """Reporting periods of the activity timeline."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"


class Granularity(str, Enum):
    """Truncation unit of a bucket key."""

    HOUR = "hour"
    DAY = "day"
    MONTH = "month"
    YEAR = "year"


def parse_instant(value: Any) -> Optional[datetime]:
    """Parse an upstream timestamp into an aware UTC datetime.

    Upstream timestamps are untrusted, so anything that cannot be read as an
    ISO-8601 instant yields ``None`` instead of raising. Naive values are
    taken to be UTC.

    Args:
        value: ISO-8601 string, datetime, or anything else

    Returns:
        Timezone-aware UTC datetime, or None when the value is unusable
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        return None


@dataclass(frozen=True)
class ActivityEvent:
    """A single notification received by the account.

    Attributes:
        id: Upstream identifier of the notification (record URI)
        reason: Notification category (like, repost, quote, reply, ...)
        indexed_at: Raw timestamp string as supplied by the upstream
        occurred_at: Parsed UTC instant, or None when ``indexed_at`` is invalid
    """

    id: str
    reason: Optional[str]
    indexed_at: Any
    occurred_at: Optional[datetime] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Derive the parsed instant from the raw timestamp."""
        object.__setattr__(self, 'occurred_at', parse_instant(self.indexed_at))


@dataclass(frozen=True)
class ActivityCounts:
    """Per-category notification counters.

    ``total`` counts every event, including reasons that have no named
    counter, so it is always at least the sum of the named counters.
    """

    likes: int = 0
    reposts: int = 0
    quotes: int = 0
    replies: int = 0
    total: int = 0

    def incremented(self, reason: Optional[str]) -> 'ActivityCounts':
        """Return a copy with the counter for ``reason`` and the total bumped."""
        likes, reposts, quotes, replies = self.likes, self.reposts, self.quotes, self.replies
        if reason == 'like':
            likes += 1
        elif reason == 'repost':
            reposts += 1
        elif reason == 'quote':
            quotes += 1
        elif reason == 'reply':
            replies += 1
        return ActivityCounts(
            likes=likes,
            reposts=reposts,
            quotes=quotes,
            replies=replies,
            total=self.total + 1
        )

    def to_dict(self) -> Dict[str, int]:
        """Serialize counters for the JSON response."""
        return {
            'likes': self.likes,
            'reposts': self.reposts,
            'quotes': self.quotes,
            'replies': self.replies,
            'total': self.total,
        }


@dataclass(frozen=True)
class ActivityBucket:
    """Counters for one time slot of a period.

    The key doubles as a chronological sort key: every component is
    zero-padded and fixed width.
    """

    key: str
    counts: ActivityCounts = field(default_factory=ActivityCounts)

    @property
    def total(self) -> int:
        return self.counts.total

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'key': self.key}
        data.update(self.counts.to_dict())
        return data


@dataclass(frozen=True)
class NotificationPage:
    """One page of the upstream notification listing."""

    events: List[ActivityEvent]
    next_cursor: Optional[str] = None


@dataclass(frozen=True)
class ProfileInfo:
    """The subset of an actor profile the service needs."""

    did: str
    handle: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class ActivitySummary:
    """Aggregated activity timeline for one account.

    Attributes:
        generated_at: Instant the summary was computed
        periods: Key-sorted buckets for each reporting period
        totals: Counters over the entire, unwindowed event sequence
        total_event_count: Number of events collected from the upstream
    """

    generated_at: datetime
    periods: Dict[ActivityPeriod, Tuple[ActivityBucket, ...]]
    totals: ActivityCounts
    total_event_count: int

    def __post_init__(self) -> None:
        """Validate summary data."""
        if self.total_event_count < 0:
            raise ValueError("Total event count must be non-negative")
        missing = [period.value for period in ActivityPeriod if period not in self.periods]
        if missing:
            raise ValueError(f"Missing periods: {', '.join(missing)}")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON document served by the activity endpoint."""
        return {
            'generatedAt': self.generated_at.isoformat().replace('+00:00', 'Z'),
            'periods': {
                period.value: [bucket.to_dict() for bucket in self.periods[period]]
                for period in ActivityPeriod
            },
            'totals': self.totals.to_dict(),
            'totalEventCount': self.total_event_count,
        }
