"""
Activity Aggregation Engine

Folds a sequence of notification events into the multi-resolution activity
timeline: four fixed periods anchored to the current instant (day, week,
month, year) and an ``all`` period spanning the whole account history.
Every period is a dense grid of buckets, pre-populated with zero counters
so that quiet slots still show up in the timeline.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import reduce
from itertools import groupby
from operator import itemgetter
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

import structlog

from shared.models import (
    ActivityBucket,
    ActivityCounts,
    ActivityEvent,
    ActivityPeriod,
    ActivitySummary,
    Granularity,
)

logger = structlog.get_logger(__name__)

HOUR = timedelta(hours=1)
DAY = timedelta(days=1)
YEAR = timedelta(days=365)

# Accounts younger than this are charted month by month in the all-time period
MONTHLY_ALL_TIME_MAX_YEARS = 3


class Clock(Protocol):
    """Source of the instant every window is anchored to."""

    def now(self) -> datetime:
        """Return the current instant as an aware UTC datetime."""


class SystemClock:
    """Clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock frozen at a single instant."""

    def __init__(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._instant


def truncate(instant: datetime, granularity: Granularity) -> datetime:
    """Truncate an instant to the start of its UTC hour, day, month or year."""
    instant = instant.astimezone(timezone.utc)
    truncated = instant.replace(minute=0, second=0, microsecond=0)
    if granularity is Granularity.HOUR:
        return truncated
    truncated = truncated.replace(hour=0)
    if granularity is Granularity.DAY:
        return truncated
    truncated = truncated.replace(day=1)
    if granularity is Granularity.MONTH:
        return truncated
    return truncated.replace(month=1)


def shift(instant: datetime, granularity: Granularity, units: int) -> datetime:
    """Move an instant by whole granularity units.

    Hour and day shifts keep the time of day. Month and year shifts land on
    the first instant of the target month or year.
    """
    if granularity is Granularity.HOUR:
        return instant + units * HOUR
    if granularity is Granularity.DAY:
        return instant + units * DAY

    start = truncate(instant, granularity)
    if granularity is Granularity.YEAR:
        return start.replace(year=start.year + units)

    month_index = start.year * 12 + (start.month - 1) + units
    return start.replace(year=month_index // 12, month=month_index % 12 + 1)


def format_key(instant: datetime, granularity: Granularity) -> str:
    """Format the bucket key for an instant.

    Keys are fixed width and zero-padded so that lexicographic order is
    chronological order.
    """
    instant = truncate(instant, granularity)
    if granularity is Granularity.HOUR:
        return f"{instant.year:04d}-{instant.month:02d}-{instant.day:02d}T{instant.hour:02d}:00"
    if granularity is Granularity.DAY:
        return f"{instant.year:04d}-{instant.month:02d}-{instant.day:02d}"
    if granularity is Granularity.MONTH:
        return f"{instant.year:04d}-{instant.month:02d}"
    return f"{instant.year:04d}"


@dataclass(frozen=True)
class PeriodPlan:
    """Shape of a fixed reporting period.

    Attributes:
        period: Period this plan describes
        window: Length of the window ending at ``now``
        points: Number of buckets in the dense grid
        granularity: Truncation unit of the bucket keys
    """

    period: ActivityPeriod
    window: timedelta
    points: int
    granularity: Granularity

    def window_start(self, now: datetime) -> datetime:
        return now - self.window

    def key_of(self, instant: datetime) -> str:
        return format_key(instant, self.granularity)

    def bucket_keys(self, now: datetime) -> List[str]:
        """Generate the dense grid of keys for the window ending at ``now``.

        The grid walks back from ``now`` one unit at a time, so the last key
        is always the unit containing ``now`` rather than a slice boundary.
        """
        return [
            self.key_of(truncate(shift(now, self.granularity, -offset), self.granularity))
            for offset in range(self.points - 1, -1, -1)
        ]


FIXED_PERIOD_PLANS: Dict[ActivityPeriod, PeriodPlan] = {
    ActivityPeriod.DAY: PeriodPlan(ActivityPeriod.DAY, DAY, 24, Granularity.HOUR),
    ActivityPeriod.WEEK: PeriodPlan(ActivityPeriod.WEEK, 7 * DAY, 7, Granularity.DAY),
    ActivityPeriod.MONTH: PeriodPlan(ActivityPeriod.MONTH, 30 * DAY, 30, Granularity.DAY),
    ActivityPeriod.YEAR: PeriodPlan(ActivityPeriod.YEAR, YEAR, 12, Granularity.MONTH),
}


def earliest_instant(events: Iterable[ActivityEvent]) -> Optional[datetime]:
    """Return the earliest valid event instant, ignoring unparsable ones."""
    instants = [event.occurred_at for event in events if event.occurred_at is not None]
    return min(instants) if instants else None


def fold_into_grid(
    events: Iterable[ActivityEvent],
    keys: Sequence[str],
    granularity: Granularity,
    lower: datetime,
    extend_grid: bool = True
) -> Tuple[ActivityBucket, ...]:
    """
    Fold events into a dense bucket grid.

    Events with a valid instant at or after ``lower`` are counted. An event
    whose key is missing from the grid gets a bucket of its own when
    ``extend_grid`` is set and is dropped otherwise; events before ``lower``
    or without a valid instant are skipped.

    Args:
        events: Events to place
        keys: Dense grid of keys, pre-populated with zero counters
        granularity: Granularity used to key event instants
        lower: Inclusive lower bound of the window
        extend_grid: Whether out-of-grid keys get buckets of their own

    Returns:
        Buckets sorted ascending by key
    """
    keyed = sorted((
        (format_key(event.occurred_at, granularity), event.reason)
        for event in events
        if event.occurred_at is not None and event.occurred_at >= lower
    ), key=itemgetter(0))
    placed = {
        key: reduce(lambda counts, item: counts.incremented(item[1]), group, ActivityCounts())
        for key, group in groupby(keyed, key=itemgetter(0))
    }
    grid = {key: ActivityCounts() for key in keys}
    if not extend_grid:
        placed = {key: counts for key, counts in placed.items() if key in grid}

    merged = {**grid, **placed}
    return tuple(ActivityBucket(key=key, counts=counts) for key, counts in sorted(merged.items()))


def aggregate_period(
    events: Sequence[ActivityEvent],
    plan: PeriodPlan,
    now: datetime
) -> Tuple[ActivityBucket, ...]:
    """Aggregate events into the buckets of one fixed period."""
    return fold_into_grid(
        events,
        plan.bucket_keys(now),
        plan.granularity,
        lower=plan.window_start(now)
    )


def resolve_all_time_start(
    origin: Optional[datetime],
    events: Sequence[ActivityEvent],
    now: datetime
) -> datetime:
    """
    Resolve the left edge of the all-time period.

    The edge is the earlier of the account origin and the earliest event,
    never later than ``now``.
    """
    start = origin if origin is not None and origin <= now else now
    earliest = earliest_instant(events)
    if earliest is not None and earliest < start:
        start = earliest
    return start


def select_all_time_granularity(start: datetime, now: datetime) -> Granularity:
    """Chart young accounts by month and older ones by year."""
    account_age_years = max((now - start) / YEAR, 0.0)
    if account_age_years < MONTHLY_ALL_TIME_MAX_YEARS:
        return Granularity.MONTH
    return Granularity.YEAR


def all_time_bucket_keys(start: datetime, now: datetime, granularity: Granularity) -> List[str]:
    """Generate one key per month or year from ``start`` through ``now``."""
    keys = []
    cursor = truncate(start, granularity)
    while cursor <= now:
        keys.append(format_key(cursor, granularity))
        cursor = shift(cursor, granularity, 1)

    if not keys:
        keys.append(format_key(now, granularity))

    return keys


def aggregate_all_time(
    events: Sequence[ActivityEvent],
    origin: Optional[datetime],
    now: datetime
) -> Tuple[ActivityBucket, ...]:
    """Aggregate events into the all-time period."""
    start = resolve_all_time_start(origin, events, now)
    granularity = select_all_time_granularity(start, now)
    keys = all_time_bucket_keys(start, now, granularity)

    return fold_into_grid(events, keys, granularity, lower=start, extend_grid=False)


def aggregate_timeline(
    events: Sequence[ActivityEvent],
    origin: Optional[datetime],
    now: datetime
) -> Dict[ActivityPeriod, Tuple[ActivityBucket, ...]]:
    """Aggregate events into every reporting period."""
    timeline = {
        period: aggregate_period(events, plan, now)
        for period, plan in FIXED_PERIOD_PLANS.items()
    }
    timeline[ActivityPeriod.ALL] = aggregate_all_time(events, origin, now)
    return timeline


def summarise_totals(events: Iterable[ActivityEvent]) -> ActivityCounts:
    """Count every event, whatever its timestamp."""
    return reduce(lambda counts, event: counts.incremented(event.reason), events, ActivityCounts())


def build_activity_summary(
    events: Sequence[ActivityEvent],
    origin: Optional[datetime],
    now: datetime
) -> ActivitySummary:
    """
    Build the activity summary for an account.

    Args:
        events: Every notification collected for the account
        origin: Account creation instant, if known
        now: Instant all windows are anchored to, read once from a Clock

    Returns:
        ActivitySummary with all five periods populated
    """
    periods = aggregate_timeline(events, origin, now)
    totals = summarise_totals(events)

    logger.debug(
        "Aggregated activity timeline",
        events=len(events),
        all_time_buckets=len(periods[ActivityPeriod.ALL])
    )

    return ActivitySummary(
        generated_at=now,
        periods=periods,
        totals=totals,
        total_event_count=len(events)
    )
