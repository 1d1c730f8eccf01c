"""
Notification Collection

Drains the cursor-paginated notification listing into a single in-memory
sequence and resolves the account origin used by the all-time period.
"""

from datetime import datetime
from typing import AsyncGenerator, Awaitable, Callable, List, Optional, Set

import structlog

from activity_aggregator import earliest_instant
from shared.models import ActivityEvent, NotificationPage, ProfileInfo

logger = structlog.get_logger(__name__)

FetchPage = Callable[[Optional[str]], Awaitable[NotificationPage]]
LookupProfile = Callable[[str], Awaitable[Optional[ProfileInfo]]]


async def iter_notification_pages(fetch_page: FetchPage) -> AsyncGenerator[NotificationPage, None]:
    """Yield notification pages until the cursor chain ends.

    Pages are fetched one at a time, each cursor taken from the previous
    response. Iteration stops after a page without a cursor, an empty page,
    or a page whose cursor was already seen, so an upstream that keeps
    returning the same cursor cannot keep the loop alive.

    Args:
        fetch_page: Coroutine function taking the cursor (None for the first page)

    Yields:
        NotificationPage: Pages in upstream order, including the final one
    """
    seen_cursors: Set[str] = set()
    cursor: Optional[str] = None

    while True:
        page = await fetch_page(cursor)
        yield page

        if not page.next_cursor or not page.events:
            return

        if page.next_cursor in seen_cursors:
            logger.warning("Upstream repeated a pagination cursor", cursor=page.next_cursor)
            return

        seen_cursors.add(page.next_cursor)
        cursor = page.next_cursor


async def collect_notifications(fetch_page: FetchPage) -> List[ActivityEvent]:
    """Concatenate the events of every page, in the order returned."""
    events: List[ActivityEvent] = []
    pages = 0

    async for page in iter_notification_pages(fetch_page):
        pages += 1
        events.extend(page.events)

    logger.info("Collected notifications", pages=pages, notifications=len(events))
    return events


async def resolve_account_creation_date(
    events: List[ActivityEvent],
    now: datetime,
    did: Optional[str] = None,
    lookup_profile: Optional[LookupProfile] = None,
    on_lookup_failure: Optional[Callable[[Exception], None]] = None
) -> datetime:
    """
    Resolve the earliest meaningful instant for the account.

    The profile creation date wins when it can be looked up; otherwise the
    earliest valid event instant is used, and ``now`` when there is neither.
    Lookup errors never propagate: they are handed to ``on_lookup_failure``
    and resolution falls through to the events.

    Args:
        events: Every collected notification
        now: Current instant
        did: Account identifier to look up, if known
        lookup_profile: Coroutine function returning the profile for a DID
        on_lookup_failure: Callback receiving a failed lookup's exception

    Returns:
        Account origin instant
    """
    if did and lookup_profile is not None:
        try:
            profile = await lookup_profile(did)
            if profile is not None and profile.created_at is not None:
                return profile.created_at
        except Exception as e:
            if on_lookup_failure is not None:
                on_lookup_failure(e)

    earliest = earliest_instant(events)
    if earliest is not None:
        return earliest

    return now
