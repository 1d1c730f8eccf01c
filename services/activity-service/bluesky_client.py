"""
Bluesky Activity Client

This module implements the BlueskyActivityClient class that reads an
account's notifications and profile from its PDS on behalf of the
signed-in user.
"""

import uuid
from typing import Any, Dict, Optional

from atproto import AsyncClient, models
import structlog

from errors import UpstreamFailure
from shared.models import ActivityEvent, NotificationPage, ProfileInfo, parse_instant


class BlueskyActivityClient:
    """XRPC client for the two calls the activity timeline needs.

    Calls are authenticated with the caller's access JWT as a bearer token;
    the client never performs a login of its own.
    """

    def __init__(self, pds_url: str, client: Optional[AsyncClient] = None) -> None:
        """Initialize the client.

        Args:
            pds_url: Normalized PDS base URL, without a trailing ``/xrpc``
            client: Pre-built ATProto client, mainly for tests
        """
        self.pds_url = pds_url
        self._client = client or AsyncClient(base_url=f"{pds_url}/xrpc")

        self.logger = structlog.get_logger(__name__)
        self._correlation_id = str(uuid.uuid4())

        self._pages_fetched = 0
        self._profiles_fetched = 0

    @staticmethod
    def _auth_headers(access_jwt: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {access_jwt}"}

    async def list_notifications(
        self,
        access_jwt: str,
        limit: int = 100,
        cursor: Optional[str] = None
    ) -> NotificationPage:
        """Fetch one page of the account's notifications.

        Args:
            access_jwt: Access token of the signed-in account
            limit: Page size (1-100)
            cursor: Continuation cursor from the previous page

        Returns:
            NotificationPage with the page's events and the next cursor

        Raises:
            UpstreamFailure: If the PDS call fails or returns an unexpected shape
        """
        log = self.logger.bind(
            correlation_id=self._correlation_id,
            pds_url=self.pds_url,
            cursor=cursor
        )

        try:
            response = await self._client.app.bsky.notification.list_notifications(
                params=models.AppBskyNotificationListNotifications.Params(limit=limit, cursor=cursor),
                headers=self._auth_headers(access_jwt)
            )
            events = [self._to_event(notification) for notification in response.notifications]
        except Exception as e:
            log.error("Failed to list notifications", error=str(e))
            raise UpstreamFailure(f"listNotifications failed: {e}", operation="listNotifications") from e

        self._pages_fetched += 1
        log.debug("Fetched notification page", notifications=len(events), next_cursor=response.cursor)

        return NotificationPage(events=events, next_cursor=response.cursor or None)

    async def get_profile(self, access_jwt: str, actor: str) -> ProfileInfo:
        """Look up an actor profile.

        Args:
            access_jwt: Access token of the signed-in account
            actor: DID or handle of the actor

        Returns:
            ProfileInfo; ``created_at`` falls back to the profile's indexing
            time and is None when neither timestamp is usable

        Raises:
            UpstreamFailure: If the PDS call fails
        """
        try:
            profile = await self._client.app.bsky.actor.get_profile(
                params=models.AppBskyActorGetProfile.Params(actor=actor),
                headers=self._auth_headers(access_jwt)
            )
        except Exception as e:
            self.logger.warning(
                "Failed to fetch profile",
                correlation_id=self._correlation_id,
                actor=actor,
                error=str(e)
            )
            raise UpstreamFailure(f"getProfile failed: {e}", operation="getProfile") from e

        self._profiles_fetched += 1
        created_at = parse_instant(getattr(profile, 'created_at', None))
        if created_at is None:
            created_at = parse_instant(getattr(profile, 'indexed_at', None))

        return ProfileInfo(
            did=getattr(profile, 'did', actor),
            handle=getattr(profile, 'handle', None),
            created_at=created_at
        )

    @staticmethod
    def _to_event(notification: Any) -> ActivityEvent:
        """Convert an XRPC notification view into an ActivityEvent."""
        return ActivityEvent(
            id=notification.uri,
            reason=notification.reason,
            indexed_at=notification.indexed_at
        )

    async def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        try:
            await self._client.request.close()
        except Exception as e:
            self.logger.warning("Error closing Bluesky client", error=str(e))

    def get_stats(self) -> Dict[str, Any]:
        """Get client statistics.

        Returns:
            Dictionary containing client statistics
        """
        return {
            'pds_url': self.pds_url,
            'pages_fetched': self._pages_fetched,
            'profiles_fetched': self._profiles_fetched,
            'correlation_id': self._correlation_id
        }
