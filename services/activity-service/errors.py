"""
Error taxonomy for the activity service.

Malformed upstream timestamps and repeated pagination cursors are handled
in-line by the engine and never surface as exceptions.
"""

from typing import Optional


class ActivityServiceError(Exception):
    """Base class for errors raised while producing an activity summary."""

    status_code = 500
    public_message = "Unexpected error."


class MissingCredential(ActivityServiceError):
    """No bearer token or session data could be resolved for the request."""

    status_code = 401
    public_message = "Missing session. Sign in again to continue."


class UpstreamFailure(ActivityServiceError):
    """A call to the Bluesky PDS failed.

    The cause is chained for logging; it is never returned to the caller.
    """

    status_code = 502
    public_message = "Unable to load Bluesky activity at this time."

    def __init__(self, message: str, operation: Optional[str] = None) -> None:
        super().__init__(message)
        self.operation = operation
