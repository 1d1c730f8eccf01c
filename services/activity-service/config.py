"""
Activity Service Configuration

Environment-driven settings for the activity service.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_PDS_URL = "https://bsky.social"

# listNotifications rejects limits above 100
MAX_PAGE_LIMIT = 100


@dataclass
class ActivityServiceConfig:
    """Configuration parameters for the activity service."""

    default_pds_url: str = DEFAULT_PDS_URL
    page_limit: int = MAX_PAGE_LIMIT
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if not 1 <= self.page_limit <= MAX_PAGE_LIMIT:
            raise ValueError(f"Page limit must be between 1 and {MAX_PAGE_LIMIT}")

        if not 0 < self.port < 65536:
            raise ValueError("Port must be between 1 and 65535")

        if not self.default_pds_url.strip():
            raise ValueError("Default PDS URL cannot be empty")


def create_activity_service_config(
    environ: Optional[Mapping[str, str]] = None
) -> ActivityServiceConfig:
    """
    Build the service configuration from environment variables.

    Args:
        environ: Mapping to read from, defaults to ``os.environ``

    Returns:
        Validated ActivityServiceConfig

    Raises:
        ValueError: If a variable is not a valid value for its setting
    """
    env = os.environ if environ is None else environ

    return ActivityServiceConfig(
        default_pds_url=env.get("DEFAULT_PDS_URL", DEFAULT_PDS_URL),
        page_limit=int(env.get("ACTIVITY_PAGE_LIMIT", str(MAX_PAGE_LIMIT))),
        host=env.get("SERVICE_HOST", "0.0.0.0"),
        port=int(env.get("SERVICE_PORT", "8080")),
        log_level=env.get("LOG_LEVEL", "INFO").upper()
    )
