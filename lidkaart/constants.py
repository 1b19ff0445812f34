"""
Lidkaart Global Constants

Centralized location for system-wide constants used across the edge cache.
"""

from datetime import datetime, timezone


# Timestamp Functions
def get_current_timestamp() -> datetime:
    """Get current timestamp with UTC timezone.

    Returns:
        datetime: Current UTC timestamp

    Note: Use this function instead of a constant to get real-time timestamps.
    """
    return datetime.now(timezone.utc)


def isoformat_utc(moment: datetime) -> str:
    """Render a UTC timestamp the way the membership API does (``...Z``)."""
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


# Card verification statuses
STATUS_CURRENT = "ACTUEEL"
STATUS_NOT_CURRENT = "NIET_ACTUEEL"
STATUS_EXPIRED = "VERLOPEN"

# Offline fallback
OFFLINE_ERROR_MESSAGE = "Geen internetverbinding"
OFFLINE_ERROR_STATUS_CODE = 503
JSON_CONTENT_TYPE = "application/json"

# Lifecycle messages
SKIP_WAITING_MESSAGE = "SKIP_WAITING"

# Application Constants
APP_NAME = "Lidkaart Edge"
APP_VERSION = "1.0.0"
