"""
Killlog Sync Formatters

Time helpers shared by the API client, the services and the CLI output.
All stored timestamps are integer unix epochs in UTC.
"""

import time
from datetime import datetime, timezone
from typing import Optional

# Format of <currentTime>/<cachedUntil> and killTime in XML API responses
API_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_duration(seconds: float) -> str:
    """
    Format seconds into human-readable duration.

    Examples:
        >>> format_duration(86400 + 3600 + 1800)
        '1d 1h 30m'
        >>> format_duration(45)
        '45s'
        >>> format_duration(0)
        'Complete'
    """
    if seconds <= 0:
        return "Complete"

    days = int(seconds // 86400)
    hours = int((seconds % 86400) // 3600)
    minutes = int((seconds % 3600) // 60)

    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0 or parts:
        parts.append(f"{minutes}m")

    if not parts:
        return f"{int(seconds)}s"

    return " ".join(parts)


def parse_api_datetime(dt_str: Optional[str]) -> Optional[int]:
    """
    Parse an XML API datetime string to a unix timestamp.

    Args:
        dt_str: Datetime like "2015-03-01 12:30:00" (always UTC)

    Returns:
        Unix timestamp, or None if missing or unparseable

    Examples:
        >>> parse_api_datetime("1970-01-01 00:01:00")
        60
    """
    if not dt_str:
        return None

    try:
        dt = datetime.strptime(dt_str.strip(), API_DATETIME_FORMAT)
    except ValueError:
        return None

    return int(dt.replace(tzinfo=timezone.utc).timestamp())


def format_datetime(dt: datetime) -> str:
    """Format datetime as an ISO string."""
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def format_timestamp(ts: Optional[int]) -> Optional[str]:
    """Format a unix timestamp as an ISO string (None passes through)."""
    if ts is None:
        return None
    return format_datetime(datetime.fromtimestamp(ts, tz=timezone.utc))


def get_utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def get_utc_timestamp() -> str:
    """
    Get current UTC timestamp string.

    Returns:
        ISO format timestamp like "2026-01-15T12:30:00Z"
    """
    return format_datetime(get_utc_now())


def epoch_now() -> int:
    """Current unix time as an integer."""
    return int(time.time())
