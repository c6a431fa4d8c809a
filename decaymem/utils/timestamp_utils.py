"""
Timestamp utilities for consistent time handling across the system.
"""

import time
from datetime import datetime, timezone
from typing import Optional, Union

SECONDS_PER_DAY = 24 * 3600


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_datetime(timestamp: Optional[Union[int, float, str]] = None) -> datetime:
    """Convert a unix timestamp (number or numeric string) to a UTC datetime.

    Args:
        timestamp: Unix timestamp in seconds (optional, uses current time if None)

    Returns:
        timezone-aware datetime object
    """
    if timestamp is None:
        timestamp = time.time()
    return datetime.fromtimestamp(float(timestamp), tz=timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def whole_days_between(earlier: datetime, later: datetime) -> int:
    """Number of complete days from earlier to later; negative spans count as zero."""
    seconds = (ensure_utc(later) - ensure_utc(earlier)).total_seconds()
    if seconds <= 0:
        return 0
    return int(seconds // SECONDS_PER_DAY)
