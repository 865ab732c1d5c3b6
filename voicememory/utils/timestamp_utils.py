"""
Timestamp utilities for consistent time handling across the system.
"""

import time
from datetime import datetime, timezone
from typing import Optional


def now_millis() -> int:
    """Current Unix time in milliseconds, used to order records by insertion recency."""
    return time.time_ns() // 1_000_000


def to_iso(timestamp: Optional[float] = None) -> str:
    """Convert timestamp to an ISO-8601 UTC string.

    Args:
        timestamp: Unix timestamp in seconds (optional, uses current time if None)

    Returns:
        ISO formatted timestamp
    """
    if timestamp is None:
        timestamp = time.time()
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()
