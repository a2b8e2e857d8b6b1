"""
Timestamp utilities for agentchain.

All persisted timestamps are microseconds since epoch (UTC).
"""

from datetime import datetime, timezone


def now_us() -> int:
    """Get current timestamp as microseconds since epoch (UTC)."""
    return int(datetime.now(timezone.utc).timestamp() * 1000000)


def us_to_datetime(timestamp_us: int) -> datetime:
    """Convert a microsecond timestamp into an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp_us / 1000000, tz=timezone.utc)


def elapsed_ms(start_us: int, end_us: int) -> int:
    """Milliseconds between two microsecond timestamps, never negative."""
    return max(0, (end_us - start_us) // 1000)
