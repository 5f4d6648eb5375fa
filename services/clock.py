"""
Clock source for work sessions.

Elapsed time is derived by diffing monotonic readings whenever it is read,
so there is no ticking thread to drift or to stop.
"""
import time
from datetime import datetime, timezone


class SystemClock:
    """Wall clock for timestamps plus a monotonic clock for durations."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()


def format_elapsed(seconds: float) -> str:
    """Format a duration in seconds as HH:MM:SS (sub-second part dropped)."""
    total = max(0, int(seconds))
    hours = total // 3600
    minutes = (total % 3600) // 60
    secs = total % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
