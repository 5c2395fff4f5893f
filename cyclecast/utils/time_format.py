"""Wall-clock and display helpers."""

import time
from datetime import datetime, timezone


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def ms_to_iso(value_ms: int) -> str:
    """Epoch milliseconds as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(value_ms / 1000, tz=timezone.utc).isoformat()


def format_time(seconds: float) -> str:
    """
    Format a position as M:SS, or H:MM:SS once it reaches an hour.

    Negative input clamps to zero.
    """
    if seconds < 0:
        seconds = 0

    total = int(seconds)
    hours, rest = divmod(total, 3600)
    mins, secs = divmod(rest, 60)

    if hours > 0:
        return f"{hours}:{mins:02d}:{secs:02d}"
    return f"{mins}:{secs:02d}"


def format_duration(seconds: int) -> str:
    """Format a duration for humans: "45 secs", "1 min", "12 mins", "2h", "1h 37m"."""
    if seconds < 60:
        return f"{seconds} secs"

    hours = seconds // 3600
    mins = (seconds % 3600) // 60

    if hours > 0:
        if mins > 0:
            return f"{hours}h {mins}m"
        return f"{hours}h"

    if mins == 1:
        return f"{mins} min"
    return f"{mins} mins"
