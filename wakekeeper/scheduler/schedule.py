"""Schedule calculation utilities.

Timestamps and interval arithmetic for the trigger loop.
"""
import time


def now_ms() -> int:
    """Get current timestamp in milliseconds."""
    return int(time.time() * 1000)


def remaining_after_pause(interval_ms: int, elapsed_ms: int) -> int:
    """Time left in the current interval after ``elapsed_ms`` had passed."""
    return max(0, interval_ms - elapsed_ms)


def interval_to_human(interval_ms: int) -> str:
    """Convert interval in milliseconds to human-readable description.

    Args:
        interval_ms: Interval in milliseconds

    Returns:
        Human-readable description
    """
    seconds = interval_ms // 1000

    if seconds < 1:
        return f"every {interval_ms} ms"
    elif seconds < 60:
        return f"every {seconds} s"
    elif seconds < 3600:
        minutes = seconds // 60
        return f"every {minutes} min"
    elif seconds < 86400:
        hours = seconds // 3600
        return f"every {hours} h"
    else:
        days = seconds // 86400
        return f"every {days} d"
