"""Timestamp helpers.

All record timestamps are integer milliseconds since the Unix epoch.
"""

import time
from datetime import datetime, timezone
from typing import Optional


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def format_ms(value: Optional[int]) -> str:
    """Render an epoch-millisecond timestamp for display.

    Args:
        value: Epoch milliseconds, or None

    Returns:
        Local time as ``YYYY-MM-DD HH:MM:SS``, or ``"-"`` when missing
    """
    if not value:
        return "-"
    moment = datetime.fromtimestamp(value / 1000, tz=timezone.utc).astimezone()
    return moment.strftime("%Y-%m-%d %H:%M:%S")
