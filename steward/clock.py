"""Millisecond wall-clock helpers shared by every component."""

import time
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current time in milliseconds."""
    return int(time.time() * 1000)


def ms_to_datetime(value_ms: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value_ms / 1000, tz=timezone.utc)


def datetime_to_ms(value: datetime) -> int:
    """Convert a datetime to epoch milliseconds (naive values are UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)
