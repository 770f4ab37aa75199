"""Cron schedule computation in a fixed IANA timezone."""

import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from ..clock import datetime_to_ms, ms_to_datetime
from ..constants import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)


def resolve_timezone(tz: Optional[str] = None) -> ZoneInfo:
    """Resolve an IANA timezone string to a tzinfo object."""
    name = tz or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e


def is_valid_cron(expr: str) -> bool:
    return croniter.is_valid(expr)


def next_fire_ms(expr: str, after_ms: int, tz: Optional[str] = None) -> int:
    """
    Next time a cron expression fires strictly after ``after_ms``.

    The expression is evaluated in ``tz`` (default Australia/Sydney), so
    "0 6 * * *" means 6am local time across daylight-saving changes.

    Raises:
        ValueError: If the expression or timezone is invalid
    """
    if not is_valid_cron(expr):
        raise ValueError(f"Invalid cron expression: {expr!r}")
    tzinfo = resolve_timezone(tz)
    start = ms_to_datetime(after_ms).astimezone(tzinfo)
    next_ms = datetime_to_ms(croniter(expr, start).get_next(datetime))

    # Guard: if croniter returned same or past time, advance 1 second
    if next_ms <= after_ms:
        next_second_ms = (after_ms // 1000) * 1000 + 1000
        start = ms_to_datetime(next_second_ms).astimezone(tzinfo)
        next_ms = datetime_to_ms(croniter(expr, start).get_next(datetime))
    return next_ms
