"""Map handler failures and raised exceptions onto ErrorCategory."""

import asyncio
import logging
import re
from typing import Optional

from ..tools.models import ToolResult
from .models import ErrorCategory

logger = logging.getLogger(__name__)

# Checked in order; the first class with a matching pattern wins
_SAFETY_HALT_PATTERNS = ("safety halt", "fraud", "legal hold", "account frozen", "sanction")
_USER_ACTION_PATTERNS = (
    "401", "403", "unauthorized", "forbidden", "reauthori", "consent required",
    "card declined", "insufficient funds", "requires owner", "missing bank",
)
_TRANSIENT_PATTERNS = (
    "timeout", "timed out", "429", "rate limit", "too many requests",
    "econnreset", "econnrefused", "connection reset", "connection refused",
    "temporarily unavailable", "try again", "502", "503", "504", "network",
)
_DEGRADED_PATTERNS = ("degraded", "partial", "stale", "slow response", "reduced functionality")
_PERMANENT_SYSTEM_PATTERNS = (
    "500", "internal server error", "not configured", "misconfigured",
    "schema", "database error", "malformed handler envelope",
)


def _parse_category(value: Optional[str]) -> Optional[ErrorCategory]:
    if not value:
        return None
    try:
        return ErrorCategory(value)
    except ValueError:
        logger.warning(f"Handler declared unknown error category '{value}'")
        return None


def _matches(pattern: str, haystack: str) -> bool:
    # Status codes must match as whole numbers ("500" is not in "5000")
    if pattern.isdigit():
        return re.search(rf"\b{pattern}\b", haystack) is not None
    return pattern in haystack


def classify_message(message: str) -> ErrorCategory:
    """Classify an error message; unmatched messages are PermanentLogic."""
    haystack = message.lower()
    for patterns, category in (
        (_SAFETY_HALT_PATTERNS, ErrorCategory.SAFETY_HALT),
        (_USER_ACTION_PATTERNS, ErrorCategory.USER_ACTION_REQUIRED),
        (_TRANSIENT_PATTERNS, ErrorCategory.TRANSIENT),
        (_DEGRADED_PATTERNS, ErrorCategory.DEGRADED),
        (_PERMANENT_SYSTEM_PATTERNS, ErrorCategory.PERMANENT_SYSTEM),
    ):
        for pattern in patterns:
            if _matches(pattern, haystack):
                return category
    return ErrorCategory.PERMANENT_LOGIC


def classify_result(result: ToolResult) -> ErrorCategory:
    """Classify a failed handler envelope. An explicit category wins."""
    declared = _parse_category(result.error_category)
    if declared is not None:
        return declared
    return classify_message(result.error or "")


def classify_exception(error: BaseException) -> ErrorCategory:
    """Classify an exception raised by a handler."""
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return ErrorCategory.TRANSIENT
    declared = _parse_category(getattr(error, "error_category", None))
    if declared is not None:
        return declared
    if isinstance(error, OSError):
        return ErrorCategory.TRANSIENT
    return classify_message(f"{type(error).__name__} {error}")
