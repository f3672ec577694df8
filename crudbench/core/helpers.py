"""
Error classification helpers shared by seeding, the runner and providers.
"""

from __future__ import annotations

import json
import re
from typing import Any

CONNECTION_LOST_RE = re.compile(r"client is not connected", re.IGNORECASE)
DUPLICATE_ERROR_RE = re.compile(r"already exists|conflict|duplicate", re.IGNORECASE)
_TIMEOUT_CODES = {"ETIMEOUT", "ETIMEDOUT"}


def to_error_message(error: Any, fallback: str = "unknown error") -> str:
    """Render an exception (or any error-ish value) for a log line."""
    if isinstance(error, BaseException):
        message = str(error)
        return message or type(error).__name__
    if isinstance(error, str):
        return error
    try:
        return json.dumps(error)
    except (TypeError, ValueError):
        return fallback


def is_connection_lost(error: Any) -> bool:
    return bool(CONNECTION_LOST_RE.search(to_error_message(error, "")))


def is_duplicate_error(error: Any, pattern: re.Pattern[str] = DUPLICATE_ERROR_RE) -> bool:
    """Match a duplicate/conflict signature in the error message."""
    return bool(pattern.search(to_error_message(error, "")))


def is_timeout_error(error: Any) -> bool:
    """
    Detect driver timeouts.

    Checks ``TimeoutError`` first, then ``code`` attributes on the error and
    its cause, then the message text.
    """
    if error is None:
        return False
    if isinstance(error, TimeoutError):
        return True

    codes = [
        getattr(error, "code", None),
        getattr(getattr(error, "__cause__", None), "code", None),
    ]
    if any(isinstance(code, str) and code.upper() in _TIMEOUT_CODES for code in codes):
        return True

    message = to_error_message(error, "").upper()
    return "ETIMEOUT" in message or "TIMED OUT" in message
