"""Classification of raw failures into a retry-oriented taxonomy."""

from __future__ import annotations

import asyncio
import re
from typing import Literal

import httpx
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError

ErrorType = Literal[
    "timeout",
    "rate_limit",
    "server_error",
    "client_error",
    "auth_error",
    "validation_error",
    "network_error",
    "unknown",
]

TERMINAL_ERROR_TYPES: frozenset[str] = frozenset(
    {"client_error", "auth_error", "validation_error"}
)

_HTTP_STATUS_PATTERNS = (
    re.compile(r"\bhttp[\s/:]*(?:status[\s:]*)?([1-5]\d\d)\b", re.IGNORECASE),
    re.compile(r"\bstatus(?:[\s_-]*code)?[\s:=]*([1-5]\d\d)\b", re.IGNORECASE),
)

_TIMEOUT_MARKERS = ("timeout", "timed out", "deadline exceeded", "etimedout")
_RATE_LIMIT_MARKERS = ("rate limit", "rate-limit", "too many requests", "quota exceeded")
_AUTH_MARKERS = (
    "unauthorized",
    "forbidden",
    "authentication",
    "not authenticated",
    "credentials",
    "api key",
    "permission denied",
)
_VALIDATION_MARKERS = ("validation", "schema", "unprocessable")
_INVALID_FORMAT = re.compile(r"\binvalid\b.*\bformat\b", re.IGNORECASE)
_NETWORK_MARKERS = (
    "econnrefused",
    "econnreset",
    "enotfound",
    "eai_again",
    "connection refused",
    "connection reset",
    "connection is closed",
    "connection was closed",
    "server closed the connection unexpectedly",
    "network",
    "dns",
    "socket hang up",
    "getaddrinfo",
)


def _message_of(error: object) -> str:
    if error is None:
        return ""
    if isinstance(error, BaseException):
        return str(error)
    if isinstance(error, str):
        return error
    return ""


def extract_http_status(error: object) -> int | None:
    """Return the HTTP status carried by an error, if any.

    Prefers an explicit ``status_code`` attribute, then an ``HTTP <code>`` or
    ``status <code>`` fragment embedded in the message. Plain strings are not
    treated as errors.
    """
    if not isinstance(error, BaseException):
        return None

    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int) and 100 <= status_code <= 599:
        return status_code

    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code

    message = str(error)
    for pattern in _HTTP_STATUS_PATTERNS:
        match = pattern.search(message)
        if match:
            return int(match.group(1))
    return None


def classify_error(error: object) -> ErrorType:
    """Map a raw failure to an error type.

    Deterministic for identical inputs. Exception types are checked first,
    then embedded HTTP status codes, then message text.
    """
    if not isinstance(error, BaseException):
        return "unknown"

    if isinstance(error, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return "timeout"
    if isinstance(error, (httpx.NetworkError, InterfaceError, OperationalError)):
        return "network_error"
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return "network_error"

    message = _message_of(error).lower()
    status = extract_http_status(error)

    # An explicit 4xx status outranks timeout wording in the message.
    client_status = status is not None and 400 <= status < 500 and status != 408
    if status in (408, 504) or (
        not client_status and any(marker in message for marker in _TIMEOUT_MARKERS)
    ):
        return "timeout"
    if status == 429 or any(marker in message for marker in _RATE_LIMIT_MARKERS):
        return "rate_limit"
    if status is not None and status >= 500:
        return "server_error"
    if status in (401, 403) or any(marker in message for marker in _AUTH_MARKERS):
        return "auth_error"
    if (
        status == 422
        or any(marker in message for marker in _VALIDATION_MARKERS)
        or _INVALID_FORMAT.search(message)
    ):
        return "validation_error"
    if status is not None and 400 <= status < 500:
        return "client_error"
    if any(marker in message for marker in _NETWORK_MARKERS):
        return "network_error"
    return "unknown"


def is_retryable_error(error: object) -> bool:
    """Whether a failure should be retried. Unknown errors are retried."""
    return classify_error(error) not in TERMINAL_ERROR_TYPES


def get_retry_after_ms(error: object) -> int | None:
    """Return a positive provider retry hint in milliseconds, if present."""
    value = getattr(error, "retry_after_ms", None)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value <= 0:
        return None
    return int(value)
