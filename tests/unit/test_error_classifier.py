"""Unit tests for error classification."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from keyword_intel.core.error_classifier import (
    classify_error,
    extract_http_status,
    get_retry_after_ms,
    is_retryable_error,
)
from keyword_intel.core.exceptions import (
    APIKeyMissingError,
    ExternalAPIError,
    ProviderResponseError,
    RateLimitExceededError,
)


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (asyncio.TimeoutError(), "timeout"),
        (Exception("Request timed out after 30s"), "timeout"),
        (Exception("ETIMEDOUT"), "timeout"),
        (Exception("HTTP 504 Gateway Timeout"), "timeout"),
        (Exception("http 429 too many"), "rate_limit"),
        (Exception("Rate limit exceeded"), "rate_limit"),
        (RateLimitExceededError("DataForSEO", retry_after_ms=1000), "rate_limit"),
        (Exception("HTTP 500 Internal Server Error"), "server_error"),
        (Exception("upstream returned status 502"), "server_error"),
        (Exception("Authentication failed"), "auth_error"),
        (APIKeyMissingError("DataForSEO"), "auth_error"),
        (Exception("HTTP 403"), "auth_error"),
        (Exception("Invalid URL format"), "validation_error"),
        (Exception("Validation failed for field keyword"), "validation_error"),
        (Exception("HTTP 404 Not Found"), "client_error"),
        (Exception("HTTP 400 Bad Request: invalid timeout value"), "client_error"),
        (ExternalAPIError("DataForSEO", "request timeout too large", status_code=400), "client_error"),
        (Exception("HTTP 408 Request Timeout"), "timeout"),
        (ProviderResponseError("DataForSEO", "Invalid JSON response format"), "validation_error"),
        (
            ProviderResponseError("DataForSEO", "Invalid result format: expected array, got dict"),
            "validation_error",
        ),
        (Exception("connect ECONNREFUSED 127.0.0.1:443"), "network_error"),
        (Exception("getaddrinfo ENOTFOUND api.example.com"), "network_error"),
        (Exception("something odd happened"), "unknown"),
    ],
)
def test_classify_error(error: Exception, expected: str) -> None:
    assert classify_error(error) == expected


def test_classify_httpx_transport_errors() -> None:
    request = httpx.Request("POST", "https://api.dataforseo.com/v3/x")
    assert classify_error(httpx.ReadTimeout("read", request=request)) == "timeout"
    assert classify_error(httpx.ConnectError("refused", request=request)) == "network_error"


def test_classify_non_errors_as_unknown() -> None:
    assert classify_error(None) == "unknown"
    assert classify_error("HTTP 500") == "unknown"
    assert classify_error(42) == "unknown"


def test_classification_is_deterministic() -> None:
    error = Exception("HTTP 429 Too Many Requests")
    assert {classify_error(error) for _ in range(5)} == {"rate_limit"}


def test_extract_http_status_prefers_attribute() -> None:
    error = ExternalAPIError("DataForSEO", "HTTP 500 boom", status_code=404)
    assert extract_http_status(error) == 404
    assert extract_http_status(Exception("upstream status: 503")) == 503
    assert extract_http_status(Exception("no status here")) is None


@pytest.mark.parametrize(
    ("error", "retryable"),
    [
        (Exception("HTTP 500"), True),
        (Exception("HTTP 429"), True),
        (asyncio.TimeoutError(), True),
        (Exception("ECONNRESET"), True),
        (Exception("mystery"), True),
        (Exception("HTTP 401"), False),
        (Exception("HTTP 400 Bad Request"), False),
        (Exception("HTTP 400 Bad Request: invalid timeout value"), False),
        (Exception("Invalid URL format"), False),
    ],
)
def test_is_retryable_error(error: Exception, retryable: bool) -> None:
    assert is_retryable_error(error) is retryable


def test_get_retry_after_ms_requires_positive_number() -> None:
    assert get_retry_after_ms(RateLimitExceededError("DataForSEO", retry_after_ms=3000)) == 3000
    assert get_retry_after_ms(RateLimitExceededError("DataForSEO", retry_after_ms=0)) is None
    assert get_retry_after_ms(RateLimitExceededError("DataForSEO")) is None
    assert get_retry_after_ms(Exception("plain")) is None
