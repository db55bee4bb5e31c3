"""Bounded exponential-backoff retry engine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from keyword_intel.config import settings
from keyword_intel.core.error_classifier import (
    TERMINAL_ERROR_TYPES,
    ErrorType,
    classify_error,
    get_retry_after_ms,
    is_retryable_error,
)

logger = logging.getLogger(__name__)

_ResultT = TypeVar("_ResultT")


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable backoff shape for transient-failure retries."""

    max_attempts: int
    initial_delay_ms: int
    backoff_multiplier: float
    max_delay_ms: int

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must be >= 0")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")


@dataclass(frozen=True)
class RetryAttempt:
    """Metadata about a failed attempt that is about to be retried."""

    operation_name: str
    attempt_number: int
    max_attempts: int
    error: BaseException
    error_type: ErrorType
    delay_ms: int

    @property
    def retry_count(self) -> int:
        return self.attempt_number

    @property
    def error_message(self) -> str:
        return str(self.error) or type(self.error).__name__


RetryCallback = Callable[[RetryAttempt], Awaitable[None]]
SleepFn = Callable[[float], Awaitable[None]]

DEFAULT_RETRY_POLICY = RetryPolicy(
    max_attempts=3,
    initial_delay_ms=1000,
    backoff_multiplier=2,
    max_delay_ms=30_000,
)

STAGE_RETRY_POLICY = RetryPolicy(
    max_attempts=settings.stage_retry_max_attempts,
    initial_delay_ms=settings.stage_retry_initial_delay_ms,
    backoff_multiplier=settings.stage_retry_backoff_multiplier,
    max_delay_ms=settings.stage_retry_max_delay_ms,
)


def calculate_backoff_delay(attempt: int, policy: RetryPolicy = DEFAULT_RETRY_POLICY) -> int:
    """Delay in ms before retrying after the given zero-based attempt."""
    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    if policy.initial_delay_ms == 0:
        return 0
    # Cap before exponentiating past the ceiling to keep the float finite.
    delay = float(policy.initial_delay_ms)
    for _ in range(attempt):
        delay *= policy.backoff_multiplier
        if delay >= policy.max_delay_ms:
            return policy.max_delay_ms
    return int(min(delay, policy.max_delay_ms))


async def sleep_ms(delay_ms: float) -> None:
    """Sleep for the given number of milliseconds."""
    await asyncio.sleep(max(delay_ms, 0) / 1000)


async def execute_with_retry(
    action: Callable[[], Awaitable[_ResultT]],
    policy: RetryPolicy,
    name: str,
    *,
    on_retry: RetryCallback | None = None,
    sleep: SleepFn = sleep_ms,
) -> _ResultT:
    """Run ``action`` until it succeeds, fails terminally, or runs out of attempts.

    Non-retryable failures are re-raised immediately. A provider retry hint
    (``retry_after_ms`` on the error) replaces the computed backoff delay.
    ``on_retry`` is awaited before each backoff sleep so callers can persist
    retry progress while the step is still in flight.
    """
    for attempt in range(policy.max_attempts):
        try:
            return await action()
        except Exception as exc:
            error_type = classify_error(exc)
            attempts_left = attempt < policy.max_attempts - 1
            if not is_retryable_error(exc) or not attempts_left:
                logger.warning(
                    "Operation failed without further retries",
                    extra={
                        "operation": name,
                        "attempt": attempt + 1,
                        "max_attempts": policy.max_attempts,
                        "error_type": error_type,
                        "retryable": error_type not in TERMINAL_ERROR_TYPES,
                    },
                )
                raise

            delay_ms = get_retry_after_ms(exc) or calculate_backoff_delay(attempt, policy)
            logger.warning(
                "Retryable error; retrying operation",
                extra={
                    "operation": name,
                    "attempt": attempt + 1,
                    "max_attempts": policy.max_attempts,
                    "error_type": error_type,
                    "delay_ms": delay_ms,
                },
            )
            if on_retry is not None:
                await on_retry(
                    RetryAttempt(
                        operation_name=name,
                        attempt_number=attempt + 1,
                        max_attempts=policy.max_attempts,
                        error=exc,
                        error_type=error_type,
                        delay_ms=delay_ms,
                    )
                )
            await sleep(delay_ms)

    raise RuntimeError(f"Retry loop exhausted unexpectedly for operation: {name}")
