"""
Retry utilities for handling transient calendar failures.

Provides a retry loop with exponential backoff, an explicit ``RetryState``
that callers can thread through successive calls to observe progress, and a
decorator form for async functions.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Awaitable, Callable, FrozenSet, Optional, TypeVar

from services.common.logging_config import get_logger
from services.week_calendar.core.exceptions import (
    TRANSIENT_ERROR_CODES,
    CalendarError,
    CalendarErrorCode,
    CircuitOpenError,
)

logger = get_logger(__name__)

T = TypeVar("T")

# Message fragments marking a non-calendar exception as transient
TRANSIENT_MESSAGE_INDICATORS = ("network", "timeout", "fetch", "connection")


@dataclass(frozen=True)
class RetryConfig:
    """Backoff parameters; delays are in seconds."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    retryable_errors: FrozenSet[CalendarErrorCode] = field(
        default_factory=lambda: TRANSIENT_ERROR_CODES
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


DEFAULT_RETRY_CONFIG = RetryConfig()


@dataclass
class RetryState:
    """Mutable progress of a retry loop, updated in place by ``with_retry``."""

    attempt: int = 0
    last_error: Optional[BaseException] = None
    is_retrying: bool = False
    next_retry_at: Optional[datetime] = None

    def reset(self) -> None:
        self.attempt = 0
        self.last_error = None
        self.is_retrying = False
        self.next_retry_at = None

    def can_retry(self, config: Optional[RetryConfig] = None) -> bool:
        """Whether a manual retry of the last failure is worthwhile."""
        config = config or DEFAULT_RETRY_CONFIG
        return (
            self.attempt < config.max_attempts
            and self.last_error is not None
            and is_retryable_error(self.last_error, config)
        )


def is_retryable_error(
    error: BaseException, config: Optional[RetryConfig] = None
) -> bool:
    """
    Determine if an exception represents a transient failure that should be retried.

    Args:
        error: The exception to check
        config: Supplies the retryable calendar error codes

    Returns:
        True if the error is transient and should be retried
    """
    config = config or DEFAULT_RETRY_CONFIG

    # Breaker rejections are never retried
    if isinstance(error, CircuitOpenError):
        return False
    if isinstance(error, CalendarError):
        return error.code in config.retryable_errors

    error_message = str(error).lower()
    return any(indicator in error_message for indicator in TRANSIENT_MESSAGE_INDICATORS)


def calculate_retry_delay(attempt: int, config: Optional[RetryConfig] = None) -> float:
    """Delay in seconds after failed attempt number ``attempt`` (1-based)."""
    config = config or DEFAULT_RETRY_CONFIG
    delay = config.base_delay * (config.backoff_multiplier ** (attempt - 1))
    return min(delay, config.max_delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    state: Optional[RetryState] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` with exponential backoff.

    Args:
        operation: Zero-argument coroutine function to call
        config: Backoff parameters; defaults when omitted
        state: Progress record updated in place and reset on success
        sleep: Awaitable delay function

    Returns:
        The operation's result

    Raises:
        The first non-retryable error, or the last error once attempts run out
    """
    config = config or DEFAULT_RETRY_CONFIG
    state = state if state is not None else RetryState()

    for attempt in range(1, config.max_attempts + 1):
        state.attempt = attempt
        try:
            result = await operation()
        except Exception as e:
            state.last_error = e

            if not is_retryable_error(e, config):
                logger.info(
                    f"Not retrying non-transient error: {type(e).__name__}",
                    attempt=attempt,
                )
                _finish(state)
                raise

            if attempt == config.max_attempts:
                logger.warning(
                    f"Giving up after {attempt} attempts",
                    error=str(e),
                )
                _finish(state)
                raise

            delay = calculate_retry_delay(attempt, config)
            state.is_retrying = True
            state.next_retry_at = datetime.now(timezone.utc) + timedelta(seconds=delay)
            logger.warning(
                f"Attempt {attempt} failed with {type(e).__name__}: {e}. "
                f"Retrying in {delay:.2f} seconds...",
                attempt=attempt,
                delay=delay,
            )
            await sleep(delay)
        else:
            if attempt > 1:
                logger.info(f"Operation succeeded on attempt {attempt}")
            state.reset()
            return result

    # max_attempts >= 1, so the loop always returns or raises
    raise AssertionError("unreachable")


def _finish(state: RetryState) -> None:
    state.is_retrying = False
    state.next_retry_at = None


def retry_on_failure(
    config: Optional[RetryConfig] = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator for automatic retry of async functions.

    Args:
        config: Backoff parameters; defaults when omitted

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            async def call_func() -> T:
                return await func(*args, **kwargs)

            return await with_retry(call_func, config)

        return wrapper

    return decorator
