"""
Circuit breaker guarding the upstream calendar API.

States:
- CLOSED: calls pass through; each failure increments a counter
- OPEN: calls are rejected with ``CircuitOpenError`` without being invoked
- HALF_OPEN: one trial call is made after the recovery timeout; other calls
  are rejected until it finishes

Transitions:
- CLOSED -> OPEN: after ``failure_threshold`` failures
- OPEN -> HALF_OPEN: on the first call after ``recovery_timeout`` seconds
- HALF_OPEN -> CLOSED: when the trial call succeeds
- HALF_OPEN -> OPEN: when the trial call fails; the recovery timer restarts
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from services.common.logging_config import get_logger
from services.week_calendar.core.exceptions import CircuitOpenError

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class CircuitSnapshot:
    """Point-in-time view of a breaker, safe to hand to callers."""

    state: CircuitState
    failure_count: int
    last_failure_time: Optional[float]


class CircuitBreaker:
    """Failure-counting breaker around an async operation."""

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the circuit breaker.

        Args:
            failure_threshold: Failures that trip the breaker
            recovery_timeout: Seconds an open breaker waits before a trial call
            clock: Monotonic time source in seconds
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None
        self._trial_in_flight = False
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    def _rejection(self) -> CircuitOpenError:
        retry_after = None
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            retry_after = max(
                0.0, self.recovery_timeout - (self._clock() - self._last_failure_time)
            )
        return CircuitOpenError(
            f"Circuit breaker is {self._state.value}. "
            "Service is temporarily unavailable.",
            retry_after=retry_after,
        )

    def _recovery_elapsed(self) -> bool:
        return (
            self._last_failure_time is not None
            and self._clock() - self._last_failure_time >= self.recovery_timeout
        )

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``operation`` through the breaker.

        Raises:
            CircuitOpenError: If the breaker is open and still cooling down, or
                half-open with its trial call still running
            Exception: Whatever the operation raised
        """
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN and self._trial_in_flight:
                raise self._rejection()
            if self._state == CircuitState.OPEN:
                if not self._recovery_elapsed():
                    raise self._rejection()
                self._state = CircuitState.HALF_OPEN
                self._trial_in_flight = True
                logger.info("Circuit breaker half-open, admitting trial call")

        # The operation runs outside the lock so closed-state calls stay concurrent
        try:
            result = await operation()
        except asyncio.CancelledError:
            await self._abandon_trial()
            raise
        except Exception:
            await self._record_failure()
            raise

        await self._record_success()
        return result

    async def _abandon_trial(self) -> None:
        """Reopen after a cancelled trial so the next call becomes the trial."""
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
            self._trial_in_flight = False

    async def _record_success(self) -> None:
        async with self._lock:
            if self._state != CircuitState.CLOSED:
                logger.info("Circuit breaker closed after successful call")
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_time = None
            self._trial_in_flight = False

    async def _record_failure(self) -> None:
        async with self._lock:
            self._trial_in_flight = False
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                logger.warning(
                    "Circuit breaker trial call failed, reopening",
                    failure_count=self._failure_count,
                )
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                self._state = CircuitState.OPEN
                logger.warning(
                    "Circuit breaker opened",
                    failure_count=self._failure_count,
                    recovery_timeout=self.recovery_timeout,
                )

    def get_state(self) -> CircuitSnapshot:
        return CircuitSnapshot(
            state=self._state,
            failure_count=self._failure_count,
            last_failure_time=self._last_failure_time,
        )

    def reset(self) -> None:
        """Return to CLOSED with a cleared failure counter."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = None
        self._trial_in_flight = False
