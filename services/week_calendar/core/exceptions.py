"""
Error taxonomy for the Week Calendar service.

Every failure that crosses a component boundary is a ``CalendarError``
carrying one of a closed set of codes. Callers branch on ``error.code``
rather than on exception subclasses, so presentation code can map each
code to its own message and remediation hint.
"""

from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


class CalendarErrorCode(str, Enum):
    """Closed set of calendar error codes."""

    MISSING_API_KEY = "MISSING_API_KEY"  # No credential supplied or configured
    INVALID_CALENDAR_ID = "INVALID_CALENDAR_ID"  # HTTP 404 - calendar not found
    AUTH_ERROR = "AUTH_ERROR"  # HTTP 401 - bad credential
    PERMISSION_ERROR = "PERMISSION_ERROR"  # HTTP 403 - calendar not shared
    NETWORK_ERROR = "NETWORK_ERROR"  # Transport failure or unexpected status
    INVALID_DATA = "INVALID_DATA"  # Payload or record failed validation
    UNKNOWN_ERROR = "UNKNOWN_ERROR"  # Anything else


# Codes that describe transient upstream conditions
TRANSIENT_ERROR_CODES: FrozenSet[CalendarErrorCode] = frozenset(
    {CalendarErrorCode.NETWORK_ERROR, CalendarErrorCode.UNKNOWN_ERROR}
)


class CalendarError(Exception):
    """Base exception for all calendar fetch and normalization failures."""

    def __init__(
        self,
        message: str,
        code: CalendarErrorCode = CalendarErrorCode.UNKNOWN_ERROR,
        original_error: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            code: Taxonomy member describing the failure
            original_error: Lower-level exception this error wraps
            details: Additional error details for logging
        """
        super().__init__(message)
        self.message = message
        self.code = CalendarErrorCode(code)
        self.original_error = original_error
        self.details = details or {}
        if original_error is not None and self.__cause__ is None:
            self.__cause__ = original_error

    @property
    def is_retryable(self) -> bool:
        """Whether the failure is worth retrying by default."""
        return self.code in TRANSIENT_ERROR_CODES

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for structured logs and presentation layers."""
        payload: Dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        if self.original_error is not None:
            payload["cause"] = (
                f"{type(self.original_error).__name__}: {self.original_error}"
            )
        return payload

    def __repr__(self) -> str:
        return f"CalendarError(code={self.code.value!r}, message={self.message!r})"


class CircuitOpenError(Exception):
    """Raised when a circuit breaker rejects a call without invoking it."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            retry_after: Seconds until the breaker will admit a trial call
        """
        super().__init__(message)
        self.message = message
        self.retry_after = retry_after
