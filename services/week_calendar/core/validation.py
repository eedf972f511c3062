"""
Structural validation of the Google Calendar events-listing envelope.

Validation never raises for bad upstream data. It returns either a
``ValidatedResponse`` or a ``ValidationFailure`` tagged with the kind of
problem, and the caller decides how each kind is surfaced.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import ValidationError

from services.common.logging_config import get_logger
from services.week_calendar.schemas import GoogleApiError, GoogleCalendarResponse

logger = get_logger(__name__)


class ValidationFailureKind(str, Enum):
    STRUCTURAL = "structural"  # Payload does not match the envelope contract
    UPSTREAM_ERROR = "upstream_error"  # Well-formed payload carrying an error object


@dataclass(frozen=True)
class ValidatedResponse:
    response: GoogleCalendarResponse

    ok = True


@dataclass(frozen=True)
class ValidationFailure:
    kind: ValidationFailureKind
    message: str
    code: Optional[int] = None
    cause: Optional[Exception] = None

    ok = False


ValidationResult = Union[ValidatedResponse, ValidationFailure]


def validate_calendar_response(raw: Any) -> ValidationResult:
    """
    Validate a decoded JSON payload against the events-listing contract.

    Args:
        raw: Decoded JSON body of the upstream response

    Returns:
        ValidatedResponse with defaults applied, or a tagged ValidationFailure
    """
    try:
        response = GoogleCalendarResponse.model_validate(raw)
    except ValidationError as e:
        # An error object sent instead of data is still an upstream error
        upstream_error = _extract_error_object(raw)
        if upstream_error is not None:
            return ValidationFailure(
                kind=ValidationFailureKind.UPSTREAM_ERROR,
                message=upstream_error.message,
                code=upstream_error.code,
            )
        logger.warning(
            "Calendar response failed structural validation",
            error_count=e.error_count(),
        )
        return ValidationFailure(
            kind=ValidationFailureKind.STRUCTURAL,
            message=_summarize(e),
            cause=e,
        )

    if response.error is not None:
        return ValidationFailure(
            kind=ValidationFailureKind.UPSTREAM_ERROR,
            message=response.error.message,
            code=response.error.code,
        )

    return ValidatedResponse(response=response)


def _summarize(error: ValidationError, limit: int = 3) -> str:
    """Short human-readable summary of the first few pydantic errors."""
    parts = []
    for detail in error.errors()[:limit]:
        location = ".".join(str(part) for part in detail.get("loc", ()))
        parts.append(f"{location or '<root>'}: {detail.get('msg', 'invalid')}")
    remaining = error.error_count() - len(parts)
    if remaining > 0:
        parts.append(f"... and {remaining} more")
    return "; ".join(parts)


def _extract_error_object(raw: Any) -> Optional[GoogleApiError]:
    if not isinstance(raw, dict) or "error" not in raw:
        return None
    try:
        return GoogleApiError.model_validate(raw["error"])
    except ValidationError:
        return None


CALENDAR_ID_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
API_KEY_PREFIX = "AIza"
API_KEY_LENGTH = 39


def validate_calendar_id(calendar_id: Optional[str]) -> bool:
    """Check that a calendar id has the email-like shape Google uses."""
    if not calendar_id or not isinstance(calendar_id, str):
        return False
    return CALENDAR_ID_PATTERN.match(calendar_id) is not None


def validate_api_key(api_key: Optional[str]) -> bool:
    """Check that an API key looks like a Google browser key."""
    if not api_key or not isinstance(api_key, str):
        return False
    return api_key.startswith(API_KEY_PREFIX) and len(api_key) == API_KEY_LENGTH


def api_key_warnings(api_key: Optional[str]) -> List[str]:
    """
    Describe what looks wrong with an API key.

    Intended for startup diagnostics; an empty list means the key passes
    every local check. Google is still the only authority on validity.
    """
    if not api_key:
        return ["No API key configured"]

    warnings = []
    stripped = api_key.strip()
    if api_key != stripped:
        warnings.append("API key has leading or trailing whitespace")
    if not stripped.startswith(API_KEY_PREFIX):
        warnings.append(f"API key does not start with '{API_KEY_PREFIX}'")
    if len(stripped) != API_KEY_LENGTH:
        warnings.append(
            f"API key is {len(stripped)} characters long, "
            f"expected {API_KEY_LENGTH}"
        )
    return warnings
