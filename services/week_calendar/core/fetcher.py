"""
Calendar fetching for the Week Calendar service.

``CalendarFetcher`` builds the upstream request for a fixed calendar and a
window around the current moment, validates the envelope, and normalizes
each record independently. One malformed record is logged and skipped; it
never fails the batch.
"""

from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from services.common.logging_config import get_logger
from services.week_calendar.core.clients import GoogleCalendarClient
from services.week_calendar.core.exceptions import CalendarError, CalendarErrorCode
from services.week_calendar.core.normalizer import normalize_event
from services.week_calendar.core.sanitizer import sanitize
from services.week_calendar.core.timezones import resolve_timezone
from services.week_calendar.core.validation import (
    ValidationFailure,
    ValidationFailureKind,
    validate_calendar_response,
)
from services.week_calendar.schemas import (
    CalendarConfig,
    CalendarData,
    CalendarMetadata,
    GoogleCalendarResponse,
    NormalizedEvent,
)

logger = get_logger(__name__)

CACHE_TAG_PREFIX = "calendar-events"
DEFAULT_CALENDAR_NAME = "Calendar"


def calendar_cache_tag(calendar_id: str) -> str:
    """Deterministic per-calendar identifier for callers layering a cache on top."""
    return f"{CACHE_TAG_PREFIX}:{calendar_id}"


def format_rfc3339(value: datetime) -> str:
    """Format an instant as UTC RFC 3339 with millisecond precision."""
    utc_value = value.astimezone(timezone.utc)
    return utc_value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CalendarFetcher:
    """
    Fetches and normalizes the events of one configured calendar.

    The fetcher never reads the environment itself: the API key comes from
    the explicit argument or from the injected ``CalendarConfig``.
    """

    def __init__(
        self,
        config: CalendarConfig,
        client: Optional[GoogleCalendarClient] = None,
        tz: Optional[tzinfo] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            config: Calendar id, default credential and request limits
            client: Optional long-lived client; a short-lived one is opened
                per fetch when omitted
            tz: Zone used to anchor all-day events; host zone when omitted
            clock: Returns the current moment; used to center the window
        """
        self.config = config
        self._client = client
        self._tz = tz
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._owns_client = False

    async def __aenter__(self) -> "CalendarFetcher":
        """Open a client shared by every fetch until exit"""
        if self._client is None:
            self._client = GoogleCalendarClient(timeout=self.config.timeout)
            await self._client.__aenter__()
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None
            self._owns_client = False

    @property
    def calendar_id(self) -> str:
        return self.config.calendar_id

    @property
    def cache_tag(self) -> str:
        return calendar_cache_tag(self.config.calendar_id)

    def time_window(self) -> Tuple[datetime, datetime]:
        """Fetch window: ``window_months`` calendar months on each side of now."""
        now = self._clock()
        months = relativedelta(months=self.config.window_months)
        return now - months, now + months

    async def fetch_events(
        self, api_key: Optional[str] = None
    ) -> List[NormalizedEvent]:
        """
        Fetch the calendar's events in the configured window.

        Args:
            api_key: Credential overriding the configured one

        Returns:
            Normalized events in upstream order; malformed records are skipped

        Raises:
            CalendarError: For any whole-request failure
        """
        data = await self.fetch_calendar_data(api_key)
        return data.events

    async def fetch_calendar_data(self, api_key: Optional[str] = None) -> CalendarData:
        """
        Fetch events together with calendar metadata.

        Args:
            api_key: Credential overriding the configured one

        Returns:
            CalendarData with normalized events and the calendar's name

        Raises:
            CalendarError: MISSING_API_KEY before any request when no key is
                available; otherwise the code matching the failure
        """
        key = api_key or self.config.api_key
        if not key:
            raise CalendarError(
                "Google Calendar API key is required. "
                "Set GOOGLE_CALENDAR_API_KEY environment variable.",
                CalendarErrorCode.MISSING_API_KEY,
            )

        try:
            if self._client is not None:
                payload = await self._request_events(self._client, key)
            else:
                async with GoogleCalendarClient(timeout=self.config.timeout) as client:
                    payload = await self._request_events(client, key)
            return self._process_payload(payload)
        except CalendarError:
            raise
        except Exception as e:
            logger.exception(
                "Unexpected error while fetching calendar",
                calendar_id=self.calendar_id,
            )
            raise CalendarError(
                f"Unexpected error: {e}",
                CalendarErrorCode.UNKNOWN_ERROR,
                original_error=e,
            ) from e

    async def _request_events(self, client: GoogleCalendarClient, api_key: str) -> Any:
        time_min, time_max = self.time_window()
        return await client.list_events(
            calendar_id=self.calendar_id,
            api_key=api_key,
            time_min=format_rfc3339(time_min),
            time_max=format_rfc3339(time_max),
            max_results=self.config.max_results,
        )

    def _process_payload(self, payload: Any) -> CalendarData:
        result = validate_calendar_response(payload)
        if isinstance(result, ValidationFailure):
            raise self._failure_to_error(result)

        response = result.response
        events = self._normalize_records(response)
        metadata = CalendarMetadata(
            name=response.summary or DEFAULT_CALENDAR_NAME,
            description=sanitize(response.description) or None,
            time_zone=response.time_zone or "UTC",
        )
        logger.info(
            "Fetched calendar events",
            calendar_id=self.calendar_id,
            received=len(response.items),
            normalized=len(events),
        )
        return CalendarData(events=events, metadata=metadata)

    def _normalize_records(
        self, response: GoogleCalendarResponse
    ) -> List[NormalizedEvent]:
        zone = self._tz or resolve_timezone()
        events: List[NormalizedEvent] = []
        for record in response.items:
            try:
                events.append(normalize_event(record, self.calendar_id, zone))
            except CalendarError as e:
                logger.warning(
                    f"Failed to transform event {record.id}",
                    event_id=record.id,
                    error=e.message,
                    code=e.code.value,
                )
        return events

    def _failure_to_error(self, failure: ValidationFailure) -> CalendarError:
        if failure.kind == ValidationFailureKind.UPSTREAM_ERROR:
            code = (
                CalendarErrorCode.AUTH_ERROR
                if failure.code == 401
                else CalendarErrorCode.UNKNOWN_ERROR
            )
            return CalendarError(
                f"Google Calendar API error: {failure.message}",
                code,
                details={"upstream_code": failure.code},
            )
        return CalendarError(
            f"Invalid API response format: {failure.message}",
            CalendarErrorCode.INVALID_DATA,
            original_error=failure.cause,
        )
