from typing import Any, Dict
from urllib.parse import quote

import httpx

from services.common.logging_config import get_logger
from services.week_calendar.core.clients.base import BaseAPIClient
from services.week_calendar.core.exceptions import CalendarError, CalendarErrorCode

logger = get_logger(__name__)

GOOGLE_API_BASE_URL = "https://www.googleapis.com"
CALENDAR_EVENTS_ENDPOINT = "/calendar/v3/calendars/{calendar_id}/events"
USER_AGENT = "week-calendar/0.1.0"


class GoogleCalendarClient(BaseAPIClient):
    """
    Google Calendar API client for public calendars read with an API key.

    The key is passed per request so one client can serve several
    credentials over its lifetime.
    """

    def _get_default_headers(self) -> Dict[str, str]:
        """Get default headers for Google API requests"""
        return {
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

    def _get_base_url(self) -> str:
        """Get base URL for Google APIs"""
        return GOOGLE_API_BASE_URL

    def _translate_status_error(
        self, response: httpx.Response, context: Dict[str, Any]
    ) -> CalendarError:
        """
        Map a non-success Google response to the calendar error taxonomy.

        Args:
            response: The failed response
            context: Request context; ``calendar_id`` is quoted for 404s

        Returns:
            CalendarError with a code chosen by HTTP status
        """
        status_code = response.status_code
        if status_code == 401:
            return CalendarError(
                "Invalid API key or insufficient permissions",
                CalendarErrorCode.AUTH_ERROR,
            )
        if status_code == 403:
            return CalendarError(
                "Access forbidden. Check calendar permissions and API key.",
                CalendarErrorCode.PERMISSION_ERROR,
            )
        if status_code == 404:
            calendar_id = context.get("calendar_id", "<unknown>")
            return CalendarError(
                f"Calendar not found: {calendar_id}",
                CalendarErrorCode.INVALID_CALENDAR_ID,
            )
        return CalendarError(
            f"HTTP {status_code}: {response.reason_phrase}",
            CalendarErrorCode.NETWORK_ERROR,
        )

    async def list_events(
        self,
        calendar_id: str,
        api_key: str,
        time_min: str,
        time_max: str,
        max_results: int = 1000,
    ) -> Any:
        """
        List events of a calendar with recurring events expanded.

        Args:
            calendar_id: Google calendar id
            api_key: API key for the request
            time_min: RFC 3339 lower bound (inclusive)
            time_max: RFC 3339 upper bound (exclusive)
            max_results: Maximum number of events returned

        Returns:
            Decoded JSON body

        Raises:
            CalendarError: For HTTP failures, or INVALID_DATA when the body is not JSON
        """
        params: Dict[str, Any] = {
            "key": api_key,
            "singleEvents": "true",
            "orderBy": "startTime",
            "timeMin": time_min,
            "timeMax": time_max,
            "maxResults": str(max_results),
        }
        endpoint = CALENDAR_EVENTS_ENDPOINT.format(
            calendar_id=quote(calendar_id, safe="")
        )
        logger.info("Listing calendar events", calendar_id=calendar_id)
        response = await self.get(
            endpoint, params=params, error_context={"calendar_id": calendar_id}
        )

        try:
            return response.json()
        except ValueError as e:
            raise CalendarError(
                "Invalid API response format: body is not valid JSON",
                CalendarErrorCode.INVALID_DATA,
                original_error=e,
            ) from e
