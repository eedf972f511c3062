"""
Unit tests for the calendar fetcher and the Google Calendar client.

HTTP traffic is mocked with respx; no test reaches the real API.
"""

from datetime import datetime
from unittest.mock import AsyncMock

import httpx
import pytest
import pytz
import respx
from structlog.testing import capture_logs

from services.week_calendar.core.clients import GoogleCalendarClient
from services.week_calendar.core.exceptions import CalendarError, CalendarErrorCode
from services.week_calendar.core.fetcher import (
    CalendarFetcher,
    calendar_cache_tag,
    format_rfc3339,
)
from services.week_calendar.schemas import CalendarConfig
from services.week_calendar.tests.factories import (
    TEST_API_KEY,
    TEST_CALENDAR_ID,
    make_payload,
    make_record,
)

EVENTS_URL_PATTERN = r"https://www\.googleapis\.com/calendar/v3/calendars/.+/events"
FIXED_NOW = datetime(2024, 1, 15, 12, 0, tzinfo=pytz.utc)


def make_fetcher(api_key=TEST_API_KEY, **kwargs):
    config = CalendarConfig(calendar_id=TEST_CALENDAR_ID, api_key=api_key)
    kwargs.setdefault("tz", pytz.utc)
    kwargs.setdefault("clock", lambda: FIXED_NOW)
    return CalendarFetcher(config, **kwargs)


@pytest.fixture
def mock_api():
    with respx.mock(assert_all_called=False) as router:
        yield router


def route_events(router, response):
    route = router.get(url__regex=EVENTS_URL_PATTERN)
    if isinstance(response, Exception):
        route.side_effect = response
    else:
        route.return_value = response
    return route


class TestRequestShape:
    """Tests for the outgoing events-listing request."""

    @pytest.mark.asyncio
    async def test_query_parameters_and_headers(self, mock_api):
        route = route_events(mock_api, httpx.Response(200, json=make_payload()))

        await make_fetcher().fetch_events()

        assert route.call_count == 1
        request = route.calls.last.request
        params = request.url.params
        assert params["key"] == TEST_API_KEY
        assert params["singleEvents"] == "true"
        assert params["orderBy"] == "startTime"
        assert params["timeMin"] == "2023-07-15T12:00:00.000Z"
        assert params["timeMax"] == "2024-07-15T12:00:00.000Z"
        assert params["maxResults"] == "1000"
        assert request.headers["Accept"] == "application/json"
        assert "week-calendar" in request.headers["User-Agent"]
        assert "team%40group.calendar.google.com" in str(request.url)

    @pytest.mark.asyncio
    async def test_explicit_key_overrides_configured_key(self, mock_api):
        route = route_events(mock_api, httpx.Response(200, json=make_payload()))

        await make_fetcher(api_key="configured-key").fetch_events(api_key="override")

        assert route.calls.last.request.url.params["key"] == "override"

    def test_window_uses_calendar_months(self):
        fetcher = make_fetcher(clock=lambda: datetime(2024, 8, 31, tzinfo=pytz.utc))

        time_min, time_max = fetcher.time_window()

        assert time_min == datetime(2024, 2, 29, tzinfo=pytz.utc)
        assert time_max == datetime(2025, 2, 28, tzinfo=pytz.utc)

    def test_format_rfc3339_converts_to_utc(self, new_york):
        moment = new_york.localize(datetime(2024, 1, 15, 7, 30))
        assert format_rfc3339(moment) == "2024-01-15T12:30:00.000Z"


class TestFetchSuccess:
    """Tests for successful fetches."""

    @pytest.mark.asyncio
    async def test_events_are_normalized_in_upstream_order(self, mock_api):
        payload = make_payload(
            make_record("b", start={"dateTime": "2024-01-16T09:00:00Z"}),
            make_record("a", start={"dateTime": "2024-01-15T09:00:00Z"}),
        )
        route_events(mock_api, httpx.Response(200, json=payload))

        events = await make_fetcher().fetch_events()

        assert [event.id for event in events] == ["b", "a"]
        assert all(event.calendar_id == TEST_CALENDAR_ID for event in events)

    @pytest.mark.asyncio
    async def test_malformed_record_is_skipped_and_logged(self, mock_api):
        payload = make_payload(
            make_record("good_1"),
            make_record("broken", start={"dateTime": "garbage"}),
            make_record("good_2"),
        )
        route_events(mock_api, httpx.Response(200, json=payload))

        with capture_logs() as logs:
            events = await make_fetcher().fetch_events()

        assert [event.id for event in events] == ["good_1", "good_2"]
        warnings = [entry for entry in logs if entry["log_level"] == "warning"]
        assert len(warnings) == 1
        assert warnings[0]["event_id"] == "broken"
        assert warnings[0]["code"] == "INVALID_DATA"

    @pytest.mark.asyncio
    async def test_calendar_data_includes_metadata(self, mock_api):
        payload = make_payload(
            make_record(), summary="NovelTea Events", timeZone="Europe/Paris"
        )
        route_events(mock_api, httpx.Response(200, json=payload))

        data = await make_fetcher().fetch_calendar_data()

        assert len(data.events) == 1
        assert data.metadata.name == "NovelTea Events"
        assert data.metadata.time_zone == "Europe/Paris"
        assert data.metadata.description is None

    @pytest.mark.asyncio
    async def test_calendar_description_is_separate_from_name(self, mock_api):
        payload = make_payload(
            summary="NovelTea Events",
            description="Tastings and <b>workshops</b><script>x()</script>",
        )
        route_events(mock_api, httpx.Response(200, json=payload))

        data = await make_fetcher().fetch_calendar_data()

        assert data.metadata.name == "NovelTea Events"
        assert data.metadata.description == "Tastings and <b>workshops</b>"

    @pytest.mark.asyncio
    async def test_calendar_name_defaults(self, mock_api):
        route_events(mock_api, httpx.Response(200, json=make_payload()))

        data = await make_fetcher().fetch_calendar_data()

        assert data.metadata.name == "Calendar"
        assert data.events == []

    @pytest.mark.asyncio
    async def test_injected_client_is_reused_and_left_open(self, mock_api):
        route_events(mock_api, httpx.Response(200, json=make_payload()))

        async with httpx.AsyncClient() as http_client:
            client = GoogleCalendarClient(http_client=http_client)
            fetcher = make_fetcher(client=client)
            await fetcher.fetch_events()
            await fetcher.fetch_events()

            assert not http_client.is_closed
            assert client.http_client is http_client

    @pytest.mark.asyncio
    async def test_context_manager_owns_client(self, mock_api):
        route = route_events(mock_api, httpx.Response(200, json=make_payload()))

        fetcher = make_fetcher()
        async with fetcher:
            await fetcher.fetch_events()
            await fetcher.fetch_events()
            assert fetcher._client is not None

        assert fetcher._client is None
        assert route.call_count == 2


class TestFetchFailures:
    """Tests for mapping whole-request failures to error codes."""

    @pytest.mark.asyncio
    async def test_missing_key_fails_before_network(self, mock_api):
        route = route_events(mock_api, httpx.Response(200, json=make_payload()))

        with pytest.raises(CalendarError) as exc_info:
            await make_fetcher(api_key=None).fetch_events()

        assert exc_info.value.code == CalendarErrorCode.MISSING_API_KEY
        assert "GOOGLE_CALENDAR_API_KEY" in exc_info.value.message
        assert not route.called

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code,expected_code",
        [
            (401, CalendarErrorCode.AUTH_ERROR),
            (403, CalendarErrorCode.PERMISSION_ERROR),
            (404, CalendarErrorCode.INVALID_CALENDAR_ID),
            (500, CalendarErrorCode.NETWORK_ERROR),
            (503, CalendarErrorCode.NETWORK_ERROR),
        ],
    )
    async def test_http_status_mapping(self, mock_api, status_code, expected_code):
        route_events(mock_api, httpx.Response(status_code, text="upstream says no"))

        with pytest.raises(CalendarError) as exc_info:
            await make_fetcher().fetch_events()

        error = exc_info.value
        assert error.code == expected_code
        assert isinstance(error.__cause__, httpx.HTTPStatusError)
        assert error.details["status_code"] == status_code

    @pytest.mark.asyncio
    async def test_not_found_message_names_calendar(self, mock_api):
        route_events(mock_api, httpx.Response(404))

        with pytest.raises(CalendarError) as exc_info:
            await make_fetcher().fetch_events()

        assert exc_info.value.message == f"Calendar not found: {TEST_CALENDAR_ID}"

    @pytest.mark.asyncio
    async def test_server_error_message_includes_status(self, mock_api):
        route_events(mock_api, httpx.Response(500))

        with pytest.raises(CalendarError) as exc_info:
            await make_fetcher().fetch_events()

        assert exc_info.value.message == "HTTP 500: Internal Server Error"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "transport_error",
        [
            httpx.ConnectError("connection refused"),
            httpx.ReadTimeout("read timed out"),
        ],
    )
    async def test_transport_errors_are_network_errors(self, mock_api, transport_error):
        route_events(mock_api, transport_error)

        with pytest.raises(CalendarError) as exc_info:
            await make_fetcher().fetch_events()

        assert exc_info.value.code == CalendarErrorCode.NETWORK_ERROR
        assert isinstance(exc_info.value.original_error, type(transport_error))
        assert isinstance(exc_info.value.__cause__, httpx.TransportError)

    @pytest.mark.asyncio
    async def test_non_json_body_is_invalid_data(self, mock_api):
        route_events(mock_api, httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(CalendarError) as exc_info:
            await make_fetcher().fetch_events()

        assert exc_info.value.code == CalendarErrorCode.INVALID_DATA

    @pytest.mark.asyncio
    async def test_structural_failure_is_invalid_data(self, mock_api):
        route_events(mock_api, httpx.Response(200, json={"kind": "calendar#events"}))

        with pytest.raises(CalendarError) as exc_info:
            await make_fetcher().fetch_events()

        assert exc_info.value.code == CalendarErrorCode.INVALID_DATA
        assert exc_info.value.message.startswith("Invalid API response format")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "upstream_code,expected_code",
        [
            (401, CalendarErrorCode.AUTH_ERROR),
            (500, CalendarErrorCode.UNKNOWN_ERROR),
        ],
    )
    async def test_embedded_error_mapping(self, mock_api, upstream_code, expected_code):
        error = {"code": upstream_code, "message": "Backend Error"}
        payload = make_payload(error=error)
        route_events(mock_api, httpx.Response(200, json=payload))

        with pytest.raises(CalendarError) as exc_info:
            await make_fetcher().fetch_events()

        assert exc_info.value.code == expected_code
        assert exc_info.value.message == "Google Calendar API error: Backend Error"

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_unknown_error(self):
        client = AsyncMock(spec=GoogleCalendarClient)
        boom = RuntimeError("kaboom")
        client.list_events.side_effect = boom

        with pytest.raises(CalendarError) as exc_info:
            await make_fetcher(client=client).fetch_events()

        assert exc_info.value.code == CalendarErrorCode.UNKNOWN_ERROR
        assert exc_info.value.original_error is boom
        assert exc_info.value.__cause__ is boom


class TestCacheTag:
    """Tests for the per-calendar cache identifier."""

    def test_cache_tag_is_deterministic(self):
        assert make_fetcher().cache_tag == f"calendar-events:{TEST_CALENDAR_ID}"
        assert calendar_cache_tag("a@b.c") == calendar_cache_tag("a@b.c")
        assert calendar_cache_tag("a@b.c") != calendar_cache_tag("d@e.f")
