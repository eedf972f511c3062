"""
Unit tests for Google Calendar event normalization.
"""

from datetime import date, datetime, timedelta

import pytest
import pytz

from services.week_calendar.core.exceptions import CalendarError, CalendarErrorCode
from services.week_calendar.core.normalizer import (
    build_ical_url,
    build_subscription_urls,
    normalize_event,
)
from services.week_calendar.schemas import GoogleCalendarEvent
from services.week_calendar.tests.factories import TEST_CALENDAR_ID, make_record


def _normalize(tz=pytz.utc, **record_fields):
    record = GoogleCalendarEvent.model_validate(make_record(**record_fields))
    return normalize_event(record, TEST_CALENDAR_ID, tz)


class TestTimedEvents:
    """Tests for events with precise start and end instants."""

    def test_basic_fields(self):
        event = _normalize(
            description="Quarterly review",
            location="Room 4",
            status="tentative",
        )

        assert event.id == "evt_1"
        assert event.title == "Team Sync"
        assert event.description == "Quarterly review"
        assert event.location == "Room 4"
        assert event.status == "tentative"
        assert event.is_all_day is False
        assert event.url == "https://www.google.com/calendar/event?eid=evt_1"
        assert event.calendar_id == TEST_CALENDAR_ID
        assert event.ical_url == build_ical_url(TEST_CALENDAR_ID)

    def test_instants_are_parsed_with_offsets(self):
        event = _normalize(
            start={"dateTime": "2024-01-15T10:00:00-05:00"},
            end={"dateTime": "2024-01-15T11:30:00-05:00"},
        )

        assert event.start_time == datetime(2024, 1, 15, 15, 0, tzinfo=pytz.utc)
        assert event.end_time - event.start_time == timedelta(minutes=90)

    def test_naive_instant_uses_display_zone(self, new_york):
        event = _normalize(
            tz=new_york,
            start={"dateTime": "2024-07-04T09:00:00"},
            end={"dateTime": "2024-07-04T10:00:00"},
        )

        assert event.start_time.tzinfo is not None
        assert event.start_time.utcoffset() == timedelta(hours=-4)
        assert event.start_time.hour == 9

    def test_missing_optional_text_defaults_to_empty(self):
        event = _normalize()

        assert event.description == ""
        assert event.location == ""
        assert event.attendees is None

    def test_invalid_instant_raises_invalid_data(self):
        with pytest.raises(CalendarError) as exc_info:
            _normalize(start={"dateTime": "not-a-date"})

        assert exc_info.value.code == CalendarErrorCode.INVALID_DATA
        assert "evt_1" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_missing_boundaries_raise_invalid_data(self):
        with pytest.raises(CalendarError) as exc_info:
            _normalize(start={}, end={})

        assert exc_info.value.code == CalendarErrorCode.INVALID_DATA


class TestAllDayEvents:
    """Tests for date-only events anchored at local noon."""

    def test_all_day_is_detected_and_anchored_at_noon(self, new_york):
        event = _normalize(
            tz=new_york,
            start={"date": "2024-01-15"},
            end={"date": "2024-01-16"},
        )

        assert event.is_all_day is True
        assert event.start_time.date() == date(2024, 1, 15)
        assert event.start_time.hour == 12
        assert event.start_time.utcoffset() == timedelta(hours=-5)
        assert event.end_time.date() == date(2024, 1, 16)
        assert event.end_time.hour == 12

    def test_all_day_date_is_stable_in_zone_behind_utc(self):
        """Noon anchoring keeps the calendar date in far-west zones."""
        honolulu = pytz.timezone("Pacific/Honolulu")
        event = _normalize(
            tz=honolulu,
            start={"date": "2024-03-01"},
            end={"date": "2024-03-02"},
        )

        assert event.start_time.astimezone(honolulu).date() == date(2024, 3, 1)

    def test_all_day_across_dst_start_keeps_noon(self, new_york):
        event = _normalize(
            tz=new_york,
            start={"date": "2024-03-10"},
            end={"date": "2024-03-11"},
        )

        assert event.start_time.hour == 12
        assert event.start_time.utcoffset() == timedelta(hours=-4)

    @pytest.mark.parametrize("bad_date", ["2024-13-45", "2024/01/15", "yesterday"])
    def test_invalid_plain_date_raises_invalid_data(self, bad_date):
        with pytest.raises(CalendarError) as exc_info:
            _normalize(start={"date": bad_date}, end={"date": "2024-01-16"})

        assert exc_info.value.code == CalendarErrorCode.INVALID_DATA


class TestTextFields:
    """Tests for title defaulting and sanitization."""

    def test_missing_summary_defaults_to_untitled(self):
        assert _normalize(summary=None).title == "Untitled Event"

    def test_summary_that_sanitizes_to_nothing_is_untitled(self):
        assert _normalize(summary="<script>x()</script>").title == "Untitled Event"

    def test_text_fields_are_sanitized(self):
        event = _normalize(
            summary="<b>Launch</b>",
            description=(
                'Notes<script>steal()</script> <a href="javascript:x()">here</a>'
            ),
            location="<div>Main hall</div>",
        )

        assert event.title == "<b>Launch</b>"
        assert event.description == "Notes <a>here</a>"
        assert event.location == "Main hall"


class TestAttendees:
    """Tests for attendee mapping."""

    def test_attendees_are_mapped(self):
        event = _normalize(
            attendees=[
                {
                    "email": "ann@example.com",
                    "displayName": "Ann",
                    "responseStatus": "accepted",
                },
                {"email": "bob@example.com"},
            ]
        )

        assert event.attendees is not None
        assert [(a.email, a.name, a.status) for a in event.attendees] == [
            ("ann@example.com", "Ann", "accepted"),
            ("bob@example.com", None, "needsAction"),
        ]

    def test_empty_attendee_list_is_kept(self):
        assert _normalize(attendees=[]).attendees == []


class TestSubscriptionUrls:
    """Tests for calendar subscription links."""

    def test_urls_are_derived_from_calendar_id(self):
        urls = build_subscription_urls(TEST_CALENDAR_ID)

        assert urls.ical == (
            "https://calendar.google.com/calendar/ical/"
            "team@group.calendar.google.com/public/basic.ics"
        )
        assert urls.apple == (
            "webcal://calendar.google.com/calendar/ical/"
            "team@group.calendar.google.com/public/basic.ics"
        )
        assert urls.google == (
            "https://calendar.google.com/calendar/render"
            "?cid=team%40group.calendar.google.com"
        )
