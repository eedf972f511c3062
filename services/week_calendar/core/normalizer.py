"""
Event normalization for the Week Calendar service.

Converts validated Google Calendar records into immutable ``NormalizedEvent``
instances. All-day events are anchored at local noon so that consumers
behind UTC do not see them shift onto the previous day.
"""

from datetime import datetime, tzinfo
from typing import List, Optional
from urllib.parse import quote

from dateutil import parser as date_parser

from services.week_calendar.core.exceptions import CalendarError, CalendarErrorCode
from services.week_calendar.core.sanitizer import sanitize
from services.week_calendar.core.timezones import attach_timezone, resolve_timezone
from services.week_calendar.schemas import (
    UNTITLED_EVENT,
    CalendarSubscription,
    EventAttendee,
    EventDateTime,
    GoogleCalendarEvent,
    NormalizedEvent,
)

ICAL_URL_TEMPLATE = (
    "https://calendar.google.com/calendar/ical/{calendar_id}/public/basic.ics"
)
GOOGLE_SUBSCRIBE_URL_TEMPLATE = (
    "https://calendar.google.com/calendar/render?cid={calendar_id}"
)
ALL_DAY_ANCHOR_HOUR = 12


def build_ical_url(calendar_id: str) -> str:
    """Derive the public iCal feed URL for a calendar."""
    return ICAL_URL_TEMPLATE.format(calendar_id=calendar_id)


def build_subscription_urls(calendar_id: str) -> CalendarSubscription:
    """Build Google, iCal and Apple subscription links for a calendar."""
    ical_url = build_ical_url(calendar_id)
    return CalendarSubscription(
        google=GOOGLE_SUBSCRIBE_URL_TEMPLATE.format(
            calendar_id=quote(calendar_id, safe="")
        ),
        ical=ical_url,
        apple="webcal://" + ical_url.split("://", 1)[1],
    )


def normalize_event(
    record: GoogleCalendarEvent,
    calendar_id: str,
    tz: Optional[tzinfo] = None,
) -> NormalizedEvent:
    """
    Convert a validated Google Calendar record into a ``NormalizedEvent``.

    Args:
        record: Record that already passed schema validation
        calendar_id: Id of the calendar the record was fetched from
        tz: Zone used for all-day anchoring and naive timestamps;
            defaults to the host's local zone

    Returns:
        NormalizedEvent: Immutable internal event

    Raises:
        CalendarError: INVALID_DATA when start or end is not a valid instant
    """
    zone = tz or resolve_timezone()
    is_all_day = not record.start.date_time

    if is_all_day:
        start_time = _parse_all_day(record.start, zone, record.id, "start")
        end_time = _parse_all_day(record.end, zone, record.id, "end")
    else:
        start_time = _parse_timed(record.start, zone, record.id, "start")
        end_time = _parse_timed(record.end, zone, record.id, "end")

    title = sanitize(record.summary).strip() or UNTITLED_EVENT

    return NormalizedEvent(
        id=record.id,
        title=title,
        description=sanitize(record.description),
        location=sanitize(record.location),
        start_time=start_time,
        end_time=end_time,
        is_all_day=is_all_day,
        status=record.status or "confirmed",
        url=record.html_link,
        calendar_id=calendar_id,
        ical_url=build_ical_url(calendar_id),
        attendees=_map_attendees(record),
    )


def _parse_all_day(
    spec: EventDateTime, zone: tzinfo, event_id: str, boundary: str
) -> datetime:
    """Build local noon from a ``YYYY-MM-DD`` string, component by component."""
    date_str = spec.date
    if not date_str:
        raise CalendarError(
            f"Invalid date format in event {event_id}: missing all-day {boundary} date",
            CalendarErrorCode.INVALID_DATA,
        )
    try:
        year, month, day = (int(part) for part in date_str.strip().split("-"))
        return attach_timezone(datetime(year, month, day, ALL_DAY_ANCHOR_HOUR), zone)
    except ValueError as e:
        raise CalendarError(
            f"Invalid date format in event {event_id}: {boundary} date {date_str!r}",
            CalendarErrorCode.INVALID_DATA,
            original_error=e,
        ) from e


def _parse_timed(
    spec: EventDateTime, zone: tzinfo, event_id: str, boundary: str
) -> datetime:
    value = spec.date_time
    if not value:
        raise CalendarError(
            f"Invalid date format in event {event_id}: missing {boundary} dateTime",
            CalendarErrorCode.INVALID_DATA,
        )
    try:
        parsed = date_parser.isoparse(value)
    except (ValueError, OverflowError) as e:
        raise CalendarError(
            f"Invalid date format in event {event_id}: {boundary} {value!r}",
            CalendarErrorCode.INVALID_DATA,
            original_error=e,
        ) from e

    # RFC 3339 requires an offset; treat a bare local time as the display zone
    if parsed.tzinfo is None:
        parsed = attach_timezone(parsed, zone)
    return parsed


def _map_attendees(record: GoogleCalendarEvent) -> Optional[List[EventAttendee]]:
    if record.attendees is None:
        return None
    return [
        EventAttendee(
            email=attendee.email,
            name=attendee.display_name,
            status=attendee.response_status or "needsAction",
        )
        for attendee in record.attendees
    ]
