"""
Week and day bucketing for calendar views.

A week is seven consecutive local days starting on a configurable weekday
(Sunday by default). Week boundaries are local midnights; the exclusive end
is exactly seven elapsed days after the start, so a week that crosses a DST
transition ends at 23:00 or 01:00 local time rather than midnight.
"""

import calendar
import math
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Dict, Iterable, List, Optional, Union

import pytz

from services.week_calendar.core.timezones import (
    attach_timezone,
    now_in,
    resolve_timezone,
)
from services.week_calendar.schemas import DayBucket, NormalizedEvent, WeekView
from services.week_calendar.schemas.events import DAYS_PER_WEEK

SUNDAY = calendar.SUNDAY
WEEK = timedelta(days=DAYS_PER_WEEK)

DateLike = Union[date, datetime]


def _zone_for(reference: Optional[DateLike], tz: Optional[tzinfo]) -> tzinfo:
    if tz is not None:
        return tz
    if isinstance(reference, datetime) and reference.tzinfo is not None:
        return reference.tzinfo
    return resolve_timezone()


def _local_date(value: DateLike, zone: tzinfo) -> date:
    """Calendar date of ``value`` as seen in ``zone``."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(zone).date()
    return value


def _midnight(day: date, zone: tzinfo) -> datetime:
    return attach_timezone(datetime.combine(day, time()), zone)


def week_end(week_start: datetime) -> datetime:
    """Exclusive end of the week: seven elapsed days after ``week_start``."""
    if week_start.tzinfo is None:
        return week_start + WEEK
    return (week_start.astimezone(pytz.utc) + WEEK).astimezone(week_start.tzinfo)


def get_week_start(
    reference: DateLike,
    first_weekday: int = SUNDAY,
    tz: Optional[tzinfo] = None,
) -> datetime:
    """
    Local midnight of the first day of the week containing ``reference``.

    Args:
        reference: Any moment (or date) inside the week
        first_weekday: Python weekday number the week starts on (6 = Sunday)
        tz: Zone defining "local"; defaults to the reference's zone, then the host zone

    Returns:
        Timezone-aware week start
    """
    zone = _zone_for(reference, tz)
    day = _local_date(reference, zone)
    offset = (day.weekday() - first_weekday) % DAYS_PER_WEEK
    return _midnight(day - timedelta(days=offset), zone)


def current_week(
    reference: Optional[DateLike] = None,
    first_weekday: int = SUNDAY,
    tz: Optional[tzinfo] = None,
    now: Optional[datetime] = None,
) -> WeekView:
    """
    Build an empty week view around ``reference``.

    Args:
        reference: Moment inside the wanted week; the current moment when omitted
        first_weekday: Python weekday number the week starts on
        tz: Zone defining local days
        now: Current moment used for ``is_today``; the wall clock when omitted

    Returns:
        WeekView with seven empty day buckets
    """
    zone = _zone_for(reference, tz)
    now = now if now is not None else now_in(zone)
    if reference is None:
        reference = now

    start = get_week_start(reference, first_weekday, zone)
    today = _local_date(now, zone)
    first_day = start.date()

    days = []
    for offset in range(DAYS_PER_WEEK):
        day = first_day + timedelta(days=offset)
        days.append(
            DayBucket(
                date=day,
                day_name=calendar.day_name[day.weekday()],
                is_today=day == today,
            )
        )

    return WeekView(start=start, end=week_end(start), days=days)


def _sorted_by_start(events: Iterable[NormalizedEvent]) -> List[NormalizedEvent]:
    return sorted(events, key=lambda event: event.start_time)


def populate(week: WeekView, events: Iterable[NormalizedEvent]) -> WeekView:
    """
    Place events into the day buckets of ``week``.

    Each event lands in the bucket whose date equals its start's local date;
    events starting outside the week are dropped. Buckets are sorted by start
    time, keeping upstream order for ties. The input view is not modified.
    """
    zone = week.start.tzinfo or resolve_timezone()
    by_date: Dict[date, List[NormalizedEvent]] = {day.date: [] for day in week.days}
    for event in events:
        bucket = by_date.get(_local_date(event.start_time, zone))
        if bucket is not None:
            bucket.append(event)

    days = [
        day.model_copy(update={"events": _sorted_by_start(by_date[day.date])})
        for day in week.days
    ]
    return week.model_copy(update={"days": days})


def next_week(
    reference: DateLike, first_weekday: int = SUNDAY, tz: Optional[tzinfo] = None
) -> datetime:
    """Start of the week after the one containing ``reference``."""
    zone = _zone_for(reference, tz)
    return get_week_start(_local_date(reference, zone) + WEEK, first_weekday, zone)


def previous_week(
    reference: DateLike, first_weekday: int = SUNDAY, tz: Optional[tzinfo] = None
) -> datetime:
    """Start of the week before the one containing ``reference``."""
    zone = _zone_for(reference, tz)
    return get_week_start(_local_date(reference, zone) - WEEK, first_weekday, zone)


def filter_for_week(
    events: Iterable[NormalizedEvent], week_start: datetime
) -> List[NormalizedEvent]:
    """
    Keep events overlapping the week starting at ``week_start``.

    An event overlaps when it starts before the week ends and ends at or
    after the week starts, so an event ending exactly at ``week_start`` is kept.
    """
    end = week_end(week_start)
    return [
        event
        for event in events
        if event.start_time < end and event.end_time >= week_start
    ]


def is_same_day(first: DateLike, second: DateLike, tz: Optional[tzinfo] = None) -> bool:
    """Whether two moments fall on the same local calendar day."""
    zone = _zone_for(first, tz)
    return _local_date(first, zone) == _local_date(second, zone)


def group_events_by_day(
    events: Iterable[NormalizedEvent], week_start: datetime
) -> Dict[str, List[NormalizedEvent]]:
    """
    Map each ISO date of the week to its events sorted by start time.

    All seven dates are present even when empty; events starting outside
    the week are ignored.
    """
    zone = _zone_for(week_start, None)
    first_day = _local_date(week_start, zone)
    grouped: Dict[str, List[NormalizedEvent]] = {
        (first_day + timedelta(days=offset)).isoformat(): []
        for offset in range(DAYS_PER_WEEK)
    }
    for event in events:
        key = _local_date(event.start_time, zone).isoformat()
        if key in grouped:
            grouped[key].append(event)
    return {key: _sorted_by_start(day_events) for key, day_events in grouped.items()}


def calculate_duration(start: datetime, end: datetime) -> str:
    """Human-readable duration such as "45m", "2h" or "1h 30m"."""
    total_minutes = int((end - start).total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours == 0:
        return f"{minutes}m"
    if minutes == 0:
        return f"{hours}h"
    return f"{hours}h {minutes}m"


def get_week_number(value: DateLike) -> int:
    """
    Week of the year, counting Sunday-started weeks with week 1 containing January 1.
    """
    if isinstance(value, datetime):
        moment = value.replace(tzinfo=None)
    else:
        moment = datetime.combine(value, time())
    first_of_year = datetime(moment.year, 1, 1)
    past_days = (moment - first_of_year).total_seconds() / 86400
    # Sunday-based weekday of January 1 (0 = Sunday)
    first_weekday = (first_of_year.weekday() + 1) % DAYS_PER_WEEK
    return math.ceil((past_days + first_weekday + 1) / DAYS_PER_WEEK)


def get_week_range_string(week_start: DateLike) -> str:
    """
    Short label for a week, e.g. "Jul 20 - 26, 2025" or "Jul 27 - Aug 2, 2025".

    Weeks spanning two years use the end date's year.
    """
    first = week_start.date() if isinstance(week_start, datetime) else week_start
    last = first + timedelta(days=DAYS_PER_WEEK - 1)
    if (first.year, first.month) == (last.year, last.month):
        return f"{first:%b} {first.day} - {last.day}, {first.year}"
    return f"{first:%b} {first.day} - {last:%b} {last.day}, {last.year}"


def is_current_week(
    week_start: DateLike,
    first_weekday: int = SUNDAY,
    tz: Optional[tzinfo] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Whether ``week_start`` is the start of the week containing now."""
    zone = _zone_for(week_start, tz)
    now = now if now is not None else now_in(zone)
    current_start = get_week_start(now, first_weekday, zone)
    return _local_date(week_start, zone) == current_start.date()
