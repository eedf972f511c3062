from .events import (
    CalendarConfig,
    CalendarData,
    CalendarMetadata,
    CalendarSubscription,
    DayBucket,
    EventAttendee,
    NormalizedEvent,
    WeekView,
    WeekWindow,
)
from .google import (
    UNTITLED_EVENT,
    EventDateTime,
    GoogleApiError,
    GoogleAttendee,
    GoogleCalendarEvent,
    GoogleCalendarResponse,
)

__all__ = [
    "CalendarConfig",
    "CalendarData",
    "CalendarMetadata",
    "CalendarSubscription",
    "DayBucket",
    "EventAttendee",
    "NormalizedEvent",
    "WeekView",
    "WeekWindow",
    "UNTITLED_EVENT",
    "EventDateTime",
    "GoogleApiError",
    "GoogleAttendee",
    "GoogleCalendarEvent",
    "GoogleCalendarResponse",
]
