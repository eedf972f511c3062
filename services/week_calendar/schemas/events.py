import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from services.week_calendar.schemas.google import EventStatus, ResponseStatus

DAYS_PER_WEEK = 7


class EventAttendee(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str
    name: Optional[str] = None
    status: ResponseStatus = "needsAction"


class NormalizedEvent(BaseModel):
    """Trusted internal event. Immutable once constructed."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = Field(..., min_length=1)
    description: str = ""
    location: str = ""
    start_time: dt.datetime
    end_time: dt.datetime
    is_all_day: bool = False
    status: EventStatus = "confirmed"
    url: str
    calendar_id: str
    ical_url: str
    attendees: Optional[List[EventAttendee]] = None


class CalendarMetadata(BaseModel):
    name: str = "Calendar"
    description: Optional[str] = None
    time_zone: Optional[str] = None


class CalendarData(BaseModel):
    """Events plus calendar metadata from a single fetch."""

    events: List[NormalizedEvent] = Field(default_factory=list)
    metadata: CalendarMetadata = Field(default_factory=CalendarMetadata)


class CalendarSubscription(BaseModel):
    """Subscription links for a public calendar."""

    google: str
    ical: str
    apple: str


class CalendarConfig(BaseModel):
    """Fetcher configuration, injected at construction."""

    calendar_id: str = Field(..., min_length=1)
    api_key: Optional[str] = None
    window_months: int = Field(6, ge=1)
    max_results: int = Field(1000, ge=1)
    timeout: float = Field(30.0, gt=0)


class WeekWindow(BaseModel):
    """Seven-day span: ``start`` inclusive, ``end`` exclusive."""

    start: dt.datetime
    end: dt.datetime

    @model_validator(mode="after")
    def check_span(self) -> "WeekWindow":
        if self.end <= self.start:
            raise ValueError("week end must be after week start")
        return self


class DayBucket(BaseModel):
    date: dt.date
    day_name: str
    events: List[NormalizedEvent] = Field(default_factory=list)
    is_today: bool = False


class WeekView(WeekWindow):
    """A week window plus its seven day buckets in chronological order."""

    days: List[DayBucket]

    @field_validator("days")
    @classmethod
    def validate_seven_days(cls, v: List[DayBucket]) -> List[DayBucket]:
        if len(v) != DAYS_PER_WEEK:
            raise ValueError(f"a week has {DAYS_PER_WEEK} days, got {len(v)}")
        return v

    @property
    def event_count(self) -> int:
        return sum(len(day.events) for day in self.days)
