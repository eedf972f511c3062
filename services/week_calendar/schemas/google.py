"""
Pydantic models describing the Google Calendar events-listing payload.

These models are the structural contract checked before any record is
normalized. Optional subfields are defaulted here so downstream code can
assume a complete shape. Unknown upstream fields are ignored.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNTITLED_EVENT = "Untitled Event"

EventStatus = Literal["confirmed", "tentative", "cancelled"]
ResponseStatus = Literal["accepted", "declined", "tentative", "needsAction"]


class EventDateTime(BaseModel):
    """Start or end of an event: a precise instant or a plain date."""

    model_config = ConfigDict(populate_by_name=True)

    date_time: Optional[str] = Field(None, alias="dateTime")
    date: Optional[str] = None
    time_zone: Optional[str] = Field(None, alias="timeZone")


class GoogleAttendee(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    display_name: Optional[str] = Field(None, alias="displayName")
    response_status: ResponseStatus = Field("needsAction", alias="responseStatus")

    @field_validator("response_status", mode="before")
    @classmethod
    def default_missing_response(cls, v: Optional[str]) -> str:
        return "needsAction" if v is None else v


class GoogleCalendarEvent(BaseModel):
    """A single record from the ``items`` array."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    summary: str = UNTITLED_EVENT
    description: Optional[str] = None
    location: Optional[str] = None
    start: EventDateTime
    end: EventDateTime
    html_link: str = Field(..., alias="htmlLink")
    status: EventStatus = "confirmed"
    attendees: Optional[List[GoogleAttendee]] = None

    @field_validator("summary", mode="before")
    @classmethod
    def default_missing_summary(cls, v: Optional[str]) -> str:
        return UNTITLED_EVENT if v is None else v

    @field_validator("status", mode="before")
    @classmethod
    def default_missing_status(cls, v: Optional[str]) -> str:
        return "confirmed" if v is None else v


class GoogleApiError(BaseModel):
    """Application-level error object embedded in a 2xx payload."""

    message: str
    code: int


class GoogleCalendarResponse(BaseModel):
    """Top-level events-listing envelope."""

    model_config = ConfigDict(populate_by_name=True)

    items: List[GoogleCalendarEvent]
    summary: Optional[str] = None
    description: Optional[str] = None
    time_zone: Optional[str] = Field(None, alias="timeZone")
    next_page_token: Optional[str] = Field(None, alias="nextPageToken")
    error: Optional[GoogleApiError] = None
