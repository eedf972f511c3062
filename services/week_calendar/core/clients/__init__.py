from .base import BaseAPIClient
from .google import GoogleCalendarClient

__all__ = ["BaseAPIClient", "GoogleCalendarClient"]
