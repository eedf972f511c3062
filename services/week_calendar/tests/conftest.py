"""
Test configuration and fixtures for Week Calendar tests.

Keeps settings and the process-wide sanitizer isolated so no test depends
on the host environment or on another test's overrides.
"""

import pytest
import pytz

from services.week_calendar.core.sanitizer import set_sanitizer


@pytest.fixture(autouse=True)
def patch_settings(monkeypatch):
    """Reset the cached settings and scrub calendar variables from the environment."""
    for name in ("GOOGLE_CALENDAR_API_KEY", "CALENDAR_ID", "TIMEZONE", "WEEK_START"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("services.week_calendar.core.settings._settings", None)


@pytest.fixture(autouse=True)
def default_sanitizer():
    """Ensure every test starts and ends with the default sanitizer."""
    set_sanitizer(None)
    yield
    set_sanitizer(None)


@pytest.fixture
def utc():
    return pytz.utc


@pytest.fixture
def new_york():
    return pytz.timezone("America/New_York")
