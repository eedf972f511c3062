"""Timezone resolution helpers shared by the normalizer and the week bucketer."""

from datetime import datetime, tzinfo
from typing import Optional

import pytz
import tzlocal

from services.common.logging_config import get_logger

logger = get_logger(__name__)


def resolve_timezone(tz_name: Optional[str] = None) -> tzinfo:
    """
    Resolve a zone name to a tzinfo object.

    Args:
        tz_name: IANA zone name (e.g. "America/New_York"); ``None`` or
            "local" selects the host's zone

    Returns:
        A DST-aware tzinfo

    Raises:
        ValueError: If the zone name is unknown
    """
    if not tz_name or tz_name.lower() == "local":
        return tzlocal.get_localzone()

    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError as e:
        logger.warning("Unknown timezone requested", timezone=tz_name)
        raise ValueError(f"Unknown timezone: {tz_name}") from e


def attach_timezone(naive_dt: datetime, zone: tzinfo) -> datetime:
    """
    Interpret a naive wall-clock time in ``zone``.

    pytz zones must go through ``localize`` to pick the right offset;
    zoneinfo and dateutil zones work with a plain ``replace``.
    """
    localize = getattr(zone, "localize", None)
    if localize is not None:
        return localize(naive_dt)
    return naive_dt.replace(tzinfo=zone)


def now_in(zone: tzinfo) -> datetime:
    """Current moment expressed in ``zone``."""
    return datetime.now(pytz.utc).astimezone(zone)
