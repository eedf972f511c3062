"""
Week Calendar service facade.

Composes the circuit breaker, the retry loop, the fetcher and the week
bucketer into week-oriented queries:

    service = create_service()
    async with service:
        week = await service.get_week()
"""

import uuid
from datetime import datetime, tzinfo
from typing import Any, List, Optional

from services.common.logging_config import (
    get_logger,
    log_service_startup,
    set_correlation_id,
    setup_service_logging,
)
from services.week_calendar.core.circuit_breaker import CircuitBreaker
from services.week_calendar.core.fetcher import CalendarFetcher
from services.week_calendar.core.retry import RetryConfig, RetryState, with_retry
from services.week_calendar.core.settings import Settings, get_settings
from services.week_calendar.core.timezones import resolve_timezone
from services.week_calendar.core.validation import (
    api_key_warnings,
    validate_calendar_id,
)
from services.week_calendar.core.week import (
    SUNDAY,
    DateLike,
    current_week,
    filter_for_week,
    next_week,
    populate,
    previous_week,
)
from services.week_calendar.schemas import NormalizedEvent, WeekView

logger = get_logger(__name__)


class WeekCalendarService:
    """Week views over one calendar, protected by a breaker and retries."""

    def __init__(
        self,
        fetcher: CalendarFetcher,
        retry_config: Optional[RetryConfig] = None,
        breaker: Optional[CircuitBreaker] = None,
        tz: Optional[tzinfo] = None,
        first_weekday: int = SUNDAY,
    ):
        self.fetcher = fetcher
        self.retry_config = retry_config or RetryConfig()
        self.breaker = breaker or CircuitBreaker()
        self.tz = tz or resolve_timezone()
        self.first_weekday = first_weekday
        self._retry_state = RetryState()

    async def __aenter__(self) -> "WeekCalendarService":
        await self.fetcher.__aenter__()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.fetcher.__aexit__(exc_type, exc_val, exc_tb)

    @property
    def retry_state(self) -> RetryState:
        """Retry progress of the most recently started query."""
        return self._retry_state

    async def _load_events(self) -> List[NormalizedEvent]:
        # One state per query; overlapping queries never share progress
        state = RetryState()
        self._retry_state = state

        async def fetch_with_retry() -> List[NormalizedEvent]:
            return await with_retry(self.fetcher.fetch_events, self.retry_config, state)

        set_correlation_id(str(uuid.uuid4()))
        try:
            return await self.breaker.execute(fetch_with_retry)
        finally:
            set_correlation_id(None)

    async def get_week(
        self, reference: Optional[DateLike] = None, now: Optional[datetime] = None
    ) -> WeekView:
        """
        Build the populated week containing ``reference``.

        Args:
            reference: Moment inside the wanted week; the current week when omitted
            now: Current moment for ``is_today`` flags

        Returns:
            WeekView with events bucketed by local start date

        Raises:
            CalendarError: When fetching fails after retries
            CircuitOpenError: When the breaker rejects the call
        """
        events = await self._load_events()
        week = current_week(reference, self.first_weekday, self.tz, now=now)
        in_week = filter_for_week(events, week.start)
        logger.info(
            "Built week view",
            week_start=week.start.isoformat(),
            fetched=len(events),
            in_week=len(in_week),
        )
        return populate(week, in_week)

    async def get_next_week(
        self, reference: DateLike, now: Optional[datetime] = None
    ) -> WeekView:
        """Populated week following the one containing ``reference``."""
        start = next_week(reference, self.first_weekday, self.tz)
        return await self.get_week(start, now=now)

    async def get_previous_week(
        self, reference: DateLike, now: Optional[datetime] = None
    ) -> WeekView:
        """Populated week preceding the one containing ``reference``."""
        start = previous_week(reference, self.first_weekday, self.tz)
        return await self.get_week(start, now=now)

    def refresh(self) -> None:
        """Forget past failures so the next query goes straight upstream."""
        self._retry_state.reset()
        self.breaker.reset()
        logger.info("Calendar service state reset")


def create_service(settings: Optional[Settings] = None) -> WeekCalendarService:
    """
    Build the service stack from settings.

    Configures logging, reports suspicious configuration, and wires the
    fetcher, retry policy and circuit breaker together.
    """
    settings = settings or get_settings()
    setup_service_logging(
        service_name=settings.SERVICE_NAME,
        log_level=settings.LOG_LEVEL,
        log_format=settings.LOG_FORMAT,
    )

    tz = resolve_timezone(settings.TIMEZONE)
    config = settings.to_calendar_config()

    if not validate_calendar_id(config.calendar_id):
        logger.warning("Calendar id looks malformed", calendar_id=config.calendar_id)
    for warning in api_key_warnings(config.api_key):
        logger.warning(warning)

    retry_config = RetryConfig(
        max_attempts=settings.RETRY_MAX_ATTEMPTS,
        base_delay=settings.RETRY_BASE_DELAY,
        max_delay=settings.RETRY_MAX_DELAY,
        backoff_multiplier=settings.RETRY_BACKOFF_MULTIPLIER,
    )
    breaker = CircuitBreaker(
        failure_threshold=settings.BREAKER_FAILURE_THRESHOLD,
        recovery_timeout=settings.BREAKER_RECOVERY_TIMEOUT,
    )

    log_service_startup(
        settings.SERVICE_NAME,
        environment=settings.ENVIRONMENT,
        calendar_id=config.calendar_id,
        timezone=str(tz),
        week_start=settings.WEEK_START,
    )

    return WeekCalendarService(
        fetcher=CalendarFetcher(config, tz=tz),
        retry_config=retry_config,
        breaker=breaker,
        tz=tz,
        first_weekday=settings.WEEK_START,
    )
