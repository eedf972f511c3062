import calendar
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from services.week_calendar.schemas import CalendarConfig

DEFAULT_CALENDAR_ID = (
    "b382cfad3622bc528f1e748cc100b3abc92abfe801f983ca2a527357f7be7445"
    "@group.calendar.google.com"
)


class Settings(BaseSettings):
    """Week Calendar service settings and configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Service configuration
    SERVICE_NAME: str = Field(default="week-calendar", description="Service name")
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment (development, staging, production)",
    )

    # Upstream calendar configuration
    google_calendar_api_key: Optional[str] = Field(
        default=None,
        description="Google Calendar API key used for public calendar reads",
        validation_alias=AliasChoices("GOOGLE_CALENDAR_API_KEY"),
    )
    CALENDAR_ID: str = Field(
        default=DEFAULT_CALENDAR_ID, description="Public Google calendar id"
    )
    CALENDAR_WINDOW_MONTHS: int = Field(
        default=6, ge=1, description="Months fetched on each side of now"
    )
    CALENDAR_MAX_RESULTS: int = Field(
        default=1000, ge=1, le=2500, description="maxResults sent upstream"
    )
    REQUEST_TIMEOUT: float = Field(
        default=30.0, gt=0, description="Upstream request timeout in seconds"
    )

    # Week layout
    TIMEZONE: Optional[str] = Field(
        default=None,
        description="IANA zone for day bucketing; host local zone when unset",
    )
    WEEK_START: int = Field(
        default=calendar.SUNDAY,
        ge=0,
        le=6,
        description="First day of the week (0=Monday ... 6=Sunday)",
    )

    # Retry configuration
    RETRY_MAX_ATTEMPTS: int = Field(default=3, ge=1, description="Retry attempts")
    RETRY_BASE_DELAY: float = Field(
        default=1.0, ge=0, description="Initial retry delay in seconds"
    )
    RETRY_MAX_DELAY: float = Field(
        default=10.0, ge=0, description="Maximum retry delay in seconds"
    )
    RETRY_BACKOFF_MULTIPLIER: float = Field(
        default=2.0, ge=1, description="Exponential backoff multiplier"
    )

    # Circuit breaker configuration
    BREAKER_FAILURE_THRESHOLD: int = Field(
        default=5, ge=1, description="Failures before the breaker opens"
    )
    BREAKER_RECOVERY_TIMEOUT: float = Field(
        default=60.0, ge=0, description="Seconds before an open breaker admits a trial"
    )

    # Logging configuration
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="json", description="Log format (json or text)")

    def to_calendar_config(self) -> CalendarConfig:
        """Build the fetcher configuration from the ambient settings."""
        return CalendarConfig(
            calendar_id=self.CALENDAR_ID,
            api_key=self.google_calendar_api_key,
            window_months=self.CALENDAR_WINDOW_MONTHS,
            max_results=self.CALENDAR_MAX_RESULTS,
            timeout=self.REQUEST_TIMEOUT,
        )


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance, creating it if necessary."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
