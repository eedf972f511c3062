"""
Common utilities shared by the calendar services.
"""

from services.common.logging_config import (
    get_logger,
    log_service_startup,
    set_correlation_id,
    setup_service_logging,
)

__all__ = [
    "get_logger",
    "log_service_startup",
    "set_correlation_id",
    "setup_service_logging",
]
