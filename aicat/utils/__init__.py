"""Shared utilities: logging setup."""

from .logging_setup import (
    setup_logging,
    get_logger,
    get_recent_log_handler,
    install_health_check_filter,
    UTCFormatter,
    HealthCheckFilter,
    RecentLogHandler,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "get_recent_log_handler",
    "install_health_check_filter",
    "UTCFormatter",
    "HealthCheckFilter",
    "RecentLogHandler",
]
