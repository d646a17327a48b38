"""
Centralized logging setup for aicat.

Configures the root logger with UTC timestamps and a consistent formatter,
and keeps an in-memory ring of recent WARNING+ records so the owner-only
`query_error_logs` tool can inspect them without touching the filesystem.

Usage:
    from aicat.utils import setup_logging, get_logger

    setup_logging(log_dir="/var/log/aicat", level=logging.INFO, service_name="aicat")
    logger = get_logger("AICat.Gateway")
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional


class UTCFormatter(logging.Formatter):
    """Custom formatter that uses UTC timestamps in ISO format."""

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat()


class HealthCheckFilter(logging.Filter):
    """Drops uvicorn access-log lines for the /health endpoint."""

    def __init__(self, endpoints: Optional[List[str]] = None):
        super().__init__()
        self.endpoints = endpoints or ["/health"]

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        for endpoint in self.endpoints:
            if f'"GET {endpoint} ' in message or f"GET {endpoint} " in message:
                return False
        return True


class RecentLogHandler(logging.Handler):
    """Keeps the most recent records in a bounded in-memory ring.

    Only records at or above the handler level (WARNING by default) are kept.
    Oldest records are discarded once ``capacity`` is reached.
    """

    def __init__(self, capacity: int = 500, level: int = logging.WARNING):
        super().__init__(level=level)
        self._records: deque = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
            if record.exc_info and record.exc_info[1] is not None:
                message = f"{message} | {record.exc_info[0].__name__}: {record.exc_info[1]}"
            self._records.append({
                "time": datetime.fromtimestamp(record.created, tz=timezone.utc),
                "level": record.levelname,
                "levelno": record.levelno,
                "logger": record.name,
                "message": message,
            })
        except Exception:
            self.handleError(record)

    def query(
        self,
        level: Optional[str] = None,
        keyword: Optional[str] = None,
        minutes_ago: Optional[float] = None,
        limit: int = 20,
    ) -> List[Dict[str, Any]]:
        """Return records at or above ``level``, newest first, with ISO timestamps."""
        cutoff = None
        if minutes_ago:
            cutoff = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
        min_level = logging.getLevelName(level.upper()) if level else None
        if not isinstance(min_level, int):
            min_level = None
        needle = keyword.lower() if keyword else None

        matched: List[Dict[str, Any]] = []
        for entry in reversed(self._records):
            if min_level is not None and entry["levelno"] < min_level:
                continue
            if cutoff and entry["time"] < cutoff:
                continue
            if needle and needle not in entry["message"].lower():
                continue
            matched.append({**entry, "time": entry["time"].isoformat()})
            if len(matched) >= limit:
                break
        return matched

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


_recent_handler: Optional[RecentLogHandler] = None


def get_recent_log_handler() -> RecentLogHandler:
    """Return the process-wide ring handler, attaching it to the root logger once."""
    global _recent_handler
    if _recent_handler is None:
        _recent_handler = RecentLogHandler()
        logging.getLogger().addHandler(_recent_handler)
    return _recent_handler


def install_health_check_filter(endpoints: Optional[List[str]] = None) -> None:
    """Install the health check filter on uvicorn's access logger."""
    logging.getLogger("uvicorn.access").addFilter(HealthCheckFilter(endpoints))


def setup_logging(
    log_dir: Optional[str] = None,
    level: int = logging.INFO,
    service_name: Optional[str] = None,
    max_log_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 3,
) -> None:
    """
    Configure logging with UTC timestamps and consistent formatting.

    Args:
        log_dir: Directory for log files. If None, only console logging is used.
        level: Logging level (default: INFO)
        service_name: Name of the service, used in the format and file name
        max_log_bytes: Max size of the rotating log file (default: 10MB)
        backup_count: Number of rotated backup files to keep (default: 3)
    """
    root = logging.getLogger()
    root.setLevel(level)

    if service_name:
        fmt = f"%(asctime)s [{service_name}] %(levelname)s:%(name)s:%(message)s"
    else:
        fmt = "%(asctime)s %(levelname)s:%(name)s:%(message)s"
    formatter = UTCFormatter(fmt)

    # Remove existing handlers to avoid double-logging; the ring is re-added below
    for h in list(root.handlers):
        root.removeHandler(h)

    stream_h = logging.StreamHandler()
    stream_h.setFormatter(formatter)
    stream_h.setLevel(level)
    root.addHandler(stream_h)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        log_filename = f"{service_name}.log" if service_name else "aicat.log"
        file_h = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, log_filename),
            maxBytes=max_log_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_h.setFormatter(formatter)
        file_h.setLevel(level)
        root.addHandler(file_h)

    ring = get_recent_log_handler()
    if ring not in root.handlers:
        root.addHandler(ring)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name (thin wrapper over logging.getLogger)."""
    return logging.getLogger(name)


__all__ = [
    "setup_logging",
    "get_logger",
    "get_recent_log_handler",
    "install_health_check_filter",
    "UTCFormatter",
    "HealthCheckFilter",
    "RecentLogHandler",
]
