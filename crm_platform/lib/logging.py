"""
Logging setup for the CRM platform.

Lines are JSON objects carrying the current correlation id, which is set
per HTTP request and per finalizer sweep. Anything passed through `extra`
(campaign_id, customer_id, segment_id, status_code, ...) is copied into
the object, so one campaign's launch, deliveries and receipts can be
followed by filtering on campaign_id.
"""
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

from crm_platform.lib.settings import settings

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord has; anything else came in through `extra`.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

_QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler", "openai")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        correlation_id = correlation_id_var.get()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                entry[key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Route the root logger to stdout, as JSON or as plain text."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(
        JSONFormatter() if json_format
        else logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    )

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_correlation_id(correlation_id: Optional[str]) -> None:
    correlation_id_var.set(correlation_id)


def log_with_context(logger: logging.Logger, level: str, message: str, **fields) -> None:
    """
    Log `message` at `level` with `fields` added to the JSON line.

    Example:
        log_with_context(logger, "info", "Finalizer sweep", completed=2, failed=0)
    """
    getattr(logger, level.lower())(message, extra=fields)


setup_logging(level="DEBUG" if settings.debug else "INFO", json_format=settings.log_json)
