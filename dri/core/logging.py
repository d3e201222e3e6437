"""JSON line logging for the CLI and the local bridge."""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, TextIO

CORRELATION_ID_CTX: ContextVar[str] = ContextVar("correlation_id", default="")

# Domain fields passed through ``extra=``; empty values are omitted.
LOG_FIELDS = (
    "nick",
    "device_id",
    "operation",
    "path",
    "method",
    "status_code",
    "duration_ms",
)

# Driver chatter that would drown the auth events at INFO.
_QUIET_LOGGERS = ("pymongo", "urllib3", "uvicorn.access")


class JsonLogFormatter(logging.Formatter):
    """One JSON object per record, carrying the correlation id and domain fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        correlation_id = CORRELATION_ID_CTX.get()
        if correlation_id:
            payload["correlation_id"] = correlation_id
        payload.update(
            {
                key: value
                for key in LOG_FIELDS
                if (value := getattr(record, key, None)) not in (None, "")
            }
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", *, stream: TextIO | None = None) -> None:
    """Route every log record to ``stream`` (stderr by default) as JSON.

    stdout is left alone because the CLI prints its results there.
    """
    handler = logging.StreamHandler(stream=stream or sys.stderr)
    handler.setFormatter(JsonLogFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.addHandler(handler)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def set_correlation_id(correlation_id: str) -> None:
    """Tag subsequent records of this request or CLI command."""
    CORRELATION_ID_CTX.set(correlation_id)
