"""Logging setup for querylab.

Two output modes: JSON lines for deployed instances and a pipe-separated
text format for local development. Request and session events attach their
details through ``extra=`` (see ``CONTEXT_FIELDS``); the JSON formatter
lifts those onto the top level of each line so log pipelines can filter on
``status_code`` or ``reason`` without parsing the message.
"""

import json
import logging
import sys
from typing import Any, Literal

DEV_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Attributes set via ``extra=`` by the request logger and the session guard
CONTEXT_FIELDS = ("method", "path", "status_code", "duration_ms", "reason")

# Access logs come from RequestLoggingMiddleware
QUIET_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with any context fields included."""

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _build_handler(format_type: Literal["structured", "dev"]) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if format_type == "structured":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(DEV_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(
    level: str = "INFO",
    format_type: Literal["structured", "dev"] = "dev",
) -> None:
    """Install a single stdout handler on the root logger.

    SQL statements are echoed only at DEBUG.
    """
    level = level.upper()
    logging.root.handlers = [_build_handler(format_type)]
    logging.root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.DEBUG if level == "DEBUG" else logging.WARNING
    )

    get_logger("logging").info(f"Logging configured: level={level}, format={format_type}")


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``querylab.`` namespace."""
    return logging.getLogger(f"querylab.{name}")
