"""
Structured JSON logging.

Sync failures carry their classified error kind and the table or record they
concern in `extra=`; emitting each record as one JSON object keeps those
fields filterable in any log pipeline.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TextIO

# Attributes every LogRecord has; anything else on a record came from `extra=`
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


def _json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class StructuredJsonFormatter(logging.Formatter):
    """Formats each record as a single-line JSON object.

    Every object has `timestamp` (UTC, from the record's creation time),
    `level`, `logger` and `message`, then any `static_fields`, then the
    record's `extra=` context. Enum values are emitted by value.
    """

    def __init__(self, static_fields: dict[str, Any] | None = None) -> None:
        super().__init__()
        self.static_fields = dict(static_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(self.static_fields)
        entry.update(
            (key, _json_value(value))
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = "fleet_sync",
    stream: TextIO | None = None,
    static_fields: dict[str, Any] | None = None,
) -> logging.Logger:
    """Send a logger's records to `stream` (stdout by default) as JSON lines.

    Calling it again replaces the JSON handler it installed before; other
    handlers on the logger are left alone.

    Args:
        level: Level set on the logger
        logger_name: Logger to configure (the package logger by default, None for root)
        stream: Destination stream
        static_fields: Fields added to every record, e.g. a deployment name
    """
    logger = logging.getLogger(logger_name)
    for handler in list(logger.handlers):
        if isinstance(handler.formatter, StructuredJsonFormatter):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredJsonFormatter(static_fields))
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


class FleetLoggerAdapter(logging.LoggerAdapter):
    """Adds fixed fleet context (such as the active mode) to every record.

    Per-call `extra=` fields are kept; the adapter's fields win on a clash.
    """

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**kwargs.get("extra", {}), **(self.extra or {})}
        return msg, kwargs
