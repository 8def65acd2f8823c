"""
=============================================================================
LOGGING SETUP
=============================================================================

The package only ever calls logging.getLogger(); it never configures
handlers on import. Applications call setup_logging() once at startup
(the CLI does), or configure the "httpscaffold" logger themselves.

Structured fields (status, duration, stack, ...) travel in the record's
extra. Both formatters below put them in the output:

    text:  2024-05-01 12:00:00 [INFO] httpscaffold.access: request method=GET status=200 ...
    json:  {"time": "...", "level": "INFO", "logger": "httpscaffold.access",
            "message": "request", "method": "GET", "status": 200, ...}

=============================================================================
"""

from datetime import datetime, timezone
import json
import logging


TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord has; anything else came in through extra=
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def record_fields(record: logging.LogRecord) -> dict:
    """The extra= fields attached to a record."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED and not key.startswith("_")
    }


class TextFormatter(logging.Formatter):
    """Classic line format with extra fields appended as key=value."""

    def __init__(self):
        super().__init__(TEXT_FORMAT, datefmt=DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = record_fields(record)
        if not fields:
            return line

        # Multi-line values (stack traces) go below the line
        inline = []
        trailing = []
        for key, value in fields.items():
            if isinstance(value, str) and "\n" in value:
                trailing.append(value.rstrip("\n"))
            else:
                inline.append(f"{key}={value}")

        return "\n".join([" ".join([line] + inline)] + trailing)


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(record_fields(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(level: str = "INFO", fmt: str = "text") -> logging.Logger:
    """
    Configure the "httpscaffold" logger with a stderr handler.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ...)
        fmt: "text" or "json"

    Returns:
        The configured package logger.

    Raises:
        ValueError: For an unknown format.
    """
    if fmt == "text":
        formatter = TextFormatter()
    elif fmt == "json":
        formatter = JSONFormatter()
    else:
        raise ValueError(f"Unknown log format: {fmt!r}")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    logger = logging.getLogger("httpscaffold")
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False
    return logger
