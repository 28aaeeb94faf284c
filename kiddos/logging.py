"""Logging configuration for the Kiddos catalog backend."""

import json
import logging
import sys

from kiddos.config import get_settings

# Attributes passed through `extra=` that end up as JSON fields
CONTEXT_FIELDS = ("channel_id", "videos", "error_code")


class JsonFormatter(logging.Formatter):
    """JSON formatter for production logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including known context fields."""
        base = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                base[name] = value
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, default=str)


def setup_logging() -> None:
    """Configure root logging for the environment.

    Production gets one JSON object per line on stdout; development gets a
    readable single-line format.
    """
    settings = get_settings()
    handler = logging.StreamHandler(sys.stdout)

    if settings.env == "prod":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s")
        )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.INFO)

    # httpx logs every request URL at INFO, API key included
    logging.getLogger("httpx").setLevel(logging.WARNING)
