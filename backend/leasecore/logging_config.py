"""
Logging configuration.

- Development: human-readable console output
- Production: JSON lines to stdout

Driven by ``settings.log_level`` and ``settings.log_format``.
"""

import json
import logging
import logging.config
from datetime import datetime, timezone

from leasecore.config import settings


class JsonFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def get_logging_config(log_level: str | None = None, log_format: str | None = None) -> dict:
    level = (log_level or settings.log_level).upper()
    fmt = log_format or settings.log_format

    if fmt == "json":
        formatters = {"default": {"()": "leasecore.logging_config.JsonFormatter"}}
    else:
        formatters = {
            "default": {
                "format": "[{asctime}] {levelname} {name} {message}",
                "style": "{",
            }
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "leasecore": {"handlers": ["console"], "level": level, "propagate": False},
            "sqlalchemy.engine": {"handlers": ["console"], "level": "WARNING", "propagate": False},
        },
        "root": {"handlers": ["console"], "level": "WARNING"},
    }


def configure_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    logging.config.dictConfig(get_logging_config(log_level, log_format))
