"""
Central logging configuration: JSON lines on stdout.
Fields: timestamp, level, logger, function, message, exception (if any),
plus sync context passed through ``extra=`` (sync_run, caller, page, batch, region).
Level: default INFO, override via LOG_LEVEL env var.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = ("sync_run", "caller", "page", "batch", "region")


class JsonFormatter(logging.Formatter):
    """Render each log record as a single JSON object."""

    def format(self, record):
        log_record = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_record[field] = value
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record, default=str)


def configure_logging():
    """Attach a stdout JSON handler to the root logger once.

    The level is read from LOG_LEVEL and falls back to INFO when unset or unknown.
    """
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        level = logging.INFO
    root = logging.getLogger()
    if not root.handlers:
        root.setLevel(level)
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(JsonFormatter())
        root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
