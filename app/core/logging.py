"""ADLENS: Structured JSON Logging.

One JSON object per line on stdout. Context passed through ``extra=`` is
copied onto the line when it is one of ``CONTEXT_FIELDS``.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from app.config import settings

CONTEXT_FIELDS = (
    "client_id",
    "entity_id",
    "entity_level",
    "decision",
    "duration_ms",
    "status_code",
)


class JSONFormatter(logging.Formatter):
    """Produces structured JSON log lines for production observability."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def get_logger(name: str) -> logging.Logger:
    """Named ``adlens.*`` logger; the handler is attached once per name."""
    logger = logging.getLogger(f"adlens.{name}")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger
