"""UTM Tracker — Structured JSON Logging.

Callers attach structured fields with `extra=log_fields(...)`. Only the
names in EXTRA_FIELDS are accepted there, and only those are emitted.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from utm_tracker.config import settings

EXTRA_FIELDS = ("session_id", "attribution", "stage", "record_count", "duration_ms")


def log_fields(**fields: Any) -> Dict[str, Any]:
    """Build an `extra=` mapping. Unknown names raise; None values are dropped."""
    unknown = sorted(set(fields) - set(EXTRA_FIELDS))
    if unknown:
        raise ValueError(f"Unsupported log fields: {unknown}")
    return {key: value for key, value in fields.items() if value is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per line: base fields, exception text, then extras."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(
            (key, getattr(record, key)) for key in EXTRA_FIELDS if hasattr(record, key)
        )
        return json.dumps(entry, ensure_ascii=False, default=str)


def get_logger(name: str) -> logging.Logger:
    """Logger under the `utm_tracker` namespace writing JSON lines to stdout."""
    logger = logging.getLogger(f"utm_tracker.{name}")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger
