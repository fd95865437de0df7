"""
Structured logging for the retrieval service.

Every line is one JSON object. Fields passed through ``extra=`` become
top-level keys; the pipeline modules use this to attach ``user_id``,
``doc_id``, ``stage`` and counts to each event.

Document text and API keys must never reach the log, so those keys
are replaced before serialization.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from app.config import LOG_DIR, LOG_LEVEL


LOG_FILE_NAME = "app.log"

# Attributes every LogRecord carries; not caller-supplied context
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}

_REDACTED_KEYS = frozenset({"api_key", "authorization", "original_text", "query"})

REDACTED = "[redacted]"

_NOISY_LOGGERS = {
    "urllib3": logging.WARNING,
    "httpx": logging.WARNING,
    "openai": logging.WARNING,
    "pypdf": logging.ERROR,
    "posthog": logging.WARNING,
}


def _context_fields(record: logging.LogRecord) -> Dict[str, Any]:

    fields = {}

    for key, value in record.__dict__.items():

        if key.startswith("_") or key in _RECORD_ATTRS:
            continue

        fields[key] = REDACTED if key in _REDACTED_KEYS else value

    return fields


class JSONFormatter(logging.Formatter):
    """
    Render a record as a single JSON line.

    Context fields that collide with the fixed ones are kept under an
    ``extra_`` prefix instead of overwriting them.
    """

    def format(self, record: logging.LogRecord) -> str:

        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        for key, value in _context_fields(record).items():
            entry[f"extra_{key}" if key in entry else key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(log_level: str = LOG_LEVEL, log_dir: str = LOG_DIR):
    """Route the root logger to stdout and ``<log_dir>/app.log``."""

    os.makedirs(log_dir, exist_ok=True)

    formatter = JSONFormatter()

    handlers = [
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(os.path.join(log_dir, LOG_FILE_NAME)),
    ]

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name, level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
