from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import TextIO

# Attributes the client attaches through `extra=` on its log calls.
CONTEXT_FIELDS = ("operation", "method", "endpoint", "attempt", "duration_s")

# Chatty dependencies kept at WARNING unless the client itself runs at DEBUG.
NOISY_LOGGERS = ("urllib3", "requests")


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line, carrying backend call context when present."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


def configure_logging(*, level: str, json_logs: bool, stream: TextIO | None = None) -> None:
    """Route `gee.*` loggers to stderr, as JSON lines or plain text."""
    root = logging.getLogger()
    log_level = getattr(logging, level.strip().upper(), logging.INFO)
    root.setLevel(log_level)

    handler = logging.StreamHandler(stream or sys.stderr)
    if json_logs:
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
    root.handlers = [handler]

    quiet_level = logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
