"""Structured logging helpers."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

_RESERVED_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "event",
    "message",
}


class StructuredFormatter(logging.Formatter):
    def __init__(self, json_output: bool) -> None:
        super().__init__()
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": getattr(record, "event", "log"),
        }
        message = record.getMessage()
        if message and message != payload["event"]:
            payload["message"] = message

        for key, value in record.__dict__.items():
            if key.startswith("_") or key in _RESERVED_ATTRS:
                continue
            payload[key] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        if self.json_output:
            return json.dumps(payload, default=str)

        ordered = [
            f"timestamp={payload.pop('timestamp')}",
            f"level={payload.pop('level')}",
            f"logger={payload.pop('logger')}",
            f"event={payload.pop('event')}",
        ]
        ordered.extend(f"{k}={v}" for k, v in payload.items())
        return " ".join(ordered)


def configure_logging(level: str | None = None) -> None:
    """
    Install a single structured stdout handler on the ``scorelayout`` logger.

    ``level`` falls back to the ``LOG_LEVEL`` environment variable, then WARNING.
    ``LOG_FORMAT=json`` switches to one JSON object per line.
    """
    logger = logging.getLogger("scorelayout")
    resolved = (level or os.getenv("LOG_LEVEL", "WARNING")).upper()
    json_output = os.getenv("LOG_FORMAT", "text").lower() == "json"

    if not getattr(logger, "_scorelayout_logging_configured", False):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter(json_output=json_output))
        logger.addHandler(handler)
        logger.propagate = False
        logger._scorelayout_logging_configured = True  # type: ignore[attr-defined]

    logger.setLevel(resolved)


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **fields: Any) -> None:
    logger.log(level, event, extra={"event": event, **fields})
