"""Logging helpers."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, TextIO

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
    "message",
    "asctime",
}

_PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """Render log records as compact JSON lines."""

    default_time_format = "%Y-%m-%dT%H:%M:%S"
    default_msec_format = "%s.%03dZ"

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.default_time_format),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            data[key] = value

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps(data, ensure_ascii=False, default=str)


def _formatter(structured: bool) -> logging.Formatter:
    if structured:
        return JsonFormatter()
    return logging.Formatter(_PLAIN_FORMAT)


def configure_logging(
    *,
    level: int = logging.INFO,
    structured: bool | None = None,
    stream: TextIO | None = None,
) -> None:
    """Configure root logging with optional JSON output.

    Calling this again only swaps formatters on the installed handlers, so the
    CLI can switch between JSON and plain output without duplicating lines.
    """

    root = logging.getLogger()
    root.setLevel(level)

    if root.handlers:
        if structured is None:
            return
        for handler in root.handlers:
            handler.setFormatter(_formatter(structured))
        return

    # Sitemap text output may go to stdout, so logs default to stderr.
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(_formatter(bool(structured)))
    root.addHandler(handler)

    # httpx logs every request at INFO; keep it for --verbose only.
    logging.getLogger("httpx").setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "JsonFormatter"]
