"""Structured, redacting logging for the bridge.

Modules log dict events (``{"event": "...", ...}``) on the loggers
defined here; ``setup_logging`` attaches a single handler to the package
logger that serialises them as JSON and masks credentials.
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys

REDACT = re.compile(
    r"(?i)[\"']?\b(pass(word)?|token|apikey|api_key|secret|bearer)\b[\"']?\s*[:=]\s*[\"']?([^\"',\s]+)[\"']?"
)

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

LOG_FORMAT = "%(asctime)s %(levelname)s:%(name)s: %(message)s"

logger = logging.getLogger("mijia_homie")
bridge_logger = logging.getLogger("mijia_homie.bridge")
ble_logger = logging.getLogger("mijia_homie.ble")


def redact(s: str) -> str:
    return REDACT.sub(lambda m: f"{m.group(1)}=***REDACTED***", s)


class JsonRedactingHandler(logging.StreamHandler):
    """Stream handler that renders dict messages as JSON and redacts secrets."""

    def __init__(self, stream=None) -> None:
        super().__init__(stream if stream is not None else sys.stdout)
        self.setFormatter(logging.Formatter(LOG_FORMAT))

    def format(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, dict):
            record = logging.makeLogRecord(
                {**record.__dict__, "msg": json.dumps(record.msg, default=str), "args": None}
            )
        return redact(super().format(record))


def get_log_level(override: str | None = None) -> int:
    """Resolve the numeric log level.

    Checks, in order: ``override``, LOG_LEVEL, LOGGING_LEVEL,
    MIJIA_LOG_LEVEL and falls back to logging.INFO for invalid or
    missing values.
    """
    lvl = (
        override
        or os.environ.get("LOG_LEVEL")
        or os.environ.get("LOGGING_LEVEL")
        or os.environ.get("MIJIA_LOG_LEVEL")
    )
    if not lvl:
        return logging.INFO
    return LOG_LEVEL_MAP.get(str(lvl).strip().upper(), logging.INFO)


def setup_logging(level: str | int | None = None, stream=None) -> logging.Handler:
    """(Re)initialise the package handler; safe to call more than once."""
    numeric_level = level if isinstance(level, int) else get_log_level(level)
    handler = JsonRedactingHandler(stream)
    handler.setLevel(numeric_level)
    # Deduplicate handlers on restart
    for h in list(logger.handlers):
        if isinstance(h, JsonRedactingHandler):
            logger.removeHandler(h)
    logger.addHandler(handler)
    logger.setLevel(numeric_level)
    logger.propagate = False
    return handler


def flush_all_log_handlers() -> None:
    """Flush package handlers, ignoring streams that are already closed."""
    for h in logger.handlers:
        stream = getattr(h, "stream", None)
        if stream is not None and getattr(stream, "closed", False) is True:
            continue
        h.flush()


__all__ = [
    "LOG_LEVEL_MAP",
    "JsonRedactingHandler",
    "ble_logger",
    "bridge_logger",
    "flush_all_log_handlers",
    "get_log_level",
    "logger",
    "redact",
    "setup_logging",
]
