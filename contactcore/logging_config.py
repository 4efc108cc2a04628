"""Structured logging configuration for contact intake."""

import json
import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict


# Fields added to every record logged inside log_context(); per asyncio task
_context: ContextVar[Dict[str, Any]] = ContextVar("contactcore_log_context", default={})

# LogRecord attributes that are not user-supplied extras
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_NOISY_LOGGERS = ("httpx", "httpcore", "anthropic", "openai")


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: standard fields, context fields, then extras.

    Extras whose name looks like a credential are replaced with ``[REDACTED]``.
    """

    SENSITIVE_FIELDS = ("secret", "token", "api_key", "password", "authorization")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }

        for key, value in vars(record).items():
            if key in _RECORD_ATTRS:
                continue
            entry[key] = "[REDACTED]" if self.is_sensitive(key) else value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)

    @classmethod
    def is_sensitive(cls, field_name: str) -> bool:
        name = field_name.lower()
        return any(marker in name for marker in cls.SENSITIVE_FIELDS)


def setup_logging(format: str = "json", level: str = "INFO") -> None:
    """Send logs to stderr, as JSON or plain text.

    stdout stays free for the CLI's tables and prompts.
    """
    handler = logging.StreamHandler(sys.stderr)
    if format == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_event(logger_name: str, event: str, **fields) -> None:
    """Log a named event at INFO with ``fields`` as structured extras."""
    get_logger(logger_name).info(event, extra=fields)


def log_error(logger_name: str, event: str, error: Exception, **fields) -> None:
    """Log a failure with its traceback and error type."""
    fields["error_type"] = type(error).__name__
    get_logger(logger_name).error(f"{event}: {error}", exc_info=error, extra=fields)


def log_performance(logger_name: str, operation: str, duration_ms: float, **fields) -> None:
    fields["duration_ms"] = duration_ms
    get_logger(logger_name).info(f"{operation} completed in {duration_ms:.1f}ms", extra=fields)


@contextmanager
def log_context(**fields):
    """Attach ``fields`` to every record logged in this block.

    Example:
        with log_context(run_id="3f2a9c"):
            log_event(__name__, "companies_resolved", found=2)
    """
    token = _context.set({**_context.get(), **fields})
    try:
        yield
    finally:
        _context.reset(token)


class Timer:
    """Measures the wall time of a ``with`` block in milliseconds."""

    def __enter__(self):
        self.start_time = time.time()
        self.duration_ms = None
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.time() - self.start_time) * 1000
