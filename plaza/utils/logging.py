"""Structured logging with JSON output.

Every log line is a single JSON object. Request-scoped fields (request_id and,
once the caller is authenticated, user_id) are attached automatically so that
all store operations performed on behalf of one request can be correlated.
"""

import json
import logging
import sys
import traceback
from contextvars import ContextVar
from typing import Any, cast

from flask import g, has_request_context

# Context variables for non-Flask contexts (worker threads, tests)
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)

# Attributes every LogRecord carries; anything else came in through extra={...}
_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "exc_info",
        "exc_text",
        "stack_info",
        "taskName",
    }
)


def get_request_id() -> str | None:
    """Get the current request ID from context."""
    if has_request_context() and hasattr(g, "request_id"):
        return cast(str | None, g.request_id)
    return request_id_var.get()


def set_request_id(request_id: str) -> None:
    """Set the request ID in context."""
    request_id_var.set(request_id)
    if has_request_context():
        g.request_id = request_id


def get_user_id() -> str | None:
    """Get the authenticated user ID for the current request, if any."""
    if has_request_context() and hasattr(g, "user_id"):
        return cast(str | None, g.user_id)
    return user_id_var.get()


def set_user_id(user_id: str | None) -> None:
    """Bind the authenticated user ID to the current context."""
    user_id_var.set(user_id)
    if has_request_context():
        g.user_id = user_id


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            log_data["request_id"] = request_id
        user_id = get_user_id()
        if user_id and "user_id" not in record.__dict__:
            log_data["user_id"] = user_id

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                log_data[key] = value

        return json.dumps(log_data, default=str)


def setup_logging() -> None:
    """Configure structured logging for the application."""
    from plaza.config import Config

    log_level = getattr(logging, Config.LOG_LEVEL, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    # stderr: stdout is often captured by process managers
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(JSONFormatter())
    root_logger.addHandler(console_handler)

    # Werkzeug duplicates our request/response logging
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logging.getLogger("yoyo").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)
