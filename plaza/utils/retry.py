"""Retry logic for transient store failures.

SQLite reports lock contention and I/O hiccups as OperationalError. Those are
retried with exponential backoff a bounded number of times; anything that
survives the retries surfaces as InternalError. Integrity and programming
errors are never retried.
"""

from __future__ import annotations

import random
import sqlite3
import time
from collections.abc import Callable
from functools import wraps
from typing import Any

from plaza.config import Config
from plaza.exceptions import InternalError
from plaza.utils.logging import get_logger

logger = get_logger(__name__)

TRANSIENT_ERROR_PATTERNS = (
    "database is locked",
    "database table is locked",
    "disk i/o error",
    "unable to open database file",
)


def is_transient_error(error: Exception) -> bool:
    """Check if a store error is transient and worth retrying."""
    if not isinstance(error, sqlite3.OperationalError):
        return False
    error_msg = str(error).lower()
    return any(pattern in error_msg for pattern in TRANSIENT_ERROR_PATTERNS)


def calculate_delay(attempt: int) -> float:
    """Exponential backoff with jitter for the given 0-based attempt."""
    delay = Config.STORE_RETRY_BASE_DELAY_SECONDS * (2**attempt)
    delay = min(delay, Config.STORE_RETRY_MAX_DELAY_SECONDS)
    jitter = delay * 0.2 * (random.random() * 2 - 1)
    return max(0.0, delay + jitter)


def with_store_retry[T](func: Callable[..., T]) -> Callable[..., T]:
    """Decorator retrying transient SQLite errors, then raising InternalError."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        max_retries = Config.STORE_IO_MAX_RETRIES
        for attempt in range(max_retries + 1):
            try:
                return func(*args, **kwargs)
            except sqlite3.OperationalError as e:
                if not is_transient_error(e) or attempt >= max_retries:
                    logger.error(
                        "Store operation failed",
                        extra={"operation": func.__name__, "error": str(e), "attempt": attempt + 1},
                    )
                    raise InternalError("Storage temporarily unavailable") from e

                delay = calculate_delay(attempt)
                logger.warning(
                    "Transient store error, retrying",
                    extra={
                        "operation": func.__name__,
                        "error": str(e),
                        "attempt": attempt + 1,
                        "max_retries": max_retries,
                        "delay_seconds": round(delay, 3),
                    },
                )
                time.sleep(delay)
        raise AssertionError("unreachable")

    return wrapper
