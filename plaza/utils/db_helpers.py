"""Database helper utilities shared by the document store and the blob store."""

import sqlite3
import time
from typing import Any

from plaza.config import Config
from plaza.utils.logging import get_logger

logger = get_logger(__name__)

QUERY_SNIPPET_MAX_LENGTH = 200
PARAMS_SNIPPET_MAX_LENGTH = 100


def execute_with_timing(
    conn: sqlite3.Connection,
    query: str,
    params: tuple[Any, ...] = (),
    *,
    should_log: bool,
    slow_query_threshold_ms: float,
    log_prefix: str = "",
) -> sqlite3.Cursor:
    """Execute a query, logging it when it is slow (or always at DEBUG level).

    Args:
        conn: SQLite connection
        query: SQL query string
        params: Query parameters
        should_log: Whether to enable timing and logging
        slow_query_threshold_ms: Threshold in ms for slow query warnings
        log_prefix: Optional prefix for log messages (e.g., "Blob " for blob store)

    Returns:
        SQLite cursor with results
    """
    if not should_log:
        return conn.execute(query, params)

    start_time = time.perf_counter()
    cursor = conn.execute(query, params)
    elapsed_ms = (time.perf_counter() - start_time) * 1000

    query_snippet = " ".join(query.split())
    if len(query_snippet) > QUERY_SNIPPET_MAX_LENGTH:
        query_snippet = query_snippet[:QUERY_SNIPPET_MAX_LENGTH] + "..."

    # Document bodies can be large; only a prefix of the params is useful
    params_str = str(params)
    if len(params_str) > PARAMS_SNIPPET_MAX_LENGTH:
        params_str = params_str[:PARAMS_SNIPPET_MAX_LENGTH] + "..."

    if elapsed_ms >= slow_query_threshold_ms:
        logger.warning(
            f"Slow {log_prefix}query detected",
            extra={
                "query_snippet": query_snippet,
                "params_snippet": params_str,
                "elapsed_ms": round(elapsed_ms, 2),
                "threshold_ms": slow_query_threshold_ms,
            },
        )
    elif Config.LOG_LEVEL == "DEBUG":
        logger.debug(
            f"{log_prefix}Query executed",
            extra={"query_snippet": query_snippet, "elapsed_ms": round(elapsed_ms, 2)},
        )

    return cursor


def init_query_logging() -> tuple[bool, float]:
    """Get query logging configuration from Config.

    Returns:
        Tuple of (should_log_queries, slow_query_threshold_ms)
    """
    should_log = Config.LOG_LEVEL == "DEBUG" or Config.is_development()
    return should_log, Config.SLOW_QUERY_THRESHOLD_MS
