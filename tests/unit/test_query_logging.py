"""Unit tests for database query logging."""

import logging
import sqlite3
from collections.abc import Generator

import pytest

from plaza.utils.db_helpers import execute_with_timing


@pytest.fixture
def conn() -> Generator[sqlite3.Connection]:
    connection = sqlite3.connect(":memory:")
    yield connection
    connection.close()


class TestSlowQueryLogging:
    """Tests for slow query detection and logging."""

    def test_slow_query_logs_warning(
        self, conn: sqlite3.Connection, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="plaza.utils.db_helpers"):
            execute_with_timing(conn, "SELECT ?", (1,), should_log=True, slow_query_threshold_ms=0)

        slow = [r for r in caplog.records if r.message == "Slow query detected"]
        assert len(slow) == 1
        assert slow[0].query_snippet == "SELECT ?"
        assert "elapsed_ms" in slow[0].__dict__

    def test_prefix_in_message(
        self, conn: sqlite3.Connection, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="plaza.utils.db_helpers"):
            execute_with_timing(
                conn, "SELECT 1", should_log=True, slow_query_threshold_ms=0, log_prefix="blob "
            )
        assert any(r.message == "Slow blob query detected" for r in caplog.records)

    def test_long_params_truncated(
        self, conn: sqlite3.Connection, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="plaza.utils.db_helpers"):
            execute_with_timing(
                conn, "SELECT ?", ("x" * 1000,), should_log=True, slow_query_threshold_ms=0
            )
        record = next(r for r in caplog.records if r.message == "Slow query detected")
        assert record.params_snippet.endswith("...")
        assert len(record.params_snippet) <= 103

    def test_no_logging_when_disabled(
        self, conn: sqlite3.Connection, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.DEBUG, logger="plaza.utils.db_helpers"):
            cursor = execute_with_timing(
                conn, "SELECT 7", should_log=False, slow_query_threshold_ms=0
            )
        assert cursor.fetchone()[0] == 7
        assert caplog.records == []
