"""Unit tests for plaza/utils/retry.py."""

import sqlite3
from unittest.mock import patch

import pytest

from plaza.config import Config
from plaza.exceptions import InternalError
from plaza.utils.retry import calculate_delay, is_transient_error, with_store_retry


class TestIsTransientError:
    @pytest.mark.parametrize(
        "message", ["database is locked", "disk I/O error", "unable to open database file"]
    )
    def test_transient(self, message: str) -> None:
        assert is_transient_error(sqlite3.OperationalError(message))

    def test_other_operational_error(self) -> None:
        assert not is_transient_error(sqlite3.OperationalError("no such table: documents"))

    def test_integrity_error(self) -> None:
        assert not is_transient_error(sqlite3.IntegrityError("database is locked"))


class TestCalculateDelay:
    def test_grows_and_caps(self) -> None:
        with (
            patch.object(Config, "STORE_RETRY_BASE_DELAY_SECONDS", 0.1),
            patch.object(Config, "STORE_RETRY_MAX_DELAY_SECONDS", 0.5),
        ):
            assert 0.08 <= calculate_delay(0) <= 0.12
            assert 0.16 <= calculate_delay(1) <= 0.24
            assert calculate_delay(10) <= 0.6


class TestWithStoreRetry:
    def test_returns_result(self) -> None:
        @with_store_retry
        def ok() -> int:
            return 42

        assert ok() == 42

    def test_retries_transient_then_succeeds(self) -> None:
        calls = []

        @with_store_retry
        def flaky() -> str:
            calls.append(1)
            if len(calls) < 3:
                raise sqlite3.OperationalError("database is locked")
            return "done"

        with patch("plaza.utils.retry.time.sleep") as sleep:
            assert flaky() == "done"
        assert len(calls) == 3
        assert sleep.call_count == 2

    def test_exhausted_retries_raise_internal_error(self) -> None:
        calls = []

        @with_store_retry
        def always_locked() -> None:
            calls.append(1)
            raise sqlite3.OperationalError("database is locked")

        with (
            patch.object(Config, "STORE_IO_MAX_RETRIES", 2),
            patch("plaza.utils.retry.time.sleep"),
            pytest.raises(InternalError),
        ):
            always_locked()
        assert len(calls) == 3

    def test_non_transient_fails_immediately(self) -> None:
        calls = []

        @with_store_retry
        def broken() -> None:
            calls.append(1)
            raise sqlite3.OperationalError("no such table: documents")

        with pytest.raises(InternalError):
            broken()
        assert len(calls) == 1

    def test_other_exceptions_pass_through(self) -> None:
        @with_store_retry
        def fails() -> None:
            raise ValueError("not a store problem")

        with pytest.raises(ValueError):
            fails()
