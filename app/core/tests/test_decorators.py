"""
Tests for transient-failure decorators.
"""

import time
from unittest import mock

import pytest
from django.db import IntegrityError, OperationalError

from core.decorators import TRY_AGAIN_MESSAGE, call_with_timeout, retry_transient, translate_db_errors
from core.exceptions import (
    NotFoundError,
    OperationTimeoutError,
    StorageUnavailableError,
    TransientError,
)


class TestRetryTransient:
    def test_returns_first_success(self):
        func = mock.Mock(return_value="ok")

        assert retry_transient(max_attempts=3, base_delay=0)(func)() == "ok"
        assert func.call_count == 1

    def test_retries_until_success(self):
        func = mock.Mock(side_effect=[TransientError("blip"), TransientError("blip"), "ok"])
        func.__qualname__ = "flaky"

        assert retry_transient(max_attempts=3, base_delay=0)(func)() == "ok"
        assert func.call_count == 3

    def test_exhaustion_raises_try_again(self):
        last = StorageUnavailableError("down")
        func = mock.Mock(side_effect=last)
        func.__qualname__ = "always_down"

        with pytest.raises(StorageUnavailableError) as exc_info:
            retry_transient(max_attempts=2, base_delay=0)(func)()

        assert exc_info.value.message == TRY_AGAIN_MESSAGE
        assert exc_info.value.__cause__ is last
        assert func.call_count == 2

    def test_permanent_errors_are_not_retried(self):
        func = mock.Mock(side_effect=NotFoundError("gone"))
        func.__qualname__ = "lookup"

        with pytest.raises(NotFoundError):
            retry_transient(max_attempts=3, base_delay=0)(func)()
        assert func.call_count == 1

    def test_backoff_doubles(self):
        func = mock.Mock(side_effect=[TransientError("a"), TransientError("b"), "ok"])
        func.__qualname__ = "flaky"

        with mock.patch("core.decorators.time.sleep") as sleep:
            retry_transient(max_attempts=3, base_delay=0.1)(func)()

        assert [c.args[0] for c in sleep.call_args_list] == [0.1, 0.2]

    def test_defaults_come_from_settings(self, settings):
        settings.CHAT_RETRY_ATTEMPTS = 4
        settings.CHAT_RETRY_BASE_DELAY = 0
        func = mock.Mock(side_effect=TransientError("down"))
        func.__qualname__ = "always_down"

        with pytest.raises(StorageUnavailableError):
            retry_transient()(func)()
        assert func.call_count == 4


class TestTranslateDbErrors:
    def test_operational_error_becomes_storage_unavailable(self):
        @translate_db_errors
        def query():
            raise OperationalError("server closed the connection")

        with pytest.raises(StorageUnavailableError) as exc_info:
            query()
        assert exc_info.value.details["operation"].endswith("query")

    def test_integrity_error_passes_through(self):
        @translate_db_errors
        def insert():
            raise IntegrityError("duplicate key")

        with pytest.raises(IntegrityError):
            insert()

    def test_stacked_with_retry(self):
        calls = []

        @retry_transient(max_attempts=2, base_delay=0)
        @translate_db_errors
        def query():
            calls.append(1)
            if len(calls) == 1:
                raise OperationalError("blip")
            return "rows"

        assert query() == "rows"
        assert len(calls) == 2


class TestCallWithTimeout:
    def test_returns_result(self):
        assert call_with_timeout(lambda a, b: a + b, 1, 2, b=3) == 5

    def test_slow_call_times_out(self):
        with pytest.raises(OperationTimeoutError) as exc_info:
            call_with_timeout(time.sleep, 0.05, 1)

        assert exc_info.value.details == {"timeout": 0.05}

    def test_errors_propagate(self):
        def explode():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            call_with_timeout(explode, 1)
