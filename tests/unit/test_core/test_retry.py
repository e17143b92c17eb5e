# tests/unit/test_core/test_retry.py

"""Tests for failure classification and the retry executor."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from src.core.errors import (
    RateLimitedError,
    SourceUnavailableError,
    TransientSourceError,
    ValidationError,
)
from src.core.retry import FailureClass, RetryExecutor, classify
from src.integrations.base_source import parse_retry_after, raise_for_status


def _failing(*errors: Exception, result: str = "ok") -> MagicMock:
    """Operation that raises the given errors in order, then returns ``result``."""
    return MagicMock(side_effect=[*errors, result])


def _throttled(headers: dict[str, str] | None = None) -> requests.Response:
    """A 429 response, with no headers unless given."""
    response = requests.Response()
    response.status_code = 429
    response.headers.update(headers or {})
    return response


class TestClassify:
    """Tests for classify()."""

    def test_rate_limited(self) -> None:
        assert classify(RateLimitedError("429")) is FailureClass.RATE_LIMITED

    def test_transient(self) -> None:
        """Server errors and connection-level failures are transient."""
        assert classify(TransientSourceError("503", status_code=503)) is FailureClass.TRANSIENT
        assert classify(requests.Timeout()) is FailureClass.TRANSIENT
        assert classify(requests.ConnectionError()) is FailureClass.TRANSIENT

    def test_terminal(self) -> None:
        """Everything else is terminal."""
        assert classify(ValidationError("bad")) is FailureClass.TERMINAL
        assert classify(SourceUnavailableError("down")) is FailureClass.TERMINAL
        assert classify(KeyError("x")) is FailureClass.TERMINAL


class TestBackoff:
    """Tests for delay computation."""

    def test_rate_limit_delays_strictly_increase(self) -> None:
        """Successive rate-limit delays double without jitter."""
        executor = RetryExecutor(base_delay=1.0, jitter=lambda a, b: 0.0)
        exc = RateLimitedError("429")
        delays = [executor.backoff_delay(attempt, exc) for attempt in range(4)]
        assert delays == [1.0, 2.0, 4.0, 8.0]

    def test_jitter_bounded(self) -> None:
        """Jitter adds at most a quarter of the exponential delay."""
        executor = RetryExecutor(base_delay=1.0, jitter=lambda a, b: b)
        assert executor.backoff_delay(2, RateLimitedError("429")) == pytest.approx(5.0)

    def test_capped_at_max_delay(self) -> None:
        """No single delay exceeds max_delay."""
        executor = RetryExecutor(base_delay=1.0, max_delay=3.0, jitter=lambda a, b: b)
        assert executor.backoff_delay(5, RateLimitedError("429")) == 3.0

    def test_retry_after_floor(self) -> None:
        """A Retry-After hint is never undercut."""
        executor = RetryExecutor(base_delay=1.0, jitter=lambda a, b: 0.0)
        assert executor.backoff_delay(0, RateLimitedError("429", retry_after=7)) == 7.0

    def test_transient_fixed_delay(self) -> None:
        """Transient failures wait the fixed delay regardless of attempt."""
        executor = RetryExecutor(transient_delay=0.5)
        exc = TransientSourceError("502", status_code=502)
        assert executor.backoff_delay(0, exc) == 0.5
        assert executor.backoff_delay(3, exc) == 0.5

    def test_base_delay_override(self) -> None:
        executor = RetryExecutor(base_delay=1.0, jitter=lambda a, b: 0.0)
        assert executor.backoff_delay(1, RateLimitedError("429"), base_delay=0.25) == 0.5


class TestRun:
    """Tests for RetryExecutor.run()."""

    def test_success_first_try(self) -> None:
        sleep = MagicMock()
        executor = RetryExecutor(sleep=sleep)
        assert executor.run(lambda: 42) == 42
        sleep.assert_not_called()

    def test_retries_rate_limit_with_growing_delays(self) -> None:
        """Rate-limited attempts back off with strictly increasing delays."""
        delays: list[float] = []
        executor = RetryExecutor(max_attempts=4, sleep=delays.append, jitter=lambda a, b: 0.0)
        operation = _failing(RateLimitedError("429"), RateLimitedError("429"), RateLimitedError("429"))

        assert executor.run(operation) == "ok"
        assert operation.call_count == 4
        assert delays == [1.0, 2.0, 4.0]
        assert all(later > earlier for earlier, later in zip(delays, delays[1:]))

    def test_transient_retried_with_fixed_delay(self) -> None:
        delays: list[float] = []
        executor = RetryExecutor(transient_delay=0.5, sleep=delays.append)
        operation = _failing(requests.ConnectionError("reset"))
        assert executor.run(operation) == "ok"
        assert delays == [0.5]

    def test_terminal_not_retried(self) -> None:
        """Terminal failures propagate at once and never sleep."""
        sleep = MagicMock()
        executor = RetryExecutor(sleep=sleep)
        operation = _failing(ValueError("boom"))
        with pytest.raises(ValueError):
            executor.run(operation)
        assert operation.call_count == 1
        sleep.assert_not_called()

    def test_exhaustion_reraises_last_error(self) -> None:
        """The last failure propagates once the budget is spent."""
        sleep = MagicMock()
        executor = RetryExecutor(max_attempts=2, sleep=sleep, jitter=lambda a, b: 0.0)
        last = RateLimitedError("second")
        operation = _failing(RateLimitedError("first"), last)
        with pytest.raises(RateLimitedError) as excinfo:
            executor.run(operation)
        assert excinfo.value is last
        assert sleep.call_count == 1

    def test_max_attempts_override(self) -> None:
        executor = RetryExecutor(max_attempts=5, sleep=MagicMock(), jitter=lambda a, b: 0.0)
        operation = _failing(RateLimitedError("429"), RateLimitedError("429"))
        with pytest.raises(RateLimitedError):
            executor.run(operation, max_attempts=1)
        assert operation.call_count == 1

    def test_deadline_prevents_overrun(self, fake_clock) -> None:
        """A retry that would end past the deadline is not attempted."""
        sleep = MagicMock()
        executor = RetryExecutor(base_delay=1.0, sleep=sleep, jitter=lambda a, b: 0.0, clock=fake_clock)
        operation = _failing(RateLimitedError("429"))
        with pytest.raises(RateLimitedError):
            executor.run(operation, deadline=fake_clock() + 0.5)
        sleep.assert_not_called()

    def test_deadline_allows_short_retry(self, fake_clock) -> None:
        executor = RetryExecutor(transient_delay=0.1, sleep=MagicMock(), clock=fake_clock)
        operation = _failing(TransientSourceError("503", status_code=503))
        assert executor.run(operation, deadline=fake_clock() + 2.0) == "ok"

    def test_invalid_attempts(self) -> None:
        with pytest.raises(ValueError):
            RetryExecutor(max_attempts=0)


class TestHttpRateLimit:
    """A real 429 response flowing through raise_for_status into the executor."""

    def test_missing_header_has_no_hint(self) -> None:
        assert parse_retry_after(None) is None
        assert parse_retry_after("soon") is None
        assert parse_retry_after("12") == 12.0

    def test_http_date_header(self) -> None:
        assert parse_retry_after("Thu, 01 Jan 1970 00:01:00 GMT", now=30.0) == pytest.approx(30.0)

    def test_headerless_429_backs_off_exponentially(self) -> None:
        """Without Retry-After the delays double per attempt."""
        delays: list[float] = []
        executor = RetryExecutor(max_attempts=4, base_delay=1.0, sleep=delays.append, jitter=lambda a, b: 0.0)
        calls = MagicMock(side_effect=[_throttled(), _throttled(), _throttled(), None])

        def operation() -> str:
            response = calls()
            if response is not None:
                raise_for_status(response, "hltb_api")
            return "ok"

        assert executor.run(operation) == "ok"
        assert delays == [1.0, 2.0, 4.0]

    def test_headerless_429_retried_within_budget(self, fake_clock) -> None:
        """A short base delay fits several retries into a two second budget."""
        executor = RetryExecutor(
            max_attempts=3,
            base_delay=0.25,
            sleep=fake_clock.advance,
            jitter=lambda a, b: 0.0,
            clock=fake_clock,
        )
        attempts = MagicMock(side_effect=lambda: raise_for_status(_throttled(), "hltb_api"))

        with pytest.raises(RateLimitedError) as excinfo:
            executor.run(attempts, deadline=fake_clock() + 2.0)

        assert attempts.call_count == 3
        assert excinfo.value.retry_after is None

    def test_header_still_sets_floor(self) -> None:
        delays: list[float] = []
        executor = RetryExecutor(max_attempts=2, base_delay=1.0, sleep=delays.append, jitter=lambda a, b: 0.0)
        calls = MagicMock(side_effect=[_throttled({"Retry-After": "5"}), None])

        def operation() -> str:
            response = calls()
            if response is not None:
                raise_for_status(response, "hltb_api")
            return "ok"

        assert executor.run(operation) == "ok"
        assert delays == [5.0]
