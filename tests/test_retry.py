"""
Tests for retry logic and circuit breaker around model calls.
"""

import time

import pytest

from curtaincall.retry import (
    CircuitBreaker,
    CircuitOpenError,
    RetryError,
    exponential_backoff,
    should_retry_http_status,
)


class TestExponentialBackoff:
    """Test the synchronous backoff decorator."""

    def test_first_call_succeeds(self):
        calls = []

        @exponential_backoff(max_retries=3, base_delay=0.01)
        def score():
            calls.append(1)
            return {"bucket": "Rave"}

        assert score() == {"bucket": "Rave"}
        assert len(calls) == 1

    def test_recovers_after_transient_failures(self):
        calls = []

        @exponential_backoff(max_retries=3, base_delay=0.01)
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("connection reset")
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3

    def test_gives_up_after_max_retries(self):
        calls = []

        @exponential_backoff(max_retries=2, base_delay=0.01)
        def always_down():
            calls.append(1)
            raise TimeoutError("model timed out")

        with pytest.raises(RetryError, match="3 attempts"):
            always_down()
        assert len(calls) == 3  # first call + 2 retries

    def test_zero_retries_means_single_attempt(self):
        calls = []

        @exponential_backoff(max_retries=0, base_delay=0.01)
        def once():
            calls.append(1)
            raise ConnectionError("down")

        with pytest.raises(RetryError):
            once()
        assert len(calls) == 1

    def test_unlisted_exceptions_propagate_immediately(self):
        calls = []

        @exponential_backoff(max_retries=3, base_delay=0.01, exceptions=(ConnectionError,))
        def malformed():
            calls.append(1)
            raise ValueError("bad JSON")

        with pytest.raises(ValueError):
            malformed()
        assert len(calls) == 1

    def test_delays_grow_and_are_capped(self):
        delays = []

        @exponential_backoff(
            max_retries=4,
            base_delay=0.01,
            max_delay=0.03,
            exponential_base=2.0,
            on_retry=lambda attempt, exc, delay: delays.append(delay),
        )
        def always_down():
            raise ConnectionError("down")

        with pytest.raises(RetryError):
            always_down()
        assert delays == [0.01, 0.02, 0.03, 0.03]


class TestCircuitBreaker:
    """Test circuit breaker states."""

    def _trip(self, breaker, times):
        for _ in range(times):
            breaker.before_call()
            breaker.on_failure()

    def test_starts_closed(self):
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=1)
        breaker.before_call()
        breaker.on_success()
        assert breaker.state == CircuitBreaker.CLOSED

    def test_opens_after_threshold_and_refuses_calls(self):
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        self._trip(breaker, 3)
        assert breaker.state == CircuitBreaker.OPEN

        with pytest.raises(CircuitOpenError, match="Circuit breaker is OPEN"):
            breaker.before_call()

    def test_before_call_raises_when_open(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        breaker.on_failure()
        with pytest.raises(CircuitOpenError):
            breaker.before_call()

    def test_half_open_probe_success_closes(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=0.05)
        self._trip(breaker, 2)
        time.sleep(0.08)

        breaker.before_call()
        assert breaker.state == CircuitBreaker.HALF_OPEN
        breaker.on_success()
        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.failure_count == 0

    def test_half_open_probe_failure_reopens(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=0.05)
        self._trip(breaker, 2)
        time.sleep(0.08)

        self._trip(breaker, 1)
        assert breaker.state == CircuitBreaker.OPEN

    def test_manual_reset(self):
        breaker = CircuitBreaker(failure_threshold=2)
        self._trip(breaker, 2)
        breaker.reset()
        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.failure_count == 0
        assert breaker.last_failure_time is None


class TestRetryableStatus:
    """Test which HTTP statuses count as transient."""

    def test_http_status_codes(self):
        for status in (408, 429, 500, 502, 503, 504, 529):
            assert should_retry_http_status(status)
        for status in (200, 400, 401, 403, 404, 422):
            assert not should_retry_http_status(status)
