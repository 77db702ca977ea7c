"""Tests for retry strategy and circuit breaker."""

from unittest.mock import MagicMock, patch

import pytest

from hyperliquid_client.exceptions import (
    APIError,
    CircuitBreakerError,
    RateLimitError,
    ValidationError,
)
from hyperliquid_client.utils.retry import CircuitBreaker, RetryStrategy


class TestCalculateDelay:
    """Test backoff delay computation."""

    def test_exponential_without_jitter(self):
        strategy = RetryStrategy(base_delay=1.0, max_delay=30.0, jitter=False)
        assert [strategy.calculate_delay(n) for n in range(7)] == [1, 2, 4, 8, 16, 30, 30]

    def test_jitter_stays_within_quarter(self):
        strategy = RetryStrategy(base_delay=4.0, max_delay=60.0, jitter=True)
        for _ in range(100):
            assert 3.0 <= strategy.calculate_delay(0) <= 5.0


class TestExecute:
    """Test retrying calls."""

    @patch("hyperliquid_client.utils.retry.time.sleep")
    def test_retries_server_errors(self, sleep):
        func = MagicMock(side_effect=[APIError("boom", status_code=502), "ok"])
        func.__name__ = "fetch"

        assert RetryStrategy(max_retries=3).execute(func) == "ok"
        assert func.call_count == 2
        sleep.assert_called_once()

    @patch("hyperliquid_client.utils.retry.time.sleep")
    def test_client_errors_not_retried(self, sleep):
        func = MagicMock(side_effect=APIError("bad request", status_code=400))
        func.__name__ = "fetch"

        with pytest.raises(APIError):
            RetryStrategy(max_retries=3).execute(func)
        assert func.call_count == 1
        sleep.assert_not_called()

    @patch("hyperliquid_client.utils.retry.time.sleep")
    def test_validation_errors_not_retried(self, sleep):
        func = MagicMock(side_effect=ValidationError("nope"))
        func.__name__ = "fetch"

        with pytest.raises(ValidationError):
            RetryStrategy(max_retries=3).execute(func)
        assert func.call_count == 1

    @patch("hyperliquid_client.utils.retry.time.sleep")
    def test_rate_limit_honors_retry_after(self, sleep):
        func = MagicMock(side_effect=[
            RateLimitError("slow down", endpoint="REST:weight", retry_after=7.5),
            "ok",
        ])
        func.__name__ = "fetch"

        RetryStrategy(max_retries=3, base_delay=0.1).execute(func)
        assert sleep.call_args[0][0] >= 7.5

    @patch("hyperliquid_client.utils.retry.time.sleep")
    def test_exhausted_retries_raise_last_error(self, sleep):
        func = MagicMock(side_effect=APIError("boom", status_code=503))
        func.__name__ = "fetch"

        with pytest.raises(APIError):
            RetryStrategy(max_retries=2).execute(func)
        assert func.call_count == 3


class TestCircuitBreaker:
    """Test circuit breaker state transitions."""

    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, timeout=60.0, name="test")
        failing = MagicMock(side_effect=APIError("down", status_code=503))

        for _ in range(2):
            with pytest.raises(APIError):
                breaker.call(failing)

        assert breaker.state == "OPEN"
        with pytest.raises(CircuitBreakerError):
            breaker.call(failing)
        assert failing.call_count == 2

    def test_half_open_success_closes(self):
        breaker = CircuitBreaker(failure_threshold=1, timeout=60.0, name="test")
        with pytest.raises(APIError):
            breaker.call(MagicMock(side_effect=APIError("down")))

        breaker._last_failure_time -= 61
        assert breaker.call(lambda: "ok") == "ok"
        assert breaker.state == "CLOSED"
        assert breaker.failures == 0

    def test_reset(self):
        breaker = CircuitBreaker(failure_threshold=1, name="test")
        with pytest.raises(APIError):
            breaker.call(MagicMock(side_effect=APIError("down")))

        breaker.reset()
        assert breaker.state == "CLOSED"

    def test_rejections_do_not_trip(self):
        breaker = CircuitBreaker(failure_threshold=1, name="test")

        for _ in range(3):
            with pytest.raises(APIError):
                breaker.call(MagicMock(side_effect=APIError("bad request", status_code=400)))

        assert breaker.state == "CLOSED"
        assert breaker.failures == 0

    def test_success_resets_consecutive_failures(self):
        breaker = CircuitBreaker(failure_threshold=3, name="test")
        failing = MagicMock(side_effect=APIError("down", status_code=502))

        for _ in range(2):
            with pytest.raises(APIError):
                breaker.call(failing)
        breaker.call(lambda: "ok")

        assert breaker.failures == 0
        with pytest.raises(APIError):
            breaker.call(failing)
        assert breaker.state == "CLOSED"

    def test_half_open_failure_reopens(self):
        now = [1000.0]
        breaker = CircuitBreaker(failure_threshold=1, timeout=10.0, name="test", clock=lambda: now[0])
        failing = MagicMock(side_effect=TimeoutError("slow"))

        with pytest.raises(TimeoutError):
            breaker.call(failing)
        now[0] += 11
        with pytest.raises(TimeoutError):
            breaker.call(failing)

        assert breaker.state == "OPEN"
        with pytest.raises(CircuitBreakerError, match="retry in"):
            breaker.call(failing)
