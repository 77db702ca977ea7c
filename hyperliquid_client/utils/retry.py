"""
Retry logic with exponential backoff and circuit breaker.

Handles transient REST failures and computes the reconnect schedule
used by the streaming connection.
"""

import random
import time
import threading
from typing import Callable, TypeVar, Optional
import logging

from ..exceptions import (
    HyperliquidError,
    APIError,
    TimeoutError,
    RateLimitError,
    CircuitBreakerError
)
from ..metrics import get_metrics

logger = logging.getLogger(__name__)

T = TypeVar('T')


def is_transient(exception: BaseException) -> bool:
    """
    True for failures worth trying again: timeouts, rate limits, dropped
    connections and 5xx responses. 4xx rejections are not transient.
    """
    if isinstance(exception, (TimeoutError, RateLimitError)):
        return True
    if isinstance(exception, APIError):
        status = exception.status_code
        return status is None or status >= 500
    return isinstance(exception, (ConnectionError, OSError))


class CircuitBreaker:
    """
    Stops calling the venue after repeated transient failures.

    CLOSED passes calls through. After failure_threshold consecutive
    transient failures it goes OPEN and rejects calls for timeout seconds,
    then lets one trial through as HALF_OPEN. Rejections such as a 400 or
    an auth error leave the breaker untouched.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 60.0,
        name: str = "default",
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            failure_threshold: Consecutive failures before opening
            timeout: Seconds to stay open before a trial call
            name: Label for logs and the state gauge
            clock: Time source
        """
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.name = name
        self._clock = clock

        self._failures = 0
        self._last_failure_time: Optional[float] = None
        self._state = "CLOSED"
        self._lock = threading.Lock()
        self._metrics = get_metrics()

    def _transition(self, state: str, reason: str = "") -> None:
        # Caller holds self._lock
        if state == self._state:
            return
        logger.log(
            logging.WARNING if state == "OPEN" else logging.INFO,
            f"Circuit breaker {self.name}: {self._state} -> {state}"
            + (f" ({reason})" if reason else "")
        )
        self._state = state
        self._metrics.set_circuit_breaker_state(self.name, state)

    def _before_call(self) -> None:
        with self._lock:
            if self._state != "OPEN":
                return
            elapsed = self._clock() - self._last_failure_time
            if elapsed < self.timeout:
                raise CircuitBreakerError(
                    f"Circuit breaker {self.name} is OPEN; "
                    f"retry in {self.timeout - elapsed:.1f}s"
                )
            self._transition("HALF_OPEN")

    def _on_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._transition("CLOSED")

    def _on_failure(self, exception: Exception) -> None:
        with self._lock:
            if not is_transient(exception):
                # The venue answered; only the request was bad
                if self._state == "HALF_OPEN":
                    self._transition("CLOSED")
                return

            self._failures += 1
            self._last_failure_time = self._clock()
            if self._state == "HALF_OPEN":
                self._transition("OPEN", "trial call failed")
            elif self._failures >= self.failure_threshold:
                self._transition("OPEN", f"{self._failures} failures")

    def call(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Call func unless the circuit is open.

        Raises:
            CircuitBreakerError: If circuit is open
        """
        self._before_call()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._on_failure(e)
            raise
        self._on_success()
        return result

    def reset(self) -> None:
        """Force the breaker closed."""
        with self._lock:
            self._failures = 0
            self._last_failure_time = None
            self._transition("CLOSED", "reset")

    @property
    def state(self) -> str:
        return self._state

    @property
    def failures(self) -> int:
        return self._failures


class RetryStrategy:
    """
    Exponential backoff schedule, plus a retry loop for REST calls.

    The streaming connection only uses calculate_delay(); REST reads
    go through execute().
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        """
        Args:
            max_retries: Retries after the first attempt
            base_delay: Delay before the first retry, in seconds
            max_delay: Delay cap, in seconds
            exponential_base: Backoff multiplier
            jitter: Spread delays by +/-25%
            circuit_breaker: Breaker wrapped around every attempt
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.circuit_breaker = circuit_breaker

    def calculate_delay(self, attempt: int) -> float:
        """
        Delay before retry number attempt (zero-based).

        base_delay * exponential_base ** attempt, capped at max_delay,
        with +/-25% jitter when enabled.
        """
        delay = min(
            self.base_delay * (self.exponential_base ** attempt),
            self.max_delay
        )

        if self.jitter:
            jitter_amount = delay * 0.25
            delay += random.uniform(-jitter_amount, jitter_amount)

        return max(0, delay)

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        if attempt >= self.max_retries:
            return False
        if isinstance(exception, CircuitBreakerError):
            return False
        return is_transient(exception)

    def _attempt(self, func: Callable[..., T], *args, **kwargs) -> T:
        if self.circuit_breaker:
            return self.circuit_breaker.call(func, *args, **kwargs)
        return func(*args, **kwargs)

    def execute(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Call func, retrying transient failures with backoff.

        A 429 waits at least as long as its Retry-After header asks.

        Raises:
            The last exception once retries are exhausted or it is not transient
        """
        name = getattr(func, "__name__", repr(func))

        for attempt in range(self.max_retries + 1):
            try:
                return self._attempt(func, *args, **kwargs)
            except Exception as e:
                if not self._should_retry(e, attempt):
                    if attempt and is_transient(e):
                        logger.error(f"Giving up on {name} after {attempt + 1} attempts: {e}")
                    raise

                delay = self.calculate_delay(attempt)
                if isinstance(e, RateLimitError) and e.retry_after:
                    delay = max(delay, e.retry_after)
                logger.warning(
                    f"Retry {attempt + 1}/{self.max_retries} for {name} "
                    f"after {type(e).__name__}: {e}. Waiting {delay:.2f}s"
                )
                time.sleep(delay)

        raise HyperliquidError("Retry loop exited without a result")
