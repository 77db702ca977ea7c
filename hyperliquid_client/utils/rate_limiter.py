"""
Thread-safe weighted rate limiter.

Hyperliquid charges each REST request a weight against a per-IP budget,
so entries in the sliding window carry their weight rather than counting 1.
"""

import time
import threading
from collections import deque
from typing import Optional
from ..config import get_rate_limit
from ..exceptions import RateLimitError
import logging

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Thread-safe rate limiter keyed by budget name.

    Tracks (timestamp, weight) entries per key with sliding time windows.
    """

    def __init__(
        self,
        enabled: bool = True,
        margin: float = 0.8,
        endpoint_ttl: float = 3600.0
    ):
        """
        Initialize rate limiter.

        Args:
            enabled: Whether rate limiting is enabled
            margin: Use only this fraction of limits (e.g., 0.8 = 80%)
            endpoint_ttl: Seconds before an unused key is removed
        """
        self.enabled = enabled
        self.margin = margin
        self.endpoint_ttl = endpoint_ttl

        self._locks: dict[str, threading.RLock] = {}
        self._requests: dict[str, deque] = {}  # key -> (timestamp, weight)
        self._used: dict[str, int] = {}  # key -> weight inside window
        self._last_access: dict[str, float] = {}
        self._lock = threading.RLock()

    def _get_lock(self, endpoint: str) -> threading.RLock:
        """Get or create reentrant lock for key."""
        with self._lock:
            if endpoint not in self._locks:
                self._locks[endpoint] = threading.RLock()
            return self._locks[endpoint]

    def _get_requests(self, endpoint: str) -> deque:
        with self._lock:
            if endpoint not in self._requests:
                self._requests[endpoint] = deque()
                self._used[endpoint] = 0
            return self._requests[endpoint]

    def _clean_old_requests(self, endpoint: str, window: float) -> None:
        """Remove entries outside time window."""
        cutoff = time.time() - window
        requests = self._get_requests(endpoint)

        while requests and requests[0][0] < cutoff:
            _, weight = requests.popleft()
            self._used[endpoint] -= weight

    def _effective_limit(self, endpoint: str) -> tuple[int, float]:
        config = get_rate_limit(endpoint)
        window = config.get("window", 10)
        limit = config.get("limit")
        effective_limit = int(limit * self.margin) if limit else 0
        return effective_limit, window

    def acquire(
        self,
        endpoint: str,
        weight: int = 1,
        timeout: Optional[float] = None
    ) -> None:
        """
        Acquire weight from the budget (blocking).

        Lock held only during state check, not during sleep.

        Args:
            endpoint: Budget key (e.g., "REST:weight")
            weight: Cost of this request
            timeout: Max wait time in seconds (None = wait forever)

        Raises:
            RateLimitError: If timeout exceeded or the weight can never fit
        """
        if not self.enabled:
            return

        effective_limit, window = self._effective_limit(endpoint)
        if not effective_limit:
            return

        if weight > effective_limit:
            raise RateLimitError(
                f"Request weight {weight} exceeds budget {effective_limit} for {endpoint}",
                endpoint=endpoint,
                retry_after=None
            )

        lock = self._get_lock(endpoint)
        start_time = time.time()

        while True:
            with lock:
                self._clean_old_requests(endpoint, window)
                requests = self._get_requests(endpoint)
                self._last_access[endpoint] = time.time()

                if self._used[endpoint] + weight <= effective_limit:
                    requests.append((time.time(), weight))
                    self._used[endpoint] += weight
                    return

                oldest_request = requests[0][0]
                wait_time = window - (time.time() - oldest_request)

            if timeout is not None:
                elapsed = time.time() - start_time
                if elapsed >= timeout:
                    raise RateLimitError(
                        f"Rate limit timeout for {endpoint}",
                        endpoint=endpoint,
                        retry_after=wait_time
                    )

            if wait_time > 0:
                logger.debug(
                    f"Rate limit reached for {endpoint}, waiting {wait_time:.2f}s"
                )
                time.sleep(min(wait_time, 1.0))
            else:
                time.sleep(0.001)

    def get_remaining(self, endpoint: str) -> int:
        """
        Get remaining weight in current window.

        Args:
            endpoint: Budget key

        Returns:
            Weight still available
        """
        if not self.enabled:
            return 99999

        effective_limit, window = self._effective_limit(endpoint)
        if not effective_limit:
            return 99999

        lock = self._get_lock(endpoint)
        with lock:
            self._clean_old_requests(endpoint, window)
            return max(0, effective_limit - self._used[endpoint])

    def cleanup_stale_endpoints(self) -> int:
        """
        Remove keys not accessed in endpoint_ttl seconds.

        Returns:
            Number of keys cleaned up
        """
        cutoff = time.time() - self.endpoint_ttl

        with self._lock:
            stale = [
                endpoint for endpoint, last_access in self._last_access.items()
                if last_access < cutoff
            ]

            for endpoint in stale:
                self._requests.pop(endpoint, None)
                self._used.pop(endpoint, None)
                self._locks.pop(endpoint, None)
                self._last_access.pop(endpoint, None)

            if stale:
                logger.info(f"Cleaned up {len(stale)} stale rate limit keys")

            return len(stale)

    def reset(self, endpoint: Optional[str] = None) -> None:
        """
        Reset rate limiter state.

        Args:
            endpoint: Specific key to reset, or None for all
        """
        with self._lock:
            if endpoint:
                self._requests[endpoint] = deque()
                self._used[endpoint] = 0
            else:
                self._requests.clear()
                self._used.clear()

    def get_stats(self) -> dict[str, dict]:
        """
        Get rate limiter statistics.

        Returns:
            Dict of key -> stats
        """
        stats = {}
        for endpoint in list(self._requests):
            effective, window = self._effective_limit(endpoint)
            remaining = self.get_remaining(endpoint)

            stats[endpoint] = {
                "limit": effective,
                "used": effective - remaining,
                "remaining": remaining,
                "window": window
            }

        return stats
