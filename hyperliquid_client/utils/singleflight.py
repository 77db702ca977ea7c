"""
Single-flight call coalescing.

Concurrent callers asking for the same key share one execution and its
outcome: the same result, or the same exception.
"""

import threading
from typing import Any, Callable, Dict, Hashable, Optional, TypeVar
import logging

logger = logging.getLogger(__name__)

T = TypeVar('T')


class _Call:
    """One in-flight execution."""

    __slots__ = ("event", "result", "error")

    def __init__(self):
        self.event = threading.Event()
        self.result: Any = None
        self.error: Optional[BaseException] = None


class SingleFlight:
    """
    Coalesce concurrent calls by key.

    The key is released as soon as the leader finishes, so the next call
    after completion starts a fresh execution.

    Usage:
        >>> flight = SingleFlight()
        >>> flight.do("refresh", cache.refresh)
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._calls: Dict[Hashable, _Call] = {}

    def do(
        self,
        key: Hashable,
        fn: Callable[[], T],
        timeout: Optional[float] = None
    ) -> T:
        """
        Run fn once for all concurrent callers of key.

        Args:
            key: Coalescing key
            fn: Zero-argument callable
            timeout: Max seconds a follower waits (None = forever)

        Raises:
            Whatever fn raised, in every caller
            TimeoutError: If a follower's wait timed out
        """
        with self._lock:
            call = self._calls.get(key)
            if call is not None:
                leader = False
            else:
                call = _Call()
                self._calls[key] = call
                leader = True

        if not leader:
            logger.debug(f"Joining in-flight call for {key!r}")
            if not call.event.wait(timeout):
                raise TimeoutError(f"Timed out waiting for in-flight call {key!r}")
            if call.error is not None:
                raise call.error
            return call.result

        try:
            call.result = fn()
            return call.result
        except BaseException as e:
            call.error = e
            raise
        finally:
            with self._lock:
                self._calls.pop(key, None)
            call.event.set()

    def in_flight(self, key: Hashable) -> bool:
        """Whether a call for key is currently running."""
        with self._lock:
            return key in self._calls
