"""
WebSocket connection manager.

Maintains one logical streaming connection to Hyperliquid across an
unreliable network: single-flight connect, application-level heartbeat,
exponential-backoff reconnection and subscription capacity accounting.

Transport callbacks arrive on the transport's own thread. Each transport is
bound to a generation number, and callbacks from a superseded transport are
dropped.
"""

import threading
import time
from collections import defaultdict
from functools import partial
from typing import Any, Callable, Optional
import logging

import orjson

from ..exceptions import (
    NotConnectedError,
    TransportUnavailableError,
    WebSocketConnectionError,
    WebSocketError,
)
from ..metrics import get_metrics
from ..models import ConnectionState
from ..utils.retry import RetryStrategy
from .transport import TransportFactory, select_transport_factory

logger = logging.getLogger(__name__)

EVENTS = (
    "open",
    "message",
    "close",
    "error",
    "reconnect",
    "maxReconnectAttemptsReached",
)

PING_MESSAGE = {"method": "ping"}


class _ConnectAttempt:
    """Outcome shared by every caller waiting on one connect."""

    __slots__ = ("generation", "reconnect_attempt", "event", "error")

    def __init__(self, generation: int, reconnect_attempt: int):
        self.generation = generation
        self.reconnect_attempt = reconnect_attempt
        self.event = threading.Event()
        self.error: Optional[Exception] = None

    def fail(self, error: Exception) -> None:
        if not self.event.is_set():
            self.error = error
            self.event.set()


class WebSocketClient:
    """
    Resilient WebSocket client for Hyperliquid streaming.

    Provides:
    - Idempotent connect shared by concurrent callers
    - Ping/pong liveness with forced reconnect on silence
    - Automatic reconnection with capped exponential backoff
    - Subscription capacity accounting
    - Event listeners: open, message, close, error, reconnect,
      maxReconnectAttemptsReached

    Usage:
        >>> ws = WebSocketClient("wss://api.hyperliquid.xyz/ws")
        >>> ws.on("message", print)
        >>> ws.connect()
        >>> ws.send_message({"method": "subscribe", "subscription": {"type": "allMids"}})
    """

    def __init__(
        self,
        url: str,
        transport_factory: Optional[TransportFactory] = None,
        max_reconnect_attempts: int = 5,
        initial_reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 30.0,
        ping_interval: float = 15.0,
        pong_timeout: float = 30.0,
        connect_timeout: float = 10.0,
        max_subscriptions: int = 1000,
        timer_factory: Optional[Callable[[float, Callable[[], None]], Any]] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize WebSocket client.

        Args:
            url: WebSocket URL
            transport_factory: Transport constructor, auto-selected when None
            max_reconnect_attempts: Reconnects before giving up
            initial_reconnect_delay: First reconnect delay (seconds)
            max_reconnect_delay: Reconnect delay cap (seconds)
            ping_interval: Seconds between pings while open
            pong_timeout: Silence after which the connection is recycled
            connect_timeout: Max seconds to wait for the transport to open
            max_subscriptions: Subscription capacity
            timer_factory: Timer constructor, threading.Timer by default
            clock: Monotonic clock used for liveness
        """
        self.url = url
        self.max_reconnect_attempts = max_reconnect_attempts
        self.ping_interval = ping_interval
        self.pong_timeout = pong_timeout
        self.connect_timeout = connect_timeout
        self.max_subscriptions = max_subscriptions

        if transport_factory is None:
            transport_factory = select_transport_factory()
        self._transport_factory = transport_factory
        self._timer_factory = timer_factory or threading.Timer
        self._clock = clock

        self._backoff = RetryStrategy(
            max_retries=max_reconnect_attempts,
            base_delay=initial_reconnect_delay,
            max_delay=max_reconnect_delay,
            exponential_base=2.0,
            jitter=False
        )

        self._lock = threading.RLock()
        self._state = ConnectionState.IDLE
        self._transport = None
        self._generation = 0
        self._active_generation: Optional[int] = None
        self._open_deferred: Optional[int] = None
        self._pending: Optional[_ConnectAttempt] = None
        self._closed_by_user = False
        self._has_opened = False

        self._reconnect_attempts = 0
        self._max_attempts_announced = False
        self._reconnect_timer = None
        self._connect_timer = None
        self._ping_timer = None

        self._last_pong = clock()
        self._subscription_count = 0
        self._messages_received = 0
        self._total_reconnections = 0

        self._listeners: dict[str, list[Callable]] = defaultdict(list)
        self._metrics = get_metrics()

        logger.info(f"WebSocket client initialized: {url}")

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str, handler: Callable) -> Callable:
        """
        Register a listener.

        Returns:
            The handler, so it can be passed to remove_listener later
        """
        if event not in EVENTS:
            raise ValueError(f"Unknown event: {event}")
        with self._lock:
            self._listeners[event].append(handler)
        return handler

    def remove_listener(self, event: str, handler: Callable) -> None:
        with self._lock:
            handlers = self._listeners.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

    def remove_all_listeners(self, event: Optional[str] = None) -> None:
        """Remove listeners for one event, or for every event."""
        with self._lock:
            if event is None:
                self._listeners.clear()
            else:
                self._listeners.pop(event, None)

    def _emit(self, event: str, *args) -> None:
        with self._lock:
            handlers = list(self._listeners.get(event, ()))

        for handler in handlers:
            try:
                handler(*args)
            except Exception as e:
                logger.error(f"Error in {event} listener: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    def is_connected(self) -> bool:
        return self._state == ConnectionState.OPEN

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state
        self._metrics.set_ws_state(state.value)

    def connect(self) -> None:
        """
        Open the connection, or join the attempt already underway.

        Returns once the transport reports open.

        Raises:
            TransportUnavailableError: If no transport implementation is usable
            WebSocketConnectionError: If the transport fails before opening
        """
        with self._lock:
            if self._state == ConnectionState.OPEN:
                return

            attempt = self._pending
            if attempt is None:
                self._closed_by_user = False
                self._cancel_timer("_reconnect_timer")
                self._reconnect_attempts = 0
                self._max_attempts_announced = False
                attempt = self._start_attempt(reconnect_attempt=0)
            else:
                logger.debug("Joining in-flight connect attempt")

        self._finish_deferred_open(attempt.generation)

        if not attempt.event.wait(self.connect_timeout):
            self._connect_timed_out(attempt.generation)

        if attempt.error is not None:
            raise attempt.error
        if not attempt.event.is_set():
            raise WebSocketConnectionError("Timed out waiting for WebSocket to open")

    def _start_attempt(self, reconnect_attempt: int) -> _ConnectAttempt:
        # Caller holds self._lock
        if self._transport_factory is None:
            raise TransportUnavailableError(
                "No WebSocket implementation available: pip install websocket-client"
            )

        self._generation += 1
        generation = self._generation
        attempt = _ConnectAttempt(generation, reconnect_attempt)
        self._pending = attempt
        self._active_generation = generation
        self._set_state(ConnectionState.CONNECTING)

        logger.info(
            f"Connecting to {self.url}"
            + (f" (reconnect attempt {reconnect_attempt})" if reconnect_attempt else "")
        )

        try:
            transport = self._transport_factory(
                self.url,
                partial(self._handle_open, generation),
                partial(self._handle_message, generation),
                partial(self._handle_error, generation),
                partial(self._handle_close, generation)
            )
        except Exception as e:
            self._pending = None
            self._active_generation = None
            self._transport = None
            self._set_state(ConnectionState.CLOSED)
            error = WebSocketConnectionError(f"Failed to create transport: {e}")
            attempt.fail(error)
            raise error from e

        if self._active_generation != generation:
            # Closed synchronously inside the factory
            self._close_transport(transport)
            return attempt

        self._transport = transport
        self._connect_timer = self._start_timer(
            self.connect_timeout, partial(self._connect_timed_out, generation)
        )
        return attempt

    def _finish_deferred_open(self, generation: int) -> None:
        # Called without self._lock so open listeners never run under it
        with self._lock:
            if self._open_deferred != generation:
                return
            self._open_deferred = None
        self._handle_open(generation)

    def _connect_timed_out(self, generation: int) -> None:
        with self._lock:
            if generation != self._active_generation or self._state != ConnectionState.CONNECTING:
                return
            transport = self._transport

        logger.warning(f"WebSocket open timed out after {self.connect_timeout}s")
        self._close_transport(transport)
        self._handle_close(generation, None, "connect timeout")

    def close(self) -> None:
        """
        Close the connection and suppress reconnection.

        Cancels pending reconnects and heartbeat timers; a connect in progress
        fails with WebSocketConnectionError.
        """
        with self._lock:
            was_active = self._state not in (ConnectionState.IDLE, ConnectionState.CLOSED)
            self._closed_by_user = True
            self._cancel_timer("_reconnect_timer")
            self._cancel_timer("_connect_timer")
            self._cancel_timer("_ping_timer")

            transport = self._transport
            attempt = self._pending
            self._transport = None
            self._pending = None
            self._active_generation = None
            self._open_deferred = None
            self._reconnect_attempts = 0
            self._set_state(ConnectionState.CLOSING)

        self._close_transport(transport)

        with self._lock:
            if self._state == ConnectionState.CLOSING:
                self._set_state(ConnectionState.CLOSED)

        if attempt is not None:
            attempt.fail(WebSocketConnectionError("Connection closed by client"))

        if was_active:
            logger.info("WebSocket closed by client")
            self._emit("close", None, "closed by client")

    def disconnect(self) -> None:
        """Alias for close()."""
        self.close()

    def _close_transport(self, transport) -> None:
        if transport is None:
            return
        try:
            transport.close()
        except Exception as e:
            logger.debug(f"Error closing transport: {e}")

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    def _handle_open(self, generation: int) -> None:
        with self._lock:
            if generation != self._active_generation:
                logger.debug(f"Ignoring open from stale transport {generation}")
                return
            if self._transport is None:
                # Factory opened synchronously; finish once it returns
                self._open_deferred = generation
                return

            attempt = self._pending
            self._pending = None
            succeeded_attempt = attempt.reconnect_attempt if attempt else 0
            is_reconnect = self._has_opened

            self._cancel_timer("_connect_timer")
            self._has_opened = True
            self._reconnect_attempts = 0
            self._max_attempts_announced = False
            self._last_pong = self._clock()
            self._set_state(ConnectionState.OPEN)
            self._schedule_heartbeat(generation)

            if is_reconnect:
                self._total_reconnections += 1

        if attempt is not None:
            attempt.event.set()

        logger.info("WebSocket connected")
        self._emit("open")

        if is_reconnect:
            self._metrics.track_reconnect("success")
            self._emit("reconnect", succeeded_attempt)

    def _handle_message(self, generation: int, raw: Any) -> None:
        with self._lock:
            if generation != self._active_generation:
                return
            self._messages_received += 1

        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.warning(f"Discarding undecodable message: {e}")
            return

        channel = data.get("channel") if isinstance(data, dict) else None
        if channel == "pong":
            with self._lock:
                self._last_pong = self._clock()
            return

        self._metrics.track_ws_message(channel or "unknown")
        self._emit("message", data)

    def _handle_error(self, generation: int, error: Any) -> None:
        with self._lock:
            if generation != self._active_generation:
                return

        logger.error(f"WebSocket error: {error}")
        self._emit("error", error)

    def _handle_close(
        self,
        generation: int,
        code: Optional[int] = None,
        reason: Optional[str] = None
    ) -> None:
        announce_exhausted = False

        with self._lock:
            if generation != self._active_generation:
                return

            was_open = self._state == ConnectionState.OPEN
            attempt = self._pending
            self._active_generation = None
            self._transport = None
            self._pending = None
            self._open_deferred = None
            self._cancel_timer("_ping_timer")
            self._cancel_timer("_connect_timer")
            self._set_state(ConnectionState.CLOSED)

            if not self._closed_by_user:
                failed_reconnect = attempt is not None and attempt.reconnect_attempt > 0
                if was_open or failed_reconnect:
                    if failed_reconnect:
                        self._metrics.track_reconnect("failure")
                    announce_exhausted = self._schedule_reconnect()

        if attempt is not None:
            attempt.fail(WebSocketConnectionError(
                f"WebSocket closed before open ({code}: {reason})"
            ))

        logger.warning(f"WebSocket closed: {code} - {reason}")
        self._emit("close", code, reason)

        if announce_exhausted:
            logger.error(
                f"Max reconnect attempts ({self.max_reconnect_attempts}) reached; "
                f"call connect() to resume"
            )
            self._emit("maxReconnectAttemptsReached", self.max_reconnect_attempts)

    # ------------------------------------------------------------------
    # Reconnection
    # ------------------------------------------------------------------

    def _schedule_reconnect(self) -> bool:
        """
        Arm the next reconnect timer.

        Caller holds self._lock. Returns True when the budget is exhausted
        and the terminal event has not been announced yet.
        """
        if self._reconnect_attempts >= self.max_reconnect_attempts:
            if self._max_attempts_announced:
                return False
            self._max_attempts_announced = True
            return True

        self._reconnect_attempts += 1
        attempt = self._reconnect_attempts
        delay = self._backoff.calculate_delay(attempt - 1)

        logger.warning(
            f"Reconnecting in {delay:.1f}s "
            f"(attempt {attempt}/{self.max_reconnect_attempts})"
        )
        self._reconnect_timer = self._start_timer(
            delay, partial(self._reconnect_tick, attempt)
        )
        return False

    def _reconnect_tick(self, attempt: int) -> None:
        announce_exhausted = False
        error = None
        started = None

        with self._lock:
            self._reconnect_timer = None
            if self._closed_by_user or self._state in (
                ConnectionState.OPEN, ConnectionState.CONNECTING
            ):
                return

            try:
                started = self._start_attempt(reconnect_attempt=attempt)
            except WebSocketError as e:
                error = e
                self._metrics.track_reconnect("failure")
                announce_exhausted = self._schedule_reconnect()

        if started is not None:
            self._finish_deferred_open(started.generation)

        if error is not None:
            logger.error(f"Reconnect attempt {attempt} failed: {error}")
            self._emit("error", error)
        if announce_exhausted:
            self._emit("maxReconnectAttemptsReached", self.max_reconnect_attempts)

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    def _schedule_heartbeat(self, generation: int) -> None:
        self._ping_timer = self._start_timer(
            self.ping_interval, partial(self._heartbeat_tick, generation)
        )

    def _heartbeat_tick(self, generation: int) -> None:
        with self._lock:
            if generation != self._active_generation or self._state != ConnectionState.OPEN:
                return

            silence = self._clock() - self._last_pong
            if silence <= self.pong_timeout:
                transport = self._transport
                self._schedule_heartbeat(generation)
                timed_out = False
            else:
                transport = self._transport
                timed_out = True

        if timed_out:
            logger.warning(f"No pong for {silence:.1f}s, recycling connection")
            self._close_transport(transport)
            self._handle_close(generation, None, "heartbeat timeout")
            return

        try:
            transport.send(orjson.dumps(PING_MESSAGE).decode())
        except Exception as e:
            logger.warning(f"Failed to send ping: {e}")

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _start_timer(self, delay: float, callback: Callable[[], None]):
        timer = self._timer_factory(delay, callback)
        timer.daemon = True
        timer.start()
        return timer

    def _cancel_timer(self, name: str) -> None:
        timer = getattr(self, name)
        if timer is not None:
            timer.cancel()
            setattr(self, name, None)

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    def send_message(self, payload: Any) -> None:
        """
        Serialize payload as JSON and send it.

        Raises:
            NotConnectedError: Unless the connection is open
            WebSocketError: If the transport rejects the frame
        """
        with self._lock:
            if self._state != ConnectionState.OPEN or self._transport is None:
                raise NotConnectedError("WebSocket is not connected")
            transport = self._transport

        text = orjson.dumps(payload).decode()
        try:
            transport.send(text)
        except Exception as e:
            raise WebSocketError(f"Failed to send message: {e}") from e

    # ------------------------------------------------------------------
    # Subscription accounting
    # ------------------------------------------------------------------

    def increment_subscription_count(self) -> bool:
        """Reserve one subscription slot; False when at capacity."""
        with self._lock:
            if self._subscription_count >= self.max_subscriptions:
                return False
            self._subscription_count += 1
            count = self._subscription_count
        self._metrics.set_active_subscriptions(count)
        return True

    def decrement_subscription_count(self) -> None:
        with self._lock:
            if self._subscription_count > 0:
                self._subscription_count -= 1
            count = self._subscription_count
        self._metrics.set_active_subscriptions(count)

    @property
    def subscription_count(self) -> int:
        return self._subscription_count

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    def stats(self) -> dict:
        """Connection statistics."""
        with self._lock:
            return {
                "state": self._state.value,
                "connected": self._state == ConnectionState.OPEN,
                "reconnect_attempts": self._reconnect_attempts,
                "total_reconnections": self._total_reconnections,
                "subscription_count": self._subscription_count,
                "max_subscriptions": self.max_subscriptions,
                "messages_received": self._messages_received,
                "seconds_since_pong": round(self._clock() - self._last_pong, 3),
            }

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
