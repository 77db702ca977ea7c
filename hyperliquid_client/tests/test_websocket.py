"""Tests for the WebSocket connection manager."""

import threading
import time
from unittest.mock import patch

import orjson
import pytest

from hyperliquid_client.api.websocket import WebSocketClient
from hyperliquid_client.exceptions import (
    NotConnectedError,
    TransportUnavailableError,
    WebSocketConnectionError,
    WebSocketError,
)
from hyperliquid_client.models import ConnectionState

from .fakes import TimerRecorder, TransportRecorder


def record_events(ws, *events):
    seen = []
    for event in events:
        ws.on(event, lambda *args, _event=event: seen.append((_event,) + args))
    return seen


class TestConnect:
    """Test connection establishment."""

    def test_connect_opens_connection(self, ws, transports, timers):
        seen = record_events(ws, "open")

        ws.connect()

        assert ws.state == ConnectionState.OPEN
        assert ws.is_connected()
        assert len(transports.transports) == 1
        assert seen == [("open",)]
        # heartbeat armed, connect deadline disarmed
        assert timers.last("_heartbeat_tick").delay == 15.0
        assert timers.live("_connect_timed_out") == []

    def test_connect_when_open_is_noop(self, ws, transports):
        ws.connect()
        ws.connect()

        assert len(transports.transports) == 1

    def test_concurrent_connect_shares_one_transport(self):
        transports = TransportRecorder(auto_open=False)
        ws = WebSocketClient(
            "wss://example.invalid/ws",
            transport_factory=transports,
            connect_timeout=5.0,
            timer_factory=TimerRecorder()
        )
        errors = []

        def connect():
            try:
                ws.connect()
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=connect) for _ in range(5)]
        for thread in threads:
            thread.start()

        deadline = time.time() + 2
        while not transports.transports and time.time() < deadline:
            time.sleep(0.01)
        time.sleep(0.1)
        transports.current.on_open()

        for thread in threads:
            thread.join(timeout=5)

        assert errors == []
        assert len(transports.transports) == 1
        assert ws.is_connected()
        ws.close()

    def test_transport_closing_before_open_fails_connect(self):
        transports = TransportRecorder(auto_open=False)
        timers = TimerRecorder()
        ws = WebSocketClient(
            "wss://example.invalid/ws",
            transport_factory=transports,
            connect_timeout=5.0,
            timer_factory=timers
        )

        def refuse():
            deadline = time.time() + 2
            while not transports.transports and time.time() < deadline:
                time.sleep(0.01)
            transports.current.on_close(None, "connection refused")

        threading.Thread(target=refuse).start()

        with pytest.raises(WebSocketConnectionError):
            ws.connect()

        assert ws.state == ConnectionState.CLOSED
        # a failed initial connect is not retried automatically
        assert timers.live("_reconnect_tick") == []

    def test_factory_error_raises_connection_error(self):
        def broken_factory(*args):
            raise OSError("dns failure")

        ws = WebSocketClient(
            "wss://example.invalid/ws",
            transport_factory=broken_factory,
            timer_factory=TimerRecorder()
        )

        with pytest.raises(WebSocketConnectionError):
            ws.connect()
        assert ws.state == ConnectionState.CLOSED

    def test_no_transport_available(self):
        with patch(
            "hyperliquid_client.api.websocket.select_transport_factory",
            return_value=None
        ):
            ws = WebSocketClient("wss://example.invalid/ws", timer_factory=TimerRecorder())

        with pytest.raises(TransportUnavailableError):
            ws.connect()
        assert isinstance(TransportUnavailableError("x"), WebSocketError)


class TestReconnect:
    """Test automatic reconnection with backoff."""

    def test_backoff_schedule_and_single_exhaustion_event(self, ws, transports, timers):
        seen = record_events(ws, "maxReconnectAttemptsReached")
        ws.connect()
        transports.auto_open = False

        transports.current.on_close(1006, "abnormal closure")

        delays = []
        for _ in range(5):
            timer = timers.last("_reconnect_tick")
            delays.append(timer.delay)
            timer.fire()
            transports.current.on_close(None, "connection refused")

        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0]
        assert seen == [("maxReconnectAttemptsReached", 5)]
        assert len(timers.live("_reconnect_tick")) == 5
        assert ws.state == ConnectionState.CLOSED

    def test_backoff_delay_is_capped(self, transports, timers, clock):
        ws = WebSocketClient(
            "wss://example.invalid/ws",
            transport_factory=transports,
            max_reconnect_attempts=8,
            initial_reconnect_delay=1.0,
            max_reconnect_delay=30.0,
            timer_factory=timers,
            clock=clock
        )
        ws.connect()
        transports.auto_open = False
        transports.current.on_close(1006, "abnormal closure")

        delays = []
        for _ in range(8):
            timer = timers.last("_reconnect_tick")
            delays.append(timer.delay)
            timer.fire()
            transports.current.on_close(None, "connection refused")

        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0, 30.0]

    def test_successful_reconnect_emits_reconnect_and_resets(self, ws, transports, timers):
        seen = record_events(ws, "open", "reconnect")
        ws.connect()

        transports.current.on_close(1006, "abnormal closure")
        assert ws.reconnect_attempts == 1

        timers.last("_reconnect_tick").fire()

        assert ws.is_connected()
        assert ws.reconnect_attempts == 0
        assert seen == [("open",), ("open",), ("reconnect", 1)]
        assert ws.stats()["total_reconnections"] == 1

    def test_close_suppresses_reconnect(self, ws, transports, timers):
        seen = record_events(ws, "close")
        ws.connect()
        transport = transports.current

        ws.close()
        # late close callback from the old transport
        transport.on_close(1000, "bye")

        assert transport.closed
        assert ws.state == ConnectionState.CLOSED
        assert timers.live("_reconnect_tick") == []
        assert timers.live("_heartbeat_tick") == []
        assert seen == [("close", None, "closed by client")]

    def test_close_cancels_pending_reconnect(self, ws, transports, timers):
        ws.connect()
        transports.current.on_close(1006, "abnormal closure")
        pending = timers.last("_reconnect_tick")

        ws.close()

        assert pending.cancelled
        # a timer that already fired still does nothing
        pending.fire()
        assert len(transports.transports) == 1

    def test_manual_connect_after_exhaustion(self, ws, transports, timers):
        ws.connect()
        transports.auto_open = False
        transports.current.on_close(1006, "abnormal closure")
        for _ in range(5):
            timers.last("_reconnect_tick").fire()
            transports.current.on_close(None, "connection refused")

        transports.auto_open = True
        ws.connect()

        assert ws.is_connected()
        assert ws.reconnect_attempts == 0


class TestHeartbeat:
    """Test ping/pong liveness."""

    def test_ping_sent_when_healthy(self, ws, transports, timers, clock):
        ws.connect()
        first = timers.last("_heartbeat_tick")

        clock.now = 15.0
        first.fire()

        assert transports.current.sent == [orjson.dumps({"method": "ping"}).decode()]
        assert timers.last("_heartbeat_tick") is not first

    def test_pong_refreshes_liveness(self, ws, transports, timers, clock):
        messages = record_events(ws, "message")
        ws.connect()

        clock.now = 25.0
        transports.current.on_message('{"channel": "pong"}')
        clock.now = 50.0
        timers.last("_heartbeat_tick").fire()

        assert ws.is_connected()
        assert messages == []

    def test_silence_forces_reconnect(self, ws, transports, timers, clock):
        seen = record_events(ws, "close")
        ws.connect()
        transport = transports.current

        clock.now = 31.0
        timers.last("_heartbeat_tick").fire()

        assert transport.closed
        assert ws.state == ConnectionState.CLOSED
        assert seen == [("close", None, "heartbeat timeout")]
        assert timers.last("_reconnect_tick").delay == 1.0

        timers.last("_reconnect_tick").fire()
        assert ws.is_connected()
        assert len(transports.transports) == 2


class TestMessaging:
    """Test inbound dispatch and outbound sends."""

    def test_send_requires_open_connection(self, ws):
        with pytest.raises(NotConnectedError):
            ws.send_message({"method": "ping"})

    def test_send_serializes_json(self, ws, transports):
        ws.connect()
        ws.send_message({"method": "subscribe", "subscription": {"type": "allMids"}})

        assert orjson.loads(transports.current.sent[-1]) == {
            "method": "subscribe", "subscription": {"type": "allMids"}
        }

    def test_send_failure_raises_websocket_error(self, ws, transports):
        ws.connect()
        transports.current.closed = True

        with pytest.raises(WebSocketError):
            ws.send_message({"method": "ping"})

    def test_undecodable_message_is_discarded(self, ws, transports):
        messages = record_events(ws, "message")
        ws.connect()

        transports.current.on_message("not json {")
        transports.current.on_message('{"channel": "trades", "data": []}')

        assert messages == [("message", {"channel": "trades", "data": []})]
        assert ws.is_connected()

    def test_failing_listener_does_not_block_others(self, ws, transports):
        received = []

        def broken(message):
            raise RuntimeError("listener bug")

        ws.on("message", broken)
        ws.on("message", received.append)
        ws.connect()

        transports.current.on_message('{"channel": "l2Book", "data": {}}')

        assert received == [{"channel": "l2Book", "data": {}}]

    def test_messages_from_stale_transport_ignored(self, ws, transports, timers):
        messages = record_events(ws, "message")
        ws.connect()
        stale = transports.current
        stale.on_close(1006, "abnormal closure")
        timers.last("_reconnect_tick").fire()

        stale.on_message('{"channel": "trades", "data": []}')

        assert messages == []

    def test_unknown_event_rejected(self, ws):
        with pytest.raises(ValueError):
            ws.on("bogus", print)

    def test_remove_listener(self, ws, transports):
        received = []
        handler = ws.on("message", received.append)
        ws.remove_listener("message", handler)
        ws.connect()

        transports.current.on_message('{"channel": "trades", "data": []}')

        assert received == []


class TestSubscriptionCapacity:
    """Test subscription slot accounting."""

    def test_capacity_is_enforced(self, transports, timers):
        ws = WebSocketClient(
            "wss://example.invalid/ws",
            transport_factory=transports,
            max_subscriptions=2,
            timer_factory=timers
        )

        assert ws.increment_subscription_count()
        assert ws.increment_subscription_count()
        assert not ws.increment_subscription_count()
        assert ws.subscription_count == 2

        ws.decrement_subscription_count()
        assert ws.increment_subscription_count()

    def test_decrement_never_goes_negative(self, ws):
        ws.decrement_subscription_count()
        assert ws.subscription_count == 0
