"""
WebSocket transport selection.

A transport is a running socket that reports lifecycle events through the
four callbacks it was created with and accepts text frames. The connection
manager never touches a socket library directly; it asks
select_transport_factory() for whichever implementation is installed.
"""

import importlib.util
import threading
from typing import Any, Callable, Optional, Protocol
import logging

logger = logging.getLogger(__name__)

OpenCallback = Callable[[], None]
MessageCallback = Callable[[str], None]
ErrorCallback = Callable[[Any], None]
CloseCallback = Callable[[Optional[int], Optional[str]], None]


class Transport(Protocol):
    """Minimal socket surface used by the connection manager."""

    def send(self, text: str) -> None:
        ...

    def close(self) -> None:
        ...


TransportFactory = Callable[
    [str, OpenCallback, MessageCallback, ErrorCallback, CloseCallback],
    Transport
]


class WebSocketClientTransport:
    """
    Transport backed by websocket-client's WebSocketApp.

    run_forever() runs in a daemon thread; websocket-client invokes
    on_close once when that loop exits, including after a failed handshake.
    """

    def __init__(
        self,
        url: str,
        on_open: OpenCallback,
        on_message: MessageCallback,
        on_error: ErrorCallback,
        on_close: CloseCallback
    ):
        import websocket

        self.url = url
        self._on_error = on_error
        self._on_close = on_close
        self._app = websocket.WebSocketApp(
            url,
            on_open=lambda ws: on_open(),
            on_message=lambda ws, message: on_message(message),
            on_error=lambda ws, error: on_error(error),
            on_close=lambda ws, code, reason: on_close(code, reason)
        )
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="hyperliquid-ws"
        )
        self._thread.start()

    def _run(self) -> None:
        try:
            # heartbeats are application level ({"method": "ping"})
            self._app.run_forever(skip_utf8_validation=True)
        except Exception as e:
            logger.error(f"WebSocket loop crashed: {e}")
            self._on_error(e)
            self._on_close(None, str(e))

    def send(self, text: str) -> None:
        self._app.send(text)

    def close(self) -> None:
        self._app.close()


class WebsocketsSyncTransport:
    """Transport backed by the websockets library's threaded client."""

    def __init__(
        self,
        url: str,
        on_open: OpenCallback,
        on_message: MessageCallback,
        on_error: ErrorCallback,
        on_close: CloseCallback,
        open_timeout: float = 10.0
    ):
        self.url = url
        self.open_timeout = open_timeout
        self._on_open = on_open
        self._on_message = on_message
        self._on_error = on_error
        self._on_close = on_close
        self._conn = None
        self._closing = False
        self._lock = threading.Lock()
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="hyperliquid-ws"
        )
        self._thread.start()

    def _run(self) -> None:
        from websockets.sync.client import connect
        from websockets.exceptions import ConnectionClosed

        try:
            conn = connect(self.url, open_timeout=self.open_timeout, ping_interval=None)
        except Exception as e:
            self._on_error(e)
            self._on_close(None, str(e))
            return

        with self._lock:
            self._conn = conn
            closing = self._closing
        if closing:
            conn.close()
            self._on_close(conn.close_code, conn.close_reason)
            return

        self._on_open()
        try:
            for message in conn:
                if isinstance(message, bytes):
                    message = message.decode("utf-8")
                self._on_message(message)
        except ConnectionClosed as e:
            logger.debug(f"websockets connection closed: {e}")
        except Exception as e:
            self._on_error(e)
            conn.close()
        finally:
            self._on_close(conn.close_code, conn.close_reason)

    def send(self, text: str) -> None:
        with self._lock:
            conn = self._conn
        if conn is None:
            raise ConnectionError("websockets transport is not open")
        conn.send(text)

    def close(self) -> None:
        with self._lock:
            self._closing = True
            conn = self._conn
        if conn is not None:
            conn.close()


# Preference order: module that must be importable, factory
TRANSPORTS = (
    ("websocket", WebSocketClientTransport),
    ("websockets.sync.client", WebsocketsSyncTransport),
)


def _module_available(name: str) -> bool:
    try:
        return importlib.util.find_spec(name) is not None
    except ModuleNotFoundError:
        # parent package of a dotted name is missing
        return False


def select_transport_factory(preferred: Optional[str] = None) -> Optional[TransportFactory]:
    """
    Pick the first installed transport implementation.

    Args:
        preferred: Module name to restrict the choice to ("websocket" or
            "websockets.sync.client")

    Returns:
        Transport factory, or None when nothing usable is installed
    """
    for module_name, factory in TRANSPORTS:
        if preferred and module_name != preferred:
            continue
        if _module_available(module_name):
            logger.debug(f"Selected WebSocket transport {factory.__name__}")
            return factory

    logger.warning("No WebSocket transport available")
    return None
