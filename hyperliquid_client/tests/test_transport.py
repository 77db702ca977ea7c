"""Tests for WebSocket transport selection."""

from unittest.mock import patch

from hyperliquid_client.api import transport
from hyperliquid_client.api.transport import (
    WebSocketClientTransport,
    WebsocketsSyncTransport,
    select_transport_factory,
)


def available(*names):
    return patch.object(transport, "_module_available", side_effect=lambda name: name in names)


def test_prefers_websocket_client():
    with available("websocket", "websockets.sync.client"):
        assert select_transport_factory() is WebSocketClientTransport


def test_falls_back_to_websockets():
    with available("websockets.sync.client"):
        assert select_transport_factory() is WebsocketsSyncTransport


def test_preferred_module():
    with available("websocket", "websockets.sync.client"):
        assert select_transport_factory("websockets.sync.client") is WebsocketsSyncTransport


def test_nothing_installed():
    with available():
        assert select_transport_factory() is None


def test_missing_parent_package():
    assert not transport._module_available("no_such_package_xyz.sub")
