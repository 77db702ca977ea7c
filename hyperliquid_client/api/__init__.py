"""API modules for Hyperliquid client."""

from .info import InfoAPI
from .exchange import ExchangeAPI
from .websocket import WebSocketClient
from .subscriptions import SubscriptionRegistry

__all__ = ["InfoAPI", "ExchangeAPI", "WebSocketClient", "SubscriptionRegistry"]
