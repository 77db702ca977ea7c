"""
Hyperliquid Client Library

Thread-safe client for the Hyperliquid venue: REST info and exchange
APIs, a self-healing WebSocket connection with subscription replay, and
a symbol resolution cache mapping internal symbols to asset indices.
"""

from .client import HyperliquidClient
from .config import HyperliquidSettings, get_settings
from .models import (
    AssetClass,
    AssetRecord,
    SymbolMode,
    ConnectionState,
    Found,
    NOT_FOUND,
    OrderRequest,
    OrderType,
    LimitOrderType,
    TriggerOrderType,
    CancelRequest,
    CancelByCloidRequest,
    ModifyRequest,
    Builder,
)
from .exceptions import (
    HyperliquidError,
    APIError,
    AuthenticationError,
    ValidationError,
    RateLimitError,
    TimeoutError,
    CircuitBreakerError,
    WebSocketError,
    TransportUnavailableError,
    WebSocketConnectionError,
    NotConnectedError,
    SubscriptionLimitExceededError,
    SymbolResolutionError,
    InvalidMetadataResponseError,
    InitializationFailedError,
    NotInitializedError,
    UnknownAssetError,
    TradingError,
    OrderRejectedError,
)
from .api.websocket import WebSocketClient
from .api.subscriptions import SubscriptionRegistry, SubscriptionHandle
from .utils.symbols import SymbolResolutionCache
from .utils.normalizer import ResponseNormalizer, convert_to_number

__version__ = "0.1.0"

__all__ = [
    # Main client
    "HyperliquidClient",
    "HyperliquidSettings",
    "get_settings",

    # Components
    "WebSocketClient",
    "SubscriptionRegistry",
    "SubscriptionHandle",
    "SymbolResolutionCache",
    "ResponseNormalizer",
    "convert_to_number",

    # Types
    "AssetClass",
    "AssetRecord",
    "SymbolMode",
    "ConnectionState",
    "Found",
    "NOT_FOUND",
    "OrderRequest",
    "OrderType",
    "LimitOrderType",
    "TriggerOrderType",
    "CancelRequest",
    "CancelByCloidRequest",
    "ModifyRequest",
    "Builder",

    # Exceptions
    "HyperliquidError",
    "APIError",
    "AuthenticationError",
    "ValidationError",
    "RateLimitError",
    "TimeoutError",
    "CircuitBreakerError",
    "WebSocketError",
    "TransportUnavailableError",
    "WebSocketConnectionError",
    "NotConnectedError",
    "SubscriptionLimitExceededError",
    "SymbolResolutionError",
    "InvalidMetadataResponseError",
    "InitializationFailedError",
    "NotInitializedError",
    "UnknownAssetError",
    "TradingError",
    "OrderRejectedError",
]
