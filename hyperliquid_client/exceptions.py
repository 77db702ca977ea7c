"""
Custom exceptions for Hyperliquid client.

Provides typed exceptions for connection, symbol resolution and trading errors.
"""

from typing import Optional, Any


class HyperliquidError(Exception):
    """Base exception for all Hyperliquid errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class APIError(HyperliquidError):
    """API request failed."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 response: Optional[Any] = None):
        super().__init__(message, {"status_code": status_code, "response": response})
        self.status_code = status_code
        self.response = response


class AuthenticationError(HyperliquidError):
    """Authentication failed or no valid account configured."""
    pass


class ValidationError(HyperliquidError):
    """Input validation failed."""
    pass


class RateLimitError(HyperliquidError):
    """Rate limit exceeded."""

    def __init__(self, message: str, endpoint: str, retry_after: Optional[float] = None):
        super().__init__(message, {"endpoint": endpoint, "retry_after": retry_after})
        self.endpoint = endpoint
        self.retry_after = retry_after


class TimeoutError(HyperliquidError):
    """Request timed out."""
    pass


class CircuitBreakerError(HyperliquidError):
    """Circuit breaker is open, requests blocked."""
    pass


# WebSocket exceptions
class WebSocketError(HyperliquidError):
    """WebSocket connection error."""
    pass


class TransportUnavailableError(WebSocketError):
    """No usable WebSocket implementation is installed."""
    pass


class WebSocketConnectionError(WebSocketError):
    """Failed to connect to WebSocket."""
    pass


class NotConnectedError(WebSocketError):
    """Message sent while the connection is not open."""
    pass


class SubscriptionLimitExceededError(WebSocketError):
    """Subscription capacity is exhausted."""

    def __init__(self, message: str, limit: Optional[int] = None):
        super().__init__(message, {"limit": limit})
        self.limit = limit


# Symbol resolution exceptions
class SymbolResolutionError(HyperliquidError):
    """Base exception for asset metadata and symbol lookups."""
    pass


class InvalidMetadataResponseError(SymbolResolutionError):
    """Metadata endpoint returned an unexpected shape."""
    pass


class InitializationFailedError(SymbolResolutionError):
    """First metadata refresh failed."""
    pass


class NotInitializedError(SymbolResolutionError):
    """Symbol lookup attempted before the cache was initialized."""
    pass


class UnknownAssetError(SymbolResolutionError):
    """Symbol does not resolve to an asset index."""

    def __init__(self, message: str, symbol: Optional[str] = None):
        super().__init__(message, {"symbol": symbol})
        self.symbol = symbol


# Trading exceptions
class TradingError(HyperliquidError):
    """Base exception for trading operations."""
    pass


class OrderRejectedError(TradingError):
    """Exchange answered with an error status."""

    def __init__(self, message: str, response: Optional[Any] = None):
        super().__init__(message, {"response": response})
        self.response = response
