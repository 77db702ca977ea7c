"""
Configuration management for Hyperliquid client.

Loads settings from environment variables with validation.
"""

from typing import Optional
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


MAINNET_API_URL = "https://api.hyperliquid.xyz"
TESTNET_API_URL = "https://api.hyperliquid-testnet.xyz"
MAINNET_WS_URL = "wss://api.hyperliquid.xyz/ws"
TESTNET_WS_URL = "wss://api.hyperliquid-testnet.xyz/ws"

INFO_PATH = "/info"
EXCHANGE_PATH = "/exchange"


class HyperliquidSettings(BaseSettings):
    """
    Hyperliquid client settings.

    Loads from environment variables with HYPERLIQUID_ prefix.
    """
    model_config = SettingsConfigDict(
        env_prefix="HYPERLIQUID_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Network
    testnet: bool = Field(default=False, description="Use testnet endpoints")
    mainnet_api_url: str = Field(default=MAINNET_API_URL, description="Mainnet REST URL")
    testnet_api_url: str = Field(default=TESTNET_API_URL, description="Testnet REST URL")
    mainnet_ws_url: str = Field(default=MAINNET_WS_URL, description="Mainnet WebSocket URL")
    testnet_ws_url: str = Field(default=TESTNET_WS_URL, description="Testnet WebSocket URL")

    # Account (optional, enables the exchange API)
    private_key: Optional[SecretStr] = Field(None, description="Signing key for L1 actions")
    wallet_address: Optional[str] = Field(None, description="Account address (defaults to signer)")
    vault_address: Optional[str] = Field(None, description="Vault or sub-account to trade for")

    # Timeouts and retries
    request_timeout: float = Field(default=30.0, ge=1.0, description="Request timeout (seconds)")
    connect_timeout: float = Field(default=10.0, ge=1.0, description="Connection timeout (seconds)")
    max_retries: int = Field(default=3, ge=0, le=10, description="Max retry attempts")
    retry_backoff_base: float = Field(default=2.0, ge=1.0, description="Backoff multiplier")
    retry_backoff_max: float = Field(default=60.0, ge=1.0, description="Max backoff delay")

    # Rate limiting
    enable_rate_limiting: bool = Field(default=True, description="Enable rate limiting")
    rate_limit_margin: float = Field(default=0.8, ge=0.1, le=1.0,
                                     description="Use 80% of rate limits")

    # Circuit breaker
    circuit_breaker_threshold: int = Field(default=5, ge=1, description="Failures before opening")
    circuit_breaker_timeout: float = Field(default=60.0, ge=1.0, description="Reset timeout")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_requests: bool = Field(default=False, description="Log all HTTP requests")

    # Metrics
    enable_metrics: bool = Field(default=False, description="Enable Prometheus metrics")
    metrics_port: int = Field(default=9090, ge=1024, le=65535, description="Metrics server port")

    # WebSocket
    enable_ws: bool = Field(default=True, description="Open the streaming connection")
    ws_max_reconnect_attempts: int = Field(default=5, ge=0, description="Max WS reconnect attempts")
    ws_initial_reconnect_delay: float = Field(default=1.0, gt=0, description="First reconnect delay")
    ws_max_reconnect_delay: float = Field(default=30.0, gt=0, description="Reconnect delay cap")
    ws_ping_interval: float = Field(default=15.0, gt=0, description="Heartbeat ping interval")
    ws_pong_timeout: float = Field(default=30.0, gt=0, description="Silence before forced reconnect")
    ws_connect_timeout: float = Field(default=10.0, gt=0, description="WS open timeout")
    ws_max_subscriptions: int = Field(default=1000, ge=1,
                                      description="Subscriptions per IP allowed by the venue")

    # Symbol resolution
    symbol_refresh_interval: float = Field(default=60.0, gt=0,
                                           description="Asset metadata refresh interval (seconds)")
    symbol_refresh_max_failures: int = Field(default=5, ge=1,
                                             description="Consecutive failures before refresh stops")

    # Connection pooling
    pool_connections: int = Field(default=10, ge=1, le=200,
                                  description="HTTP connection pool size")
    pool_maxsize: int = Field(default=20, ge=1, le=500,
                              description="Max connections per pool")

    @property
    def api_url(self) -> str:
        """REST base URL for the configured network."""
        return self.testnet_api_url if self.testnet else self.mainnet_api_url

    @property
    def ws_url(self) -> str:
        """WebSocket URL for the configured network."""
        return self.testnet_ws_url if self.testnet else self.mainnet_ws_url

    def __repr__(self) -> str:
        """Safe repr without sensitive data."""
        return (
            f"HyperliquidSettings("
            f"api_url={self.api_url}, "
            f"testnet={self.testnet}, "
            f"rate_limiting={self.enable_rate_limiting}"
            ")"
        )


# Rate limit configurations
# Source: https://hyperliquid.gitbook.io/hyperliquid-docs/for-developers/api/rate-limits-and-user-limits
# REST requests share an aggregated weight budget of 1200 per minute per IP.
RATE_LIMITS = {
    "REST:weight": {"limit": 1200, "window": 60},

    # Conservative fallback for unknown keys
    "default": {"limit": 100, "window": 10},
}

# Info request weights. Exchange actions weigh 1 + floor(batch_length / 40).
INFO_REQUEST_WEIGHTS = {
    "l2Book": 2,
    "allMids": 2,
    "clearinghouseState": 2,
    "orderStatus": 2,
    "spotClearinghouseState": 2,
    "exchangeStatus": 2,
    "userRole": 60,
}
DEFAULT_INFO_WEIGHT = 20


def get_settings() -> HyperliquidSettings:
    """
    Get Hyperliquid settings.

    Returns:
        Validated settings instance
    """
    return HyperliquidSettings()


def get_rate_limit(endpoint: str) -> dict:
    """
    Get rate limit configuration for endpoint.

    Args:
        endpoint: Rate limit key (e.g., "REST:weight")

    Returns:
        Rate limit config dict
    """
    return RATE_LIMITS.get(endpoint, RATE_LIMITS["default"])


def get_info_weight(request_type: str) -> int:
    """Weight charged against the IP budget for an info request type."""
    return INFO_REQUEST_WEIGHTS.get(request_type, DEFAULT_INFO_WEIGHT)


def get_exchange_weight(batch_length: int = 1) -> int:
    """Weight charged for an exchange action carrying batch_length items."""
    return 1 + batch_length // 40
