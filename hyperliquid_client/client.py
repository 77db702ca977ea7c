"""
Main Hyperliquid client.

Wires the REST APIs, the symbol resolution cache and the streaming
connection into one object. Read-only use needs no credentials; the
exchange API is only built when a signing account is supplied.
"""

from typing import Optional
import logging

from eth_account.signers.local import LocalAccount

from .api.exchange import ExchangeAPI
from .api.info import InfoAPI
from .api.subscriptions import SubscriptionRegistry
from .api.transport import TransportFactory, select_transport_factory
from .api.websocket import WebSocketClient
from .auth.signing import LocalAccountSigner
from .config import get_settings, HyperliquidSettings
from .exceptions import AuthenticationError, WebSocketError
from .metrics import get_metrics
from .trading.operations import TradingOperations
from .utils.rate_limiter import RateLimiter
from .utils.retry import CircuitBreaker
from .utils.singleflight import SingleFlight
from .utils.symbols import SymbolResolutionCache
from .utils.validators import validate_address

logger = logging.getLogger(__name__)

_INITIALIZE_KEY = "initialize"


class HyperliquidClient:
    """
    Unified Hyperliquid client.

    Usage:
        >>> with HyperliquidClient(private_key="0x...") as client:
        ...     client.initialize()
        ...     client.subscriptions.subscribe_to_trades("BTC-PERP", print)
        ...     client.require_exchange().place_order({...})
    """

    def __init__(
        self,
        settings: Optional[HyperliquidSettings] = None,
        private_key: Optional[str] = None,
        account: Optional[LocalAccount] = None,
        wallet_address: Optional[str] = None,
        vault_address: Optional[str] = None,
        enable_ws: Optional[bool] = None,
        transport_factory: Optional[TransportFactory] = None,
        enable_rate_limiting: Optional[bool] = None,
        enable_circuit_breaker: Optional[bool] = None
    ):
        """
        Initialize Hyperliquid client.

        Args:
            settings: Optional settings (loads from env if not provided)
            private_key: Hex signing key; enables the exchange API
            account: Pre-built eth-account LocalAccount (takes precedence over private_key)
            wallet_address: Account whose data is queried (defaults to the signer)
            vault_address: Vault or sub-account to trade for
            enable_ws: Override the streaming connection setting
            transport_factory: WebSocket transport; the first installed one when None
            enable_rate_limiting: Override rate limiting setting
            enable_circuit_breaker: Override circuit breaker setting

        Raises:
            ValidationError: If a key or address is malformed
        """
        self.settings = settings or get_settings()

        if enable_rate_limiting is not None:
            self.settings.enable_rate_limiting = enable_rate_limiting
        if enable_ws is not None:
            self.settings.enable_ws = enable_ws

        self.metrics = get_metrics(
            enabled=self.settings.enable_metrics,
            port=self.settings.metrics_port
        )

        self.rate_limiter = None
        if self.settings.enable_rate_limiting:
            self.rate_limiter = RateLimiter(
                enabled=True,
                margin=self.settings.rate_limit_margin
            )

        self.circuit_breaker = None
        if enable_circuit_breaker is not False:
            self.circuit_breaker = CircuitBreaker(
                failure_threshold=self.settings.circuit_breaker_threshold,
                timeout=self.settings.circuit_breaker_timeout,
                name="hyperliquid"
            )
            logger.info("Circuit breaker enabled")

        self.info = InfoAPI(
            settings=self.settings,
            rate_limiter=self.rate_limiter,
            circuit_breaker=self.circuit_breaker
        )
        self.symbols = SymbolResolutionCache(
            self.info,
            refresh_interval=self.settings.symbol_refresh_interval,
            max_consecutive_failures=self.settings.symbol_refresh_max_failures
        )
        self.info.attach_symbols(self.symbols)

        self.ws: Optional[WebSocketClient] = None
        self.subscriptions: Optional[SubscriptionRegistry] = None
        if self.settings.enable_ws:
            self.ws = WebSocketClient(
                self.settings.ws_url,
                transport_factory=transport_factory or select_transport_factory(),
                max_reconnect_attempts=self.settings.ws_max_reconnect_attempts,
                initial_reconnect_delay=self.settings.ws_initial_reconnect_delay,
                max_reconnect_delay=self.settings.ws_max_reconnect_delay,
                ping_interval=self.settings.ws_ping_interval,
                pong_timeout=self.settings.ws_pong_timeout,
                connect_timeout=self.settings.ws_connect_timeout,
                max_subscriptions=self.settings.ws_max_subscriptions
            )
            self.subscriptions = SubscriptionRegistry(self.ws, self.symbols)

        signer = self._build_signer(private_key, account)
        vault_address = vault_address or self.settings.vault_address
        wallet_address = wallet_address or self.settings.wallet_address

        self.exchange: Optional[ExchangeAPI] = None
        if signer is not None:
            self.exchange = ExchangeAPI(
                settings=self.settings,
                signer=signer,
                symbols=self.symbols,
                rate_limiter=self.rate_limiter,
                circuit_breaker=self.circuit_breaker,
                vault_address=validate_address(vault_address).lower() if vault_address else None
            )

        self.wallet_address = validate_address(wallet_address) if wallet_address else None
        self.operations: Optional[TradingOperations] = None
        if self.exchange is not None:
            self.operations = TradingOperations(
                self.exchange, self.info, self.symbols, self.wallet_address
            )

        self._init_flight = SingleFlight()
        self._closed = False

        logger.info(
            f"Hyperliquid client created (testnet={self.settings.testnet}, "
            f"authenticated={self.is_authenticated}, ws={self.ws is not None})"
        )

    def _build_signer(
        self,
        private_key: Optional[str],
        account: Optional[LocalAccount]
    ) -> Optional[LocalAccountSigner]:
        if account is not None:
            return LocalAccountSigner(account)
        if private_key is None and self.settings.private_key is not None:
            private_key = self.settings.private_key.get_secret_value()
        if private_key:
            return LocalAccountSigner.from_key(private_key)
        return None

    # ========== Lifecycle ==========

    def initialize(self) -> None:
        """
        Load asset metadata, start its periodic refresh and open the stream.

        Concurrent callers share one initialization. A streaming connection
        failure is logged and leaves the client usable over REST.

        Raises:
            InitializationFailedError: If asset metadata cannot be loaded
        """
        self._init_flight.do(_INITIALIZE_KEY, self._initialize)

    def _initialize(self) -> None:
        self.symbols.initialize()

        if self.ws is not None and not self.ws.is_connected():
            try:
                self.ws.connect()
            except WebSocketError as e:
                logger.error(f"WebSocket connection failed, continuing without streaming: {e}")

        logger.info("Hyperliquid client initialized")

    def ensure_initialized(self) -> None:
        """Initialize unless the symbol cache is already loaded."""
        if not self.symbols.is_initialized:
            self.initialize()

    def connect(self) -> None:
        """
        Open the streaming connection.

        Raises:
            WebSocketError: If streaming is disabled or the connection fails
        """
        if self.ws is None:
            raise WebSocketError("WebSocket is disabled for this client")
        self.ws.connect()

    def disconnect(self) -> None:
        """Close the streaming connection; subscriptions are replayed on the next connect."""
        if self.ws is not None:
            self.ws.close()

    def close(self) -> None:
        """Stop background refresh, close the stream and release HTTP sessions."""
        if self._closed:
            return
        self._closed = True
        logger.info("Closing Hyperliquid client...")

        self.symbols.stop()
        if self.subscriptions is not None:
            self.subscriptions.close()
        if self.ws is not None:
            self.ws.close()
        self.info.close()
        if self.exchange is not None:
            self.exchange.close()

        logger.info("Hyperliquid client closed")

    # ========== Capabilities ==========

    @property
    def is_authenticated(self) -> bool:
        return self.exchange is not None

    def is_websocket_connected(self) -> bool:
        return self.ws is not None and self.ws.is_connected()

    def require_exchange(self) -> ExchangeAPI:
        """
        Exchange API for signed actions.

        Raises:
            AuthenticationError: If the client was built without a signing account
        """
        if self.exchange is None:
            raise AuthenticationError(
                "Exchange operations require a private key or account"
            )
        return self.exchange

    def health_check(self) -> dict:
        """Component status snapshot."""
        return {
            "symbols_initialized": self.symbols.is_initialized,
            "symbol_refresh_enabled": self.symbols.periodic_refresh_enabled,
            "symbol_refresh_failures": self.symbols.consecutive_failures,
            "websocket": self.ws.stats() if self.ws is not None else None,
            "circuit_breaker": self.circuit_breaker.state if self.circuit_breaker else None,
            "rate_limiter": self.rate_limiter.get_stats() if self.rate_limiter else None,
            "authenticated": self.is_authenticated,
        }

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
