"""
Prometheus metrics for monitoring.

Disabled unless HYPERLIQUID_ENABLE_METRICS is set, so importing the
library never opens a port.
"""

import time
from typing import Optional
from functools import wraps
import logging

from prometheus_client import Counter, Histogram, Gauge, start_http_server

logger = logging.getLogger(__name__)


class Metrics:
    """
    Prometheus metrics collector.

    Tracks:
    - REST request count and latency
    - Order actions by side and status
    - Streaming connection state, reconnects and subscriptions
    - Symbol metadata refreshes
    - Circuit breaker state
    """

    def __init__(self, enabled: bool = True, port: int = 9090):
        """
        Initialize metrics.

        Args:
            enabled: Enable metrics collection
            port: Metrics HTTP server port
        """
        self.enabled = enabled

        if not self.enabled:
            return

        # REST metrics
        self.api_requests = Counter(
            'hyperliquid_api_requests_total',
            'Total API requests',
            ['endpoint', 'request_type', 'status']
        )

        self.api_latency = Histogram(
            'hyperliquid_api_latency_seconds',
            'API request latency',
            ['endpoint']
        )

        # Trading metrics
        self.orders_placed = Counter(
            'hyperliquid_orders_placed_total',
            'Total order actions',
            ['action', 'status']
        )

        self.order_latency = Histogram(
            'hyperliquid_order_latency_seconds',
            'Order action latency',
            ['action']
        )

        # Streaming metrics
        self.ws_state = Gauge(
            'hyperliquid_ws_state',
            'Connection state (0=idle, 1=connecting, 2=open, 3=closing, 4=closed)'
        )

        self.ws_reconnects = Counter(
            'hyperliquid_ws_reconnects_total',
            'Reconnect attempts',
            ['outcome']
        )

        self.ws_messages = Counter(
            'hyperliquid_ws_messages_total',
            'Inbound streaming messages',
            ['channel']
        )

        self.active_subscriptions = Gauge(
            'hyperliquid_active_subscriptions',
            'Distinct live subscriptions'
        )

        # Symbol metadata
        self.symbol_refreshes = Counter(
            'hyperliquid_symbol_refresh_total',
            'Asset metadata refreshes',
            ['status']
        )

        self.symbol_refresh_latency = Histogram(
            'hyperliquid_symbol_refresh_latency_seconds',
            'Asset metadata refresh latency'
        )

        self.circuit_breaker_state = Gauge(
            'hyperliquid_circuit_breaker_state',
            'Circuit breaker state (0=closed, 1=open, 2=half-open)',
            ['name']
        )

        try:
            start_http_server(port)
            logger.info(f"Metrics server started on port {port}")
        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")

    def track_api_request(self, endpoint: str, request_type: str, status: str) -> None:
        """Record API request."""
        if self.enabled:
            self.api_requests.labels(
                endpoint=endpoint, request_type=request_type, status=status
            ).inc()

    def track_api_latency(self, endpoint: str, duration: float) -> None:
        """Record API latency."""
        if self.enabled:
            self.api_latency.labels(endpoint=endpoint).observe(duration)

    def track_order(self, action: str, status: str) -> None:
        """Record order action."""
        if self.enabled:
            self.orders_placed.labels(action=action, status=status).inc()

    def track_order_latency(self, action: str, duration: float) -> None:
        if self.enabled:
            self.order_latency.labels(action=action).observe(duration)

    def set_ws_state(self, state: str) -> None:
        """Set streaming connection state."""
        if self.enabled:
            state_map = {"IDLE": 0, "CONNECTING": 1, "OPEN": 2, "CLOSING": 3, "CLOSED": 4}
            self.ws_state.set(state_map.get(state, 0))

    def track_reconnect(self, outcome: str) -> None:
        if self.enabled:
            self.ws_reconnects.labels(outcome=outcome).inc()

    def track_ws_message(self, channel: str) -> None:
        if self.enabled:
            self.ws_messages.labels(channel=channel).inc()

    def set_active_subscriptions(self, count: int) -> None:
        if self.enabled:
            self.active_subscriptions.set(count)

    def track_symbol_refresh(self, status: str) -> None:
        """Record metadata refresh outcome."""
        if self.enabled:
            self.symbol_refreshes.labels(status=status).inc()

    def track_symbol_refresh_latency(self, duration: float) -> None:
        if self.enabled:
            self.symbol_refresh_latency.observe(duration)

    def set_circuit_breaker_state(self, name: str, state: str) -> None:
        """Set circuit breaker state."""
        if self.enabled:
            state_map = {"CLOSED": 0, "OPEN": 1, "HALF_OPEN": 2}
            self.circuit_breaker_state.labels(name=name).set(state_map.get(state, 0))


# Global metrics instance
_metrics: Optional[Metrics] = None


def get_metrics(enabled: bool = False, port: int = 9090) -> Metrics:
    """Get or create metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = Metrics(enabled=enabled, port=port)
    return _metrics


def track_time(metric_name: str, **labels):
    """Decorator to track function execution time."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if not _metrics or not _metrics.enabled:
                return func(*args, **kwargs)

            start = time.time()
            try:
                return func(*args, **kwargs)
            finally:
                duration = time.time() - start
                if metric_name == "api":
                    _metrics.track_api_latency(
                        labels.get("endpoint", "unknown"),
                        duration
                    )
                elif metric_name == "order":
                    _metrics.track_order_latency(
                        labels.get("action", "unknown"),
                        duration
                    )
                elif metric_name == "symbol_refresh":
                    _metrics.track_symbol_refresh_latency(duration)
        return wrapper
    return decorator
