"""
Streaming subscription registry.

Multiplexes application listeners onto venue subscriptions: one wire
subscribe per distinct subscription, any number of listeners behind it,
replayed after every reconnect.
"""

import itertools
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import logging

from ..exceptions import SubscriptionLimitExceededError, WebSocketError
from ..utils.normalizer import ResponseNormalizer
from .websocket import WebSocketClient

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]

# Subscription types whose messages arrive on a differently named channel
CHANNELS_BY_TYPE = {
    "userEvents": ("user",),
    "activeAssetCtx": ("activeAssetCtx", "activeSpotAssetCtx"),
}

IGNORED_CHANNELS = ("subscriptionResponse", "pong")


def subscription_key(subscription: Dict[str, Any]) -> str:
    """
    Canonical key for a subscription.

    Examples:
        >>> subscription_key({"type": "l2Book", "coin": "ETH"})
        'l2Book:coin=ETH'
        >>> subscription_key({"type": "allMids"})
        'allMids:'
    """
    params = ",".join(
        f"{name}={subscription[name]}"
        for name in sorted(subscription)
        if name != "type"
    )
    return f"{subscription['type']}:{params}"


def _message_coin(data: Any) -> Optional[str]:
    if isinstance(data, dict):
        return data.get("coin") or data.get("s")
    if isinstance(data, list) and data and isinstance(data[0], dict):
        return data[0].get("coin")
    return None


def _matches(subscription: Dict[str, Any], channel: str, data: Any) -> bool:
    sub_type = subscription["type"]
    if channel not in CHANNELS_BY_TYPE.get(sub_type, (sub_type,)):
        return False

    coin = subscription.get("coin")
    if coin is not None:
        message_coin = _message_coin(data)
        if message_coin is not None and message_coin != coin:
            return False

    interval = subscription.get("interval")
    if interval is not None and isinstance(data, dict):
        if data.get("i") not in (None, interval):
            return False

    user = subscription.get("user")
    if user is not None and isinstance(data, dict):
        message_user = data.get("user")
        if isinstance(message_user, str) and message_user.lower() != user.lower():
            return False

    return True


@dataclass(frozen=True)
class SubscriptionHandle:
    """Returned by subscribe(); pass to unsubscribe()."""
    key: str
    listener_id: int


@dataclass
class _Entry:
    subscription: Dict[str, Any]
    listeners: Dict[int, Listener] = field(default_factory=dict)


class SubscriptionRegistry:
    """
    Thread-safe subscription registry on top of a WebSocketClient.

    Usage:
        >>> registry = SubscriptionRegistry(ws, symbols)
        >>> handle = registry.subscribe_to_l2_book("ETH-PERP", on_book)
        >>> registry.unsubscribe(handle)
    """

    def __init__(self, ws: WebSocketClient, symbols, normalizer: Optional[ResponseNormalizer] = None):
        """
        Args:
            ws: Connection manager carrying the subscriptions
            symbols: SymbolResolutionCache for symbol conversion
            normalizer: Response normalizer (built from symbols when None)
        """
        self._ws = ws
        self._symbols = symbols
        self._normalizer = normalizer or ResponseNormalizer(symbols)

        self._lock = threading.RLock()
        self._entries: Dict[str, _Entry] = {}
        self._ids = itertools.count(1)

        ws.on("message", self._dispatch)
        ws.on("reconnect", self._resubscribe_all)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def subscribe(self, subscription: Dict[str, Any], listener: Listener) -> SubscriptionHandle:
        """
        Attach listener to a subscription, subscribing on the wire if new.

        Args:
            subscription: Venue subscription object, e.g. {"type": "trades", "coin": "ETH"}
            listener: Called with normalized message data

        Raises:
            SubscriptionLimitExceededError: If capacity is exhausted
            NotConnectedError: If the wire subscribe could not be sent
        """
        key = subscription_key(subscription)

        with self._lock:
            listener_id = next(self._ids)
            entry = self._entries.get(key)
            if entry is not None:
                entry.listeners[listener_id] = listener
                logger.debug(f"Added listener {listener_id} to {key}")
                return SubscriptionHandle(key, listener_id)

            if not self._ws.increment_subscription_count():
                raise SubscriptionLimitExceededError(
                    f"Subscription limit reached ({self._ws.max_subscriptions})",
                    limit=self._ws.max_subscriptions
                )

            entry = _Entry(dict(subscription), {listener_id: listener})
            self._entries[key] = entry

            try:
                self._ws.send_message({"method": "subscribe", "subscription": entry.subscription})
            except Exception:
                del self._entries[key]
                self._ws.decrement_subscription_count()
                raise

        logger.info(f"Subscribed to {key}")
        return SubscriptionHandle(key, listener_id)

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Detach a listener; the last one out unsubscribes on the wire. Idempotent."""
        with self._lock:
            entry = self._entries.get(handle.key)
            if entry is None or entry.listeners.pop(handle.listener_id, None) is None:
                return
            if entry.listeners:
                return

            del self._entries[handle.key]
            self._ws.decrement_subscription_count()

            if not self._ws.is_connected():
                return

            try:
                self._ws.send_message({"method": "unsubscribe", "subscription": entry.subscription})
            except WebSocketError as e:
                logger.warning(f"Failed to send unsubscribe for {handle.key}: {e}")

        logger.info(f"Unsubscribed from {handle.key}")

    def active_keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def listener_count(self, key: str) -> int:
        with self._lock:
            entry = self._entries.get(key)
            return len(entry.listeners) if entry else 0

    def close(self) -> None:
        """Detach from the connection manager and drop all listeners."""
        self._ws.remove_listener("message", self._dispatch)
        self._ws.remove_listener("reconnect", self._resubscribe_all)
        with self._lock:
            for _ in self._entries:
                self._ws.decrement_subscription_count()
            self._entries.clear()

    # ------------------------------------------------------------------
    # Connection events
    # ------------------------------------------------------------------

    def _resubscribe_all(self, attempt: int = 0) -> None:
        with self._lock:
            subscriptions = [entry.subscription for entry in self._entries.values()]

        logger.info(f"Restoring {len(subscriptions)} subscriptions after reconnect")
        for subscription in subscriptions:
            try:
                self._ws.send_message({"method": "subscribe", "subscription": subscription})
            except WebSocketError as e:
                logger.error(f"Failed to restore subscription {subscription_key(subscription)}: {e}")

    def _dispatch(self, message: Any) -> None:
        try:
            if not isinstance(message, dict):
                return
            channel = message.get("channel")
            if channel in IGNORED_CHANNELS:
                return
            if channel == "error":
                logger.error(f"Streaming error from venue: {message.get('data')}")
                return

            data = message.get("data")
            with self._lock:
                listeners = [
                    listener
                    for entry in self._entries.values()
                    if _matches(entry.subscription, channel, data)
                    for listener in entry.listeners.values()
                ]

            if not listeners:
                return

            normalized = self._normalize(channel, data)

        except Exception as e:
            logger.error(f"Error processing message: {e}", exc_info=True)
            return

        for listener in listeners:
            try:
                listener(normalized)
            except Exception as e:
                logger.error(f"Error in subscription listener: {e}", exc_info=True)

    def _normalize(self, channel: str, data: Any) -> Any:
        if channel == "allMids" and isinstance(data, dict) and isinstance(data.get("mids"), dict):
            rest = {k: v for k, v in data.items() if k != "mids"}
            normalized = self._normalizer.normalize(rest)
            normalized["mids"] = self._normalizer.normalize_keys(data["mids"])
            return normalized
        return self._normalizer.normalize(data)

    # ------------------------------------------------------------------
    # Channel helpers
    # ------------------------------------------------------------------

    def _exchange_name(self, symbol: str) -> str:
        return self._symbols.convert_symbol(symbol, "reverse")

    def subscribe_to_all_mids(self, listener: Listener) -> SubscriptionHandle:
        return self.subscribe({"type": "allMids"}, listener)

    def subscribe_to_l2_book(self, symbol: str, listener: Listener) -> SubscriptionHandle:
        return self.subscribe({"type": "l2Book", "coin": self._exchange_name(symbol)}, listener)

    def subscribe_to_trades(self, symbol: str, listener: Listener) -> SubscriptionHandle:
        return self.subscribe({"type": "trades", "coin": self._exchange_name(symbol)}, listener)

    def subscribe_to_candle(self, symbol: str, interval: str, listener: Listener) -> SubscriptionHandle:
        """Candles for symbol at interval ("1m", "15m", "1h", "1d", ...)."""
        return self.subscribe(
            {"type": "candle", "coin": self._exchange_name(symbol), "interval": interval},
            listener
        )

    def subscribe_to_bbo(self, symbol: str, listener: Listener) -> SubscriptionHandle:
        return self.subscribe({"type": "bbo", "coin": self._exchange_name(symbol)}, listener)

    def subscribe_to_active_asset_ctx(self, symbol: str, listener: Listener) -> SubscriptionHandle:
        return self.subscribe(
            {"type": "activeAssetCtx", "coin": self._exchange_name(symbol)}, listener
        )

    def subscribe_to_user_events(self, user: str, listener: Listener) -> SubscriptionHandle:
        return self.subscribe({"type": "userEvents", "user": user}, listener)

    def subscribe_to_user_fills(
        self,
        user: str,
        listener: Listener,
        aggregate_by_time: bool = False
    ) -> SubscriptionHandle:
        subscription = {"type": "userFills", "user": user}
        if aggregate_by_time:
            subscription["aggregateByTime"] = True
        return self.subscribe(subscription, listener)

    def subscribe_to_order_updates(self, user: str, listener: Listener) -> SubscriptionHandle:
        return self.subscribe({"type": "orderUpdates", "user": user}, listener)

    def subscribe_to_notifications(self, user: str, listener: Listener) -> SubscriptionHandle:
        return self.subscribe({"type": "notification", "user": user}, listener)

    def subscribe_to_web_data2(self, user: str, listener: Listener) -> SubscriptionHandle:
        return self.subscribe({"type": "webData2", "user": user}, listener)
