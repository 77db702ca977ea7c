"""
Symbol and asset-index resolution.

Keeps human-readable symbols (BTC-PERP, PURR-USDC) consistent with the
venue's asset metadata, which changes as markets are listed. Lookups read
an immutable generation that a refresh replaces in one assignment, so
readers never block on the network and never observe a half-built map.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Protocol, Union
import logging

from ..exceptions import (
    InitializationFailedError,
    InvalidMetadataResponseError,
    NotInitializedError,
    UnknownAssetError,
)
from ..metrics import get_metrics
from ..models import (
    NOT_FOUND,
    PERP_SUFFIX,
    SPOT_INDEX_OFFSET,
    AssetClass,
    AssetRecord,
    Found,
    Lookup,
    SymbolMode,
)
from .singleflight import SingleFlight

logger = logging.getLogger(__name__)

TimerFactory = Callable[[float, Callable[[], None]], Any]


class MetadataSource(Protocol):
    """Anything that can fetch the venue's perp and spot metadata."""

    def fetch_perp_meta(self) -> Any:
        ...

    def fetch_spot_meta(self) -> Any:
        ...


@dataclass(frozen=True)
class SymbolGeneration:
    """One complete, immutable snapshot of the asset maps."""
    exchange_to_internal: Mapping[str, str]
    internal_to_index: Mapping[str, int]
    internal_to_exchange: Mapping[str, str]
    spot_tokens: frozenset
    records: tuple
    built_at: float = field(default_factory=time.time)


def _unwrap_meta(payload: Any, kind: str) -> dict:
    # metaAndAssetCtxs style responses are [meta, asset_ctxs]
    if isinstance(payload, (list, tuple)):
        if not payload:
            raise InvalidMetadataResponseError(f"Empty {kind} metadata response")
        payload = payload[0]

    if not isinstance(payload, dict):
        raise InvalidMetadataResponseError(
            f"Expected object for {kind} metadata, got {type(payload).__name__}"
        )

    if not isinstance(payload.get("universe"), list):
        raise InvalidMetadataResponseError(f"{kind} metadata has no universe array")

    return payload


def build_generation(perp_payload: Any, spot_payload: Any) -> SymbolGeneration:
    """
    Build a generation from raw perp and spot metadata.

    Raises:
        InvalidMetadataResponseError: If either payload has the wrong shape
    """
    perp_meta = _unwrap_meta(perp_payload, "perp")
    spot_meta = _unwrap_meta(spot_payload, "spot")

    tokens = spot_meta.get("tokens")
    if not isinstance(tokens, list):
        raise InvalidMetadataResponseError("spot metadata has no tokens array")

    exchange_to_internal: dict[str, str] = {}
    internal_to_index: dict[str, int] = {}
    records: list[AssetRecord] = []

    for position, asset in enumerate(perp_meta["universe"]):
        name = asset.get("name") if isinstance(asset, dict) else None
        if not isinstance(name, str):
            raise InvalidMetadataResponseError(f"perp universe entry {position} has no name")
        internal = f"{name}{PERP_SUFFIX}"
        internal_to_index[internal] = position
        exchange_to_internal[name] = internal
        records.append(AssetRecord(name, internal, position, AssetClass.PERP))

    tokens_by_index: dict[int, str] = {}
    spot_tokens = set()
    for token in tokens:
        if isinstance(token, dict) and token.get("name"):
            spot_tokens.add(token["name"])
            tokens_by_index[token.get("index")] = token["name"]

    for market in spot_meta["universe"]:
        if not isinstance(market, dict):
            raise InvalidMetadataResponseError("spot universe entry is not an object")
        pair = market.get("tokens") or []
        if len(pair) < 2:
            continue
        base = tokens_by_index.get(pair[0])
        quote = tokens_by_index.get(pair[1])
        if base is None or quote is None:
            logger.debug(f"Skipping spot market {market.get('name')}: unknown token")
            continue

        market_index = market.get("index")
        if not isinstance(market_index, int) or isinstance(market_index, bool):
            raise InvalidMetadataResponseError(
                f"spot market {market.get('name')} has no integer index"
            )

        internal = f"{base}-{quote}"
        index = SPOT_INDEX_OFFSET + market_index
        exchange_name = market.get("name", internal)
        internal_to_index[internal] = index
        exchange_to_internal[exchange_name] = internal
        records.append(AssetRecord(exchange_name, internal, index, AssetClass.SPOT))

    internal_to_exchange: dict[str, str] = {}
    for exchange_name, internal in exchange_to_internal.items():
        internal_to_exchange.setdefault(internal, exchange_name)

    return SymbolGeneration(
        exchange_to_internal=MappingProxyType(exchange_to_internal),
        internal_to_index=MappingProxyType(internal_to_index),
        internal_to_exchange=MappingProxyType(internal_to_exchange),
        spot_tokens=frozenset(spot_tokens),
        records=tuple(records),
    )


class SymbolResolutionCache:
    """
    Thread-safe symbol cache with periodic background refresh.

    Usage:
        >>> cache = SymbolResolutionCache(info_api)
        >>> cache.initialize()
        >>> cache.get_asset_index("BTC-PERP")
        0
    """

    def __init__(
        self,
        source: MetadataSource,
        refresh_interval: float = 60.0,
        max_consecutive_failures: int = 5,
        timer_factory: Optional[TimerFactory] = None
    ):
        """
        Initialize cache.

        Args:
            source: Metadata source (normally InfoAPI)
            refresh_interval: Seconds between background refreshes
            max_consecutive_failures: Failures before the background refresh stops
            timer_factory: Timer constructor, threading.Timer by default
        """
        self._source = source
        self.refresh_interval = refresh_interval
        self.max_consecutive_failures = max_consecutive_failures
        self._timer_factory = timer_factory or threading.Timer

        self._lock = threading.RLock()
        self._flight = SingleFlight()
        self._generation: Optional[SymbolGeneration] = None
        self._initialized = False
        self._consecutive_failures = 0
        self._periodic_enabled = False
        self._timer = None
        self._timer_epoch = 0
        self._metrics = get_metrics()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """
        Load metadata once and start the periodic refresh.

        Concurrent callers share one attempt. No-op once initialized.

        Raises:
            InitializationFailedError: If the first refresh fails
        """
        if self._initialized:
            return
        self._flight.do("initialize", self._initialize_once)

    def _initialize_once(self) -> None:
        if self._initialized:
            return
        try:
            self.refresh()
        except Exception as e:
            logger.error(f"Failed to initialize symbol cache: {e}")
            raise InitializationFailedError(
                f"Symbol cache initialization failed: {e}"
            ) from e

        with self._lock:
            self._initialized = True
        self.start_periodic_refresh()
        logger.info(
            f"Symbol cache initialized with {len(self._generation.records)} assets"
        )

    def refresh(self) -> SymbolGeneration:
        """
        Fetch metadata and publish a new generation.

        Overlapping calls share one physical refresh.

        Raises:
            InvalidMetadataResponseError: If metadata has the wrong shape
            Whatever the metadata source raised
        """
        return self._flight.do("refresh", self._refresh_once)

    def _refresh_once(self) -> SymbolGeneration:
        start = time.time()
        try:
            with ThreadPoolExecutor(max_workers=2, thread_name_prefix="symbol-refresh") as pool:
                perp_future = pool.submit(self._source.fetch_perp_meta)
                spot_future = pool.submit(self._source.fetch_spot_meta)
                perp_meta = perp_future.result()
                spot_meta = spot_future.result()

            generation = build_generation(perp_meta, spot_meta)

        except Exception:
            with self._lock:
                self._consecutive_failures += 1
                failures = self._consecutive_failures
            self._metrics.track_symbol_refresh("failure")
            logger.warning(f"Asset metadata refresh failed ({failures} consecutive)")
            raise

        with self._lock:
            self._generation = generation
            self._consecutive_failures = 0

        self._metrics.track_symbol_refresh("success")
        self._metrics.track_symbol_refresh_latency(time.time() - start)
        logger.debug(
            f"Asset metadata refreshed: {len(generation.records)} assets "
            f"in {time.time() - start:.3f}s"
        )
        return generation

    def start_periodic_refresh(self) -> None:
        """(Re)start the background refresh timer and reset the failure count."""
        with self._lock:
            self._cancel_timer()
            self._timer_epoch += 1
            self._periodic_enabled = True
            self._consecutive_failures = 0
            self._schedule_next()

    def stop(self) -> None:
        """Stop the background refresh."""
        with self._lock:
            self._periodic_enabled = False
            self._timer_epoch += 1
            self._cancel_timer()

    def _schedule_next(self) -> None:
        timer = self._timer_factory(
            self.refresh_interval, partial(self._periodic_tick, self._timer_epoch)
        )
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _is_current_tick(self, epoch: int) -> bool:
        # Caller holds self._lock; ticks from before a stop or restart are stale
        return self._periodic_enabled and epoch == self._timer_epoch

    def _periodic_tick(self, epoch: int) -> None:
        with self._lock:
            if not self._is_current_tick(epoch):
                return

        try:
            self.refresh()
        except Exception as e:
            logger.warning(f"Periodic asset metadata refresh failed: {e}")
            with self._lock:
                if not self._is_current_tick(epoch):
                    return
                if self._consecutive_failures >= self.max_consecutive_failures:
                    self._periodic_enabled = False
                    self._timer = None
                    logger.error(
                        f"Periodic refresh disabled after {self._consecutive_failures} "
                        f"consecutive failures; call start_periodic_refresh() to resume"
                    )
                    return

        with self._lock:
            if self._is_current_tick(epoch):
                self._schedule_next()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def periodic_refresh_enabled(self) -> bool:
        return self._periodic_enabled

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def generation(self) -> Optional[SymbolGeneration]:
        """Current snapshot (None before the first successful refresh)."""
        return self._generation

    def _current(self) -> SymbolGeneration:
        with self._lock:
            if not self._initialized or self._generation is None:
                raise NotInitializedError(
                    "Symbol cache must be initialized before use. Call initialize() first."
                )
            return self._generation

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def resolve_index(self, symbol: str) -> Lookup[int]:
        """Asset index for an internal symbol."""
        index = self._current().internal_to_index.get(symbol)
        return NOT_FOUND if index is None else Found(index)

    def resolve_exchange_name(self, internal_symbol: str) -> Lookup[str]:
        """Exchange name for an internal symbol."""
        name = self._current().internal_to_exchange.get(internal_symbol)
        return NOT_FOUND if name is None else Found(name)

    def resolve_internal_name(self, exchange_name: str) -> Lookup[str]:
        """Internal symbol for an exchange name."""
        name = self._current().exchange_to_internal.get(exchange_name)
        return NOT_FOUND if name is None else Found(name)

    def get_asset_index(self, symbol: str) -> int:
        """
        Asset index for signing.

        Raises:
            UnknownAssetError: If the symbol is not listed
        """
        result = self.resolve_index(symbol)
        if result is NOT_FOUND:
            raise UnknownAssetError(f"Unknown asset: {symbol}", symbol=symbol)
        return result.value

    def is_spot_token(self, name: str) -> bool:
        return name in self._current().spot_tokens

    def convert_symbol(
        self,
        symbol: str,
        mode: str = "",
        symbol_mode: Union[SymbolMode, str] = SymbolMode.NONE
    ) -> str:
        """
        Convert between exchange names and internal symbols.

        Args:
            symbol: Name to convert
            mode: "reverse" for internal -> exchange, anything else for
                exchange -> internal
            symbol_mode: PERP appends -PERP to the input when the converted
                name lacks it; SPOT keeps known spot token names as given

        Returns:
            Converted name, or the input when it is unknown
        """
        generation = self._current()

        if mode == "reverse":
            converted = generation.internal_to_exchange.get(symbol, symbol)
        else:
            converted = generation.exchange_to_internal.get(symbol, symbol)

        if symbol_mode == SymbolMode.PERP:
            if not converted.endswith(PERP_SUFFIX):
                converted = symbol + PERP_SUFFIX
        elif symbol_mode == SymbolMode.SPOT:
            if symbol in generation.spot_tokens:
                converted = symbol

        return converted

    def get_all_assets(self) -> dict[str, list[str]]:
        """Internal symbols grouped into perp and spot."""
        generation = self._current()
        perp: list[str] = []
        spot: list[str] = []

        for symbol, index in generation.internal_to_index.items():
            if symbol.endswith(PERP_SUFFIX):
                perp.append(symbol)
            elif index >= SPOT_INDEX_OFFSET:
                spot.append(symbol)

        return {"perp": perp, "spot": spot}

    def get_asset_records(self) -> list[AssetRecord]:
        return list(self._current().records)
