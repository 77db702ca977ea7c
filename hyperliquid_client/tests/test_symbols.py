"""Tests for the symbol resolution cache."""

import threading
import time

import pytest

from hyperliquid_client.exceptions import (
    APIError,
    InitializationFailedError,
    InvalidMetadataResponseError,
    NotInitializedError,
    UnknownAssetError,
)
from hyperliquid_client.models import NOT_FOUND, AssetClass, Found, SymbolMode
from hyperliquid_client.utils.symbols import SymbolResolutionCache, build_generation

from .fakes import PERP_META, SPOT_META, FakeMetadataSource, TimerRecorder


class TestBuildGeneration:
    """Test metadata parsing."""

    def test_perp_and_spot_indices(self):
        generation = build_generation([PERP_META, []], [SPOT_META, []])

        assert generation.internal_to_index["BTC-PERP"] == 0
        assert generation.internal_to_index["SOL-PERP"] == 2
        assert generation.internal_to_index["PURR-USDC"] == 10000
        assert generation.internal_to_index["HFUN-USDC"] == 10001
        assert generation.internal_to_index["HFUN-USDT0"] == 10002

    def test_accepts_bare_meta_objects(self):
        generation = build_generation(PERP_META, SPOT_META)
        assert generation.exchange_to_internal["@2"] == "HFUN-USDT0"

    def test_records_carry_asset_class(self):
        generation = build_generation(PERP_META, SPOT_META)
        classes = {r.internal_symbol: r.asset_class for r in generation.records}

        assert classes["ETH-PERP"] == AssetClass.PERP
        assert classes["PURR-USDC"] == AssetClass.SPOT

    def test_generation_maps_are_read_only(self):
        generation = build_generation(PERP_META, SPOT_META)
        with pytest.raises(TypeError):
            generation.internal_to_index["DOGE-PERP"] = 99

    @pytest.mark.parametrize("perp, spot", [
        ({"universe": "not a list"}, SPOT_META),
        (PERP_META, {"universe": []}),
        ("garbage", SPOT_META),
        ([], SPOT_META),
        ({"universe": [{"szDecimals": 2}]}, SPOT_META),
        (PERP_META, {"tokens": SPOT_META["tokens"], "universe": [{"name": "@1", "tokens": [2, 0]}]}),
        (PERP_META, {"tokens": SPOT_META["tokens"], "universe": [{"name": "@1", "tokens": [2, 0], "index": "1"}]}),
    ])
    def test_malformed_metadata_rejected(self, perp, spot):
        with pytest.raises(InvalidMetadataResponseError):
            build_generation(perp, spot)

    def test_market_with_unknown_token_skipped(self):
        spot = {
            "tokens": [{"name": "USDC", "index": 0}],
            "universe": [{"name": "@9", "tokens": [7, 0], "index": 9}],
        }
        generation = build_generation(PERP_META, spot)
        assert "@9" not in generation.exchange_to_internal


class TestLookups:
    """Test resolution against an initialized cache."""

    def test_spot_pair_resolution(self, symbols):
        assert symbols.resolve_index("PURR-USDC") == Found(10000)
        assert symbols.resolve_exchange_name("PURR-USDC") == Found("PURR/USDC")
        assert symbols.resolve_internal_name("PURR/USDC") == Found("PURR-USDC")

    def test_same_base_with_two_quotes(self, symbols):
        assert symbols.resolve_index("HFUN-USDC") == Found(10001)
        assert symbols.resolve_index("HFUN-USDT0") == Found(10002)
        assert symbols.resolve_internal_name("@1") == Found("HFUN-USDC")
        assert symbols.resolve_internal_name("@2") == Found("HFUN-USDT0")

    def test_perp_resolution(self, symbols):
        assert symbols.resolve_index("ETH-PERP") == Found(1)
        assert symbols.resolve_exchange_name("ETH-PERP") == Found("ETH")
        assert symbols.resolve_internal_name("ETH") == Found("ETH-PERP")

    def test_unknown_symbol_not_found(self, symbols):
        assert symbols.resolve_index("DOGE-PERP") is NOT_FOUND
        assert not symbols.resolve_exchange_name("DOGE-PERP")
        assert symbols.resolve_internal_name("@99") is NOT_FOUND

    def test_get_asset_index_raises_for_unknown(self, symbols):
        assert symbols.get_asset_index("BTC-PERP") == 0
        with pytest.raises(UnknownAssetError, match="Unknown asset: DOGE-PERP"):
            symbols.get_asset_index("DOGE-PERP")

    def test_spot_tokens(self, symbols):
        assert symbols.is_spot_token("PURR")
        assert not symbols.is_spot_token("BTC")

    def test_get_all_assets(self, symbols):
        assets = symbols.get_all_assets()

        assert sorted(assets["perp"]) == ["BTC-PERP", "ETH-PERP", "SOL-PERP"]
        assert sorted(assets["spot"]) == ["HFUN-USDC", "HFUN-USDT0", "PURR-USDC"]


class TestConvertSymbol:
    """Test exchange/internal name conversion."""

    def test_forward_and_reverse(self, symbols):
        assert symbols.convert_symbol("BTC") == "BTC-PERP"
        assert symbols.convert_symbol("@1") == "HFUN-USDC"
        assert symbols.convert_symbol("BTC-PERP", "reverse") == "BTC"
        assert symbols.convert_symbol("HFUN-USDC", "reverse") == "@1"

    def test_unknown_passes_through(self, symbols):
        assert symbols.convert_symbol("DOGE") == "DOGE"
        assert symbols.convert_symbol("DOGE-PERP", "reverse") == "DOGE-PERP"

    def test_perp_mode_appends_suffix(self, symbols):
        assert symbols.convert_symbol("DOGE", "", SymbolMode.PERP) == "DOGE-PERP"
        assert symbols.convert_symbol("BTC", "", SymbolMode.PERP) == "BTC-PERP"

    def test_spot_mode_keeps_token_names(self, symbols):
        assert symbols.convert_symbol("PURR", "", SymbolMode.SPOT) == "PURR"
        assert symbols.convert_symbol("@1", "", SymbolMode.SPOT) == "HFUN-USDC"


class TestInitialization:
    """Test lifecycle and failure handling."""

    def test_lookup_before_initialize(self, metadata_source, timers):
        cache = SymbolResolutionCache(metadata_source, timer_factory=timers)

        with pytest.raises(NotInitializedError, match="Call initialize"):
            cache.resolve_index("BTC-PERP")
        assert not cache.is_initialized

    def test_initialize_failure(self, timers):
        source = FakeMetadataSource()
        source.error = APIError("venue down", status_code=503)
        cache = SymbolResolutionCache(source, timer_factory=timers)

        with pytest.raises(InitializationFailedError) as excinfo:
            cache.initialize()

        assert isinstance(excinfo.value.__cause__, APIError)
        assert not cache.is_initialized
        assert timers.timers == []

    def test_initialize_with_malformed_metadata(self, timers):
        source = FakeMetadataSource(perp={"universe": None})
        cache = SymbolResolutionCache(source, timer_factory=timers)

        with pytest.raises(InitializationFailedError) as excinfo:
            cache.initialize()
        assert isinstance(excinfo.value.__cause__, InvalidMetadataResponseError)

    def test_initialize_is_idempotent(self, symbols, metadata_source):
        symbols.initialize()
        assert metadata_source.perp_calls == 1
        assert metadata_source.spot_calls == 1

    def test_initialize_starts_periodic_refresh(self, symbols, timers):
        assert symbols.periodic_refresh_enabled
        assert timers.timers[-1].delay == 60.0
        assert timers.timers[-1].daemon


class TestPeriodicRefresh:
    """Test background refresh and its failure threshold."""

    def test_tick_refreshes_and_rearms(self, symbols, metadata_source, timers):
        timers.timers[-1].function()

        assert metadata_source.perp_calls == 2
        assert len(timers.timers) == 2

    def test_refresh_picks_up_new_listing(self, symbols, metadata_source, timers):
        metadata_source.perp = {"universe": PERP_META["universe"] + [{"name": "DOGE"}]}

        timers.timers[-1].function()

        assert symbols.resolve_index("DOGE-PERP") == Found(3)

    def test_disabled_after_consecutive_failures(self, symbols, metadata_source, timers):
        metadata_source.error = APIError("venue down", status_code=503)

        for expected in range(1, 6):
            timers.timers[-1].function()
            assert symbols.consecutive_failures == expected

        assert not symbols.periodic_refresh_enabled
        # 1 initial timer + 4 rearms; the fifth failure does not rearm
        assert len(timers.timers) == 5
        # last good generation keeps serving lookups
        assert symbols.resolve_index("BTC-PERP") == Found(0)

        metadata_source.error = None
        symbols.refresh()
        assert symbols.consecutive_failures == 0
        assert not symbols.periodic_refresh_enabled

        symbols.start_periodic_refresh()
        assert symbols.periodic_refresh_enabled
        assert len(timers.timers) == 6

    def test_success_resets_failure_count(self, symbols, metadata_source, timers):
        metadata_source.error = APIError("blip", status_code=502)
        timers.timers[-1].function()
        timers.timers[-1].function()
        assert symbols.consecutive_failures == 2

        metadata_source.error = None
        timers.timers[-1].function()
        assert symbols.consecutive_failures == 0
        assert symbols.periodic_refresh_enabled

    def test_stop_cancels_timer(self, symbols, metadata_source, timers):
        symbols.stop()

        assert timers.timers[-1].cancelled
        timers.timers[-1].function()
        assert metadata_source.perp_calls == 1

    def test_restart_during_tick_keeps_one_timer_chain(self, symbols, metadata_source, timers):
        fetch = metadata_source.fetch_perp_meta

        def fetch_then_restart():
            symbols.stop()
            symbols.start_periodic_refresh()
            return fetch()

        metadata_source.fetch_perp_meta = fetch_then_restart
        timers.timers[0].function()

        # the restarted chain owns the only live timer; the stale tick does not rearm
        assert len(timers.timers) == 2
        assert timers.timers[0].cancelled
        assert not timers.timers[1].cancelled

        metadata_source.fetch_perp_meta = fetch
        timers.timers[0].function()
        assert metadata_source.perp_calls == 2


class BlockingSource(FakeMetadataSource):
    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def fetch_perp_meta(self):
        self.entered.set()
        self.release.wait(5)
        return super().fetch_perp_meta()


class TestSingleFlight:
    """Test overlapping refreshes share one fetch."""

    def test_concurrent_refresh_fetches_once(self):
        source = BlockingSource()
        cache = SymbolResolutionCache(source, timer_factory=TimerRecorder())
        results = []

        def refresh():
            results.append(cache.refresh())

        leader = threading.Thread(target=refresh)
        leader.start()
        assert source.entered.wait(5)

        followers = [threading.Thread(target=refresh) for _ in range(3)]
        for thread in followers:
            thread.start()
        time.sleep(0.1)
        source.release.set()

        for thread in [leader] + followers:
            thread.join(timeout=5)

        assert source.perp_calls == 1
        assert len(results) == 4
        assert all(result is results[0] for result in results)

    def test_concurrent_initialize_fetches_once(self):
        source = BlockingSource()
        cache = SymbolResolutionCache(source, timer_factory=TimerRecorder())

        threads = [threading.Thread(target=cache.initialize) for _ in range(4)]
        threads[0].start()
        assert source.entered.wait(5)
        for thread in threads[1:]:
            thread.start()
        time.sleep(0.1)
        source.release.set()

        for thread in threads:
            thread.join(timeout=5)

        assert cache.is_initialized
        assert source.perp_calls == 1
        cache.stop()
