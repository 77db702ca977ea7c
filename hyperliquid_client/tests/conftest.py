import pytest

from hyperliquid_client.api.websocket import WebSocketClient
from hyperliquid_client.config import HyperliquidSettings
from hyperliquid_client.utils.symbols import SymbolResolutionCache

from .fakes import FakeClock, FakeMetadataSource, TimerRecorder, TransportRecorder


@pytest.fixture
def timers():
    return TimerRecorder()


@pytest.fixture
def transports():
    return TransportRecorder()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ws(timers, transports, clock):
    client = WebSocketClient(
        "wss://example.invalid/ws",
        transport_factory=transports,
        max_reconnect_attempts=5,
        initial_reconnect_delay=1.0,
        max_reconnect_delay=30.0,
        ping_interval=15.0,
        pong_timeout=30.0,
        connect_timeout=5.0,
        timer_factory=timers,
        clock=clock
    )
    yield client
    client.close()


@pytest.fixture
def metadata_source():
    return FakeMetadataSource()


@pytest.fixture
def symbols(metadata_source, timers):
    cache = SymbolResolutionCache(metadata_source, timer_factory=timers)
    cache.initialize()
    yield cache
    cache.stop()


@pytest.fixture
def settings():
    return HyperliquidSettings(_env_file=None, max_retries=0, enable_ws=False)
