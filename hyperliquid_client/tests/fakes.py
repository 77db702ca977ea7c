"""Fakes for deterministic connection and refresh tests."""

from unittest.mock import MagicMock

import orjson


class FakeTimer:
    """Stands in for threading.Timer; fires only when a test calls fire()."""

    def __init__(self, delay, function):
        self.delay = delay
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    @property
    def name(self):
        return getattr(self.function, "func", self.function).__name__

    def fire(self):
        self.function()


class TimerRecorder:
    """Timer factory that keeps every timer it creates."""

    def __init__(self):
        self.timers = []

    def __call__(self, delay, function):
        timer = FakeTimer(delay, function)
        self.timers.append(timer)
        return timer

    def live(self, name):
        return [t for t in self.timers if t.name == name and not t.cancelled]

    def last(self, name):
        live = self.live(name)
        assert live, f"no live {name} timer"
        return live[-1]


class FakeTransport:
    def __init__(self, url, on_open, on_message, on_error, on_close):
        self.url = url
        self.on_open = on_open
        self.on_message = on_message
        self.on_error = on_error
        self.on_close = on_close
        self.sent = []
        self.closed = False

    def send(self, text):
        if self.closed:
            raise ConnectionError("transport closed")
        self.sent.append(text)

    def close(self):
        self.closed = True


class TransportRecorder:
    """
    Transport factory.

    With auto_open the transport reports open from inside the factory call,
    the way a fast local socket can.
    """

    def __init__(self, auto_open=True):
        self.auto_open = auto_open
        self.transports = []

    def __call__(self, url, on_open, on_message, on_error, on_close):
        transport = FakeTransport(url, on_open, on_message, on_error, on_close)
        self.transports.append(transport)
        if self.auto_open:
            on_open()
        return transport

    @property
    def current(self):
        return self.transports[-1]


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


PERP_META = {
    "universe": [
        {"name": "BTC", "szDecimals": 5, "maxLeverage": 50},
        {"name": "ETH", "szDecimals": 4, "maxLeverage": 50},
        {"name": "SOL", "szDecimals": 2, "maxLeverage": 20},
    ]
}

SPOT_META = {
    "tokens": [
        {"name": "USDC", "index": 0},
        {"name": "PURR", "index": 1},
        {"name": "HFUN", "index": 2},
        {"name": "USDT0", "index": 3},
    ],
    "universe": [
        {"name": "PURR/USDC", "tokens": [1, 0], "index": 0},
        {"name": "@1", "tokens": [2, 0], "index": 1},
        {"name": "@2", "tokens": [2, 3], "index": 2},
    ],
}


class FakeMetadataSource:
    """Metadata source whose responses and failures tests control."""

    def __init__(self, perp=None, spot=None):
        self.perp = PERP_META if perp is None else perp
        self.spot = SPOT_META if spot is None else spot
        self.perp_calls = 0
        self.spot_calls = 0
        self.error = None

    def fetch_perp_meta(self):
        self.perp_calls += 1
        if self.error is not None:
            raise self.error
        return [self.perp, []]

    def fetch_spot_meta(self):
        self.spot_calls += 1
        if self.error is not None:
            raise self.error
        return [self.spot, []]


def make_response(body=None, status_code=200, headers=None):
    """requests.Response stand-in carrying a JSON body."""
    response = MagicMock()
    response.status_code = status_code
    response.content = orjson.dumps(body)
    response.text = response.content.decode()
    response.headers = headers or {}
    return response


def sent_body(session_request):
    """Decoded JSON body of the last session.request call."""
    return orjson.loads(session_request.call_args.kwargs["data"])
