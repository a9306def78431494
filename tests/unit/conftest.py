"""Shared fakes for unit tests."""
from datetime import datetime


class FakeClock:
    """Monotonic clock advanced only by FakeSleep."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class FakeSleep:
    """Async sleep that records calls and advances a FakeClock."""

    def __init__(self, clock: FakeClock | None = None, events: list | None = None):
        self.clock = clock
        self.calls: list[float] = []
        self.events = events if events is not None else []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.events.append(("sleep", seconds))
        if self.clock is not None:
            self.clock.now += seconds


class FakeResponse:
    """Minimal stand-in for aiohttp.ClientResponse inside ``async with``."""

    def __init__(self, status: int = 200, body=None, headers: dict | None = None):
        self.status = status
        self._body = body
        self.headers = headers or {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, content_type=None):
        return self._body

    async def text(self):
        return str(self._body)


class FakeSession:
    """Serves scripted responses in order and records every GET."""

    def __init__(self, responses: list[FakeResponse] | None = None, events: list | None = None, routes: dict | None = None):
        self.responses = list(responses or [])
        self.routes = routes or {}
        self.events = events if events is not None else []
        self.calls: list[tuple[str, dict]] = []
        self.closed = False

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, dict(params or {})))
        self.events.append(("get", url))
        for suffix, response in self.routes.items():
            if url.endswith(suffix):
                return response
        return self.responses.pop(0)

    async def close(self):
        self.closed = True


class FakeProvider:
    """Provider returning canned snapshots or raising canned errors."""

    name = "fake"

    def __init__(self, snapshots: dict | None = None, errors: dict | None = None, prices: dict | None = None):
        self.snapshots = snapshots or {}
        self.errors = errors or {}
        self.prices = prices or {}
        self.fetched: list[str] = []
        self.price_requests: list[str] = []

    async def list_symbols(self):
        return []

    async def fetch_snapshot(self, symbol):
        self.fetched.append(symbol)
        if symbol in self.errors:
            raise self.errors[symbol]
        return self.snapshots[symbol]

    async def fetch_price(self, symbol):
        self.price_requests.append(symbol)
        if symbol in self.errors:
            raise self.errors[symbol]
        return self.prices.get(symbol)


def make_record(symbol: str, **kwargs):
    """Build a StockRecord with sensible defaults."""
    from screener.models import StockRecord

    defaults = {
        "name": f"{symbol} Inc",
        "exchange": "NYSE",
        "price": 100.0,
        "market_cap": 5_000_000_000.0,
        "last_updated": datetime(2026, 1, 5, 12, 0, 0),
    }
    defaults.update(kwargs)
    return StockRecord(symbol=symbol, **defaults)
