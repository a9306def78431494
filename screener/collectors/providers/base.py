"""Provider protocol and shared normalization helpers."""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Protocol, runtime_checkable

from screener.collectors.http.client import RateLimitedClient
from screener.core.cache import FileCache
from screener.models import FundamentalSnapshot

logger = logging.getLogger(__name__)

SUPPORTED_EXCHANGES = ("NYSE", "NASDAQ")


class ProviderError(Exception):
    """Raised when a provider response is missing or malformed."""

    pass


@dataclass
class SymbolInfo:
    """A listed security from a provider's symbol listing."""

    symbol: str
    name: str
    exchange: str
    security_type: str = "Common Stock"


@runtime_checkable
class DataProvider(Protocol):
    """Protocol for fundamentals/price data providers."""

    name: str

    async def list_symbols(self) -> list[SymbolInfo]:
        """List NYSE/NASDAQ common stocks."""
        ...

    async def fetch_snapshot(self, symbol: str) -> FundamentalSnapshot:
        """Fetch and normalize fundamentals for one symbol."""
        ...

    async def fetch_price(self, symbol: str) -> float | None:
        """Fetch the latest price for one symbol."""
        ...


def first_item(payload: Any) -> dict | None:
    """Unwrap array-of-one responses; dicts pass through."""
    if isinstance(payload, list):
        return payload[0] if payload and isinstance(payload[0], dict) else None
    if isinstance(payload, dict):
        return payload
    return None


def to_float(value: Any) -> float | None:
    if value is None or value == "" or value == "None":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def normalize_exchange(value: str | None) -> str | None:
    """Map provider exchange labels onto NYSE/NASDAQ."""
    if not value:
        return None
    upper = value.upper()
    if "NASDAQ" in upper or upper == "XNAS":
        return "NASDAQ"
    if "NYSE" in upper or "NEW YORK" in upper or upper == "XNYS":
        return "NYSE"
    return upper


class CachedProvider:
    """Base for providers: read-through caching of snapshots and prices.

    Subclasses implement ``_fetch_snapshot`` and ``_fetch_price``.
    """

    name = "base"

    def __init__(self, client: RateLimitedClient, cache: FileCache | None = None):
        self.client = client
        self.cache = cache

    async def fetch_snapshot(self, symbol: str) -> FundamentalSnapshot:
        key = f"{symbol}_fundamentals"
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return FundamentalSnapshot(**cached)

        snapshot = await self._fetch_snapshot(symbol)

        if self.cache is not None:
            self.cache.set(key, asdict(snapshot))
        return snapshot

    async def fetch_price(self, symbol: str) -> float | None:
        """Always fetches upstream; the cache only records the latest value."""
        price = await self._fetch_price(symbol)
        if self.cache is not None and price is not None:
            self.cache.set(f"{symbol}_price", {"price": price})
        return price

    async def _fetch_snapshot(self, symbol: str) -> FundamentalSnapshot:
        raise NotImplementedError

    async def _fetch_price(self, symbol: str) -> float | None:
        raise NotImplementedError
