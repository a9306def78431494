"""Universe providers for the symbols to import."""
import json
import logging
import re
from datetime import datetime, timedelta
from pathlib import Path
from typing import Protocol

from screener.collectors.providers.base import DataProvider

logger = logging.getLogger(__name__)

# Plain tickers only: drops warrants, units, preferreds and class suffixes
_TICKER_PATTERN = re.compile(r"^[A-Z]{1,5}$")


class UniverseProvider(Protocol):
    """Protocol for universe data providers."""

    async def get_symbols(self) -> list[str]:
        """Get list of symbols in the universe."""
        ...


class StaticUniverse:
    """A fixed symbol list, typically from configuration."""

    def __init__(self, symbols: list[str]):
        self._symbols = [s.upper() for s in symbols]

    async def get_symbols(self) -> list[str]:
        return list(self._symbols)


class ExchangeListingUniverse:
    """NYSE/NASDAQ common stocks from a data provider's listing.

    Caches the list locally to avoid repeated fetches. Falls back to a stale
    cache when the listing cannot be fetched.
    """

    CACHE_TTL_HOURS = 24

    def __init__(self, provider: DataProvider, cache_dir: str | Path = "data/universe"):
        self.provider = provider
        self.cache_dir = Path(cache_dir)
        self.cache_file = self.cache_dir / f"{provider.name}.json"

    async def get_symbols(self) -> list[str]:
        """Get listed symbols, using cache if fresh."""
        cached = self._load_cache()
        if cached:
            logger.info(f"Loaded {len(cached)} {self.provider.name} symbols from cache")
            return cached

        try:
            listing = await self.provider.list_symbols()
        except Exception as e:
            stale = self._load_cache(allow_stale=True)
            if stale:
                logger.warning(f"Symbol listing failed ({e}); using stale cache of {len(stale)} symbols")
                return stale
            raise

        symbols = self._filter(info.symbol for info in listing)
        self._save_cache(symbols)
        logger.info(f"Fetched {len(symbols)} symbols from {self.provider.name}")
        return symbols

    def _filter(self, symbols) -> list[str]:
        seen = set()
        unique_symbols = []
        for s in symbols:
            s = s.upper()
            if _TICKER_PATTERN.match(s) and s not in seen:
                seen.add(s)
                unique_symbols.append(s)
        return sorted(unique_symbols)

    def _load_cache(self, allow_stale: bool = False) -> list[str] | None:
        """Load symbols from cache if fresh."""
        if not self.cache_file.exists():
            return None

        try:
            with open(self.cache_file) as f:
                data = json.load(f)

            cached_at = datetime.fromisoformat(data["cached_at"])
            if not allow_stale and datetime.now() - cached_at > timedelta(hours=self.CACHE_TTL_HOURS):
                logger.debug("Universe cache expired")
                return None

            return data["symbols"]
        except (OSError, ValueError, KeyError) as e:
            logger.debug(f"Error loading universe cache: {e}")
            return None

    def _save_cache(self, symbols: list[str]) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        data = {
            "cached_at": datetime.now().isoformat(),
            "count": len(symbols),
            "symbols": symbols,
        }

        with open(self.cache_file, "w") as f:
            json.dump(data, f, indent=2)

        logger.debug(f"Saved {len(symbols)} symbols to cache")


class UniverseManager:
    """Manages multiple universe providers."""

    def __init__(self):
        self.providers: dict[str, UniverseProvider] = {}

    def register_provider(self, name: str, provider: UniverseProvider) -> None:
        """Register a universe provider."""
        self.providers[name] = provider
        logger.info(f"Registered universe provider: {name}")

    async def get_universe(self, name: str) -> list[str]:
        """Resolve symbols from a named universe.

        Each import run resolves afresh; listing freshness is handled by the
        provider's own on-disk cache.
        """
        if name not in self.providers:
            raise ValueError(f"Unknown universe: {name}")

        return await self.providers[name].get_symbols()
