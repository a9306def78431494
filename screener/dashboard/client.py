"""Dashboard-side data manager for the stock API.

Pages records from the server into a local record store, then serves
``load``/``count`` and local screening from that store. The store backend is
pluggable; the in-memory store is the default.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import aiohttp

from screener.core.record_store import MemoryRecordStore, RecordStore
from screener.models import StockRecord
from screener.screens import ScreenPipeline

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 500


class DashboardError(Exception):
    """Raised when the API answers with an error or an unexpected shape."""

    pass


@dataclass
class StockPage:
    """One page of records from ``/api/stocks``."""
    stocks: list[StockRecord]
    total: int
    has_more: bool


class DashboardClient:
    """Fetches, caches and filters stock records for display."""

    def __init__(
        self,
        base_url: str,
        store: RecordStore | None = None,
        session: aiohttp.ClientSession | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.store = store or MemoryRecordStore()
        self.page_size = page_size
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "DashboardClient":
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        if self._session is None:
            raise DashboardError("Client session is not open")

        url = f"{self.base_url}{path}"
        async with self._session.get(
            url,
            params=params,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as response:
            if response.status != 200:
                raise DashboardError(f"HTTP {response.status} from {path}")
            return await response.json()

    async def fetch_page(
        self,
        offset: int = 0,
        limit: int | None = None,
        filters: dict[str, Any] | None = None,
    ) -> StockPage:
        params = {k: v for k, v in (filters or {}).items() if v is not None}
        params.update({"offset": offset, "limit": limit or self.page_size})

        body = await self._get("/api/stocks", params)
        try:
            stocks = [StockRecord.from_dict(item) for item in body["stocks"]]
            pagination = body["pagination"]
            return StockPage(
                stocks=stocks,
                total=pagination["total"],
                has_more=pagination["hasMore"],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DashboardError(f"Malformed /api/stocks response: {e}") from e

    async def sync(self, filters: dict[str, Any] | None = None) -> int:
        """Page through every record and replace the local store with them.

        Returns:
            Number of records stored locally
        """
        records: list[StockRecord] = []
        offset = 0

        while True:
            page = await self.fetch_page(offset=offset, filters=filters)
            records.extend(page.stocks)
            offset += len(page.stocks)
            logger.debug(f"Fetched {offset}/{page.total} records")
            if not page.has_more or not page.stocks:
                break

        self.store.persist(records)
        logger.info(f"Synced {len(records)} records from {self.base_url}")
        return len(records)

    async def is_connected(self) -> bool:
        """True when the API reports its database as connected."""
        try:
            body = await self._get("/api/status")
        except (aiohttp.ClientError, DashboardError, asyncio.TimeoutError) as e:
            logger.warning(f"Status check failed: {e}")
            return False
        return body.get("database") == "connected"

    def load(self, offset: int = 0, limit: int | None = None) -> list[StockRecord]:
        return self.store.load(offset, limit)

    def count(self) -> int:
        return self.store.count()

    def screen(self, pipeline: ScreenPipeline) -> list[StockRecord]:
        """Apply screens to the locally stored records."""
        return pipeline.filter(self.store.load())
