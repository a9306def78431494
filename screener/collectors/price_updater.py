"""Refreshes prices of already-imported stocks."""
import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable

from screener.collectors.importer import sub_group_delay
from screener.collectors.providers.base import DataProvider
from screener.core.record_store import PersistenceError, RecordStore
from screener.core.status_store import StatusStore
from screener.models import ImportResult, ImportStatus, StockRecord
from screener.scoring.score import ScoreModel

logger = logging.getLogger(__name__)

DEFAULT_PRICE_BATCH_SIZE = 15
DEFAULT_SAVE_EVERY = 3


class PriceUpdater:
    """Walks the stored record set in small batches and updates prices.

    Market cap and average dollar volume are rescaled by the price change so
    they stay consistent with the new price. The record set is saved every
    ``save_every`` batches and once at the end.
    """

    def __init__(
        self,
        provider: DataProvider,
        store: RecordStore,
        status_store: StatusStore,
        score_model: ScoreModel | None = None,
        batch_size: int = DEFAULT_PRICE_BATCH_SIZE,
        save_every: int = DEFAULT_SAVE_EVERY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.provider = provider
        self.store = store
        self.status_store = status_store
        self.score_model = score_model or ScoreModel()
        self.batch_size = batch_size
        self.save_every = max(1, save_every)
        self._sleep = sleep

    async def run(self) -> ImportResult:
        try:
            return await self._run()
        except Exception as e:
            logger.exception(f"Price update failed: {e}")
            message = f"Price update failed: {e}"
            self.status_store.update_status(ImportStatus.ERROR, message, error=str(e))
            return ImportResult(False, ImportStatus.ERROR, message)

    async def _run(self) -> ImportResult:
        records = self.store.load()
        if not records:
            message = "No stocks to update"
            self.status_store.update_status(ImportStatus.COMPLETED, message)
            return ImportResult(True, ImportStatus.COMPLETED, message)

        self.status_store.update_status(ImportStatus.RUNNING, f"Updating prices for {len(records)} stocks")

        updated = 0
        failed = 0
        save_failed = False
        batches = [records[i:i + self.batch_size] for i in range(0, len(records), self.batch_size)]

        for index, batch in enumerate(batches, start=1):
            results = await asyncio.gather(*(self._update_one(r) for r in batch))
            batch_failed = results.count(False)
            updated += len(batch) - batch_failed
            failed += batch_failed

            if index % self.save_every == 0 or index == len(batches):
                save_failed = not self._save(records) or save_failed
                logger.info(f"Price update progress: {index}/{len(batches)} batches, {updated} updated")

            if index < len(batches):
                await self._sleep(sub_group_delay(batch_failed / len(batch), False))

        message = f"Updated {updated} prices ({failed} failed)"
        if save_failed:
            message = f"{message}; saving the record set failed"
            self.status_store.update_status(ImportStatus.ERROR, message)
            return ImportResult(False, ImportStatus.ERROR, message, successful=updated, failed=failed)

        self.status_store.update_status(ImportStatus.COMPLETED, message)
        logger.info(message)
        return ImportResult(True, ImportStatus.COMPLETED, message, successful=updated, failed=failed)

    async def _update_one(self, record: StockRecord) -> bool:
        try:
            price = await self.provider.fetch_price(record.symbol)
        except Exception as e:
            logger.warning(f"Failed to update price for {record.symbol}: {e}")
            return False

        if price is None:
            logger.debug(f"No price returned for {record.symbol}")
            return False

        old_price = record.price
        if old_price:
            change = price / old_price
            if record.market_cap is not None:
                record.market_cap *= change
            if record.avg_dollar_volume is not None:
                record.avg_dollar_volume *= change

        record.price = price
        record.last_updated = datetime.now()
        record.score = self.score_model.score(record)
        return True

    def _save(self, records: list[StockRecord]) -> bool:
        try:
            self.store.persist(records)
            return True
        except (PersistenceError, OSError) as e:
            logger.error(f"Failed to save updated prices: {e}")
            self.status_store.update_status(ImportStatus.ERROR, f"Failed to save updated prices: {e}", error=str(e))
            return False
