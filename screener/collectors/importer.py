"""Adaptive batch importer.

Pulls fundamentals for a symbol list in fixed-size batches, each processed in
sub-groups sized by the live concurrency level, and persists the whole record
set after every batch. Run-level failures never raise: the result and the
status store carry them.
"""
import asyncio
import logging
import math
import time
from typing import Any, Awaitable, Callable

from screener.collectors.http.client import RateLimitedClient, RateLimitError, UpstreamError
from screener.collectors.http.rate_control import AdaptiveConcurrencyController
from screener.collectors.providers.base import DataProvider, ProviderError
from screener.core.record_store import PersistenceError, RecordStore
from screener.core.status_store import StatusStore
from screener.models import (
    BatchProgress,
    ErrorCategory,
    ImportResult,
    ImportStatus,
    StockRecord,
    SymbolError,
)
from screener.scoring.builder import build_stock_record
from screener.scoring.score import ScoreModel

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 75
DEFAULT_TIME_BUDGET_MINUTES = 25.0
CIRCUIT_BREAKER_RATIO = 2

# Seconds between sub-groups
RATE_LIMITED_DELAY = 10.0
HIGH_ERROR_DELAY = 5.0
MEDIUM_ERROR_DELAY = 3.0
BASE_DELAY = 1.0

# Seconds between batches
POOR_BATCH_DELAY = 15.0
FAIR_BATCH_DELAY = 10.0
GOOD_BATCH_DELAY = 5.0


def sub_group_delay(error_rate: float, rate_limited: bool) -> float:
    """Pause after a sub-group, keyed on how badly it went."""
    if rate_limited:
        return RATE_LIMITED_DELAY
    if error_rate > 0.5:
        return HIGH_ERROR_DELAY
    if error_rate > 0.2:
        return MEDIUM_ERROR_DELAY
    return BASE_DELAY


def batch_delay(success_rate: float) -> float:
    """Pause after a full batch, keyed on its success rate."""
    if success_rate < 0.5:
        return POOR_BATCH_DELAY
    if success_rate < 0.8:
        return FAIR_BATCH_DELAY
    return GOOD_BATCH_DELAY


def classify_error(error: BaseException) -> ErrorCategory:
    if isinstance(error, RateLimitError):
        return ErrorCategory.RATE_LIMIT
    if isinstance(error, UpstreamError):
        return ErrorCategory.NETWORK if error.status is None else ErrorCategory.API
    if isinstance(error, ProviderError):
        return ErrorCategory.API
    if isinstance(error, OSError):
        return ErrorCategory.FILE_SYSTEM
    return ErrorCategory.UNKNOWN


def dedupe(symbols: list[str]) -> list[str]:
    """Upper-case and drop repeats, keeping first occurrence order."""
    seen = set()
    unique = []
    for s in symbols:
        s = s.strip().upper()
        if s and s not in seen:
            seen.add(s)
            unique.append(s)
    return unique


class BatchImporter:
    """Imports stock records for symbols not yet in the record store.

    Attributes:
        provider: Fundamentals source
        store: Record set persistence
        status_store: Import status and progress files
        controller: Concurrency state, shared with the HTTP client
        client: HTTP client, observed for rate-limit hits and reset times
    """

    def __init__(
        self,
        provider: DataProvider,
        store: RecordStore,
        status_store: StatusStore,
        controller: AdaptiveConcurrencyController,
        client: RateLimitedClient | None = None,
        score_model: ScoreModel | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        time_budget_minutes: float = DEFAULT_TIME_BUDGET_MINUTES,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.store = store
        self.status_store = status_store
        self.controller = controller
        self.client = client
        self.score_model = score_model or ScoreModel()
        self.batch_size = batch_size
        self.time_budget_seconds = time_budget_minutes * 60
        self._sleep = sleep
        self._clock = clock

        self._running = False
        self._persist_failed = False
        self._rate_limited = False
        self.progress = BatchProgress()

        logger.debug(
            "INIT: BatchImporter initialized",
            extra={
                "extra_data": {
                    "action": "importer_init",
                    "provider": getattr(provider, "name", type(provider).__name__),
                    "batch_size": batch_size,
                    "time_budget_minutes": time_budget_minutes,
                    "concurrency": controller.concurrency,
                }
            },
        )

    @property
    def is_running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Ask the run to stop before its next batch."""
        self._running = False
        logger.info("Importer stop requested")

    def _fail(self, message: str, error: str | None = None) -> ImportResult:
        logger.error(message)
        self.status_store.update_status(ImportStatus.ERROR, message, error=error or message)
        return ImportResult(
            success=False,
            status=ImportStatus.ERROR,
            message=message,
            successful=self.progress.successful_symbols,
            failed=self.progress.failed_symbols,
        )

    async def run(self, symbols: list[str]) -> ImportResult:
        """Import every symbol not already stored.

        Returns:
            ImportResult; ``success`` is False for the circuit breaker, the
            time budget, persistence problems or unexpected errors
        """
        self._running = True
        self._persist_failed = False
        self._rate_limited = False
        self.progress = BatchProgress()

        try:
            return await self._run(symbols)
        except Exception as e:
            logger.exception(f"Import run failed: {e}")
            return self._fail(f"Import failed: {e}", error=str(e))
        finally:
            self._running = False

    async def _run(self, symbols: list[str]) -> ImportResult:
        started = self._clock()
        self.status_store.update_status(ImportStatus.RUNNING, "Import started")

        records = self.store.load()
        by_symbol: dict[str, StockRecord] = {r.symbol: r for r in records}

        requested = dedupe(symbols)
        pending = [s for s in requested if s not in by_symbol]
        skipped = len(requested) - len(pending)

        progress = self.progress
        progress.total_symbols = len(pending)
        progress.total_batches = math.ceil(len(pending) / self.batch_size)
        self.status_store.write_progress(progress)

        logger.info(
            f"Importing {len(pending)} symbols in {progress.total_batches} batches "
            f"({skipped} already stored)"
        )

        if not pending:
            message = "No new symbols to import"
            self.status_store.update_status(ImportStatus.COMPLETED, message)
            return ImportResult(True, ImportStatus.COMPLETED, message, skipped=skipped)

        for batch_index, start in enumerate(range(0, len(pending), self.batch_size), start=1):
            if not self._running:
                return self._fail("Import stopped before completion")

            elapsed = self._clock() - started
            if elapsed > self.time_budget_seconds:
                return self._fail(
                    f"Import time budget exhausted after {elapsed / 60:.1f} minutes "
                    f"({progress.processed_symbols}/{progress.total_symbols} processed)"
                )

            batch = pending[start:start + self.batch_size]
            progress.current_batch = batch_index
            logger.info(f"Batch {batch_index}/{progress.total_batches}: {len(batch)} symbols")

            batch_successes = await self._process_batch(batch, by_symbol)
            self._save(by_symbol)

            logger.info(
                f"Batch {batch_index}/{progress.total_batches} done: "
                f"{progress.successful_symbols} ok, {progress.failed_symbols} failed, "
                f"concurrency {self.controller.concurrency}"
            )

            if progress.failed_symbols > CIRCUIT_BREAKER_RATIO * progress.successful_symbols:
                return self._fail(
                    f"Too many failures ({progress.failed_symbols} failed vs "
                    f"{progress.successful_symbols} successful), stopping import"
                )

            if not self._persist_failed:
                self.status_store.update_status(
                    ImportStatus.RUNNING,
                    f"Batch {batch_index}/{progress.total_batches} complete",
                )

            if batch_index < progress.total_batches:
                await self._sleep(batch_delay(batch_successes / len(batch)))

        summary = (
            f"Imported {progress.successful_symbols} stocks "
            f"({progress.failed_symbols} failed, {skipped} already stored)"
        )
        if self._persist_failed:
            return self._fail(f"{summary}; saving the record set failed")

        self.status_store.update_status(ImportStatus.COMPLETED, summary)
        logger.info(summary)
        return ImportResult(
            success=True,
            status=ImportStatus.COMPLETED,
            message=summary,
            successful=progress.successful_symbols,
            failed=progress.failed_symbols,
            skipped=skipped,
        )

    async def _process_batch(self, batch: list[str], by_symbol: dict[str, StockRecord]) -> int:
        """Run a batch in concurrency-sized sub-groups. Returns its success count."""
        successes = 0
        index = 0

        while index < len(batch):
            size = max(1, self.controller.concurrency)
            group = batch[index:index + size]
            index += size

            hits_before = self.client.rate_limit_hits if self.client else 0
            results = await asyncio.gather(*(self._import_symbol(s) for s in group))

            group_failures = 0
            reset_at = None
            for symbol, record, error in results:
                if record is not None:
                    by_symbol[symbol] = record
                    self.progress.record_success()
                    successes += 1
                else:
                    self.progress.record_failure(error)
                    group_failures += 1
                    if error.category == ErrorCategory.RATE_LIMIT:
                        reset_at = error.rate_limit_reset

            if self.client and self.client.rate_limit_hits > hits_before:
                reset_at = reset_at or self.client.last_rate_limit_reset

            self._update_rate_limit_status(reset_at)

            if index < len(batch):
                delay = sub_group_delay(group_failures / len(group), reset_at is not None)
                logger.debug(
                    f"STEP: Sub-group done, sleeping {delay}s",
                    extra={
                        "extra_data": {
                            "action": "sub_group_complete",
                            "size": len(group),
                            "failures": group_failures,
                            "rate_limited": reset_at is not None,
                            "delay": delay,
                        }
                    },
                )
                await self._sleep(delay)

        return successes

    def _update_rate_limit_status(self, reset_at) -> None:
        if self._persist_failed:
            return
        if reset_at is not None:
            self._rate_limited = True
            self.status_store.update_status(
                ImportStatus.RATE_LIMITED,
                "Rate limited by data provider, backing off",
                rate_limit_reset=reset_at,
            )
        elif self._rate_limited:
            self._rate_limited = False
            self.status_store.update_status(ImportStatus.RUNNING, "Rate limit cleared, resuming import")

    async def _import_symbol(self, symbol: str) -> tuple[str, StockRecord | None, SymbolError | None]:
        """Fetch and build one record; failures are captured, never raised."""
        try:
            snapshot = await self.provider.fetch_snapshot(symbol)
            record = build_stock_record(snapshot, self.score_model)
            return symbol, record, None
        except Exception as e:
            category = classify_error(e)
            logger.warning(f"Failed to import {symbol}: {e}")
            error = SymbolError(
                symbol=symbol,
                error=str(e),
                category=category,
                rate_limit_reset=getattr(e, "reset_at", None),
            )
            return symbol, None, error

    def _save(self, by_symbol: dict[str, StockRecord]) -> None:
        """Persist records and progress; failures flip the status to error."""
        try:
            self.store.persist(list(by_symbol.values()))
        except (PersistenceError, OSError) as e:
            self._persist_failed = True
            message = f"Failed to save import results: {e}"
            logger.error(message)
            self.status_store.update_status(ImportStatus.ERROR, message, error=str(e))

        try:
            self.status_store.write_progress(self.progress)
        except OSError as e:
            logger.error(f"Failed to save batch progress: {e}")
