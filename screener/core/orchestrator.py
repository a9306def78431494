"""Orchestrator for wiring and managing all components."""
import asyncio
import logging
import random
from pathlib import Path

from screener.collectors.http.client import RateLimitedClient
from screener.collectors.http.rate_control import AdaptiveConcurrencyController, EndpointRateTracker
from screener.collectors.importer import BatchImporter
from screener.collectors.price_updater import PriceUpdater
from screener.collectors.providers.base import CachedProvider
from screener.collectors.providers.eodhd import EODHDProvider
from screener.collectors.providers.fmp import FMPProvider
from screener.collectors.providers.polygon import PolygonProvider
from screener.collectors.universe import ExchangeListingUniverse, StaticUniverse, UniverseManager
from screener.core.cache import FileCache
from screener.core.config import Config, ConfigError, DataStoreConfig
from screener.core.record_store import JsonFileRecordStore, MongoRecordStore, RecordStore
from screener.core.status_store import StatusStore
from screener.models import ImportResult, ImportStatus
from screener.scoring.score import ScoreModel

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[CachedProvider]] = {
    "fmp": FMPProvider,
    "eodhd": EODHDProvider,
    "polygon": PolygonProvider,
}

LISTING_UNIVERSE = "listing"
CONFIGURED_UNIVERSE = "configured"


def build_record_store(config: DataStoreConfig) -> RecordStore:
    if config.backend == "mongodb":
        return MongoRecordStore(
            uri=config.mongo_uri,
            database=config.mongo_database,
            collection=config.mongo_collection,
        )
    return JsonFileRecordStore(config.records_file)


class Orchestrator:
    """Wires all components together and manages lifecycle.

    Responsibilities:
    1. Initialize stores, cache, HTTP client and provider
    2. Resolve the symbol universe
    3. Run imports and price refreshes, once or on a schedule
    """

    def __init__(self, config: Config):
        """Initialize the orchestrator.

        Args:
            config: System configuration
        """
        self.config = config
        self._running = False
        self._loop: asyncio.AbstractEventLoop | None = None

        # Initialize components
        self.record_store = build_record_store(config.data_store)
        self.status_store = StatusStore(config.data_store.state_dir)
        self.cache = FileCache(config.cache.path, ttl_hours=config.cache.ttl_hours)
        self.score_model = ScoreModel(
            jitter=config.scoring.jitter,
            rng=random.Random(config.scoring.seed),
        )

        # Initialize the rate-limited client for the importer's provider
        provider_config = config.get_provider()
        if provider_config.name not in PROVIDER_CLASSES:
            raise ConfigError(f"Unsupported provider: {provider_config.name}")

        self.controller = AdaptiveConcurrencyController(config.rate_limit.concurrency)
        self.client = RateLimitedClient(
            base_url=provider_config.base_url,
            api_key=provider_config.api_key,
            api_key_param=provider_config.api_key_param,
            controller=self.controller,
            tracker=EndpointRateTracker(config.rate_limit.rate_classes),
            timeout=config.rate_limit.request_timeout_seconds,
            max_rate_limit_retries=config.rate_limit.max_rate_limit_retries,
        )
        self.provider = PROVIDER_CLASSES[provider_config.name](self.client, self.cache)

        if not provider_config.api_key:
            logger.warning(f"No API key configured for provider '{provider_config.name}'")

        # Symbol universe: configured list wins over the provider listing
        self.universe = UniverseManager()
        self.universe.register_provider(
            LISTING_UNIVERSE,
            ExchangeListingUniverse(self.provider, Path(config.data_store.path) / "universe"),
        )
        if config.importer.symbols:
            self.universe.register_provider(CONFIGURED_UNIVERSE, StaticUniverse(config.importer.symbols))

        self.importer = BatchImporter(
            provider=self.provider,
            store=self.record_store,
            status_store=self.status_store,
            controller=self.controller,
            client=self.client,
            score_model=self.score_model,
            batch_size=config.importer.batch_size,
            time_budget_minutes=config.importer.time_budget_minutes,
        )
        self.price_updater = PriceUpdater(
            provider=self.provider,
            store=self.record_store,
            status_store=self.status_store,
            score_model=self.score_model,
            batch_size=config.importer.price_batch_size,
            save_every=config.importer.price_save_every,
        )

        logger.info(f"Orchestrator initialized (provider={provider_config.name}, store={config.data_store.backend})")

    @property
    def is_running(self) -> bool:
        """Check if orchestrator is currently running."""
        return self._running

    async def resolve_symbols(self) -> list[str]:
        name = CONFIGURED_UNIVERSE if CONFIGURED_UNIVERSE in self.universe.providers else LISTING_UNIVERSE
        return await self.universe.get_universe(name)

    async def run_import(self, symbols: list[str] | None = None) -> ImportResult:
        """Run one import. Never raises for run-level failures."""
        await self.client.start()
        try:
            if symbols is None:
                try:
                    symbols = await self.resolve_symbols()
                except Exception as e:
                    message = f"Failed to load symbol universe: {e}"
                    logger.error(message)
                    self.status_store.update_status(ImportStatus.ERROR, message, error=str(e))
                    return ImportResult(False, ImportStatus.ERROR, message)

            return await self.importer.run(symbols)
        finally:
            await self.client.close()

    async def run_price_update(self) -> ImportResult:
        await self.client.start()
        try:
            return await self.price_updater.run()
        finally:
            await self.client.close()

    def diagnostics(self) -> dict:
        """Status, progress and record count in one document."""
        return {
            "importStatus": self.status_store.read_status().to_dict(),
            "batchProgress": self.status_store.read_progress().to_dict(),
            "stockCount": self.record_store.count(),
            "concurrency": self.controller.stats(),
        }

    async def _run_async(self) -> None:
        """Import on a fixed interval until stopped."""
        interval_hours = self.config.importer.scan_interval_hours

        try:
            while self._running:
                result = await self.run_import()
                logger.info(f"Scheduled import finished: {result.message}")

                if not self._running:
                    break

                logger.info(f"Next import in {interval_hours} hours")

                # Sleep in 1-minute intervals for clean shutdown
                wait_seconds = interval_hours * 3600
                waited = 0
                while waited < wait_seconds and self._running:
                    await asyncio.sleep(60)
                    waited += 60
        except asyncio.CancelledError:
            logger.info("Orchestrator cancelled")

    def start(self) -> None:
        """Start scheduled imports.

        This method blocks until stop() is called.
        """
        logger.info("Starting orchestrator...")
        self._running = True

        # Get or create event loop
        try:
            self._loop = asyncio.get_event_loop()
        except RuntimeError:
            self._loop = asyncio.new_event_loop()
            asyncio.set_event_loop(self._loop)

        try:
            self._loop.run_until_complete(self._run_async())
        except KeyboardInterrupt:
            logger.info("Interrupted by user")
        finally:
            self._running = False
            logger.info("Orchestrator stopped")

    def stop(self) -> None:
        """Stop scheduled imports after the current batch."""
        logger.info("Stopping orchestrator...")
        self._running = False
        self.importer.stop()
