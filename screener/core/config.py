"""Configuration loading and validation."""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from screener.collectors.http.rate_control import (
    DEFAULT_RATE_CLASSES,
    ConcurrencySettings,
    RateClass,
)

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration is invalid."""

    pass


# Provider name -> (base URL, API key query parameter, API key env var)
PROVIDER_DEFAULTS = {
    "fmp": ("https://financialmodelingprep.com/api/v3", "apikey", "FMP_API_KEY"),
    "eodhd": ("https://eodhd.com/api", "api_token", "EODHD_API_KEY"),
    "polygon": ("https://api.polygon.io", "apiKey", "POLYGON_API_KEY"),
}


@dataclass
class ProviderConfig:
    """Third-party data provider configuration."""

    name: str
    base_url: str
    api_key_param: str
    api_key: str | None = None


@dataclass
class DataStoreConfig:
    """Record store and state file configuration."""

    backend: str = "file"
    path: str = "./data"
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_database: str = "screener"
    mongo_collection: str = "stocks"

    @property
    def records_file(self) -> Path:
        return Path(self.path) / "stocks.json"

    @property
    def state_dir(self) -> Path:
        return Path(self.path) / "state"


@dataclass
class ImporterConfig:
    """Batch importer configuration."""

    provider: str = "fmp"
    batch_size: int = 75
    time_budget_minutes: float = 25.0
    scan_interval_hours: float = 24.0
    price_batch_size: int = 15
    price_save_every: int = 3
    symbols: list[str] = field(default_factory=list)


@dataclass
class RateLimitConfig:
    """HTTP client throttling and adaptive concurrency configuration."""

    concurrency: ConcurrencySettings = field(default_factory=ConcurrencySettings)
    rate_classes: list[RateClass] = field(default_factory=lambda: list(DEFAULT_RATE_CLASSES))
    request_timeout_seconds: float = 15.0
    max_rate_limit_retries: int | None = None


@dataclass
class CacheConfig:
    """Response cache configuration."""

    path: str = "./data/cache"
    ttl_hours: float = 24.0


@dataclass
class ScoringConfig:
    """Score model configuration."""

    jitter: bool = False
    seed: int | None = None


@dataclass
class ServerConfig:
    """REST API server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000


@dataclass
class Config:
    """Main configuration container."""

    providers: dict[str, ProviderConfig]
    data_store: DataStoreConfig
    importer: ImporterConfig
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    def get_provider(self, name: str | None = None) -> ProviderConfig:
        """Get a provider config, defaulting to the importer's provider."""
        name = name or self.importer.provider
        if name not in self.providers:
            raise ConfigError(f"Provider not configured: {name}")
        return self.providers[name]


def _parse_providers(raw: dict[str, Any]) -> dict[str, ProviderConfig]:
    providers = {}
    for name, prov_raw in raw.items():
        prov_raw = prov_raw or {}
        default_url, default_param, default_env = PROVIDER_DEFAULTS.get(name, (None, "apikey", None))

        base_url = prov_raw.get("base_url", default_url)
        if not base_url:
            raise ConfigError(f"Provider '{name}' needs a base_url")

        api_key = prov_raw.get("api_key")
        env_var = prov_raw.get("api_key_env", default_env)
        if not api_key and env_var:
            api_key = os.environ.get(env_var)

        providers[name] = ProviderConfig(
            name=name,
            base_url=base_url,
            api_key_param=prov_raw.get("api_key_param", default_param),
            api_key=api_key,
        )
    return providers


def _parse_rate_limit(raw: dict[str, Any]) -> RateLimitConfig:
    conc_raw = raw.get("concurrency", {})
    concurrency = ConcurrencySettings(
        initial_concurrency=conc_raw.get("initial", 15),
        min_concurrency=conc_raw.get("min", 5),
        max_concurrency=conc_raw.get("max", 30),
        step=conc_raw.get("step", 3),
        success_threshold=conc_raw.get("success_threshold", 30),
        rate_limit_threshold=conc_raw.get("rate_limit_threshold", 2),
        initial_backoff=conc_raw.get("initial_backoff_ms", 200) / 1000,
        max_backoff=conc_raw.get("max_backoff_ms", 3000) / 1000,
        backoff_factor=conc_raw.get("backoff_factor", 1.5),
    )
    if concurrency.min_concurrency > concurrency.max_concurrency:
        raise ConfigError("rate_limit.concurrency.min must not exceed max")

    rate_classes = list(DEFAULT_RATE_CLASSES)
    if "endpoint_classes" in raw:
        rate_classes = []
        for name, cls_raw in raw["endpoint_classes"].items():
            rate_classes.append(RateClass(
                name=name,
                match=None if name == "default" else cls_raw.get("match", name),
                requests_per_minute=cls_raw["requests_per_minute"],
                min_spacing=cls_raw.get("min_spacing_ms", 0) / 1000,
            ))

    return RateLimitConfig(
        concurrency=concurrency,
        rate_classes=rate_classes,
        request_timeout_seconds=raw.get("request_timeout_seconds", 15.0),
        max_rate_limit_retries=raw.get("max_rate_limit_retries"),
    )


def load_config(path: str) -> Config:
    """Load configuration from YAML file.

    Args:
        path: Path to YAML configuration file

    Returns:
        Config object with validated configuration

    Raises:
        ConfigError: If file not found, invalid YAML, or missing required fields
    """
    config_path = Path(path)

    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML: {e}") from e

    if raw is None:
        raise ConfigError("Configuration file is empty")

    # Validate required sections
    required_sections = ["providers", "data_store", "importer"]
    for section in required_sections:
        if section not in raw:
            raise ConfigError(f"Missing required configuration section: {section}")

    try:
        providers = _parse_providers(raw["providers"] or {})

        ds_raw = raw["data_store"] or {}
        data_store = DataStoreConfig(
            backend=ds_raw.get("backend", "file"),
            path=ds_raw.get("path", "./data"),
            mongo_uri=ds_raw.get("mongo_uri", "mongodb://localhost:27017"),
            mongo_database=ds_raw.get("mongo_database", "screener"),
            mongo_collection=ds_raw.get("mongo_collection", "stocks"),
        )
        if data_store.backend not in ("file", "mongodb"):
            raise ConfigError(f"Unknown data_store backend: {data_store.backend}")

        imp_raw = raw["importer"] or {}
        importer = ImporterConfig(
            provider=imp_raw.get("provider", "fmp"),
            batch_size=imp_raw.get("batch_size", 75),
            time_budget_minutes=imp_raw.get("time_budget_minutes", 25.0),
            scan_interval_hours=imp_raw.get("scan_interval_hours", 24.0),
            price_batch_size=imp_raw.get("price_batch_size", 15),
            price_save_every=imp_raw.get("price_save_every", 3),
            symbols=[s.upper() for s in imp_raw.get("symbols", [])],
        )
        if importer.batch_size < 1:
            raise ConfigError("importer.batch_size must be positive")

        rate_limit = _parse_rate_limit(raw.get("rate_limit") or {})

        cache_raw = raw.get("cache") or {}
        cache = CacheConfig(
            path=cache_raw.get("path", str(Path(data_store.path) / "cache")),
            ttl_hours=cache_raw.get("ttl_hours", 24.0),
        )

        scoring_raw = raw.get("scoring") or {}
        scoring = ScoringConfig(
            jitter=scoring_raw.get("jitter", False),
            seed=scoring_raw.get("seed"),
        )

        server_raw = raw.get("server") or {}
        server = ServerConfig(
            host=server_raw.get("host", "127.0.0.1"),
            port=server_raw.get("port", 8000),
        )
    except (KeyError, TypeError, AttributeError) as e:
        raise ConfigError(f"Invalid configuration value: {e}") from e

    config = Config(
        providers=providers,
        data_store=data_store,
        importer=importer,
        rate_limit=rate_limit,
        cache=cache,
        scoring=scoring,
        server=server,
    )

    # Fail early on an importer pointing at an unconfigured provider
    config.get_provider()

    logger.info(f"Loaded configuration from {path}")
    logger.debug(f"Providers: {list(providers)}; importer uses {importer.provider}")
    logger.debug(f"Data store: {data_store.backend} at {data_store.path}")

    return config
