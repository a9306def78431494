"""File-backed response cache with a fixed time-to-live."""
import json
import logging
import re
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable

from screener.core.files import write_json_atomic

logger = logging.getLogger(__name__)

DEFAULT_TTL_HOURS = 24

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def sanitize_key(key: str) -> str:
    """Map a cache key to a safe file stem."""
    return _UNSAFE_KEY_CHARS.sub("_", key)


class FileCache:
    """One JSON file per key holding ``{cacheTime, data}``.

    Entries older than the TTL are treated as absent. Reads never delete;
    cleanup is done by ``clear_expired``/``clear_all``. Writes overwrite, so
    the last writer wins.
    """

    def __init__(
        self,
        base_path: str | Path,
        ttl_hours: float = DEFAULT_TTL_HOURS,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.base_path = Path(base_path)
        self.ttl = timedelta(hours=ttl_hours)
        self._clock = clock
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        return self.base_path / f"{sanitize_key(key)}.json"

    def _read_entry(self, path: Path) -> dict | None:
        try:
            with open(path) as f:
                entry = json.load(f)
            entry["cacheTime"] = datetime.fromisoformat(entry["cacheTime"])
            return entry
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Unreadable cache entry {path.name}: {e}")
            return None

    def _is_fresh(self, entry: dict) -> bool:
        return self._clock() - entry["cacheTime"] < self.ttl

    def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` if missing or expired."""
        path = self._path_for(key)
        if not path.exists():
            return None

        entry = self._read_entry(path)
        if entry is None or not self._is_fresh(entry):
            logger.debug(f"Cache miss (expired) for {key}")
            return None

        logger.debug(f"Cache hit for {key}")
        return entry["data"]

    def set(self, key: str, value: Any) -> None:
        entry = {"cacheTime": self._clock().isoformat(), "data": value}
        write_json_atomic(self._path_for(key), entry)

    def clear_expired(self) -> int:
        """Delete expired or unreadable entries. Returns how many were removed."""
        removed = 0
        for path in self.base_path.glob("*.json"):
            entry = self._read_entry(path)
            if entry is None or not self._is_fresh(entry):
                path.unlink(missing_ok=True)
                removed += 1

        logger.info(f"Cleared {removed} expired cache entries")
        return removed

    def clear_all(self) -> int:
        """Delete every entry. Returns how many were removed."""
        removed = 0
        for path in self.base_path.glob("*.json"):
            path.unlink(missing_ok=True)
            removed += 1

        logger.info(f"Cleared {removed} cache entries")
        return removed
