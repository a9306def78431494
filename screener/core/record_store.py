"""Record store protocol and implementations."""
import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pymongo import MongoClient, ReplaceOne
from pymongo.errors import PyMongoError

from screener.core.files import read_json, write_json_atomic
from screener.models import StockRecord

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when the record set cannot be written."""

    pass


@runtime_checkable
class RecordStore(Protocol):
    """Protocol for stock record persistence backends.

    The record set is read whole and replaced whole; there are no row-level
    updates.
    """

    def load(self, offset: int = 0, limit: int | None = None) -> list[StockRecord]:
        """Load a page of records in stored order. ``limit=None`` means all."""
        ...

    def count(self) -> int:
        """Number of stored records."""
        ...

    def persist(self, records: list[StockRecord]) -> None:
        """Replace the stored record set."""
        ...

    def is_available(self) -> bool:
        """Whether the backend can currently be reached."""
        ...


def _page(records: list[StockRecord], offset: int, limit: int | None) -> list[StockRecord]:
    offset = max(offset, 0)
    if limit is None:
        return records[offset:]
    return records[offset:offset + max(limit, 0)]


class MemoryRecordStore:
    """In-memory backend; used by the dashboard client and in tests."""

    def __init__(self, records: list[StockRecord] | None = None):
        self._records: list[StockRecord] = list(records or [])

    def load(self, offset: int = 0, limit: int | None = None) -> list[StockRecord]:
        return _page(self._records, offset, limit)

    def count(self) -> int:
        return len(self._records)

    def persist(self, records: list[StockRecord]) -> None:
        self._records = list(records)

    def is_available(self) -> bool:
        return True


class JsonFileRecordStore:
    """Stores the record set as one JSON array, replaced atomically.

    Concurrent readers may see a stale file but never a half-written one.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _read_all(self) -> list[StockRecord]:
        try:
            raw = read_json(self.path)
        except (OSError, ValueError) as e:
            logger.warning(f"Error reading record set {self.path}: {e}")
            return []

        if not raw:
            return []

        records = []
        for item in raw:
            try:
                records.append(StockRecord.from_dict(item))
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed record: {e}")
        return records

    def load(self, offset: int = 0, limit: int | None = None) -> list[StockRecord]:
        return _page(self._read_all(), offset, limit)

    def count(self) -> int:
        return len(self._read_all())

    def persist(self, records: list[StockRecord]) -> None:
        try:
            write_json_atomic(self.path, [r.to_dict(json_safe=True) for r in records])
        except OSError as e:
            raise PersistenceError(f"Failed to write {self.path}: {e}") from e

        logger.debug(
            f"PERSIST: Saved {len(records)} records",
            extra={
                "extra_data": {
                    "action": "persist_records",
                    "backend": "file",
                    "path": str(self.path),
                    "count": len(records),
                }
            },
        )

    def is_available(self) -> bool:
        return self.path.parent.exists()


class MongoRecordStore:
    """MongoDB backend: one document per record, keyed by symbol."""

    def __init__(
        self,
        uri: str = "mongodb://localhost:27017",
        database: str = "screener",
        collection: str = "stocks",
        timeout_ms: int = 10000,
        client: Any = None,
    ):
        self.client = client or MongoClient(uri, serverSelectionTimeoutMS=timeout_ms)
        self.collection = self.client[database][collection]

    def load(self, offset: int = 0, limit: int | None = None) -> list[StockRecord]:
        if limit is not None and limit <= 0:
            return []
        # pymongo treats limit(0) as unbounded
        cursor = self.collection.find({}, {"_id": 0}).sort("symbol", 1).skip(max(offset, 0))
        if limit is not None:
            cursor = cursor.limit(limit)
        return [StockRecord.from_dict(doc) for doc in cursor]

    def count(self) -> int:
        return self.collection.count_documents({})

    def persist(self, records: list[StockRecord]) -> None:
        symbols = [r.symbol for r in records]
        operations = [
            ReplaceOne({"symbol": r.symbol}, r.to_dict(json_safe=True), upsert=True)
            for r in records
        ]
        try:
            if operations:
                self.collection.bulk_write(operations, ordered=False)
            self.collection.delete_many({"symbol": {"$nin": symbols}})
        except PyMongoError as e:
            raise PersistenceError(f"Failed to write records to MongoDB: {e}") from e

        logger.debug(f"Saved {len(records)} records to MongoDB")

    def is_available(self) -> bool:
        try:
            self.client.admin.command("ping")
            return True
        except PyMongoError as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return False
