"""Import status and batch progress models."""
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

MAX_RECENT_ERRORS = 50


class ImportStatus(Enum):
    """Lifecycle of an import run."""
    IDLE = "idle"
    RUNNING = "running"
    ERROR = "error"
    RATE_LIMITED = "rate_limited"
    COMPLETED = "completed"


class ErrorCategory(Enum):
    """Coarse classification of a per-symbol failure."""
    RATE_LIMIT = "RATE_LIMIT"
    NETWORK = "NETWORK"
    API = "API"
    FILE_SYSTEM = "FILE_SYSTEM"
    UNKNOWN = "UNKNOWN_ERROR"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class StatusRecord:
    """The single, overwritten-in-place import status."""
    status: ImportStatus = ImportStatus.IDLE
    last_run: datetime | None = None
    last_error: str | None = None
    rate_limit_reset: datetime | None = None
    message: str = "Import not started"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "lastRun": _iso(self.last_run),
            "lastError": self.last_error,
            "rateLimitReset": _iso(self.rate_limit_reset),
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StatusRecord":
        return cls(
            status=ImportStatus(data.get("status", "idle")),
            last_run=_parse_dt(data.get("lastRun")),
            last_error=data.get("lastError"),
            rate_limit_reset=_parse_dt(data.get("rateLimitReset")),
            message=data.get("message", ""),
        )


@dataclass
class SymbolError:
    """A failed symbol fetch kept in the recent-errors ring."""
    symbol: str
    error: str
    category: ErrorCategory = ErrorCategory.UNKNOWN
    timestamp: datetime = field(default_factory=datetime.now)
    rate_limit_reset: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "error": self.error,
            "category": self.category.value,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SymbolError":
        return cls(
            symbol=data["symbol"],
            error=data.get("error", ""),
            category=ErrorCategory(data.get("category", ErrorCategory.UNKNOWN.value)),
            timestamp=_parse_dt(data.get("timestamp")) or datetime.now(),
        )


@dataclass
class BatchProgress:
    """Counters for the current import run.

    ``errors`` only ever holds the most recent failures.
    """
    total_symbols: int = 0
    processed_symbols: int = 0
    successful_symbols: int = 0
    failed_symbols: int = 0
    current_batch: int = 0
    total_batches: int = 0
    last_updated: datetime | None = None
    errors: deque = field(default_factory=lambda: deque(maxlen=MAX_RECENT_ERRORS))

    def record_success(self) -> None:
        self.successful_symbols += 1
        self.processed_symbols = self.successful_symbols + self.failed_symbols

    def record_failure(self, error: SymbolError) -> None:
        self.failed_symbols += 1
        self.processed_symbols = self.successful_symbols + self.failed_symbols
        self.errors.append(error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastUpdated": _iso(self.last_updated),
            "currentBatch": self.current_batch,
            "totalBatches": self.total_batches,
            "totalSymbols": self.total_symbols,
            "processedSymbols": self.processed_symbols,
            "successfulSymbols": self.successful_symbols,
            "failedSymbols": self.failed_symbols,
            "errors": [e.to_dict() for e in self.errors],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BatchProgress":
        progress = cls(
            total_symbols=data.get("totalSymbols", 0),
            processed_symbols=data.get("processedSymbols", 0),
            successful_symbols=data.get("successfulSymbols", 0),
            failed_symbols=data.get("failedSymbols", 0),
            current_batch=data.get("currentBatch", 0),
            total_batches=data.get("totalBatches", 0),
            last_updated=_parse_dt(data.get("lastUpdated")),
        )
        for raw in data.get("errors", [])[-MAX_RECENT_ERRORS:]:
            progress.errors.append(SymbolError.from_dict(raw))
        return progress


@dataclass
class ImportResult:
    """Outcome of an import or price refresh run.

    Runs never raise for run-level failures; callers inspect ``success``.
    """
    success: bool
    status: ImportStatus
    message: str
    successful: int = 0
    failed: int = 0
    skipped: int = 0
