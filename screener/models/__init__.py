"""Data models for the stock screener."""

from screener.models.stock import StockRecord, FundamentalSnapshot
from screener.models.status import (
    ImportStatus,
    ErrorCategory,
    StatusRecord,
    SymbolError,
    BatchProgress,
    ImportResult,
)
from screener.models.screen import LayerResult

__all__ = [
    "StockRecord",
    "FundamentalSnapshot",
    "ImportStatus",
    "ErrorCategory",
    "StatusRecord",
    "SymbolError",
    "BatchProgress",
    "ImportResult",
    "LayerResult",
]
