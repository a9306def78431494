"""Screen models for the stock screener."""
from dataclasses import dataclass
from typing import Any


@dataclass
class LayerResult:
    """Result from a screen layer."""
    passed: bool
    data: dict[str, Any]
    reasoning: str
