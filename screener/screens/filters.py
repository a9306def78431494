"""Concrete screen layers and a builder from query parameters."""
import logging
from typing import Any

from screener.models import LayerResult, StockRecord
from screener.screens.base import ScreenLayer
from screener.screens.pipeline import ScreenPipeline

logger = logging.getLogger(__name__)


class RangeScreen:
    """Pass records whose numeric field lies within [minimum, maximum].

    A missing value never passes: an unknown ratio is not evidence that the
    stock meets the bound.
    """

    def __init__(self, field: str, minimum: float | None = None, maximum: float | None = None):
        self.field = field
        self.minimum = minimum
        self.maximum = maximum
        self.name = f"{field}_range"

    def process(self, symbol: str, data: dict) -> LayerResult:
        record: StockRecord = data["record"]
        value = getattr(record, self.field)

        if value is None:
            return LayerResult(passed=False, data=data, reasoning=f"{symbol} has no {self.field}")

        if self.minimum is not None and value < self.minimum:
            return LayerResult(
                passed=False,
                data=data,
                reasoning=f"{symbol} {self.field} {value:,.2f} below {self.minimum:,.2f}",
            )

        if self.maximum is not None and value > self.maximum:
            return LayerResult(
                passed=False,
                data=data,
                reasoning=f"{symbol} {self.field} {value:,.2f} above {self.maximum:,.2f}",
            )

        return LayerResult(passed=True, data=data, reasoning=f"{symbol} {self.field} {value:,.2f} in range")


class ChoiceScreen:
    """Pass records whose text field equals one of the allowed values (case-insensitive)."""

    def __init__(self, field: str, allowed: list[str]):
        self.field = field
        self.allowed = {a.upper() for a in allowed}
        self.name = f"{field}_choice"

    def process(self, symbol: str, data: dict) -> LayerResult:
        value = getattr(data["record"], self.field)
        if value is not None and value.upper() in self.allowed:
            return LayerResult(passed=True, data=data, reasoning=f"{symbol} {self.field} is {value}")
        return LayerResult(passed=False, data=data, reasoning=f"{symbol} {self.field} {value!r} not selected")


# Query parameter -> (record field, bound)
RANGE_PARAMS = {
    "minMarketCap": ("market_cap", "min"),
    "maxMarketCap": ("market_cap", "max"),
    "minAvgDollarVolume": ("avg_dollar_volume", "min"),
    "maxNetDebtToEBITDA": ("net_debt_to_ebitda", "max"),
    "maxEvToEBIT": ("ev_to_ebit", "max"),
    "minRotce": ("rotce", "min"),
    "minScore": ("score", "min"),
}


def build_pipeline(params: dict[str, Any]) -> ScreenPipeline:
    """Build a pipeline from API-style filter parameters; ``None`` values are ignored."""
    bounds: dict[str, dict[str, float]] = {}
    for param, (field, bound) in RANGE_PARAMS.items():
        value = params.get(param)
        if value is not None:
            bounds.setdefault(field, {})[bound] = float(value)

    layers: list[ScreenLayer] = []

    exchange = params.get("exchange")
    if exchange:
        layers.append(ChoiceScreen("exchange", [e.strip() for e in exchange.split(",") if e.strip()]))

    sector = params.get("sector")
    if sector:
        layers.append(ChoiceScreen("sector", [s.strip() for s in sector.split(",") if s.strip()]))

    for field, limits in bounds.items():
        layers.append(RangeScreen(field, minimum=limits.get("min"), maximum=limits.get("max")))

    return ScreenPipeline(layers)
