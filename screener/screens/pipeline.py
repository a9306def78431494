"""Screen layer pipeline runner."""
import logging

from screener.models import StockRecord
from screener.screens.base import ScreenLayer

logger = logging.getLogger(__name__)


class ScreenPipeline:
    """Runs a record through a sequence of screen layers.

    Processing stops at the first layer that returns passed=False.
    """

    def __init__(self, layers: list[ScreenLayer]):
        self.layers = layers

    def run(self, symbol: str, initial_data: dict) -> tuple[bool, dict, str]:
        """Run data through all layers.

        Returns:
            Tuple of (passed_all_layers, final_data, accumulated_reasoning)
        """
        if not self.layers:
            return True, initial_data, ""

        data = initial_data.copy()
        reasoning_parts: list[str] = []

        for layer in self.layers:
            result = layer.process(symbol, data)
            reasoning_parts.append(f"[{layer.name}] {result.reasoning}")
            data = result.data

            if not result.passed:
                logger.debug(f"Layer '{layer.name}' rejected {symbol}: {result.reasoning}")
                return False, data, "\n".join(reasoning_parts)

        return True, data, "\n".join(reasoning_parts)

    def matches(self, record: StockRecord) -> bool:
        passed, _, _ = self.run(record.symbol, {"record": record})
        return passed

    def filter(self, records: list[StockRecord]) -> list[StockRecord]:
        """Records passing every layer, order preserved."""
        if not self.layers:
            return list(records)
        return [r for r in records if self.matches(r)]
