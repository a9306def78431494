"""Base protocol for screen layers."""
from typing import Protocol, runtime_checkable

from screener.models import LayerResult


@runtime_checkable
class ScreenLayer(Protocol):
    """Protocol for a single layer in a screen pipeline.

    Layers inspect ``data["record"]`` (a StockRecord) and decide whether the
    stock passes on to the next layer.
    """

    name: str

    def process(self, symbol: str, data: dict) -> LayerResult:
        """Process data through this layer.

        Args:
            symbol: The symbol being screened
            data: Dict holding the record and anything earlier layers added

        Returns:
            LayerResult indicating if processing should continue
        """
        ...
