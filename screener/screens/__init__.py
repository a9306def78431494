"""Record screens built from composable layers."""
from screener.screens.base import ScreenLayer
from screener.screens.pipeline import ScreenPipeline
from screener.screens.filters import ChoiceScreen, RangeScreen, build_pipeline

__all__ = ["ScreenLayer", "ScreenPipeline", "ChoiceScreen", "RangeScreen", "build_pipeline"]
