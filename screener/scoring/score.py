"""Heuristic stock score.

The score is the sum of four bucketed sub-scores (market cap, leverage,
valuation, profitability), each worth 5 to 20 points. A random 0-20 component is
available as an explicit opt-in ``jitter`` and is off by default.

The weighted formula shown in the dashboard filter help (owner earnings
yield, 5-yr ROTCE, net cash / cap, insider buys, revenue CAGR) is not
implemented; see DESIGN.md.
"""
import logging
import math
import random
from dataclasses import dataclass, field

from screener.models import StockRecord

logger = logging.getLogger(__name__)

MIN_SUB_SCORE = 5
MAX_SUB_SCORE = 20
JITTER_RANGE = 20.0
MIN_SCORE = 0.0
MAX_SCORE = 100.0


def market_cap_score(market_cap: float | None) -> int:
    if market_cap is None:
        return MIN_SUB_SCORE
    if market_cap > 10_000_000_000:
        return 20
    if market_cap > 2_000_000_000:
        return 15
    if market_cap > 300_000_000:
        return 10
    return MIN_SUB_SCORE


def leverage_score(net_debt_to_ebitda: float | None) -> int:
    """Lower leverage scores higher; unbounded leverage scores lowest."""
    if net_debt_to_ebitda is None or math.isinf(net_debt_to_ebitda):
        return MIN_SUB_SCORE
    if net_debt_to_ebitda < 1:
        return 20
    if net_debt_to_ebitda < 2:
        return 15
    if net_debt_to_ebitda < 3:
        return 10
    return MIN_SUB_SCORE


def valuation_score(ev_to_ebit: float | None) -> int:
    if ev_to_ebit is None or ev_to_ebit < 0:
        return MIN_SUB_SCORE
    if ev_to_ebit < 10:
        return 20
    if ev_to_ebit < 15:
        return 15
    if ev_to_ebit < 20:
        return 10
    return MIN_SUB_SCORE


def profitability_score(rotce: float | None) -> int:
    if rotce is None:
        return MIN_SUB_SCORE
    if rotce > 0.20:
        return 20
    if rotce > 0.15:
        return 15
    if rotce > 0.10:
        return 10
    return MIN_SUB_SCORE


@dataclass
class ScoreModel:
    """Computes the screener score for a record.

    Args:
        jitter: Add a uniform [0, 20) component, for randomized ordering
        rng: Random source for the jitter component
    """

    jitter: bool = False
    rng: random.Random = field(default_factory=random.Random)

    def components(self, record: StockRecord) -> dict[str, int]:
        """Bucketed sub-scores keyed by name."""
        return {
            "market_cap": market_cap_score(record.market_cap),
            "leverage": leverage_score(record.net_debt_to_ebitda),
            "valuation": valuation_score(record.ev_to_ebit),
            "profitability": profitability_score(record.rotce),
        }

    def score(self, record: StockRecord) -> float:
        parts = self.components(record)
        total = float(sum(parts.values()))
        if self.jitter:
            total += self.rng.random() * JITTER_RANGE

        result = max(MIN_SCORE, min(MAX_SCORE, total))

        logger.debug(
            f"TRANSFORM: Scored {record.symbol}",
            extra={
                "extra_data": {
                    "action": "score",
                    "symbol": record.symbol,
                    "components": parts,
                    "jitter": self.jitter,
                    "score": result,
                }
            },
        )
        return result


def score(record: StockRecord, model: ScoreModel | None = None) -> float:
    """Score a record with the default deterministic model."""
    return (model or ScoreModel()).score(record)
