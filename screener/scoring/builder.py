"""Builds flat stock records from provider snapshots."""
import logging
from datetime import datetime

from screener.models import FundamentalSnapshot, StockRecord
from screener.scoring import ratios
from screener.scoring.score import ScoreModel

logger = logging.getLogger(__name__)


def build_stock_record(
    snapshot: FundamentalSnapshot,
    model: ScoreModel | None = None,
    now: datetime | None = None,
) -> StockRecord:
    """Merge a provider snapshot into one record and score it.

    Ratios computed from components win over provider-reported ratios; the
    provider values are only a fallback when components are missing.
    """
    leverage = ratios.net_debt_to_ebitda(
        ratios.net_debt(snapshot.total_debt, snapshot.cash),
        snapshot.ebitda,
    )
    if leverage is None:
        leverage = snapshot.net_debt_to_ebitda

    ev_ebit = ratios.ev_to_ebit(snapshot.enterprise_value, snapshot.ebit)
    if ev_ebit is None:
        ev_ebit = snapshot.ev_to_ebit

    avg_dollar_volume = None
    if snapshot.avg_volume is not None and snapshot.price is not None:
        avg_dollar_volume = snapshot.avg_volume * snapshot.price

    record = StockRecord(
        symbol=snapshot.symbol,
        name=snapshot.name or snapshot.symbol,
        exchange=snapshot.exchange or "",
        sector=snapshot.sector,
        industry=snapshot.industry,
        price=snapshot.price,
        market_cap=snapshot.market_cap,
        avg_dollar_volume=avg_dollar_volume,
        net_debt_to_ebitda=leverage,
        ev_to_ebit=ev_ebit,
        rotce=ratios.rotce(snapshot.net_income, snapshot.total_equity, snapshot.intangibles),
        fcf_to_net_income=ratios.fcf_to_net_income(
            snapshot.free_cash_flow_history, snapshot.net_income_history
        ),
        share_count_growth=ratios.share_count_growth(snapshot.shares_outstanding_history),
        pe_ratio=snapshot.pe_ratio,
        dividend_yield=snapshot.dividend_yield,
        last_updated=now or datetime.now(),
    )
    record.score = (model or ScoreModel()).score(record)

    logger.debug(
        f"TRANSFORM: Built record for {snapshot.symbol}",
        extra={
            "extra_data": {
                "action": "build_record",
                "symbol": snapshot.symbol,
                "net_debt_to_ebitda": leverage,
                "ev_to_ebit": ev_ebit,
                "score": record.score,
            }
        },
    )
    return record
