"""Tests for building stock records from provider snapshots."""
import math
from datetime import datetime

import pytest


def test_build_record_computes_ratios():
    from screener.models import FundamentalSnapshot
    from screener.scoring.builder import build_stock_record

    snapshot = FundamentalSnapshot(
        symbol="AAPL",
        name="Apple Inc.",
        exchange="NASDAQ",
        sector="Technology",
        price=200.0,
        market_cap=3_000_000_000_000,
        avg_volume=50_000_000,
        total_debt=100.0,
        cash=40.0,
        ebitda=30.0,
        ebit=20.0,
        enterprise_value=200.0,
        net_income=15.0,
        total_equity=100.0,
        intangibles=25.0,
        free_cash_flow_history=[12.0, 10.0],
        net_income_history=[15.0, 5.0],
        pe_ratio=30.0,
    )

    record = build_stock_record(snapshot, now=datetime(2026, 1, 5))

    assert record.symbol == "AAPL"
    assert record.net_debt_to_ebitda == pytest.approx(2.0)
    assert record.ev_to_ebit == pytest.approx(10.0)
    assert record.rotce == pytest.approx(0.2)
    assert record.fcf_to_net_income == pytest.approx(1.1)
    assert record.avg_dollar_volume == pytest.approx(10_000_000_000)
    assert record.pe_ratio == 30.0
    assert record.last_updated == datetime(2026, 1, 5)
    # 20 (cap) + 10 (leverage 2.0) + 15 (ev/ebit 10) + 15 (rotce 0.2)
    assert record.score == 60.0


def test_build_record_keeps_missing_ratios_none():
    from screener.models import FundamentalSnapshot
    from screener.scoring.builder import build_stock_record

    record = build_stock_record(FundamentalSnapshot(symbol="XYZ"))

    assert record.name == "XYZ"
    assert record.net_debt_to_ebitda is None
    assert record.ev_to_ebit is None
    assert record.rotce is None
    assert record.fcf_to_net_income is None
    assert record.avg_dollar_volume is None


def test_build_record_zero_ebitda_with_debt_is_infinite():
    from screener.models import FundamentalSnapshot
    from screener.scoring.builder import build_stock_record

    snapshot = FundamentalSnapshot(symbol="AAA", total_debt=100.0, cash=0.0, ebitda=0.0)

    assert build_stock_record(snapshot).net_debt_to_ebitda == math.inf


def test_build_record_zero_ebitda_without_cash_is_infinite():
    from screener.models import FundamentalSnapshot
    from screener.scoring.builder import build_stock_record

    snapshot = FundamentalSnapshot(symbol="AAA", total_debt=100.0, ebitda=0.0)

    assert build_stock_record(snapshot).net_debt_to_ebitda == math.inf


def test_build_record_without_debt_has_no_leverage():
    from screener.models import FundamentalSnapshot
    from screener.scoring.builder import build_stock_record

    snapshot = FundamentalSnapshot(symbol="AAA", cash=50.0, ebitda=10.0)

    assert build_stock_record(snapshot).net_debt_to_ebitda is None


def test_build_record_falls_back_to_provider_ratios():
    from screener.models import FundamentalSnapshot
    from screener.scoring.builder import build_stock_record

    snapshot = FundamentalSnapshot(symbol="AAA", net_debt_to_ebitda=1.5, ev_to_ebit=12.0)
    record = build_stock_record(snapshot)

    assert record.net_debt_to_ebitda == 1.5
    assert record.ev_to_ebit == 12.0
