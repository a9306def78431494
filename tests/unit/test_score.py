"""Tests for the stock score."""
import math
import random

import pytest

from conftest import make_record


@pytest.mark.parametrize("market_cap,expected", [
    (20_000_000_000, 20),
    (10_000_000_000, 15),
    (3_000_000_000, 15),
    (500_000_000, 10),
    (300_000_000, 5),
    (None, 5),
])
def test_market_cap_buckets(market_cap, expected):
    from screener.scoring.score import market_cap_score

    assert market_cap_score(market_cap) == expected


@pytest.mark.parametrize("leverage,expected", [
    (0.5, 20),
    (-1.0, 20),
    (1.5, 15),
    (2.5, 10),
    (3.0, 5),
    (math.inf, 5),
    (None, 5),
])
def test_leverage_buckets(leverage, expected):
    from screener.scoring.score import leverage_score

    assert leverage_score(leverage) == expected


@pytest.mark.parametrize("ev_ebit,expected", [(8.0, 20), (12.0, 15), (18.0, 10), (25.0, 5), (-3.0, 5), (None, 5)])
def test_valuation_buckets(ev_ebit, expected):
    from screener.scoring.score import valuation_score

    assert valuation_score(ev_ebit) == expected


@pytest.mark.parametrize("rotce,expected", [(0.25, 20), (0.18, 15), (0.12, 10), (0.05, 5), (None, 5)])
def test_profitability_buckets(rotce, expected):
    from screener.scoring.score import profitability_score

    assert profitability_score(rotce) == expected


def test_default_score_is_deterministic_sum():
    from screener.scoring.score import ScoreModel

    record = make_record(
        "AAA",
        market_cap=50_000_000_000,
        net_debt_to_ebitda=0.5,
        ev_to_ebit=8.0,
        rotce=0.3,
    )
    model = ScoreModel()

    assert model.score(record) == 80.0
    assert model.score(record) == 80.0


def test_missing_ratios_score_lowest_buckets():
    from screener.scoring.score import score

    record = make_record("AAA", market_cap=None)

    assert score(record) == 20.0


def test_jitter_adds_bounded_component():
    from screener.scoring.score import ScoreModel

    record = make_record("AAA", market_cap=None)
    model = ScoreModel(jitter=True, rng=random.Random(42))

    for _ in range(50):
        value = model.score(record)
        assert 20.0 <= value < 40.0


def test_jitter_reproducible_with_seed():
    from screener.scoring.score import ScoreModel

    record = make_record("AAA")

    first = ScoreModel(jitter=True, rng=random.Random(7)).score(record)
    second = ScoreModel(jitter=True, rng=random.Random(7)).score(record)

    assert first == second


def test_score_stays_within_bounds():
    from screener.scoring.score import ScoreModel

    record = make_record(
        "AAA",
        market_cap=50_000_000_000,
        net_debt_to_ebitda=0.1,
        ev_to_ebit=5.0,
        rotce=0.5,
    )
    model = ScoreModel(jitter=True, rng=random.Random(1))

    for _ in range(50):
        assert 0.0 <= model.score(record) <= 100.0
