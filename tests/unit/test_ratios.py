"""Tests for ratio computation."""
import math

import pytest


# =============================================================================
# Net debt / EBITDA
# =============================================================================

@pytest.mark.parametrize("debt,ebitda", [(None, 10.0), (10.0, None), (None, None), (None, 0.0)])
def test_net_debt_to_ebitda_missing_input_is_none(debt, ebitda):
    from screener.scoring.ratios import net_debt_to_ebitda

    assert net_debt_to_ebitda(debt, ebitda) is None


def test_net_debt_to_ebitda_zero_ebitda_with_debt_is_infinite():
    from screener.scoring.ratios import net_debt_to_ebitda

    assert net_debt_to_ebitda(100.0, 0.0) == math.inf
    assert net_debt_to_ebitda(0.01, 0) == math.inf


@pytest.mark.parametrize("debt", [0.0, -50.0])
def test_net_debt_to_ebitda_zero_ebitda_without_debt_is_zero(debt):
    from screener.scoring.ratios import net_debt_to_ebitda

    assert net_debt_to_ebitda(debt, 0.0) == 0


@pytest.mark.parametrize("debt,ebitda", [(100.0, 50.0), (-30.0, 10.0), (7.0, -2.0), (0.0, 5.0)])
def test_net_debt_to_ebitda_divides_exactly(debt, ebitda):
    from screener.scoring.ratios import net_debt_to_ebitda

    assert net_debt_to_ebitda(debt, ebitda) == debt / ebitda


def test_net_debt_treats_missing_cash_as_zero():
    from screener.scoring.ratios import net_debt

    assert net_debt(100.0, 30.0) == 70.0
    assert net_debt(100.0, None) == 100.0
    assert net_debt(None, 30.0) is None


# =============================================================================
# Other ratios
# =============================================================================

def test_ev_to_ebit():
    from screener.scoring.ratios import ev_to_ebit

    assert ev_to_ebit(1000.0, 100.0) == 10.0
    assert ev_to_ebit(1000.0, 0.0) is None
    assert ev_to_ebit(1000.0, -5.0) is None
    assert ev_to_ebit(None, 100.0) is None


def test_rotce_uses_tangible_equity():
    from screener.scoring.ratios import rotce

    assert rotce(20.0, 150.0, 50.0) == pytest.approx(0.2)
    assert rotce(20.0, 100.0, None) == pytest.approx(0.2)


def test_rotce_undefined_for_non_positive_tangible_equity():
    from screener.scoring.ratios import rotce

    assert rotce(20.0, 50.0, 50.0) is None
    assert rotce(20.0, 50.0, 80.0) is None
    assert rotce(None, 50.0, 0.0) is None


def test_fcf_to_net_income_sums_up_to_five_years():
    from screener.scoring.ratios import fcf_to_net_income

    fcf = [10.0, 10.0, 10.0, 10.0, 10.0, 1000.0]
    ni = [20.0, 20.0, 20.0, 20.0, 20.0, 1.0]

    assert fcf_to_net_income(fcf, ni) == pytest.approx(0.5)


def test_fcf_to_net_income_uses_common_periods():
    from screener.scoring.ratios import fcf_to_net_income

    assert fcf_to_net_income([30.0, 30.0], [20.0]) == pytest.approx(1.5)


def test_fcf_to_net_income_none_when_earnings_not_positive():
    from screener.scoring.ratios import fcf_to_net_income

    assert fcf_to_net_income([10.0], [-5.0]) is None
    assert fcf_to_net_income([10.0, 10.0], [5.0, -5.0]) is None
    assert fcf_to_net_income([], [10.0]) is None


def test_share_count_growth_annualized():
    from screener.scoring.ratios import share_count_growth

    assert share_count_growth([121.0, 110.0, 100.0]) == pytest.approx(0.1)
    assert share_count_growth([100.0]) is None
    assert share_count_growth([100.0, 0.0]) is None
