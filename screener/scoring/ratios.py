"""Valuation and quality ratios.

All functions are pure. They return ``None`` when an input is missing so
that "unknown" never collapses into a legitimate zero.
"""
import math

CASH_CONVERSION_YEARS = 5


def net_debt_to_ebitda(debt: float | None, ebitda: float | None) -> float | None:
    """Leverage as net debt over EBITDA.

    Zero EBITDA is a meaningful input: a company carrying debt is maximally
    levered (``inf``); one without debt has zero leverage.
    """
    if debt is None or ebitda is None:
        return None
    if ebitda == 0:
        return math.inf if debt > 0 else 0.0
    return debt / ebitda


def net_debt(total_debt: float | None, cash: float | None) -> float | None:
    """Total debt minus cash and equivalents.

    An unreported cash balance counts as zero; only missing debt is unknown.
    """
    if total_debt is None:
        return None
    return total_debt - (cash or 0.0)


def ev_to_ebit(enterprise_value: float | None, ebit: float | None) -> float | None:
    """Enterprise value over EBIT; undefined for non-positive EBIT."""
    if enterprise_value is None or ebit is None or ebit <= 0:
        return None
    return enterprise_value / ebit


def rotce(
    net_income: float | None,
    total_equity: float | None,
    intangibles: float | None,
) -> float | None:
    """Return on tangible common equity.

    Missing intangibles are treated as none on the books; a non-positive
    tangible equity base makes the ratio undefined.
    """
    if net_income is None or total_equity is None:
        return None
    tangible_equity = total_equity - (intangibles or 0.0)
    if tangible_equity <= 0:
        return None
    return net_income / tangible_equity


def fcf_to_net_income(
    fcf_history: list[float],
    net_income_history: list[float],
    years: int = CASH_CONVERSION_YEARS,
) -> float | None:
    """Cash conversion: summed free cash flow over summed net income.

    Uses the most recent ``years`` periods present in both histories.
    """
    periods = min(len(fcf_history), len(net_income_history), years)
    if periods == 0:
        return None
    total_ni = sum(net_income_history[:periods])
    if total_ni <= 0:
        return None
    return sum(fcf_history[:periods]) / total_ni


def share_count_growth(shares_history: list[float]) -> float | None:
    """Annualized change in shares outstanding, newest first history."""
    if len(shares_history) < 2:
        return None
    latest, oldest = shares_history[0], shares_history[-1]
    if not oldest or oldest <= 0 or latest <= 0:
        return None
    years = len(shares_history) - 1
    return (latest / oldest) ** (1 / years) - 1
