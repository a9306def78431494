"""Stock record and provider snapshot models."""
import math
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any


# Field name on the dataclass -> key used in files and API payloads
RECORD_KEYS = {
    "symbol": "symbol",
    "name": "name",
    "exchange": "exchange",
    "sector": "sector",
    "industry": "industry",
    "price": "price",
    "market_cap": "marketCap",
    "avg_dollar_volume": "avgDollarVolume",
    "net_debt_to_ebitda": "netDebtToEBITDA",
    "ev_to_ebit": "evToEBIT",
    "rotce": "rotce",
    "fcf_to_net_income": "fcfToNetIncome",
    "share_count_growth": "shareCountGrowth",
    "pe_ratio": "peRatio",
    "dividend_yield": "dividendYield",
    "score": "score",
    "last_updated": "lastUpdated",
}

NUMERIC_FIELDS = {
    "price",
    "market_cap",
    "avg_dollar_volume",
    "net_debt_to_ebitda",
    "ev_to_ebit",
    "rotce",
    "fcf_to_net_income",
    "share_count_growth",
    "pe_ratio",
    "dividend_yield",
    "score",
}


def _json_number(value: float | None) -> float | str | None:
    """Render non-finite floats as strings so strict JSON encoders accept them."""
    if isinstance(value, float) and not math.isfinite(value):
        if math.isnan(value):
            return None
        return "Infinity" if value > 0 else "-Infinity"
    return value


def _parse_number(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class StockRecord:
    """One screened equity. ``symbol`` is the identity.

    Ratios stay ``None`` when their inputs are missing; zero is a real value.
    """

    symbol: str
    name: str
    exchange: str
    sector: str | None = None
    industry: str | None = None
    price: float | None = None
    market_cap: float | None = None
    avg_dollar_volume: float | None = None
    net_debt_to_ebitda: float | None = None
    ev_to_ebit: float | None = None
    rotce: float | None = None
    fcf_to_net_income: float | None = None
    share_count_growth: float | None = None
    pe_ratio: float | None = None
    dividend_yield: float | None = None
    score: float = 0.0
    last_updated: datetime = field(default_factory=datetime.now)

    def to_dict(self, json_safe: bool = False) -> dict[str, Any]:
        """Convert to the camelCase dict used on disk and over the API.

        Args:
            json_safe: Render infinite ratios as "Infinity" strings
        """
        result: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "last_updated":
                value = value.isoformat() if value else None
            elif json_safe and f.name in NUMERIC_FIELDS:
                value = _json_number(value)
            result[RECORD_KEYS[f.name]] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StockRecord":
        """Build a record from a camelCase dict, tolerating missing keys."""
        kwargs: dict[str, Any] = {}
        for attr, key in RECORD_KEYS.items():
            if key not in data:
                continue
            value = data[key]
            if attr in NUMERIC_FIELDS:
                value = _parse_number(value)
                if attr == "score" and value is None:
                    value = 0.0
            elif attr == "last_updated":
                value = datetime.fromisoformat(value) if value else datetime.now()
            kwargs[attr] = value

        if "symbol" not in kwargs:
            raise ValueError("Stock record is missing 'symbol'")
        kwargs.setdefault("name", kwargs["symbol"])
        kwargs.setdefault("exchange", "")
        return cls(**kwargs)


@dataclass
class FundamentalSnapshot:
    """Provider-normalized inputs for one symbol.

    Every provider maps its own payloads into this shape; ratios are derived
    from it by the record builder. Histories are ordered newest first.
    """

    symbol: str
    name: str | None = None
    exchange: str | None = None
    sector: str | None = None
    industry: str | None = None

    price: float | None = None
    market_cap: float | None = None
    avg_volume: float | None = None

    total_debt: float | None = None
    cash: float | None = None
    ebitda: float | None = None
    ebit: float | None = None
    enterprise_value: float | None = None
    net_income: float | None = None
    total_equity: float | None = None
    intangibles: float | None = None

    free_cash_flow_history: list[float] = field(default_factory=list)
    net_income_history: list[float] = field(default_factory=list)
    shares_outstanding_history: list[float] = field(default_factory=list)

    pe_ratio: float | None = None
    dividend_yield: float | None = None

    # Provider-computed ratios, used when components are unavailable
    net_debt_to_ebitda: float | None = None
    ev_to_ebit: float | None = None
