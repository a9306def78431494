"""Polygon.io provider."""
import logging
from typing import Any
from urllib.parse import parse_qs, urlparse

from screener.collectors.providers.base import (
    CachedProvider,
    ProviderError,
    SymbolInfo,
    normalize_exchange,
    to_float,
)
from screener.models import FundamentalSnapshot
from screener.scoring.ratios import net_debt

logger = logging.getLogger(__name__)

EXCHANGE_CODES = {"XNYS": "NYSE", "XNAS": "NASDAQ"}
MAX_LISTING_PAGES = 50
HISTORY_YEARS = 5


def _value(section: dict, key: str) -> float | None:
    """Polygon financial line items look like ``{"value": 123, "unit": "USD"}``."""
    item = section.get(key)
    if isinstance(item, dict):
        return to_float(item.get("value"))
    return None


def _sum(*values: float | None) -> float | None:
    """Sum of the reported line items, or ``None`` when none is reported."""
    present = [v for v in values if v is not None]
    return sum(present) if present else None


class PolygonProvider(CachedProvider):
    """Polygon.io API. Payloads are nested under ``results``."""

    name = "polygon"

    async def list_symbols(self) -> list[SymbolInfo]:
        symbols: list[SymbolInfo] = []
        params: dict[str, Any] = {"market": "stocks", "type": "CS", "active": "true", "limit": 1000}

        for exchange_code, exchange in EXCHANGE_CODES.items():
            page_params = {**params, "exchange": exchange_code}
            for _ in range(MAX_LISTING_PAGES):
                page = await self.client.request("/v3/reference/tickers", page_params)
                for item in page.get("results", []):
                    symbols.append(SymbolInfo(
                        symbol=item["ticker"],
                        name=item.get("name") or item["ticker"],
                        exchange=exchange,
                    ))

                next_url = page.get("next_url")
                if not next_url:
                    break
                cursor = parse_qs(urlparse(next_url).query).get("cursor")
                if not cursor:
                    break
                page_params = {**params, "exchange": exchange_code, "cursor": cursor[0]}

        return symbols

    async def _fetch_snapshot(self, symbol: str) -> FundamentalSnapshot:
        details_raw = await self.client.request(f"/v3/reference/tickers/{symbol}")
        details = details_raw.get("results") if isinstance(details_raw, dict) else None
        if not details:
            raise ProviderError(f"No ticker details returned for {symbol}")

        prev_raw = await self.client.request(f"/v2/aggs/ticker/{symbol}/prev")
        prev_results = prev_raw.get("results") if isinstance(prev_raw, dict) else None
        prev = prev_results[0] if prev_results else {}

        fin_raw = await self.client.request(
            "/vX/reference/financials",
            {"ticker": symbol, "timeframe": "annual", "limit": HISTORY_YEARS},
        )
        periods = [r.get("financials", {}) for r in (fin_raw or {}).get("results", [])]
        latest = periods[0] if periods else {}
        balance = latest.get("balance_sheet", {})
        income = latest.get("income_statement", {})

        market_cap = to_float(details.get("market_cap"))
        ebit = _value(income, "operating_income_loss")
        ebitda = None
        if ebit is not None:
            ebitda = ebit + (_value(income, "depreciation_and_amortization") or 0.0)
        total_debt = _sum(_value(balance, "long_term_debt"), _value(balance, "short_term_debt"))
        cash = _value(balance, "cash_and_equivalents")
        debt_net = net_debt(total_debt, cash)
        enterprise_value = None
        if market_cap is not None and debt_net is not None:
            enterprise_value = market_cap + debt_net

        net_incomes = [
            v for v in (_value(p.get("income_statement", {}), "net_income_loss") for p in periods)
            if v is not None
        ]
        free_cash_flows = []
        for p in periods:
            cash_flow = p.get("cash_flow_statement", {})
            operating = _value(cash_flow, "net_cash_flow_from_operating_activities")
            investing = _value(cash_flow, "net_cash_flow_from_investing_activities")
            if operating is not None and investing is not None:
                free_cash_flows.append(operating + investing)

        return FundamentalSnapshot(
            symbol=symbol,
            name=details.get("name"),
            exchange=normalize_exchange(details.get("primary_exchange")),
            industry=details.get("sic_description") or None,
            price=to_float(prev.get("c")),
            market_cap=market_cap,
            avg_volume=to_float(prev.get("v")),
            enterprise_value=enterprise_value,
            total_debt=total_debt,
            cash=cash,
            ebitda=ebitda,
            ebit=ebit,
            net_income=_value(income, "net_income_loss"),
            total_equity=_value(balance, "equity_attributable_to_parent"),
            intangibles=_value(balance, "intangible_assets"),
            free_cash_flow_history=free_cash_flows,
            net_income_history=net_incomes,
        )

    async def _fetch_price(self, symbol: str) -> float | None:
        prev_raw = await self.client.request(f"/v2/aggs/ticker/{symbol}/prev")
        results = prev_raw.get("results") if isinstance(prev_raw, dict) else None
        if not results:
            return None
        return to_float(results[0].get("c"))
