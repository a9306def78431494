"""EOD Historical Data provider."""
import logging
from typing import Any

from screener.collectors.providers.base import (
    SUPPORTED_EXCHANGES,
    CachedProvider,
    ProviderError,
    SymbolInfo,
    normalize_exchange,
    to_float,
)
from screener.models import FundamentalSnapshot

logger = logging.getLogger(__name__)

EXCHANGE_SUFFIX = ".US"
COMMON_STOCK = "Common Stock"


def _yearly(section: dict, statement: str) -> list[dict]:
    """Yearly statements newest first; EODHD keys them by period end date."""
    yearly = section.get(statement, {}).get("yearly", {}) or {}
    return [yearly[k] for k in sorted(yearly, reverse=True) if isinstance(yearly[k], dict)]


def _series(rows: list[dict], key: str) -> list[float]:
    return [v for v in (to_float(r.get(key)) for r in rows) if v is not None]


class EODHDProvider(CachedProvider):
    """EODHD API. Symbols carry an exchange suffix (``AAPL.US``)."""

    name = "eodhd"

    async def list_symbols(self) -> list[SymbolInfo]:
        listing = await self.client.request("/exchange-symbol-list/US", {"fmt": "json"})
        if not isinstance(listing, list):
            raise ProviderError("Unexpected /exchange-symbol-list response")

        return [
            SymbolInfo(
                symbol=item["Code"],
                name=item.get("Name") or item["Code"],
                exchange=item["Exchange"],
                security_type=item["Type"],
            )
            for item in listing
            if item.get("Exchange") in SUPPORTED_EXCHANGES and item.get("Type") == COMMON_STOCK
        ]

    async def _fetch_snapshot(self, symbol: str) -> FundamentalSnapshot:
        data: Any = await self.client.request(f"/fundamentals/{symbol}{EXCHANGE_SUFFIX}", {"fmt": "json"})
        if not isinstance(data, dict) or "General" not in data:
            raise ProviderError(f"No fundamentals returned for {symbol}")

        general = data.get("General") or {}
        highlights = data.get("Highlights") or {}
        valuation = data.get("Valuation") or {}
        financials = data.get("Financials") or {}

        balances = _yearly(financials, "Balance_Sheet")
        incomes = _yearly(financials, "Income_Statement")
        cash_flows = _yearly(financials, "Cash_Flow")
        balance = balances[0] if balances else {}
        income = incomes[0] if incomes else {}

        goodwill = to_float(balance.get("goodWill"))
        intangible = to_float(balance.get("intangibleAssets"))
        intangibles = None
        if goodwill is not None or intangible is not None:
            intangibles = (goodwill or 0.0) + (intangible or 0.0)

        price = await self._fetch_price(symbol)

        return FundamentalSnapshot(
            symbol=symbol,
            name=general.get("Name"),
            exchange=normalize_exchange(general.get("Exchange")),
            sector=general.get("Sector") or None,
            industry=general.get("Industry") or None,
            price=price,
            market_cap=to_float(highlights.get("MarketCapitalization")),
            total_debt=to_float(balance.get("shortLongTermDebtTotal")),
            cash=to_float(balance.get("cash")),
            ebitda=to_float(highlights.get("EBITDA")),
            ebit=to_float(income.get("ebit")),
            enterprise_value=to_float(valuation.get("EnterpriseValue")),
            net_income=to_float(income.get("netIncome")),
            total_equity=to_float(balance.get("totalStockholderEquity")),
            intangibles=intangibles,
            free_cash_flow_history=_series(cash_flows, "freeCashFlow"),
            net_income_history=_series(incomes, "netIncome"),
            shares_outstanding_history=_series(balances, "commonStockSharesOutstanding"),
            pe_ratio=to_float(highlights.get("PERatio")),
            dividend_yield=to_float(highlights.get("DividendYield")),
        )

    async def _fetch_price(self, symbol: str) -> float | None:
        quote = await self.client.request(f"/real-time/{symbol}{EXCHANGE_SUFFIX}", {"fmt": "json"})
        if not isinstance(quote, dict):
            return None
        return to_float(quote.get("close"))
