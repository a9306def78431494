"""Financial Modeling Prep provider."""
import asyncio
import logging

from screener.collectors.providers.base import (
    SUPPORTED_EXCHANGES,
    CachedProvider,
    ProviderError,
    SymbolInfo,
    first_item,
    normalize_exchange,
    to_float,
)
from screener.models import FundamentalSnapshot

logger = logging.getLogger(__name__)

HISTORY_YEARS = 5


class FMPProvider(CachedProvider):
    """FMP v3 API. Every endpoint answers with an array of objects."""

    name = "fmp"

    async def list_symbols(self) -> list[SymbolInfo]:
        listing = await self.client.request("/stock/list")
        if not isinstance(listing, list):
            raise ProviderError("Unexpected /stock/list response")

        symbols = []
        for item in listing:
            exchange = item.get("exchangeShortName")
            if item.get("type") != "stock" or exchange not in SUPPORTED_EXCHANGES:
                continue
            symbols.append(SymbolInfo(
                symbol=item["symbol"],
                name=item.get("name") or item["symbol"],
                exchange=exchange,
            ))
        return symbols

    async def _fetch_snapshot(self, symbol: str) -> FundamentalSnapshot:
        profile_raw, quote_raw, metrics_raw, income_raw, balance_raw, cash_flow_raw = await asyncio.gather(
            self.client.request(f"/profile/{symbol}"),
            self.client.request(f"/quote/{symbol}"),
            self.client.request(f"/key-metrics/{symbol}", {"limit": 1}),
            self.client.request(f"/income-statement/{symbol}", {"limit": HISTORY_YEARS}),
            self.client.request(f"/balance-sheet-statement/{symbol}", {"limit": 1}),
            self.client.request(f"/cash-flow-statement/{symbol}", {"limit": HISTORY_YEARS}),
        )

        profile = first_item(profile_raw)
        if profile is None:
            raise ProviderError(f"No profile returned for {symbol}")

        quote = first_item(quote_raw) or {}
        metrics = first_item(metrics_raw) or {}
        balance = first_item(balance_raw) or {}
        incomes = income_raw if isinstance(income_raw, list) else []
        cash_flows = cash_flow_raw if isinstance(cash_flow_raw, list) else []
        latest_income = incomes[0] if incomes else {}

        intangibles = to_float(balance.get("goodwillAndIntangibleAssets"))
        if intangibles is None:
            goodwill = to_float(balance.get("goodwill"))
            other = to_float(balance.get("intangibleAssets"))
            if goodwill is not None or other is not None:
                intangibles = (goodwill or 0.0) + (other or 0.0)

        return FundamentalSnapshot(
            symbol=symbol,
            name=profile.get("companyName"),
            exchange=normalize_exchange(profile.get("exchangeShortName") or profile.get("exchange")),
            sector=profile.get("sector") or None,
            industry=profile.get("industry") or None,
            price=to_float(quote.get("price", profile.get("price"))),
            market_cap=to_float(quote.get("marketCap", profile.get("mktCap"))),
            avg_volume=to_float(quote.get("avgVolume", profile.get("volAvg"))),
            total_debt=to_float(balance.get("totalDebt")),
            cash=to_float(balance.get("cashAndCashEquivalents")),
            ebitda=to_float(latest_income.get("ebitda")),
            ebit=to_float(latest_income.get("operatingIncome")),
            enterprise_value=to_float(metrics.get("enterpriseValue")),
            net_income=to_float(latest_income.get("netIncome")),
            total_equity=to_float(balance.get("totalStockholdersEquity")),
            intangibles=intangibles,
            free_cash_flow_history=[
                v for v in (to_float(c.get("freeCashFlow")) for c in cash_flows) if v is not None
            ],
            net_income_history=[
                v for v in (to_float(i.get("netIncome")) for i in incomes) if v is not None
            ],
            shares_outstanding_history=[
                v for v in (to_float(i.get("weightedAverageShsOut")) for i in incomes) if v is not None
            ],
            pe_ratio=to_float(quote.get("pe", metrics.get("peRatio"))),
            dividend_yield=to_float(metrics.get("dividendYield")),
            net_debt_to_ebitda=to_float(metrics.get("netDebtToEBITDA")),
        )

    async def _fetch_price(self, symbol: str) -> float | None:
        quote = first_item(await self.client.request(f"/quote/{symbol}"))
        if quote is None:
            return None
        return to_float(quote.get("price"))
