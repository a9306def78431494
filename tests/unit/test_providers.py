"""Tests for provider normalization and caching."""
import tempfile
from unittest.mock import AsyncMock, MagicMock

import pytest


def _routed_client(routes: dict):
    """Client mock answering by endpoint; unknown endpoints return empty lists."""
    client = MagicMock()

    async def request(endpoint, params=None):
        return routes.get(endpoint, [])

    client.request = AsyncMock(side_effect=request)
    return client


# =============================================================================
# Helpers
# =============================================================================

def test_normalize_exchange():
    from screener.collectors.providers.base import normalize_exchange

    assert normalize_exchange("NASDAQ Global Select") == "NASDAQ"
    assert normalize_exchange("New York Stock Exchange") == "NYSE"
    assert normalize_exchange("XNYS") == "NYSE"
    assert normalize_exchange("XNAS") == "NASDAQ"
    assert normalize_exchange(None) is None


def test_to_float_and_first_item():
    from screener.collectors.providers.base import first_item, to_float

    assert to_float("1.5") == 1.5
    assert to_float("None") is None
    assert to_float("") is None
    assert to_float(0) == 0.0
    assert first_item([{"a": 1}]) == {"a": 1}
    assert first_item([]) is None
    assert first_item({"b": 2}) == {"b": 2}


def test_providers_satisfy_protocol():
    from screener.collectors.providers.base import DataProvider
    from screener.collectors.providers.eodhd import EODHDProvider
    from screener.collectors.providers.fmp import FMPProvider
    from screener.collectors.providers.polygon import PolygonProvider

    for cls in (FMPProvider, EODHDProvider, PolygonProvider):
        assert isinstance(cls(_routed_client({})), DataProvider)


# =============================================================================
# FMP
# =============================================================================

FMP_ROUTES = {
    "/profile/AAPL": [{
        "companyName": "Apple Inc.",
        "exchangeShortName": "NASDAQ",
        "sector": "Technology",
        "industry": "Consumer Electronics",
        "mktCap": 3.0e12,
    }],
    "/quote/AAPL": [{"price": 200.0, "marketCap": 3.1e12, "avgVolume": 50_000_000, "pe": 31.0}],
    "/key-metrics/AAPL": [{"enterpriseValue": 3.2e12, "dividendYield": 0.005}],
    "/income-statement/AAPL": [
        {"ebitda": 130e9, "operatingIncome": 120e9, "netIncome": 100e9, "weightedAverageShsOut": 15.0e9},
        {"ebitda": 120e9, "operatingIncome": 110e9, "netIncome": 90e9, "weightedAverageShsOut": 16.0e9},
    ],
    "/balance-sheet-statement/AAPL": [{
        "totalDebt": 110e9,
        "cashAndCashEquivalents": 30e9,
        "totalStockholdersEquity": 60e9,
        "goodwillAndIntangibleAssets": 0,
    }],
    "/cash-flow-statement/AAPL": [{"freeCashFlow": 105e9}, {"freeCashFlow": 95e9}],
}


@pytest.mark.asyncio
async def test_fmp_snapshot_normalization():
    from screener.collectors.providers.fmp import FMPProvider

    provider = FMPProvider(_routed_client(FMP_ROUTES))

    snapshot = await provider.fetch_snapshot("AAPL")

    assert snapshot.name == "Apple Inc."
    assert snapshot.exchange == "NASDAQ"
    assert snapshot.price == 200.0
    assert snapshot.market_cap == 3.1e12
    assert snapshot.total_debt == 110e9
    assert snapshot.cash == 30e9
    assert snapshot.ebitda == 130e9
    assert snapshot.ebit == 120e9
    assert snapshot.enterprise_value == 3.2e12
    assert snapshot.intangibles == 0.0
    assert snapshot.net_income_history == [100e9, 90e9]
    assert snapshot.free_cash_flow_history == [105e9, 95e9]
    assert snapshot.shares_outstanding_history == [15.0e9, 16.0e9]
    assert snapshot.pe_ratio == 31.0


@pytest.mark.asyncio
async def test_fmp_snapshot_without_profile_raises():
    from screener.collectors.providers.base import ProviderError
    from screener.collectors.providers.fmp import FMPProvider

    provider = FMPProvider(_routed_client({}))

    with pytest.raises(ProviderError):
        await provider.fetch_snapshot("NOPE")


@pytest.mark.asyncio
async def test_fmp_list_symbols_keeps_nyse_nasdaq_stocks():
    from screener.collectors.providers.fmp import FMPProvider

    provider = FMPProvider(_routed_client({"/stock/list": [
        {"symbol": "AAPL", "name": "Apple", "exchangeShortName": "NASDAQ", "type": "stock"},
        {"symbol": "KO", "name": "Coca-Cola", "exchangeShortName": "NYSE", "type": "stock"},
        {"symbol": "SPY", "name": "SPDR", "exchangeShortName": "AMEX", "type": "etf"},
        {"symbol": "QQQ", "name": "Invesco", "exchangeShortName": "NASDAQ", "type": "etf"},
        {"symbol": "SAP", "name": "SAP", "exchangeShortName": "XETRA", "type": "stock"},
    ]}))

    symbols = await provider.list_symbols()

    assert [s.symbol for s in symbols] == ["AAPL", "KO"]


@pytest.mark.asyncio
async def test_fmp_price():
    from screener.collectors.providers.fmp import FMPProvider

    provider = FMPProvider(_routed_client({"/quote/KO": [{"price": 61.25}]}))

    assert await provider.fetch_price("KO") == 61.25
    assert await provider.fetch_price("MISSING") is None


# =============================================================================
# EODHD
# =============================================================================

@pytest.mark.asyncio
async def test_eodhd_snapshot_sorts_yearly_statements():
    from screener.collectors.providers.eodhd import EODHDProvider

    routes = {
        "/fundamentals/KO.US": {
            "General": {"Name": "Coca-Cola", "Exchange": "NYSE", "Sector": "Consumer Defensive"},
            "Highlights": {"MarketCapitalization": 260e9, "EBITDA": 15e9, "PERatio": 24.0},
            "Valuation": {"EnterpriseValue": 290e9},
            "Financials": {
                "Balance_Sheet": {"yearly": {
                    "2023-12-31": {"shortLongTermDebtTotal": "40e9", "cash": "10e9",
                                   "totalStockholderEquity": "26e9", "goodWill": "18e9",
                                   "commonStockSharesOutstanding": "4.3e9"},
                    "2024-12-31": {"shortLongTermDebtTotal": "45e9", "cash": "11e9",
                                   "totalStockholderEquity": "25e9", "goodWill": "17e9",
                                   "intangibleAssets": "1e9", "commonStockSharesOutstanding": "4.31e9"},
                }},
                "Income_Statement": {"yearly": {
                    "2023-12-31": {"ebit": "12e9", "netIncome": "10e9"},
                    "2024-12-31": {"ebit": "13e9", "netIncome": "11e9"},
                }},
                "Cash_Flow": {"yearly": {
                    "2023-12-31": {"freeCashFlow": "9e9"},
                    "2024-12-31": {"freeCashFlow": "10e9"},
                }},
            },
        },
        "/real-time/KO.US": {"code": "KO.US", "close": 61.0},
    }
    provider = EODHDProvider(_routed_client(routes))

    snapshot = await provider.fetch_snapshot("KO")

    assert snapshot.exchange == "NYSE"
    assert snapshot.price == 61.0
    assert snapshot.total_debt == 45e9
    assert snapshot.cash == 11e9
    assert snapshot.intangibles == 18e9
    assert snapshot.ebit == 13e9
    assert snapshot.net_income_history == [11e9, 10e9]
    assert snapshot.free_cash_flow_history == [10e9, 9e9]
    assert snapshot.shares_outstanding_history == [4.31e9, 4.3e9]


@pytest.mark.asyncio
async def test_eodhd_list_symbols_filters_common_stock():
    from screener.collectors.providers.eodhd import EODHDProvider

    provider = EODHDProvider(_routed_client({"/exchange-symbol-list/US": [
        {"Code": "KO", "Name": "Coca-Cola", "Exchange": "NYSE", "Type": "Common Stock"},
        {"Code": "SPY", "Name": "SPDR", "Exchange": "NYSE ARCA", "Type": "ETF"},
        {"Code": "MSFT", "Name": "Microsoft", "Exchange": "NASDAQ", "Type": "Common Stock"},
        {"Code": "ABCP", "Name": "Preferred", "Exchange": "NYSE", "Type": "Preferred Stock"},
    ]}))

    assert [s.symbol for s in await provider.list_symbols()] == ["KO", "MSFT"]


# =============================================================================
# Polygon
# =============================================================================

@pytest.mark.asyncio
async def test_polygon_list_symbols_follows_cursor():
    from screener.collectors.providers.polygon import PolygonProvider

    pages = {
        ("XNYS", None): {"results": [{"ticker": "KO", "name": "Coca-Cola"}],
                         "next_url": "https://api.polygon.io/v3/reference/tickers?cursor=abc"},
        ("XNYS", "abc"): {"results": [{"ticker": "PG", "name": "Procter"}]},
        ("XNAS", None): {"results": [{"ticker": "AAPL", "name": "Apple"}]},
    }
    client = MagicMock()

    async def request(endpoint, params=None):
        return pages[(params["exchange"], params.get("cursor"))]

    client.request = AsyncMock(side_effect=request)
    provider = PolygonProvider(client)

    symbols = await provider.list_symbols()

    assert [(s.symbol, s.exchange) for s in symbols] == [("KO", "NYSE"), ("PG", "NYSE"), ("AAPL", "NASDAQ")]


@pytest.mark.asyncio
async def test_polygon_snapshot_normalization():
    from screener.collectors.providers.polygon import PolygonProvider
    from screener.scoring.builder import build_stock_record

    routes = {
        "/v3/reference/tickers/MSFT": {"results": {
            "name": "Microsoft", "primary_exchange": "XNAS", "market_cap": 3.0e12,
            "sic_description": "Prepackaged Software",
        }},
        "/v2/aggs/ticker/MSFT/prev": {"results": [{"c": 410.0, "v": 20_000_000}]},
        "/vX/reference/financials": {"results": [
            {"financials": {
                "income_statement": {
                    "net_income_loss": {"value": 88e9},
                    "operating_income_loss": {"value": 109e9},
                    "depreciation_and_amortization": {"value": 21e9},
                },
                "balance_sheet": {
                    "long_term_debt": {"value": 42e9},
                    "short_term_debt": {"value": 8e9},
                    "cash_and_equivalents": {"value": 30e9},
                    "equity_attributable_to_parent": {"value": 268e9},
                },
                "cash_flow_statement": {
                    "net_cash_flow_from_operating_activities": {"value": 118e9},
                    "net_cash_flow_from_investing_activities": {"value": -96e9},
                },
            }},
        ]},
    }
    provider = PolygonProvider(_routed_client(routes))

    snapshot = await provider.fetch_snapshot("MSFT")

    assert snapshot.exchange == "NASDAQ"
    assert snapshot.price == 410.0
    assert snapshot.total_debt == 50e9
    assert snapshot.cash == 30e9
    assert snapshot.ebit == 109e9
    assert snapshot.ebitda == 130e9
    assert snapshot.enterprise_value == 3.02e12
    assert snapshot.net_income_history == [88e9]
    assert snapshot.free_cash_flow_history == [22e9]

    record = build_stock_record(snapshot)

    assert record.net_debt_to_ebitda == pytest.approx(20e9 / 130e9)
    assert record.ev_to_ebit == pytest.approx(3.02e12 / 109e9)


# =============================================================================
# Cache read-through
# =============================================================================

@pytest.mark.asyncio
async def test_snapshot_served_from_cache_on_second_call():
    from screener.collectors.providers.fmp import FMPProvider
    from screener.core.cache import FileCache

    with tempfile.TemporaryDirectory() as tmpdir:
        client = _routed_client(FMP_ROUTES)
        provider = FMPProvider(client, FileCache(tmpdir))

        first = await provider.fetch_snapshot("AAPL")
        calls_after_first = client.request.await_count
        second = await provider.fetch_snapshot("AAPL")

        assert second == first
        assert client.request.await_count == calls_after_first


@pytest.mark.asyncio
async def test_price_always_fetched_and_recorded():
    from screener.collectors.providers.fmp import FMPProvider
    from screener.core.cache import FileCache

    with tempfile.TemporaryDirectory() as tmpdir:
        cache = FileCache(tmpdir)
        client = _routed_client({"/quote/KO": [{"price": 61.0}]})
        provider = FMPProvider(client, cache)

        await provider.fetch_price("KO")
        await provider.fetch_price("KO")

        assert client.request.await_count == 2
        assert cache.get("KO_price") == {"price": 61.0}
