"""REST API consumed by the dashboard."""
import logging
import math
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from screener.core.record_store import RecordStore
from screener.core.status_store import StatusStore
from screener.models import StockRecord
from screener.screens import ScreenPipeline, build_pipeline

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 5000

router = APIRouter(prefix="/api", tags=["stocks"])


def get_store(request: Request) -> RecordStore:
    return request.app.state.record_store


def get_status_store(request: Request) -> StatusStore:
    return request.app.state.status_store


def screen_params(
    exchange: str | None = Query(None, description="Comma-separated exchanges, e.g. NYSE,NASDAQ"),
    sector: str | None = Query(None, description="Comma-separated sectors"),
    min_market_cap: float | None = Query(None, alias="minMarketCap"),
    max_market_cap: float | None = Query(None, alias="maxMarketCap"),
    min_avg_dollar_volume: float | None = Query(None, alias="minAvgDollarVolume"),
    max_net_debt_to_ebitda: float | None = Query(None, alias="maxNetDebtToEBITDA"),
    max_ev_to_ebit: float | None = Query(None, alias="maxEvToEBIT"),
    min_rotce: float | None = Query(None, alias="minRotce"),
    min_score: float | None = Query(None, alias="minScore"),
) -> ScreenPipeline:
    return build_pipeline({
        "exchange": exchange,
        "sector": sector,
        "minMarketCap": min_market_cap,
        "maxMarketCap": max_market_cap,
        "minAvgDollarVolume": min_avg_dollar_volume,
        "maxNetDebtToEBITDA": max_net_debt_to_ebitda,
        "maxEvToEBIT": max_ev_to_ebit,
        "minRotce": min_rotce,
        "minScore": min_score,
    })


def _screened(store: RecordStore, pipeline: ScreenPipeline) -> list[StockRecord]:
    return pipeline.filter(store.load())


@router.get("/stocks", summary="Paginated, filterable stock records")
def list_stocks(
    limit: int | None = Query(None, ge=1, le=MAX_PAGE_SIZE),
    offset: int | None = Query(None, ge=0),
    page: int | None = Query(None, ge=1),
    page_size: int | None = Query(None, ge=1, le=MAX_PAGE_SIZE, alias="pageSize"),
    pipeline: ScreenPipeline = Depends(screen_params),
    store: RecordStore = Depends(get_store),
) -> dict[str, Any]:
    """Either ``limit``/``offset`` or ``page``/``pageSize``; page wins when both are given."""
    if page is not None:
        limit = page_size or limit or DEFAULT_PAGE_SIZE
        offset = (page - 1) * limit
    else:
        limit = limit or page_size or DEFAULT_PAGE_SIZE
        offset = offset or 0

    if pipeline.layers:
        matched = _screened(store, pipeline)
        total = len(matched)
        stocks = matched[offset:offset + limit]
    else:
        total = store.count()
        stocks = store.load(offset, limit)

    return {
        "stocks": [s.to_dict(json_safe=True) for s in stocks],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "page": offset // limit + 1,
            "pageSize": limit,
            "pages": math.ceil(total / limit) if total else 0,
            "hasMore": offset + len(stocks) < total,
        },
    }


@router.get("/stocks/count", summary="Number of records matching the filters")
def count_stocks(
    pipeline: ScreenPipeline = Depends(screen_params),
    store: RecordStore = Depends(get_store),
) -> dict[str, int]:
    if pipeline.layers:
        return {"count": len(_screened(store, pipeline))}
    return {"count": store.count()}


@router.get("/stocks/{symbol}", summary="One record by symbol")
def get_stock(symbol: str, store: RecordStore = Depends(get_store)) -> dict[str, Any]:
    symbol = symbol.upper()
    for record in store.load():
        if record.symbol == symbol:
            return record.to_dict(json_safe=True)
    raise HTTPException(status_code=404, detail=f"Stock not found: {symbol}")


@router.get("/stats", summary="Record counts by exchange")
def stats(store: RecordStore = Depends(get_store)) -> dict[str, Any]:
    records = store.load()
    last_updated = max((r.last_updated for r in records), default=None)
    return {
        "total": len(records),
        "nyse": sum(1 for r in records if r.exchange == "NYSE"),
        "nasdaq": sum(1 for r in records if r.exchange == "NASDAQ"),
        "lastUpdated": last_updated.isoformat() if last_updated else None,
    }


@router.get("/status", summary="Service health polled by the dashboard")
def status(store: RecordStore = Depends(get_store)) -> dict[str, Any]:
    connected = store.is_available()
    return {
        "status": "ok" if connected else "degraded",
        "database": "connected" if connected else "disconnected",
        "timestamp": datetime.now().isoformat(),
    }


@router.get("/import-status", summary="Current import run status")
def import_status(status_store: StatusStore = Depends(get_status_store)) -> dict[str, Any]:
    return status_store.read_status().to_dict()


@router.get("/batch-progress", summary="Current import batch progress")
def batch_progress(status_store: StatusStore = Depends(get_status_store)) -> dict[str, Any]:
    return status_store.read_progress().to_dict()


@router.get("/diagnostics", summary="Import status, progress and record count")
def diagnostics(
    store: RecordStore = Depends(get_store),
    status_store: StatusStore = Depends(get_status_store),
) -> dict[str, Any]:
    return {
        "importStatus": status_store.read_status().to_dict(),
        "batchProgress": status_store.read_progress().to_dict(),
        "stockCount": store.count(),
        "timestamp": datetime.now().isoformat(),
    }


def create_app(record_store: RecordStore, status_store: StatusStore) -> FastAPI:
    """Build the API around the given stores."""
    app = FastAPI(title="Value Screener API")
    app.state.record_store = record_store
    app.state.status_store = status_store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.include_router(router)

    logger.info("API application created")
    return app
