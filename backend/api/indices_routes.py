"""
API — 行情與代號查詢路由。
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timezone
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError

from api.schemas import (
    ChartResponse,
    TickerDetailsResponse,
    TickerInfoResponse,
    TickerOverviewResponse,
)
from domain.constants import (
    FALLBACK_CHART_INTERVAL,
    TICKER_SEARCH_DEFAULT_LIMIT,
    TICKER_SEARCH_MAX_LIMIT,
)
from domain.enums import ChartInterval
from domain.exceptions import ChartProviderError, ReferenceDataError
from domain.market import PriceSeries
from domain.protocols import ChartProvider
from infrastructure.market_data import build_chart_provider
from infrastructure.reference_data import PolygonReferenceClient, build_reference_client
from logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


@lru_cache(maxsize=1)
def get_chart_provider() -> ChartProvider:
    """FastAPI Dependency：行情來源（程序內共用一個實例）。"""
    return build_chart_provider()


@lru_cache(maxsize=1)
def get_reference_client() -> PolygonReferenceClient:
    """FastAPI Dependency：Polygon 代號查詢（程序內共用一個實例）。"""
    return build_reference_client()


def _resolve_interval(value: Optional[str]) -> ChartInterval:
    """未提供或不支援的 interval 一律改用 1h。"""
    try:
        return ChartInterval(value)
    except ValueError:
        return FALLBACK_CHART_INTERVAL


def _to_chart_response(series: PriceSeries) -> ChartResponse:
    samples = series.samples
    return ChartResponse(
        t=[int(s.timestamp.timestamp() * 1000) for s in samples],
        o=[s.open for s in samples],
        h=[s.high for s in samples],
        l=[s.low for s in samples],
        c=[s.close for s in samples],
        v=[s.volume for s in samples],
        s=series.status,
    )


# ---------------------------------------------------------------------------
# GET /indices/tickers — 代號搜尋
# ---------------------------------------------------------------------------


@router.get("/indices/tickers", response_model=list[TickerInfoResponse], summary="Search tickers")
def search_tickers_route(
    search: str = "",
    limit: int = Query(default=TICKER_SEARCH_DEFAULT_LIMIT, ge=1),
    client: PolygonReferenceClient = Depends(get_reference_client),
) -> list[TickerInfoResponse]:
    """以部分代號或名稱搜尋，最多回傳 50 筆。"""
    try:
        tickers = client.search_tickers(search, min(limit, TICKER_SEARCH_MAX_LIMIT))
    except ReferenceDataError as e:
        logger.warning("代號搜尋 %r 失敗：%s", search, e)
        raise HTTPException(status_code=502, detail=str(e))
    return [
        TickerInfoResponse(
            ticker=t.ticker,
            name=t.name,
            market=t.market,
            locale=t.locale,
            primary_exchange=t.primary_exchange,
            active=t.active,
        )
        for t in tickers
    ]


# ---------------------------------------------------------------------------
# GET /indices/chart — 單日 K 線
# ---------------------------------------------------------------------------


@router.get("/indices/chart", response_model=ChartResponse, summary="Intraday chart for one day")
def get_chart_route(
    symbol: str,
    day: Optional[date] = Query(default=None, alias="date"),
    interval: Optional[str] = None,
    provider: ChartProvider = Depends(get_chart_provider),
) -> ChartResponse:
    """
    取得指定代號單日的 K 線（平行陣列格式）。

    Query Parameters:
    - symbol: 股票代號
    - date: 日期 YYYY-MM-DD（預設今日 UTC）
    - interval: 1min / 5min / 15min / 30min / 1h（其他值改用 1h）
    """
    lookup = day or datetime.now(timezone.utc).date()
    try:
        series = provider.fetch(symbol.strip().upper(), lookup, _resolve_interval(interval))
    except ChartProviderError as e:
        logger.warning("取得 %s 行情失敗：%s", symbol, e)
        raise HTTPException(status_code=502, detail=str(e))
    return _to_chart_response(series)


# ---------------------------------------------------------------------------
# GET /indices/{symbol}/details — 概況 + K 線
# ---------------------------------------------------------------------------


@router.get(
    "/indices/{symbol}/details",
    response_model=TickerDetailsResponse,
    summary="Ticker overview and intraday chart",
)
def get_details_route(
    symbol: str,
    day: date = Query(alias="date"),
    interval: Optional[str] = None,
    provider: ChartProvider = Depends(get_chart_provider),
    client: PolygonReferenceClient = Depends(get_reference_client),
) -> TickerDetailsResponse:
    """
    同時取得代號概況與單日 K 線。
    概況失敗（含流量限制）時 overview 為 null；K 線失敗時回傳 no_data。
    """
    ticker = symbol.strip().upper()
    resolved = _resolve_interval(interval)

    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="details") as pool:
        overview_future = pool.submit(client.get_overview, ticker, day)
        chart_future = pool.submit(provider.fetch, ticker, day, resolved)

        try:
            overview: Optional[TickerOverviewResponse] = TickerOverviewResponse.model_validate(
                overview_future.result()
            )
        except (ReferenceDataError, ValidationError) as e:
            logger.warning("取得 %s 概況失敗：%s", ticker, e)
            overview = None

        try:
            series = chart_future.result()
        except ChartProviderError as e:
            logger.warning("取得 %s 行情失敗：%s", ticker, e)
            series = PriceSeries.no_data()

    return TickerDetailsResponse(overview=overview, chart=_to_chart_response(series))
