"""
Infrastructure — 代號查詢適配器 (Polygon v3 Reference API)。
- 代號搜尋：/v3/reference/tickers?search=
- 公司概況：/v3/reference/tickers/{symbol}（TTLCache 快取）
連線失敗、流量限制或回應 status 不是 OK 時拋出 ReferenceDataError。
"""

import os
import threading
from datetime import date
from typing import Optional
from urllib.parse import quote

import requests
from cachetools import TTLCache

from domain.constants import (
    CHART_REQUEST_TIMEOUT_SECONDS,
    OVERVIEW_CACHE_MAXSIZE,
    OVERVIEW_CACHE_TTL_SECONDS,
    POLYGON_TICKERS_URL,
    TICKER_SEARCH_DEFAULT_LIMIT,
)
from domain.exceptions import ReferenceDataError
from domain.market import TickerInfo
from logging_config import get_logger

logger = get_logger(__name__)


class PolygonReferenceClient:
    """Polygon 代號搜尋與公司概況。"""

    def __init__(
        self,
        api_key: str,
        session: Optional[requests.Session] = None,
        timeout: float = CHART_REQUEST_TIMEOUT_SECONDS,
        cache_ttl: float = OVERVIEW_CACHE_TTL_SECONDS,
    ) -> None:
        if not api_key:
            raise ValueError("POLYGON_API_KEY not set")
        self._api_key = api_key
        self._session = session or requests.Session()
        self._timeout = timeout
        self._overview_cache: Optional[TTLCache] = (
            TTLCache(maxsize=OVERVIEW_CACHE_MAXSIZE, ttl=cache_ttl) if cache_ttl > 0 else None
        )
        self._lock = threading.Lock()

    def search_tickers(self, search: str = "", limit: int = TICKER_SEARCH_DEFAULT_LIMIT) -> list[TickerInfo]:
        """以部分代號或名稱搜尋。"""
        body = self._get(POLYGON_TICKERS_URL, {"search": search, "limit": limit})
        results = body.get("results")
        if not isinstance(results, list):
            raise ReferenceDataError(f"Polygon returned status={body.get('status')}")

        tickers = [
            TickerInfo(
                ticker=r.get("ticker", ""),
                name=r.get("name", ""),
                market=r.get("market", ""),
                locale=r.get("locale", ""),
                primary_exchange=r.get("primary_exchange", ""),
                active=bool(r.get("active", False)),
            )
            for r in results
            if isinstance(r, dict) and r.get("ticker")
        ]
        logger.debug("Polygon 搜尋 %r 取得 %d 筆代號。", search, len(tickers))
        return tickers

    def get_overview(self, symbol: str, day: Optional[date] = None) -> dict:
        """取得代號概況（名稱、交易所、市值、Logo 等）。"""
        key = (symbol.upper(), day.isoformat() if day else "")
        if self._overview_cache is not None:
            with self._lock:
                cached = self._overview_cache.get(key)
            if cached is not None:
                return cached

        params = {"date": day.isoformat()} if day else {}
        body = self._get(f"{POLYGON_TICKERS_URL}/{quote(symbol, safe='')}", params)
        results = body.get("results")
        if not isinstance(results, dict) or not results:
            raise ReferenceDataError(f"Polygon returned status={body.get('status')}")

        if self._overview_cache is not None:
            with self._lock:
                self._overview_cache[key] = results
        return results

    def _get(self, url: str, params: dict) -> dict:
        try:
            resp = self._session.get(
                url, params={**params, "apiKey": self._api_key}, timeout=self._timeout
            )
        except requests.RequestException as e:
            raise ReferenceDataError(f"Polygon request failed: {e}") from e

        if resp.status_code == 429:
            raise ReferenceDataError("Polygon API rate limit exceeded")
        if resp.status_code >= 400:
            raise ReferenceDataError(f"Polygon returned HTTP {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as e:
            raise ReferenceDataError("Polygon returned invalid JSON") from e
        if not isinstance(body, dict) or body.get("status") != "OK":
            status = body.get("status") if isinstance(body, dict) else None
            raise ReferenceDataError(f"Polygon returned status={status}")
        return body


def build_reference_client() -> PolygonReferenceClient:
    """依環境變數 POLYGON_API_KEY 建立代號查詢用戶端。"""
    return PolygonReferenceClient(os.getenv("POLYGON_API_KEY", ""))
