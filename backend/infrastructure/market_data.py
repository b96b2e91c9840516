"""
Infrastructure — 行情資料適配器 (ChartProvider)。
- Twelve Data time_series（預設，需 TWELVEDATA_API_KEY）
- Yahoo Finance（yfinance + curl_cffi 模擬瀏覽器 Session）
上游沒有資料時回傳 no_data 序列；僅在連線或 API 失敗時拋出 ChartProviderError。
結果以 TTLCache 短暫快取，同一次排程中多位使用者追蹤同一代號只需呼叫一次上游。
"""

import os
import threading
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from typing import Optional

import requests
import yfinance as yf
from cachetools import TTLCache
from curl_cffi import requests as cffi_requests

from domain.constants import (
    CHART_CACHE_MAXSIZE,
    CHART_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_CHART_CACHE_TTL_SECONDS,
    DEFAULT_CHART_PROVIDER,
    TWELVEDATA_OUTPUT_SIZE,
    TWELVEDATA_TIME_SERIES_URL,
)
from domain.enums import YAHOO_INTERVAL, ChartInterval
from domain.exceptions import ChartProviderError
from domain.market import PriceSample, PriceSeries
from logging_config import get_logger

logger = get_logger(__name__)

_BAR_FIELDS = ("datetime", "open", "high", "low", "close", "volume")


# ---------------------------------------------------------------------------
# 解析函式（純函式，方便測試）
# ---------------------------------------------------------------------------

def parse_time_series(payload: dict, day: date) -> PriceSeries:
    """
    解析 Twelve Data time_series 回應。
    status/values 可能在最外層或 data 之下；只保留欄位完整且日期相符的 K 線。
    """
    nested = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    status = payload.get("status") or nested.get("status")
    values = payload.get("values")
    if values is None:
        values = nested.get("values")

    if status == "error" or not isinstance(values, list):
        return PriceSeries.no_data()

    prefix = day.isoformat()
    samples: list[PriceSample] = []
    for bar in values:
        if not isinstance(bar, dict):
            continue
        if not all(isinstance(bar.get(name), str) for name in _BAR_FIELDS):
            continue
        if not bar["datetime"].startswith(prefix):
            continue
        try:
            samples.append(
                PriceSample(
                    timestamp=datetime.fromisoformat(bar["datetime"]),
                    open=float(bar["open"]),
                    high=float(bar["high"]),
                    low=float(bar["low"]),
                    close=float(bar["close"]),
                    volume=float(bar["volume"]),
                )
            )
        except ValueError:
            logger.debug("略過無法解析的 K 線：%s", bar)

    return PriceSeries.from_samples(samples)


def history_to_series(hist, day: date) -> PriceSeries:
    """將 yfinance history DataFrame 轉為指定日期的價格序列。"""
    if hist is None or hist.empty:
        return PriceSeries.no_data()

    samples: list[PriceSample] = []
    for ts, row in hist.iterrows():
        if ts.date() != day:
            continue
        samples.append(
            PriceSample(
                timestamp=ts.to_pydatetime(),
                open=float(row["Open"]),
                high=float(row["High"]),
                low=float(row["Low"]),
                close=float(row["Close"]),
                volume=float(row.get("Volume", 0.0)),
            )
        )
    return PriceSeries.from_samples(samples)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

class CachedChartProvider(ABC):
    """共用的 TTL 快取外殼；TTL 需短於排程間隔，避免跨排程沿用舊價格。"""

    def __init__(self, cache_ttl: float = DEFAULT_CHART_CACHE_TTL_SECONDS) -> None:
        self._cache: Optional[TTLCache] = (
            TTLCache(maxsize=CHART_CACHE_MAXSIZE, ttl=cache_ttl) if cache_ttl > 0 else None
        )
        self._lock = threading.Lock()

    def fetch(self, symbol: str, day: date, interval: ChartInterval) -> PriceSeries:
        interval = ChartInterval(interval)
        key = (symbol.upper(), day.isoformat(), interval.value)

        if self._cache is not None:
            with self._lock:
                cached = self._cache.get(key)
            if cached is not None:
                logger.debug("%s %s 行情命中快取。", symbol, day)
                return cached

        series = self._download(symbol, day, interval)

        if self._cache is not None:
            with self._lock:
                self._cache[key] = series
        return series

    @abstractmethod
    def _download(self, symbol: str, day: date, interval: ChartInterval) -> PriceSeries:
        ...


class TwelveDataChartProvider(CachedChartProvider):
    """Twelve Data time_series 端點。"""

    def __init__(
        self,
        api_key: str,
        session: Optional[requests.Session] = None,
        timeout: float = CHART_REQUEST_TIMEOUT_SECONDS,
        cache_ttl: float = DEFAULT_CHART_CACHE_TTL_SECONDS,
    ) -> None:
        super().__init__(cache_ttl)
        if not api_key:
            raise ValueError("TWELVEDATA_API_KEY not set")
        self._api_key = api_key
        self._session = session or requests.Session()
        self._timeout = timeout

    def _download(self, symbol: str, day: date, interval: ChartInterval) -> PriceSeries:
        params = {
            "symbol": symbol,
            "interval": interval.value,
            "outputsize": TWELVEDATA_OUTPUT_SIZE,
            "format": "JSON",
            "apikey": self._api_key,
        }
        try:
            resp = self._session.get(TWELVEDATA_TIME_SERIES_URL, params=params, timeout=self._timeout)
        except requests.RequestException as e:
            raise ChartProviderError(f"Twelve Data request failed for {symbol}: {e}") from e

        if resp.status_code == 429:
            raise ChartProviderError("Twelve Data API rate limit exceeded")
        if resp.status_code >= 400:
            raise ChartProviderError(f"Twelve Data returned HTTP {resp.status_code} for {symbol}")

        try:
            payload = resp.json()
        except ValueError as e:
            raise ChartProviderError(f"Twelve Data returned invalid JSON for {symbol}") from e
        if not isinstance(payload, dict):
            raise ChartProviderError(f"Twelve Data returned unexpected payload for {symbol}")

        # 流量限制以 HTTP 200 + status=error + code=429 回傳
        if payload.get("status") == "error" and payload.get("code") == 429:
            raise ChartProviderError(f"Twelve Data API rate limit exceeded: {payload.get('message')}")

        series = parse_time_series(payload, day)
        logger.debug("%s %s 取得 %d 根 K 線（%s）。", symbol, day, len(series.samples), series.status.value)
        return series


class YahooChartProvider(CachedChartProvider):
    """Yahoo Finance（透過 yfinance）。"""

    def _download(self, symbol: str, day: date, interval: ChartInterval) -> PriceSeries:
        try:
            ticker = yf.Ticker(symbol, session=_get_session())
            hist = ticker.history(
                start=day.isoformat(),
                end=(day + timedelta(days=1)).isoformat(),
                interval=YAHOO_INTERVAL[interval.value],
            )
        except Exception as e:
            raise ChartProviderError(f"yfinance request failed for {symbol}: {e}") from e
        return history_to_series(hist, day)


def _get_session() -> cffi_requests.Session:
    """建立模擬 Chrome 瀏覽器的 Session，以繞過 Yahoo Finance 的 bot 防護。"""
    return cffi_requests.Session(impersonate="chrome")


def build_chart_provider() -> CachedChartProvider:
    """依環境變數 CHART_PROVIDER 建立行情來源（twelvedata / yahoo）。"""
    name = os.getenv("CHART_PROVIDER", DEFAULT_CHART_PROVIDER).strip().lower()
    cache_ttl = float(os.getenv("CHART_CACHE_TTL_SECONDS", str(DEFAULT_CHART_CACHE_TTL_SECONDS)))

    if name == "yahoo":
        logger.info("行情來源：Yahoo Finance。")
        return YahooChartProvider(cache_ttl=cache_ttl)
    if name == "twelvedata":
        logger.info("行情來源：Twelve Data。")
        return TwelveDataChartProvider(os.getenv("TWELVEDATA_API_KEY", ""), cache_ttl=cache_ttl)
    raise ValueError(f"Unknown CHART_PROVIDER: {name}")
