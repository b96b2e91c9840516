"""
Domain — 行情與通知值物件。
不依賴任何外部服務、資料庫或框架。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from domain.enums import SeriesStatus


@dataclass(frozen=True)
class PriceSample:
    """單根 K 線。"""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class PriceSeries:
    """
    單一代號、單一交易日的 K 線序列。
    samples 依時間遞增且時間戳不重複；沒有任何樣本時 status 必為 NO_DATA。
    """

    samples: tuple[PriceSample, ...] = field(default_factory=tuple)
    status: SeriesStatus = SeriesStatus.NO_DATA

    @classmethod
    def no_data(cls) -> PriceSeries:
        return cls(samples=(), status=SeriesStatus.NO_DATA)

    @classmethod
    def from_samples(cls, samples: Iterable[PriceSample]) -> PriceSeries:
        """依時間排序並以時間戳去重（同一時間戳保留最後一筆）。"""
        by_ts: dict[datetime, PriceSample] = {}
        for sample in samples:
            by_ts[sample.timestamp] = sample
        ordered = tuple(by_ts[ts] for ts in sorted(by_ts))
        if not ordered:
            return cls.no_data()
        return cls(samples=ordered, status=SeriesStatus.OK)

    @property
    def is_empty(self) -> bool:
        return self.status == SeriesStatus.NO_DATA or not self.samples

    @property
    def latest_close(self) -> Optional[float]:
        """最後一根 K 線的收盤價；無資料時回傳 None。"""
        if self.is_empty:
            return None
        return self.samples[-1].close


@dataclass(frozen=True)
class AlertMessage:
    """交給 Notifier 的通知內容。"""

    to: str
    subject: str
    text: str
    html: str


@dataclass(frozen=True)
class TickerInfo:
    """代號搜尋結果的一筆。"""

    ticker: str
    name: str
    market: str
    locale: str
    primary_exchange: str
    active: bool
