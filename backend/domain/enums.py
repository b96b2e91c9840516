"""
Domain — 列舉定義。
門檻條件、K 線週期、資料狀態與排程處理結果。
"""

from enum import Enum


class ThresholdCondition(str, Enum):
    """門檻觸發條件：突破 (above) / 跌破 (below)"""

    ABOVE = "above"
    BELOW = "below"


class ChartInterval(str, Enum):
    """K 線取樣週期（沿用 Twelve Data 命名）"""

    ONE_MINUTE = "1min"
    FIVE_MINUTES = "5min"
    FIFTEEN_MINUTES = "15min"
    THIRTY_MINUTES = "30min"
    ONE_HOUR = "1h"


class SeriesStatus(str, Enum):
    """價格序列狀態"""

    OK = "ok"
    NO_DATA = "no_data"


class ThresholdOutcome(str, Enum):
    """單一門檻在一次排程中的處理結果"""

    NO_DATA = "no_data"
    NOT_BREACHED = "not_breached"
    NOTIFIED = "notified"
    RECIPIENT_UNRESOLVABLE = "recipient_unresolvable"
    ENQUEUE_FAILED = "enqueue_failed"
    DISABLE_FAILED = "disable_failed"
    PROVIDER_ERROR = "provider_error"
    INVALID_RECORD = "invalid_record"
    UNEXPECTED_ERROR = "unexpected_error"
    IN_FLIGHT = "in_flight"
    ABANDONED = "abandoned"


class MailStatus(str, Enum):
    """寄件匣信件狀態"""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


YAHOO_INTERVAL: dict[str, str] = {
    "1min": "1m",
    "5min": "5m",
    "15min": "15m",
    "30min": "30m",
    "1h": "1h",
}
