"""
Domain — 外部協作者介面 (Protocols)。
排程只透過這些介面存取行情、身分、通知與門檻儲存，實作位於 infrastructure。
"""

from __future__ import annotations

from datetime import date
from typing import Optional, Protocol

from domain.entities import Threshold
from domain.enums import ChartInterval
from domain.market import AlertMessage, PriceSeries


class ChartProvider(Protocol):
    def fetch(self, symbol: str, day: date, interval: ChartInterval) -> PriceSeries:
        """
        取得指定代號、指定日期的 K 線序列。
        上游沒有資料時回傳 status=no_data；僅在連線或 API 失敗時拋出 ChartProviderError。
        """
        ...


class IdentityResolver(Protocol):
    def get_notification_address(self, owner_id: str) -> Optional[str]:
        """回傳使用者的通知地址；無法寄送時回傳 None。"""
        ...


class Notifier(Protocol):
    def enqueue(self, message: AlertMessage) -> int:
        """將通知排入寄件匣並回傳信件 ID；失敗時拋出 NotificationEnqueueFailed。"""
        ...


class ThresholdStore(Protocol):
    def list_all_enabled_grouped_by_user(self) -> dict[str, list[Threshold]]:
        """呼叫當下所有 enabled 門檻的快照，依擁有者分組。"""
        ...

    def disable(self, owner_id: str, threshold_id: str) -> bool:
        """
        停用門檻（冪等：已停用視為成功）。
        找不到門檻回傳 False；儲存失敗拋出 DisableFailed。
        """
        ...
