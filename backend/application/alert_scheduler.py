"""
Application — 門檻排程 (AlertScheduler)。
每次排程取得所有啟用中門檻的快照，逐一抓取最新價格、判定是否觸發，
觸發時排入通知並停用門檻，確保每個門檻只通知一次。

- 同一時間只會有一次排程在執行（重疊的排程直接略過）
- 單一門檻的任何失敗只影響該門檻，不會中斷整次排程
- 停用一定發生在通知成功排入之後；停用失敗可能導致下次排程重複通知
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from apscheduler.schedulers.base import BaseScheduler

from application.formatters import build_alert_message
from domain.constants import (
    ALERT_CHART_INTERVAL,
    ALERT_JOB_ID,
    DEFAULT_ALERT_INTERVAL_SECONDS,
    DEFAULT_ALERT_MAX_WORKERS,
    DEFAULT_ALERT_TIMEZONE,
)
from domain.entities import Threshold
from domain.enums import ChartInterval, ThresholdOutcome
from domain.exceptions import (
    ChartProviderError,
    DisableFailed,
    InvalidThresholdError,
    NoPriceData,
    NotificationEnqueueFailed,
    RecipientUnresolvable,
    ThresholdStoreUnavailable,
)
from domain.market import AlertMessage
from domain.protocols import ChartProvider, IdentityResolver, Notifier, ThresholdStore
from domain.threshold_evaluator import evaluate, validate_threshold_fields
from logging_config import get_logger

logger = get_logger(__name__)

_OUTCOME_LOG_LEVEL: dict[ThresholdOutcome, int] = {
    ThresholdOutcome.NO_DATA: logging.INFO,
    ThresholdOutcome.NOT_BREACHED: logging.INFO,
    ThresholdOutcome.NOTIFIED: logging.INFO,
    ThresholdOutcome.RECIPIENT_UNRESOLVABLE: logging.WARNING,
    ThresholdOutcome.PROVIDER_ERROR: logging.WARNING,
    ThresholdOutcome.ABANDONED: logging.WARNING,
    ThresholdOutcome.IN_FLIGHT: logging.WARNING,
    ThresholdOutcome.ENQUEUE_FAILED: logging.ERROR,
    ThresholdOutcome.DISABLE_FAILED: logging.ERROR,
    ThresholdOutcome.INVALID_RECORD: logging.ERROR,
    ThresholdOutcome.UNEXPECTED_ERROR: logging.ERROR,
}


class _PassAbandoned(Exception):
    """排程已逾時放棄，不得再排入新通知。"""


@dataclass
class PassReport:
    """單次排程的處理結果（門檻 ID → 結果）。"""

    lookup_date: Optional[date] = None
    outcomes: dict[str, ThresholdOutcome] = field(default_factory=dict)
    skipped_overlap: bool = False

    def ids_with(self, outcome: ThresholdOutcome) -> list[str]:
        return [tid for tid, o in self.outcomes.items() if o == outcome]

    def count(self, outcome: ThresholdOutcome) -> int:
        return len(self.ids_with(outcome))

    @property
    def summary(self) -> dict[str, int]:
        return dict(Counter(o.value for o in self.outcomes.values()))


class AlertScheduler:
    """
    門檻檢查排程器。所有外部依賴（門檻儲存、行情、身分查詢、通知）
    皆於建構時注入，生命週期由程序根（FastAPI lifespan）管理。
    """

    def __init__(
        self,
        store: ThresholdStore,
        chart_provider: ChartProvider,
        identity_resolver: IdentityResolver,
        notifier: Notifier,
        *,
        interval_seconds: float = DEFAULT_ALERT_INTERVAL_SECONDS,
        pass_timeout_seconds: Optional[float] = None,
        max_workers: int = DEFAULT_ALERT_MAX_WORKERS,
        tz_name: str = DEFAULT_ALERT_TIMEZONE,
        chart_interval: ChartInterval = ALERT_CHART_INTERVAL,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._chart_provider = chart_provider
        self._identity = identity_resolver
        self._notifier = notifier
        self._interval_seconds = interval_seconds
        self._pass_timeout = (
            pass_timeout_seconds if pass_timeout_seconds is not None else interval_seconds
        )
        self._max_workers = max(1, max_workers)
        self._tz = ZoneInfo(tz_name)
        self._chart_interval = chart_interval
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._pass_lock = threading.Lock()
        # 逾時放棄後仍在執行中的門檻，下次排程不得重複處理
        self._in_flight: set[str] = set()
        self._in_flight_lock = threading.Lock()

    # ------------------------------------------------------------------
    # 排程註冊
    # ------------------------------------------------------------------

    def schedule(self, scheduler: BaseScheduler) -> None:
        """將門檻檢查註冊為固定間隔的 APScheduler 工作（不允許重疊執行）。"""
        scheduler.add_job(
            self.tick,
            "interval",
            seconds=self._interval_seconds,
            id=ALERT_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info(
            "門檻排程已註冊：每 %s 秒一次（時區 %s，最多 %d 個並行工作）。",
            self._interval_seconds, self._tz.key, self._max_workers,
        )

    def tick(self) -> None:
        """APScheduler 進入點：攔截所有例外，下一次排程會再嘗試。"""
        try:
            self.run_pass()
        except ThresholdStoreUnavailable as e:
            logger.error("無法讀取啟用中門檻，本次排程中止：%s", e)
        except Exception as e:
            logger.error("門檻排程失敗：%s", e, exc_info=True)

    # ------------------------------------------------------------------
    # 單次排程
    # ------------------------------------------------------------------

    def lookup_date(self) -> date:
        """參考時區下的今日日期（同一次排程內固定）。"""
        return self._clock().astimezone(self._tz).date()

    def run_pass(self) -> PassReport:
        """
        執行一次完整的門檻檢查。
        若上一次排程仍在執行，直接回傳 skipped_overlap=True 的報告。
        快照讀取失敗時拋出 ThresholdStoreUnavailable。
        """
        if not self._pass_lock.acquire(blocking=False):
            logger.warning("上一次門檻檢查尚未結束，略過本次排程。")
            return PassReport(skipped_overlap=True)
        try:
            return self._run_pass_locked()
        finally:
            self._pass_lock.release()

    def _run_pass_locked(self) -> PassReport:
        lookup_date = self.lookup_date()
        report = PassReport(lookup_date=lookup_date)

        snapshot = self._store.list_all_enabled_grouped_by_user()
        total = sum(len(items) for items in snapshot.values())
        logger.info(
            "門檻檢查開始：%d 位使用者、%d 筆啟用中門檻（查詢日期 %s）。",
            len(snapshot), total, lookup_date,
        )

        abandon = threading.Event()
        executor = ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="threshold-check"
        )
        futures: dict[Future, str] = {}
        try:
            for owner_id, thresholds in snapshot.items():
                for threshold in thresholds:
                    threshold_id = getattr(threshold, "id", None)
                    if not threshold_id:
                        logger.error("使用者 %s 有缺少 ID 的門檻資料，略過。", owner_id)
                        continue
                    if not self._claim(threshold_id):
                        report.outcomes[threshold_id] = ThresholdOutcome.IN_FLIGHT
                        self._log_outcome(threshold, ThresholdOutcome.IN_FLIGHT, "上一次排程仍在處理")
                        continue
                    future = executor.submit(
                        self._process_claimed, owner_id, threshold, lookup_date, abandon
                    )
                    futures[future] = threshold_id

            done, not_done = wait(futures, timeout=self._pass_timeout)
            for future in done:
                report.outcomes[futures[future]] = future.result()

            if not_done:
                abandon.set()
                logger.warning(
                    "門檻檢查超過 %s 秒，放棄 %d 筆未完成的門檻（維持啟用，下次排程重試）。",
                    self._pass_timeout, len(not_done),
                )
                for future in not_done:
                    threshold_id = futures[future]
                    if future.cancel():
                        self._release(threshold_id)
                        report.outcomes[threshold_id] = ThresholdOutcome.ABANDONED
                    elif future.done():
                        report.outcomes[threshold_id] = future.result()
                    else:
                        report.outcomes[threshold_id] = ThresholdOutcome.ABANDONED
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info("門檻檢查完成：%s", report.summary or "無啟用中門檻")
        return report

    def _process_claimed(
        self,
        owner_id: str,
        threshold: Threshold,
        lookup_date: date,
        abandon: threading.Event,
    ) -> ThresholdOutcome:
        try:
            return self.process_threshold(owner_id, threshold, lookup_date, abandon)
        finally:
            self._release(threshold.id)

    # ------------------------------------------------------------------
    # 單一門檻
    # ------------------------------------------------------------------

    def process_threshold(
        self,
        owner_id: str,
        threshold: Threshold,
        lookup_date: Optional[date] = None,
        abandon: Optional[threading.Event] = None,
    ) -> ThresholdOutcome:
        """
        處理單一門檻：抓價 → 判定 → 查收件地址 → 排入通知 → 停用。
        所有例外在此攔截並轉為處理結果，不會向外拋出。
        """
        day = lookup_date or self.lookup_date()
        try:
            condition = validate_threshold_fields(threshold.target, threshold.condition)
            price = self._latest_price(threshold, day)
            if not evaluate(threshold, price):
                return self._log_outcome(threshold, ThresholdOutcome.NOT_BREACHED, price=price)

            self._check_abandoned(abandon)
            address = self._resolve_address(owner_id)

            self._check_abandoned(abandon)
            message = build_alert_message(threshold, price, address)
            message_id = self._enqueue(message)
            logger.info(
                "已排入通知 #%s：%s 現價 %s（%s %s），收件人 %s。",
                message_id, threshold.ticker, price,
                condition.value, threshold.target, address,
            )

            # 通知已排入：無論排程是否逾時都必須停用
            if not self._disable(owner_id, threshold.id):
                logger.warning("門檻 %s 已不存在（可能已被使用者刪除），無需停用。", threshold.id)
            return self._log_outcome(threshold, ThresholdOutcome.NOTIFIED, price=price)

        except NoPriceData as e:
            return self._log_outcome(threshold, ThresholdOutcome.NO_DATA, str(e))
        except InvalidThresholdError as e:
            return self._log_outcome(threshold, ThresholdOutcome.INVALID_RECORD, str(e))
        except ChartProviderError as e:
            return self._log_outcome(threshold, ThresholdOutcome.PROVIDER_ERROR, str(e))
        except RecipientUnresolvable as e:
            return self._log_outcome(threshold, ThresholdOutcome.RECIPIENT_UNRESOLVABLE, str(e))
        except NotificationEnqueueFailed as e:
            return self._log_outcome(threshold, ThresholdOutcome.ENQUEUE_FAILED, str(e))
        except DisableFailed as e:
            return self._log_outcome(
                threshold,
                ThresholdOutcome.DISABLE_FAILED,
                f"{e}（通知已排入，下次排程可能重複通知）",
            )
        except _PassAbandoned:
            return self._log_outcome(threshold, ThresholdOutcome.ABANDONED, "排程已逾時")
        except Exception as e:
            logger.exception("處理門檻 %s 時發生未預期錯誤：%s", getattr(threshold, "id", "?"), e)
            return ThresholdOutcome.UNEXPECTED_ERROR

    def _latest_price(self, threshold: Threshold, day: date) -> float:
        try:
            series = self._chart_provider.fetch(threshold.ticker, day, self._chart_interval)
        except ChartProviderError:
            raise
        except Exception as e:
            raise ChartProviderError(f"{type(e).__name__}: {e}") from e

        price = series.latest_close
        if price is None:
            raise NoPriceData(f"{threshold.ticker} 在 {day.isoformat()} 沒有報價")
        return price

    def _resolve_address(self, owner_id: str) -> str:
        try:
            address = self._identity.get_notification_address(owner_id)
        except Exception as e:
            raise RecipientUnresolvable(f"查詢使用者 {owner_id} 失敗：{e}") from e
        if not address:
            raise RecipientUnresolvable(f"使用者 {owner_id} 沒有通知地址")
        return address

    def _enqueue(self, message: AlertMessage) -> int:
        try:
            return self._notifier.enqueue(message)
        except NotificationEnqueueFailed:
            raise
        except Exception as e:
            raise NotificationEnqueueFailed(f"{type(e).__name__}: {e}") from e

    def _disable(self, owner_id: str, threshold_id: str) -> bool:
        try:
            return self._store.disable(owner_id, threshold_id)
        except DisableFailed:
            raise
        except Exception as e:
            raise DisableFailed(f"{type(e).__name__}: {e}") from e

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_abandoned(abandon: Optional[threading.Event]) -> None:
        if abandon is not None and abandon.is_set():
            raise _PassAbandoned()

    def _claim(self, threshold_id: str) -> bool:
        with self._in_flight_lock:
            if threshold_id in self._in_flight:
                return False
            self._in_flight.add(threshold_id)
            return True

    def _release(self, threshold_id: str) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(threshold_id)

    @staticmethod
    def _log_outcome(
        threshold: Threshold,
        outcome: ThresholdOutcome,
        error: Optional[str] = None,
        price: Optional[float] = None,
    ) -> ThresholdOutcome:
        level = _OUTCOME_LOG_LEVEL.get(outcome, logging.INFO)
        logger.log(
            level,
            "門檻 %s（%s）：%s%s%s",
            getattr(threshold, "id", "?"),
            getattr(threshold, "ticker", "?"),
            outcome.value,
            f"，價格 {price}" if price is not None else "",
            f"，原因：{error}" if error else "",
        )
        return outcome
