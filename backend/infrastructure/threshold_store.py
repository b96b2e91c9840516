"""
Infrastructure — 門檻儲存適配器 (ThresholdStore)。
以 SQLModel 實作排程所需的介面；每次呼叫自建 Session，可供多執行緒並行使用。
"""

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from application.threshold_service import (
    create_threshold,
    disable_threshold,
    list_enabled_grouped_by_owner,
    list_thresholds,
    remove_threshold,
)
from domain.entities import Threshold
from domain.enums import ThresholdCondition
from domain.exceptions import DisableFailed, ThresholdNotFoundError, ThresholdStoreUnavailable
from logging_config import get_logger

logger = get_logger(__name__)


class SqlThresholdStore:
    """SQLModel 版 ThresholdStore。回傳的門檻皆已脫離 Session，僅供本次排程讀取。"""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def list_all_enabled_grouped_by_user(self) -> dict[str, list[Threshold]]:
        try:
            with Session(self._engine) as session:
                return list_enabled_grouped_by_owner(session)
        except SQLAlchemyError as e:
            raise ThresholdStoreUnavailable(str(e)) from e

    def disable(self, owner_id: str, threshold_id: str) -> bool:
        try:
            with Session(self._engine) as session:
                disable_threshold(session, owner_id, threshold_id)
                return True
        except ThresholdNotFoundError:
            return False
        except SQLAlchemyError as e:
            logger.error("停用門檻 %s 失敗：%s", threshold_id, e)
            raise DisableFailed(str(e)) from e

    def create(
        self, owner_id: str, ticker: str, target: float, condition: ThresholdCondition | str
    ) -> Threshold:
        with Session(self._engine) as session:
            return create_threshold(session, owner_id, ticker, target, condition)

    def list_for_user(self, owner_id: str) -> list[Threshold]:
        with Session(self._engine) as session:
            return list_thresholds(session, owner_id)

    def delete(self, owner_id: str, threshold_id: str) -> bool:
        try:
            with Session(self._engine) as session:
                remove_threshold(session, owner_id, threshold_id)
                return True
        except ThresholdNotFoundError:
            return False
