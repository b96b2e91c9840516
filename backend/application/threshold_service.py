"""
Application — 價格門檻服務。
門檻的建立、查詢、停用與刪除；HTTP 路由與 SqlThresholdStore 共用這些函式。
"""

from collections import defaultdict

from sqlmodel import Session, select

from domain.entities import Threshold
from domain.enums import ThresholdCondition
from domain.exceptions import ThresholdNotFoundError
from domain.threshold_evaluator import validate_threshold_fields
from logging_config import get_logger

logger = get_logger(__name__)


def _normalize_ticker(ticker: str) -> str:
    return ticker.strip().upper()


def create_threshold(
    session: Session,
    owner_id: str,
    ticker: str,
    target: float,
    condition: ThresholdCondition | str,
) -> Threshold:
    """建立新門檻（預設啟用）。目標價為負或條件不合法時拋出 InvalidThresholdError。"""
    normalized_condition = validate_threshold_fields(target, condition)
    threshold = Threshold(
        owner_id=owner_id,
        ticker=_normalize_ticker(ticker),
        target=float(target),
        condition=normalized_condition.value,
        enabled=True,
    )
    session.add(threshold)
    session.commit()
    session.refresh(threshold)

    logger.info(
        "使用者 %s 新增門檻 %s：%s %s %s",
        owner_id, threshold.id, threshold.ticker, threshold.condition, threshold.target,
    )
    return threshold


def list_thresholds(session: Session, owner_id: str) -> list[Threshold]:
    """取得使用者所有門檻，依建立時間由新到舊。"""
    statement = (
        select(Threshold)
        .where(Threshold.owner_id == owner_id)
        .order_by(Threshold.created_at.desc())  # type: ignore[union-attr]
    )
    return list(session.exec(statement).all())


def get_threshold(session: Session, owner_id: str, threshold_id: str) -> Threshold:
    """取得使用者的單一門檻；不存在或不屬於該使用者時拋出 ThresholdNotFoundError。"""
    threshold = session.get(Threshold, threshold_id)
    if threshold is None or threshold.owner_id != owner_id:
        raise ThresholdNotFoundError(f"Threshold {threshold_id} not found")
    return threshold


def remove_threshold(session: Session, owner_id: str, threshold_id: str) -> None:
    """刪除使用者的門檻。"""
    threshold = get_threshold(session, owner_id, threshold_id)
    session.delete(threshold)
    session.commit()
    logger.info("使用者 %s 刪除門檻 %s（%s）。", owner_id, threshold_id, threshold.ticker)


def disable_threshold(session: Session, owner_id: str, threshold_id: str) -> Threshold:
    """
    停用門檻。已停用時不做任何寫入，直接回傳（冪等）。
    沒有任何路徑能把門檻重新啟用。
    """
    threshold = get_threshold(session, owner_id, threshold_id)
    if not threshold.enabled:
        logger.debug("門檻 %s 已是停用狀態，略過。", threshold_id)
        return threshold

    threshold.enabled = False
    session.add(threshold)
    session.commit()
    session.refresh(threshold)
    logger.info("門檻 %s（%s）已停用。", threshold_id, threshold.ticker)
    return threshold


def list_enabled_grouped_by_owner(session: Session) -> dict[str, list[Threshold]]:
    """取得所有啟用中門檻，依擁有者分組。"""
    statement = (
        select(Threshold)
        .where(Threshold.enabled == True)  # noqa: E712
        .order_by(Threshold.owner_id, Threshold.created_at)
    )
    grouped: dict[str, list[Threshold]] = defaultdict(list)
    for threshold in session.exec(statement).all():
        grouped[threshold.owner_id].append(threshold)
    return dict(grouped)
