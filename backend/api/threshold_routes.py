"""
API — 價格門檻路由。
薄控制器：僅負責解析請求、呼叫 Service、回傳回應。
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from api.schemas import MessageResponse, ThresholdCreateRequest, ThresholdResponse
from application.threshold_service import (
    create_threshold,
    disable_threshold,
    list_thresholds,
    remove_threshold,
)
from domain.constants import DEFAULT_USER_ID
from domain.entities import Threshold
from domain.exceptions import InvalidThresholdError, ThresholdNotFoundError
from infrastructure.database import get_session

router = APIRouter()


def _to_response(threshold: Threshold) -> ThresholdResponse:
    return ThresholdResponse(
        id=threshold.id,
        ticker=threshold.ticker,
        target=threshold.target,
        condition=threshold.condition,
        enabled=threshold.enabled,
        created_at=threshold.created_at.isoformat(),
    )


@router.post(
    "/thresholds",
    response_model=ThresholdResponse,
    summary="Create price threshold",
    status_code=201,
)
def create_threshold_route(
    payload: ThresholdCreateRequest,
    user_id: str = DEFAULT_USER_ID,
    session: Session = Depends(get_session),
) -> ThresholdResponse:
    """
    新增價格門檻（預設啟用，觸發一次後自動停用）。

    Request Body:
    - ticker: 股票代號
    - target: 目標價（>= 0）
    - condition: above / below
    """
    try:
        threshold = create_threshold(
            session, user_id, payload.ticker, payload.target, payload.condition
        )
    except InvalidThresholdError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _to_response(threshold)


@router.get(
    "/thresholds",
    response_model=list[ThresholdResponse],
    summary="List price thresholds",
)
def list_thresholds_route(
    user_id: str = DEFAULT_USER_ID,
    session: Session = Depends(get_session),
) -> list[ThresholdResponse]:
    """取得使用者所有門檻（含已停用），依建立時間由新到舊。"""
    return [_to_response(t) for t in list_thresholds(session, user_id)]


@router.delete(
    "/thresholds/{threshold_id}",
    response_model=MessageResponse,
    summary="Delete price threshold",
)
def delete_threshold_route(
    threshold_id: str,
    user_id: str = DEFAULT_USER_ID,
    session: Session = Depends(get_session),
) -> MessageResponse:
    """刪除指定門檻。"""
    try:
        remove_threshold(session, user_id, threshold_id)
    except ThresholdNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return MessageResponse(message=f"Threshold {threshold_id} deleted successfully")


@router.post(
    "/thresholds/{threshold_id}/disable",
    response_model=ThresholdResponse,
    summary="Disable price threshold",
)
def disable_threshold_route(
    threshold_id: str,
    user_id: str = DEFAULT_USER_ID,
    session: Session = Depends(get_session),
) -> ThresholdResponse:
    """停用指定門檻（重複呼叫不會出錯）。停用後無法重新啟用。"""
    try:
        threshold = disable_threshold(session, user_id, threshold_id)
    except ThresholdNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _to_response(threshold)
