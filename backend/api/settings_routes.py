"""
API — 使用者通知設定路由。
"""

from fastapi import APIRouter, Depends
from sqlmodel import Session

from api.schemas import ProfileResponse, ProfileUpdateRequest
from application.profile_service import get_profile, upsert_profile
from domain.constants import DEFAULT_USER_ID
from infrastructure.database import get_session

router = APIRouter()


@router.get("/settings/profile", response_model=ProfileResponse, summary="Get notification profile")
def get_profile_route(
    user_id: str = DEFAULT_USER_ID,
    session: Session = Depends(get_session),
) -> ProfileResponse:
    """取得使用者通知設定；尚未設定時回傳空 Email。"""
    profile = get_profile(session, user_id)
    return ProfileResponse(user_id=profile.user_id, email=profile.email)


@router.put("/settings/profile", response_model=ProfileResponse, summary="Update notification profile")
def update_profile_route(
    payload: ProfileUpdateRequest,
    user_id: str = DEFAULT_USER_ID,
    session: Session = Depends(get_session),
) -> ProfileResponse:
    """設定門檻觸發時的通知 Email（不存在則建立）。"""
    profile = upsert_profile(session, user_id, payload.email)
    return ProfileResponse(user_id=profile.user_id, email=profile.email)
