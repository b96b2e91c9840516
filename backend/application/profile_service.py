"""
Application — 使用者通知設定服務。
"""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Session

from domain.entities import UserProfile
from logging_config import get_logger

logger = get_logger(__name__)


def get_profile(session: Session, user_id: str) -> UserProfile:
    """取得使用者設定；尚未建立時回傳預設值（不寫入資料庫）。"""
    profile = session.get(UserProfile, user_id)
    if profile is None:
        return UserProfile(user_id=user_id, email=None)
    return profile


def upsert_profile(session: Session, user_id: str, email: Optional[str]) -> UserProfile:
    """建立或更新使用者的通知 Email。"""
    profile = session.get(UserProfile, user_id)
    if profile is None:
        profile = UserProfile(user_id=user_id)

    profile.email = email.strip() if email else None
    profile.updated_at = datetime.now(timezone.utc)
    session.add(profile)
    session.commit()
    session.refresh(profile)

    logger.info("使用者 %s 通知設定已更新（email=%s）。", user_id, "已設定" if profile.email else "未設定")
    return profile
