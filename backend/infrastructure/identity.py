"""
Infrastructure — 使用者身分查詢適配器 (IdentityResolver)。
從 UserProfile 資料表取得門檻觸發時的收件地址。
"""

from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session

from domain.entities import UserProfile


class SqlIdentityResolver:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get_notification_address(self, owner_id: str) -> Optional[str]:
        with Session(self._engine) as session:
            profile = session.get(UserProfile, owner_id)
            if profile is None or not profile.email:
                return None
            return profile.email
