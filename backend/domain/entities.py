"""
Domain — 資料庫實體 (SQLModel Tables)。
定義核心業務實體：Threshold、UserProfile、MailMessage。
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, String
from sqlmodel import Field, SQLModel

from domain.enums import MailStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Threshold(SQLModel, table=True):
    """使用者自訂的價格門檻（觸發一次後永久停用）。"""

    id: str = Field(
        default_factory=lambda: uuid.uuid4().hex,
        primary_key=True,
        description="門檻 ID（建立時產生，不可變）",
    )
    owner_id: str = Field(index=True, description="擁有者使用者 ID")
    ticker: str = Field(index=True, description="股票代號")
    target: float = Field(ge=0, description="目標價（不可為負）")
    # 以純字串存放：資料列的條件值不合法時仍可載入，由排程判定為 invalid_record
    condition: str = Field(
        sa_column=Column(String(16), nullable=False),
        description="觸發條件：above / below",
    )
    enabled: bool = Field(default=True, index=True, description="是否啟用")
    created_at: datetime = Field(
        default_factory=_utcnow,
        description="建立時間（列表排序依據）",
    )


class UserProfile(SQLModel, table=True):
    """使用者通知設定（門檻觸發時的收件地址）。"""

    user_id: str = Field(primary_key=True, description="使用者 ID")
    email: Optional[str] = Field(default=None, description="通知 Email")
    updated_at: datetime = Field(default_factory=_utcnow, description="更新時間")


class MailMessage(SQLModel, table=True):
    """寄件匣：排程只負責寫入，寄送由 MailDispatcher 處理。"""

    __tablename__ = "mail_outbox"

    id: Optional[int] = Field(default=None, primary_key=True)
    recipient: str = Field(description="收件人")
    subject: str = Field(description="主旨")
    text: str = Field(description="純文字內容")
    html: str = Field(default="", description="HTML 內容")
    status: MailStatus = Field(default=MailStatus.PENDING, index=True, description="寄送狀態")
    attempts: int = Field(default=0, description="已嘗試寄送次數")
    last_error: Optional[str] = Field(default=None, description="最近一次寄送錯誤")
    created_at: datetime = Field(default_factory=_utcnow, description="排入時間")
    sent_at: Optional[datetime] = Field(default=None, description="寄出時間")
