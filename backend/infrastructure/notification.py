"""
Infrastructure — 通知適配器 (Email 寄件匣)。
排程只呼叫 SqlMailQueue.enqueue 寫入寄件匣；SmtpMailDispatcher 另由排程定期寄出。
SMTP 未設定時靜默跳過，信件保留在寄件匣。
"""

import os
import smtplib
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from domain.constants import (
    DEFAULT_MAIL_MAX_ATTEMPTS,
    DEFAULT_SMTP_PORT,
    MAIL_DISPATCH_BATCH_SIZE,
)
from domain.entities import MailMessage
from domain.enums import MailStatus
from domain.exceptions import NotificationEnqueueFailed
from domain.market import AlertMessage
from logging_config import get_logger

logger = get_logger(__name__)


class SqlMailQueue:
    """Notifier 實作：將通知寫入 mail_outbox 資料表。"""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def enqueue(self, message: AlertMessage) -> int:
        row = MailMessage(
            recipient=message.to,
            subject=message.subject,
            text=message.text,
            html=message.html,
        )
        try:
            with Session(self._engine) as session:
                session.add(row)
                session.commit()
                session.refresh(row)
                return row.id
        except SQLAlchemyError as e:
            raise NotificationEnqueueFailed(f"無法寫入寄件匣：{e}") from e


class SmtpMailDispatcher:
    """寄送寄件匣中待寄的信件（STARTTLS + 登入）。"""

    def __init__(
        self,
        engine: Engine,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        max_attempts: Optional[int] = None,
    ) -> None:
        self._engine = engine
        self._host = host if host is not None else os.getenv("SMTP_HOST", "")
        self._port = port if port is not None else int(os.getenv("SMTP_PORT", str(DEFAULT_SMTP_PORT)))
        self._user = user if user is not None else os.getenv("SMTP_USER", "")
        self._password = password if password is not None else os.getenv("SMTP_PASSWORD", "")
        self._sender = sender if sender is not None else os.getenv("MAIL_FROM", self._user)
        self._max_attempts = (
            max_attempts
            if max_attempts is not None
            else int(os.getenv("MAIL_MAX_ATTEMPTS", str(DEFAULT_MAIL_MAX_ATTEMPTS)))
        )

    @property
    def configured(self) -> bool:
        return bool(self._host and self._sender)

    def deliver_pending(self, limit: int = MAIL_DISPATCH_BATCH_SIZE) -> int:
        """寄出最多 limit 封待寄信件，回傳成功寄出的數量。"""
        if not self.configured:
            logger.debug("SMTP 未設定，跳過寄送。")
            return 0

        sent = 0
        with Session(self._engine) as session:
            statement = (
                select(MailMessage)
                .where(MailMessage.status == MailStatus.PENDING)
                .order_by(MailMessage.created_at)
                .limit(limit)
            )
            pending = session.exec(statement).all()
            if not pending:
                return 0

            logger.info("寄件匣有 %d 封待寄信件。", len(pending))
            for mail in pending:
                try:
                    self._send(mail)
                except Exception as e:
                    mail.attempts += 1
                    mail.last_error = str(e)
                    if mail.attempts >= self._max_attempts:
                        mail.status = MailStatus.FAILED
                        logger.error("信件 #%s 寄送失敗已達 %d 次，不再重試：%s", mail.id, mail.attempts, e)
                    else:
                        logger.warning("信件 #%s 寄送失敗（第 %d 次）：%s", mail.id, mail.attempts, e)
                else:
                    mail.attempts += 1
                    mail.status = MailStatus.SENT
                    mail.sent_at = datetime.now(timezone.utc)
                    sent += 1
                    logger.info("信件 #%s 已寄出給 %s。", mail.id, mail.recipient)
                session.add(mail)
                session.commit()
        return sent

    def dispatch(self) -> None:
        """APScheduler 進入點：攔截所有例外。"""
        try:
            self.deliver_pending()
        except Exception as e:
            logger.error("寄件匣寄送失敗：%s", e, exc_info=True)

    def _send(self, mail: MailMessage) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = mail.subject
        msg["From"] = self._sender
        msg["To"] = mail.recipient
        msg.attach(MIMEText(mail.text, "plain", "utf-8"))
        if mail.html:
            msg.attach(MIMEText(mail.html, "html", "utf-8"))

        with smtplib.SMTP(self._host, self._port, timeout=30) as server:
            server.starttls()
            if self._user:
                server.login(self._user, self._password)
            server.sendmail(self._sender, [mail.recipient], msg.as_string())
