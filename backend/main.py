"""
Threshold Alerts — FastAPI 後端主程式
掛載門檻 / 通知設定 / 行情路由，並於 lifespan 中啟動門檻排程與寄件匣寄送排程。
"""

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI

from api.indices_routes import router as indices_router
from api.settings_routes import router as settings_router
from api.threshold_routes import router as threshold_router
from application.alert_scheduler import AlertScheduler
from domain.constants import (
    DEFAULT_ALERT_INTERVAL_SECONDS,
    DEFAULT_ALERT_MAX_WORKERS,
    DEFAULT_ALERT_TIMEZONE,
    DEFAULT_MAIL_DISPATCH_INTERVAL_SECONDS,
    MAIL_JOB_ID,
)
from infrastructure.database import create_db_and_tables, engine
from infrastructure.identity import SqlIdentityResolver
from infrastructure.market_data import build_chart_provider
from infrastructure.notification import SmtpMailDispatcher, SqlMailQueue
from infrastructure.threshold_store import SqlThresholdStore
from logging_config import get_logger

logger = get_logger(__name__)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "y")


def build_alert_scheduler() -> AlertScheduler:
    """以環境變數組裝門檻排程與其所有外部依賴。"""
    interval = float(os.getenv("ALERT_INTERVAL_SECONDS", str(DEFAULT_ALERT_INTERVAL_SECONDS)))
    timeout_env = os.getenv("ALERT_PASS_TIMEOUT_SECONDS")
    return AlertScheduler(
        store=SqlThresholdStore(engine),
        chart_provider=build_chart_provider(),
        identity_resolver=SqlIdentityResolver(engine),
        notifier=SqlMailQueue(engine),
        interval_seconds=interval,
        pass_timeout_seconds=float(timeout_env) if timeout_env else None,
        max_workers=int(os.getenv("ALERT_MAX_WORKERS", str(DEFAULT_ALERT_MAX_WORKERS))),
        tz_name=os.getenv("ALERT_TIMEZONE", DEFAULT_ALERT_TIMEZONE),
    )


def start_background_jobs() -> BackgroundScheduler:
    """建立 APScheduler，註冊門檻檢查與寄件匣寄送兩個工作並啟動。"""
    scheduler = BackgroundScheduler(timezone="UTC")

    build_alert_scheduler().schedule(scheduler)

    dispatcher = SmtpMailDispatcher(engine)
    mail_interval = float(
        os.getenv("MAIL_DISPATCH_INTERVAL_SECONDS", str(DEFAULT_MAIL_DISPATCH_INTERVAL_SECONDS))
    )
    scheduler.add_job(
        dispatcher.dispatch,
        "interval",
        seconds=mail_interval,
        id=MAIL_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    if not dispatcher.configured:
        logger.warning("SMTP 未設定，通知將保留在寄件匣中。")

    scheduler.start()
    logger.info("背景排程已啟動。")
    return scheduler


# ---------------------------------------------------------------------------
# Lifespan: 啟動時建立資料表並啟動排程
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Threshold Alerts 後端啟動中 — 初始化資料庫...")
    create_db_and_tables()

    scheduler: Optional[BackgroundScheduler] = None
    if _env_flag("ALERT_SCHEDULER_ENABLED", True):
        scheduler = start_background_jobs()
    else:
        logger.info("ALERT_SCHEDULER_ENABLED=false，不啟動背景排程。")

    logger.info("服務就緒。")
    yield

    logger.info("Threshold Alerts 後端關閉中...")
    if scheduler is not None:
        scheduler.shutdown(wait=False)


app = FastAPI(
    title="Threshold Alerts API",
    description="價格門檻警報：觸發一次即通知並停用",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(threshold_router)
app.include_router(settings_router)
app.include_router(indices_router)


@app.get("/health")
def health_check() -> dict:
    return {"status": "ok", "service": "threshold-alerts-backend"}
