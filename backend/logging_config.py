"""
Threshold Alerts — 集中式 Logging 設定
- console 一律輸出；LOG_TO_FILE 開啟時另寫入每日輪替的 alerts.log
- 格式帶有執行緒名稱，可分辨排程工作執行緒 (threshold-check_N) 的紀錄
- 所有模組透過 get_logger(__name__) 取得 logger
"""

import logging
import os
import threading
from logging.handlers import TimedRotatingFileHandler

LOG_DIR = os.getenv("LOG_DIR", "data/logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_BACKUP_DAYS = int(os.getenv("LOG_BACKUP_DAYS", "3"))
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "true").strip().lower() in ("1", "true", "yes", "y")
LOG_FILE_NAME = "alerts.log"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# 第三方套件只保留 WARNING 以上
_QUIET_LOGGERS = (
    "uvicorn.access",
    "apscheduler.executors.default",
    "apscheduler.scheduler",
    "yfinance",
    "urllib3",
    "curl_cffi",
)

_configure_lock = threading.Lock()
_root_configured = False


def _file_handler() -> logging.Handler:
    os.makedirs(LOG_DIR, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=os.path.join(LOG_DIR, LOG_FILE_NAME),
        when="midnight",
        interval=1,
        backupCount=LOG_BACKUP_DAYS,
        encoding="utf-8",
        utc=True,
    )
    handler.suffix = "%Y-%m-%d"
    return handler


def _configure_root_logger() -> None:
    """設定 root logger（僅執行一次，排程執行緒同時呼叫也安全）。"""
    global _root_configured
    with _configure_lock:
        if _root_configured:
            return

        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
        handlers: list[logging.Handler] = [logging.StreamHandler()]
        if LOG_TO_FILE:
            handlers.append(_file_handler())

        root = logging.getLogger()
        root.setLevel(LOG_LEVEL)
        for handler in handlers:
            handler.setLevel(LOG_LEVEL)
            handler.setFormatter(formatter)
            root.addHandler(handler)

        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        _root_configured = True


def get_logger(name: str) -> logging.Logger:
    """取得指定名稱的 logger，自動確保 root logger 已設定。"""
    _configure_root_logger()
    return logging.getLogger(name)
