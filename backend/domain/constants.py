"""
Domain — 業務常數與預設值。
環境變數於使用處以 os.getenv 讀取，預設值集中於此。
"""

from domain.enums import ChartInterval

# ---------------------------------------------------------------------------
# 使用者
# ---------------------------------------------------------------------------
DEFAULT_USER_ID = "default"

# ---------------------------------------------------------------------------
# 門檻排程
# ---------------------------------------------------------------------------
ALERT_JOB_ID = "threshold-checks"
DEFAULT_ALERT_INTERVAL_SECONDS = 300  # 每 5 分鐘一次
DEFAULT_ALERT_MAX_WORKERS = 8
DEFAULT_ALERT_TIMEZONE = "UTC"
ALERT_CHART_INTERVAL = ChartInterval.ONE_MINUTE

# ---------------------------------------------------------------------------
# 行情資料
# ---------------------------------------------------------------------------
DEFAULT_CHART_PROVIDER = "twelvedata"
TWELVEDATA_TIME_SERIES_URL = "https://api.twelvedata.com/time_series"
TWELVEDATA_OUTPUT_SIZE = 1000
DEFAULT_CHART_CACHE_TTL_SECONDS = 60
CHART_CACHE_MAXSIZE = 512
CHART_REQUEST_TIMEOUT_SECONDS = 15

# ---------------------------------------------------------------------------
# 郵件寄送
# ---------------------------------------------------------------------------
MAIL_JOB_ID = "mail-dispatch"
DEFAULT_MAIL_DISPATCH_INTERVAL_SECONDS = 60
DEFAULT_MAIL_MAX_ATTEMPTS = 5
DEFAULT_SMTP_PORT = 587
MAIL_DISPATCH_BATCH_SIZE = 50

# ---------------------------------------------------------------------------
# 代號查詢 (Polygon reference)
# ---------------------------------------------------------------------------
POLYGON_TICKERS_URL = "https://api.polygon.io/v3/reference/tickers"
TICKER_SEARCH_DEFAULT_LIMIT = 10
TICKER_SEARCH_MAX_LIMIT = 50
OVERVIEW_CACHE_TTL_SECONDS = 3600
OVERVIEW_CACHE_MAXSIZE = 256
# 圖表路由收到未知或缺少的 interval 時改用此值
FALLBACK_CHART_INTERVAL = ChartInterval.ONE_HOUR
