"""
API — Pydantic 請求 / 回應模型。
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from domain.enums import SeriesStatus, ThresholdCondition


class ThresholdCreateRequest(BaseModel):
    """POST /thresholds 請求 Body。"""

    ticker: str = Field(min_length=1, max_length=32)
    target: float = Field(ge=0)
    condition: ThresholdCondition


class ThresholdResponse(BaseModel):
    """單筆門檻。"""

    id: str
    ticker: str
    target: float
    condition: str
    enabled: bool
    created_at: str


class ProfileUpdateRequest(BaseModel):
    """PUT /settings/profile 請求 Body。"""

    email: Optional[str] = Field(default=None, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$")


class ProfileResponse(BaseModel):
    """使用者通知設定。"""

    user_id: str
    email: Optional[str] = None


class ChartResponse(BaseModel):
    """GET /indices/chart 回傳：平行陣列（時間戳為毫秒）。"""

    t: list[int]
    o: list[float]
    h: list[float]
    l: list[float]  # noqa: E741
    c: list[float]
    v: list[float]
    s: SeriesStatus


class MessageResponse(BaseModel):
    message: str


class TickerInfoResponse(BaseModel):
    """GET /indices/tickers 的一筆搜尋結果。"""

    ticker: str
    name: str
    market: str
    locale: str
    primary_exchange: str
    active: bool


class TickerOverviewResponse(BaseModel):
    """Polygon 代號概況（僅保留前端需要的欄位）。"""

    model_config = ConfigDict(extra="ignore")

    ticker: str
    name: Optional[str] = None
    market: Optional[str] = None
    locale: Optional[str] = None
    primary_exchange: Optional[str] = None
    status: Optional[str] = None
    description: Optional[str] = None
    homepage_url: Optional[str] = None
    list_date: Optional[str] = None
    market_cap: Optional[float] = None
    branding: Optional[dict] = None


class TickerDetailsResponse(BaseModel):
    """GET /indices/{symbol}/details 回傳：概況取得失敗時為 null。"""

    overview: Optional[TickerOverviewResponse] = None
    chart: ChartResponse
