"""
Application — 通知內容格式化函式。
將門檻與觸發價格轉換為使用者可讀的 Email 內容。
"""

from decimal import Decimal
from html import escape

from domain.entities import Threshold
from domain.enums import ThresholdCondition
from domain.market import AlertMessage


def format_number(value: float) -> str:
    """
    以最短且不失真的十進位表示價格：151.20 → "151.2"、150.0 → "150"、
    0.000031 → "0.000031"（不使用科學記號，也不四捨五入）。
    """
    text = format(Decimal(repr(float(value))), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def build_alert_message(threshold: Threshold, price: float, to: str) -> AlertMessage:
    """
    產生門檻觸發通知：主旨、純文字與 HTML 內容皆包含代號、現價、條件與目標價。
    """
    condition = ThresholdCondition(threshold.condition).value
    ticker = threshold.ticker
    price_text = format_number(price)
    target_text = format_number(threshold.target)

    subject = f"📈 Alert: {ticker} is {condition} {target_text}"
    text = (
        f"{ticker} is now {price_text}, which is {condition} "
        f"your threshold of {target_text}."
    )
    html = (
        f"<p><strong>{escape(ticker)}</strong> is now <strong>{price_text}</strong>, "
        f"which is <strong>{condition}</strong> your threshold of "
        f"<strong>{target_text}</strong>.</p>"
    )
    return AlertMessage(to=to, subject=subject, text=text, html=html)
