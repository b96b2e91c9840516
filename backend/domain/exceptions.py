"""
Domain — 例外分類。
排程以單一門檻為邊界攔截這些例外；只有快照讀取失敗會中止整次排程。
"""


class ThresholdAlertError(Exception):
    """所有門檻警報相關例外的基底類別。"""


class InvalidThresholdError(ThresholdAlertError):
    """門檻資料不合法（條件未知或目標價為負）。"""


class ThresholdNotFoundError(ThresholdAlertError):
    """找不到指定使用者的門檻。"""


class NoPriceData(ThresholdAlertError):
    """行情來源在查詢日期沒有可用的報價。"""


class ChartProviderError(ThresholdAlertError):
    """行情來源連線或 API 失敗（含流量限制）。"""


class RecipientUnresolvable(ThresholdAlertError):
    """使用者沒有可寄送的通知地址。"""


class NotificationEnqueueFailed(ThresholdAlertError):
    """通知無法寫入寄件匣。"""


class DisableFailed(ThresholdAlertError):
    """通知已排入寄件匣，但停用門檻失敗，下次排程可能重複通知。"""


class ThresholdStoreUnavailable(ThresholdAlertError):
    """無法讀取啟用中門檻快照，本次排程中止。"""


class ReferenceDataError(ThresholdAlertError):
    """代號查詢 / 公司概況 API 失敗（含流量限制）。"""
