"""
Domain — 門檻觸發判定純函式。
不依賴任何外部服務、資料庫或框架。
"""

from __future__ import annotations

import math
from typing import Optional

from domain.entities import Threshold
from domain.enums import ThresholdCondition
from domain.exceptions import InvalidThresholdError


def validate_threshold_fields(target: Optional[float], condition: object) -> ThresholdCondition:
    """
    檢查目標價與條件是否合法，回傳正規化後的條件。
    目標價必須為非負數，條件必須是 above / below。
    """
    if target is None or isinstance(target, bool) or not isinstance(target, (int, float)):
        raise InvalidThresholdError(f"target must be a number, got {target!r}")
    if math.isnan(target) or target < 0:
        raise InvalidThresholdError(f"target must be >= 0, got {target!r}")
    try:
        return ThresholdCondition(condition)
    except ValueError:
        raise InvalidThresholdError(f"unknown condition {condition!r}") from None


def evaluate(threshold: Threshold, latest_price: Optional[float]) -> bool:
    """
    判斷最新價格是否觸發門檻。

    - 無價格（None / NaN）一律不觸發
    - above：price > target；below：price < target
    - 價格等於目標價時不觸發（嚴格不等式）
    """
    condition = validate_threshold_fields(threshold.target, threshold.condition)

    if latest_price is None or math.isnan(latest_price):
        return False

    if condition == ThresholdCondition.ABOVE:
        return latest_price > threshold.target
    return latest_price < threshold.target
