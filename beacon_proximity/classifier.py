from __future__ import annotations

import math
from typing import Optional

from .models import Stability, Trend


METERS_TO_FEET = 3.28084


class RangeClassifier:
    """根据 MAD 与 EMA 增量给出稳定性与趋势标签（读时计算，不落状态）"""

    def __init__(
        self,
        stable_mad: float = 0.25,
        moderate_mad: float = 0.6,
        trend_deadband: float = 0.2,
    ):
        self.stable_mad = stable_mad
        self.moderate_mad = moderate_mad
        self.trend_deadband = trend_deadband

    @classmethod
    def from_config(cls, ranging_config: dict) -> "RangeClassifier":
        return cls(
            stable_mad=float(ranging_config.get("stable_mad", 0.25)),
            moderate_mad=float(ranging_config.get("moderate_mad", 0.6)),
            trend_deadband=float(ranging_config.get("trend_deadband", 0.2)),
        )

    def stability(self, mad_distance: Optional[float]) -> Stability:
        if mad_distance is None:
            return Stability.WARMING_UP
        if mad_distance < self.stable_mad:
            return Stability.STABLE
        if mad_distance < self.moderate_mad:
            return Stability.MODERATE
        return Stability.UNSTABLE

    def trend(self, delta_distance: Optional[float]) -> Trend:
        if delta_distance is None:
            return Trend.COLLECTING
        # EMA 噪声底会被误认为移动，死区内视为持平
        if abs(delta_distance) < self.trend_deadband:
            return Trend.FLAT
        if delta_distance < 0:
            return Trend.GETTING_CLOSER
        return Trend.GETTING_FARTHER


def to_feet(meters: Optional[float]) -> Optional[float]:
    if meters is None or math.isnan(meters) or meters < 0:
        return None
    return meters * METERS_TO_FEET


def format_age(age_ms: Optional[float]) -> str:
    """将毫秒年龄格式化为 12s / 3m；未知返回 —"""
    if age_ms is None or not math.isfinite(age_ms):
        return "—"
    s = max(0, round(age_ms / 1000))
    if s < 120:
        return f"{s}s"
    return f"{round(s / 60)}m"
