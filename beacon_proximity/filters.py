from __future__ import annotations

from dataclasses import replace
from typing import Optional

from .models import RangeState
from .stats import MAD_MIN_SAMPLES, mad, median


class DistanceFilter:
    """
    距离平滑滤波器：先中值滤波剔除单点尖峰，再做 EMA 去除残余抖动。

    与逐设备保存历史的有状态滤波不同，这里的 update 是纯函数：
    输入上一个 RangeState（或 None），返回新的 RangeState。
    """

    def __init__(
        self,
        window_size: int = 18,
        ema_alpha: float = 0.25,
        mad_min_samples: int = MAD_MIN_SAMPLES,
    ):
        if window_size < 1:
            raise ValueError("window_size 必须为正整数")
        if not 0.0 < ema_alpha <= 1.0:
            raise ValueError("ema_alpha 必须在 (0, 1] 区间内")
        self.window_size = window_size
        self.ema_alpha = ema_alpha
        self.mad_min_samples = mad_min_samples

    @classmethod
    def from_config(cls, ranging_config: dict) -> "DistanceFilter":
        return cls(
            window_size=int(ranging_config.get("window_size", 18)),
            ema_alpha=float(ranging_config.get("ema_alpha", 0.25)),
            mad_min_samples=int(ranging_config.get("mad_min_samples", MAD_MIN_SAMPLES)),
        )

    def update(
        self,
        state: Optional[RangeState],
        distance: float,
        arrival_time: float,
        signal_strength: Optional[float] = None,
    ) -> RangeState:
        state = state or RangeState()
        samples = self._filter_window(state, distance)
        med = median(samples)
        if med is None:
            med = distance

        ema_prev = state.ema_distance
        ema = self._filter_ema(ema_prev, med)
        delta = None if ema_prev is None else ema - ema_prev

        return replace(
            state,
            samples=samples,
            last_seen=arrival_time,
            ema_distance=ema,
            last_ema_distance=ema_prev,
            mad_distance=mad(samples, self.mad_min_samples),
            delta_distance=delta,
            last_signal_strength=signal_strength,
        )

    def _filter_window(self, state: RangeState, distance: float) -> tuple[float, ...]:
        """追加样本并从头部淘汰超出窗口的旧样本"""
        samples = state.samples + (float(distance),)
        if len(samples) > self.window_size:
            samples = samples[-self.window_size:]
        return samples

    def _filter_ema(self, ema_prev: Optional[float], med: float) -> float:
        """指数移动平均滤波"""
        if ema_prev is None:
            return med
        return self.ema_alpha * med + (1 - self.ema_alpha) * ema_prev
