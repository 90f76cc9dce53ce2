from __future__ import annotations

from typing import Optional, Sequence

import numpy as np


MAD_MIN_SAMPLES = 4


def median(values: Sequence[float]) -> Optional[float]:
    """中位数；空序列返回 None，偶数长度取中间两值均值"""
    if len(values) == 0:
        return None
    return float(np.median(np.asarray(values, dtype=float)))


def mad(values: Sequence[float], min_samples: int = MAD_MIN_SAMPLES) -> Optional[float]:
    """
    中位数绝对偏差（MAD）。
    样本数少于 min_samples 时返回 None，避免窗口过小时误报“稳定”。
    """
    if len(values) < min_samples:
        return None
    arr = np.asarray(values, dtype=float)
    med = np.median(arr)
    return float(np.median(np.abs(arr - med)))
