from __future__ import annotations

import time
from typing import Optional

from .models import RangeState


def now_ms() -> float:
    return time.time() * 1000.0


class FreshnessTracker:
    """新鲜度判断：距上次观测不超过 fresh_ms 视为在线"""

    def __init__(self, fresh_ms: float = 3000):
        self.fresh_ms = fresh_ms

    def age(self, state: Optional[RangeState], now: float) -> Optional[float]:
        if state is None:
            return None
        return now - state.last_seen

    def is_fresh(self, state: Optional[RangeState], now: float) -> bool:
        age = self.age(state, now)
        return age is not None and age <= self.fresh_ms
