from __future__ import annotations

import logging
import math
import threading
from typing import Dict, Iterable, List, Optional

from .classifier import RangeClassifier
from .config_manager import ConfigManager
from .filters import DistanceFilter
from .freshness import FreshnessTracker, now_ms
from .models import Asset, BeaconIdentity, RankedAsset, RangeState, RangeView


logger = logging.getLogger(__name__)


class ProximityEngine:
    """
    观测接入与排序引擎。

    - 每个信标键对应一个 RangeState，首次观测时惰性创建，之后只替换不删除
    - 同一个键的 ingest 通过独立的锁串行化，不同键之间互不阻塞
    - 读取得到的是不可变快照
    """

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        distance_filter: Optional[DistanceFilter] = None,
        classifier: Optional[RangeClassifier] = None,
        freshness: Optional[FreshnessTracker] = None,
    ):
        ranging = config_manager.get_ranging_config() if config_manager else {}
        self.distance_filter = distance_filter or DistanceFilter.from_config(ranging)
        self.classifier = classifier or RangeClassifier.from_config(ranging)
        self.freshness = freshness or FreshnessTracker(float(ranging.get("fresh_ms", 3000)))

        self._states: Dict[str, RangeState] = {}
        self._locks: Dict[str, threading.Lock] = {}
        # 只保护 _locks 表本身的增删
        self._locks_guard = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    # ---------- Ingestion ----------
    def ingest(
        self,
        identity: BeaconIdentity,
        raw_distance: float,
        signal_strength: float,
        arrival_time: Optional[float] = None,
    ) -> bool:
        """接入一条观测；非法观测被丢弃并返回 False，状态保持不变"""
        if arrival_time is None:
            arrival_time = now_ms()
        if not _is_finite_number(raw_distance) or raw_distance < 0:
            logger.warning("丢弃非法距离观测 %s: %r", identity.key, raw_distance)
            return False
        if not _is_finite_number(signal_strength):
            logger.warning("丢弃非法信号强度观测 %s: %r", identity.key, signal_strength)
            return False
        if not _is_finite_number(arrival_time):
            logger.warning("丢弃非法时间戳观测 %s: %r", identity.key, arrival_time)
            return False

        key = identity.key
        with self._lock_for(key):
            current = self._states.get(key)
            if current is not None and arrival_time < current.last_seen:
                logger.warning(
                    "丢弃乱序观测 %s: %.0f < 上次 %.0f", key, arrival_time, current.last_seen
                )
                return False
            self._states[key] = self.distance_filter.update(
                current, float(raw_distance), float(arrival_time), float(signal_strength)
            )
        return True

    # ---------- Reads ----------
    def state(self, identity: BeaconIdentity) -> Optional[RangeState]:
        return self._states.get(identity.key)

    def states(self) -> Dict[str, RangeState]:
        return dict(self._states)

    def view(self, identity: BeaconIdentity, now: Optional[float] = None) -> RangeView:
        return self._view_of(self.state(identity), now_ms() if now is None else now)

    def _view_of(self, state: Optional[RangeState], now: float) -> RangeView:
        fresh = self.freshness.is_fresh(state, now)
        return RangeView(
            fresh=fresh,
            distance_estimate=state.ema_distance if fresh and state else None,
            stability=self.classifier.stability(state.mad_distance if state else None),
            trend=self.classifier.trend(state.delta_distance if state else None),
            last_seen_age=self.freshness.age(state, now),
            last_signal_strength=state.last_signal_strength if fresh and state else None,
        )

    def rank(
        self,
        assets: Iterable[Asset],
        site: Optional[int] = None,
        query: str = "",
        now: Optional[float] = None,
    ) -> List[RankedAsset]:
        """
        按 (在线优先, 平滑距离升序, 名称不区分大小写) 排序。
        site 为 None 表示全部站点；未观测过的资产距离视为无穷大。
        """
        now = now_ms() if now is None else now
        rows = []
        for asset in assets:
            if site is not None and asset.site_major != site:
                continue
            if not asset.matches(query):
                continue
            state = self.state(asset.beacon)
            view = self._view_of(state, now)
            distance = state.ema_distance if state and state.ema_distance is not None else math.inf
            rows.append(((not view.fresh, distance, (asset.display_name or "").lower()), asset, view))

        rows.sort(key=lambda r: r[0])
        return [RankedAsset(asset=asset, view=view) for _, asset, view in rows]


def _is_finite_number(v) -> bool:
    try:
        return math.isfinite(v)
    except TypeError:
        return False
