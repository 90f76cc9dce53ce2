"""
目标地理位置放置与 GPS 交叉校验距离。

每个信标在会话内只放置一次：能拿到观察者坐标时在其周围半径 45 m 的圆盘内均匀采样，
否则在固定参考点附近的小方框内随机抖动。观察者坐标持续更新时重新计算球面距离，
仅作为 RSSI 估计之外的参考。
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Any, Callable, Dict, Iterable, Optional, Protocol

import numpy as np

from .config_manager import ConfigManager
from .models import BeaconIdentity, GeoFix, Position


logger = logging.getLogger(__name__)

METERS_PER_DEGREE = 111111.0


def haversine_distance(pos1: Position, pos2: Position) -> float:
    """两点球面距离（米）。"""
    R = 6_371_000.0
    phi1 = math.radians(pos1.latitude)
    phi2 = math.radians(pos2.latitude)
    dphi = math.radians(pos2.latitude - pos1.latitude)
    dlambda = math.radians(pos2.longitude - pos1.longitude)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return R * c


def sample_in_disk(base: Position, radius: float, rng: np.random.Generator) -> Position:
    """圆盘内均匀采样：r = R·√u, θ = 2πv；经度偏移按纬度缩放"""
    r = radius * math.sqrt(rng.uniform())
    theta = rng.uniform() * 2 * math.pi
    dx = r * math.cos(theta)
    dy = r * math.sin(theta)
    d_lat = dy / METERS_PER_DEGREE
    d_lon = dx / (METERS_PER_DEGREE * math.cos(math.radians(base.latitude)))
    return Position(latitude=base.latitude + d_lat, longitude=base.longitude + d_lon)


def sample_in_box(reference: Position, jitter_deg: float, rng: np.random.Generator) -> Position:
    return Position(
        latitude=reference.latitude + rng.uniform(-jitter_deg, jitter_deg),
        longitude=reference.longitude + rng.uniform(-jitter_deg, jitter_deg),
    )


class LocationProvider(Protocol):
    """定位服务接口（一次定位 + 持续监听）"""

    def current_position(self) -> GeoFix: ...

    def watch(
        self, on_fix: Callable[[GeoFix], None], on_error: Callable[[str], None]
    ) -> Any: ...

    def clear_watch(self, handle: Any) -> None: ...


class StaticLocationProvider:
    """固定坐标的定位服务；watch 时立即回调一次"""

    def __init__(self, position: Optional[Position] = None, accuracy: float = 5.0):
        self.position = position
        self.accuracy = accuracy
        self._watches: Dict[int, Callable[[GeoFix], None]] = {}
        self._next_handle = 0

    def current_position(self) -> GeoFix:
        if self.position is None:
            raise RuntimeError("Geolocation not available.")
        return GeoFix(position=self.position, accuracy=self.accuracy)

    def watch(self, on_fix, on_error):
        self._next_handle += 1
        handle = self._next_handle
        self._watches[handle] = on_fix
        if self.position is None:
            on_error("Geolocation not available.")
        else:
            on_fix(GeoFix(position=self.position, accuracy=self.accuracy))
        return handle

    def clear_watch(self, handle) -> None:
        self._watches.pop(handle, None)

    @property
    def active_watches(self) -> int:
        return len(self._watches)

    def move_to(self, position: Position) -> None:
        self.position = position
        for on_fix in list(self._watches.values()):
            on_fix(GeoFix(position=position, accuracy=self.accuracy))


class GeoTargetPlacer:
    """为每个信标放置一次目标坐标（同一信标集合复用结果）"""

    def __init__(self, config_manager: Optional[ConfigManager] = None, rng: Optional[np.random.Generator] = None):
        geo = config_manager.get_geo_config() if config_manager else {}
        self.radius_m = float(geo.get("radius_m", 45.0))
        self.reference = Position(
            latitude=float(geo.get("reference_lat", 33.5207)),
            longitude=float(geo.get("reference_lon", -86.8025)),
        )
        self.fallback_jitter_deg = float(geo.get("fallback_jitter_deg", 0.001))
        self.fix_timeout_s = float(geo.get("fix_timeout_s", 8.0))
        self.rng = rng if rng is not None else np.random.default_rng()

        self._placed_for: Optional[frozenset[str]] = None
        self._targets: Dict[str, Position] = {}

    @property
    def targets(self) -> Dict[str, Position]:
        return dict(self._targets)

    def target_for(self, identity: BeaconIdentity) -> Optional[Position]:
        return self._targets.get(identity.key)

    def resolve_observer(self, provider: Optional[LocationProvider]) -> Optional[Position]:
        """带超时地获取观察者坐标；失败返回 None，不重试"""
        if provider is None:
            return None
        result: Dict[str, Any] = {}
        done = threading.Event()

        def worker():
            try:
                result["fix"] = provider.current_position()
            except Exception as e:
                result["error"] = e
            finally:
                done.set()

        # 守护线程：定位服务卡死时不阻塞进程退出
        threading.Thread(target=worker, name="geo-fix", daemon=True).start()
        if not done.wait(self.fix_timeout_s):
            logger.warning("定位超时（%.1fs），使用参考点附近的随机位置", self.fix_timeout_s)
            return None
        if "error" in result:
            logger.warning("定位失败，使用参考点附近的随机位置: %s", result["error"])
            return None
        return result["fix"].position

    def place(
        self, identities: Iterable[BeaconIdentity], provider: Optional[LocationProvider] = None
    ) -> Dict[str, Position]:
        unique: Dict[str, BeaconIdentity] = {}
        for identity in identities:
            unique.setdefault(identity.key, identity)
        keys = frozenset(unique)
        if keys == self._placed_for:
            return self.targets

        base = self.resolve_observer(provider)
        targets: Dict[str, Position] = {}
        for key in unique:
            if base is not None:
                targets[key] = sample_in_disk(base, self.radius_m, self.rng)
            else:
                targets[key] = sample_in_box(self.reference, self.fallback_jitter_deg, self.rng)
        self._targets = targets
        self._placed_for = keys
        logger.debug("已放置 %d 个目标坐标（%s）", len(targets), "观察者" if base is not None else "参考点")
        return self.targets


class GeoCrossCheck:
    """
    跟踪当前查看的信标与观察者之间的 GPS 距离。
    切换信标时先取消上一个监听再开始新的监听。
    """

    def __init__(self, placer: GeoTargetPlacer, provider: Optional[LocationProvider]):
        self.placer = placer
        self.provider = provider
        self.observer: Optional[GeoFix] = None
        self.error: Optional[str] = None
        self.identity: Optional[BeaconIdentity] = None
        self._handle: Any = None
        self._lock = threading.Lock()

    def follow(self, identity: BeaconIdentity) -> None:
        self.stop()
        self.identity = identity
        self.error = None
        if self.provider is None:
            self.error = "Geolocation not available."
            return
        self._handle = self.provider.watch(self._on_fix, self._on_error)

    def stop(self) -> None:
        if self._handle is not None and self.provider is not None:
            self.provider.clear_watch(self._handle)
        self._handle = None

    def _on_fix(self, fix: GeoFix) -> None:
        with self._lock:
            self.observer = fix
            self.error = None

    def _on_error(self, message: str) -> None:
        with self._lock:
            self.error = message or "Location permission denied or unavailable."

    def distance(self) -> Optional[float]:
        if self.identity is None or self.observer is None:
            return None
        target = self.placer.target_for(self.identity)
        if target is None:
            return None
        return haversine_distance(self.observer.position, target)
