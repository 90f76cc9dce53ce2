from __future__ import annotations

import logging
import math
import threading
from typing import Callable, Dict, Iterable, List, Optional

import numpy as np

from .config_manager import ConfigManager
from .engine import ProximityEngine
from .freshness import now_ms
from .models import Asset, BeaconIdentity


logger = logging.getLogger(__name__)


class ObservationSimulator:
    """
    无真实射频时的合成观测源。

    每个被仿真的信标维护一个私有的“真实距离”，每个 tick 漂移并加噪声，
    再经对数距离路径损耗模型换算出 RSSI，送入 ProximityEngine.ingest。
    真实距离只用于生成观测，与引擎中的平滑估计相互独立。
    """

    def __init__(
        self,
        engine: ProximityEngine,
        assets: Callable[[], Iterable[Asset]] | Iterable[Asset],
        config_manager: Optional[ConfigManager] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], float] = now_ms,
    ):
        self.engine = engine
        self._assets = assets
        sim = config_manager.get_simulation_config() if config_manager else {}
        self.tick_ms = int(sim.get("tick_ms", 650))
        self.max_entities = int(sim.get("max_entities", 12))
        self.toward_drift = float(sim.get("toward_drift", -0.35))
        self.idle_drift = float(sim.get("idle_drift", 0.05))
        self.distance_noise = float(sim.get("distance_noise", 0.3))
        self.initial_min = float(sim.get("initial_min", 6.0))
        self.initial_span = float(sim.get("initial_span", 25.0))
        self.min_distance = float(sim.get("min_distance", 0.8))
        self.max_distance = float(sim.get("max_distance", 35.0))
        self.rssi_at_1m = float(sim.get("rssi_at_1m", -45.0))
        self.rssi_slope = float(sim.get("rssi_slope", 18.0))
        self.rssi_noise = float(sim.get("rssi_noise", 5.0))
        self.rng = rng if rng is not None else np.random.default_rng(sim.get("seed"))
        self.clock = clock

        self.site: Optional[int] = None
        self._target: Optional[str] = None
        self._truth: Dict[str, float] = {}
        self._truth_lock = threading.Lock()

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ---------- Target ----------
    @property
    def target(self) -> Optional[str]:
        return self._target

    def set_target(self, identity: Optional[BeaconIdentity]) -> None:
        """设置“走向”目标；None 表示全部回到缓慢远离。其它信标的真实距离不重置"""
        self._target = identity.key if identity else None
        logger.info("仿真目标: %s", self._target or "无")

    def true_distance(self, identity: BeaconIdentity) -> Optional[float]:
        """仿真内部的真实距离（诊断用）"""
        return self._truth.get(identity.key)

    # ---------- Tick ----------
    def eligible(self) -> List[Asset]:
        assets = self._assets() if callable(self._assets) else self._assets
        out: List[Asset] = []
        for a in assets:
            if not a.simulate:
                continue
            if self.site is not None and a.site_major != self.site:
                continue
            out.append(a)
            if len(out) >= self.max_entities:
                break
        return out

    def _step(self, key: str) -> float:
        d = self._truth.get(key)
        if d is None:
            d = self.initial_min + self.rng.uniform(0.0, self.initial_span)
        drift = self.toward_drift if key == self._target else self.idle_drift
        noise = self.rng.uniform(-self.distance_noise, self.distance_noise)
        d = min(self.max_distance, max(self.min_distance, d + drift + noise))
        self._truth[key] = d
        return d

    def rssi_for(self, distance: float) -> int:
        """对数距离路径损耗模型 + 均匀噪声"""
        noise = self.rng.uniform(-self.rssi_noise, self.rssi_noise)
        return int(round(self.rssi_at_1m - self.rssi_slope * math.log10(distance) + noise))

    def tick(self, now: Optional[float] = None) -> int:
        now = self.clock() if now is None else now
        ingested = 0
        with self._truth_lock:
            for asset in self.eligible():
                key = asset.beacon.key
                d = self._step(key)
                rssi = self.rssi_for(d)
                if self.engine.ingest(asset.beacon, d, rssi, now):
                    ingested += 1
        logger.debug("仿真 tick: %d 条观测", ingested)
        return ingested

    # ---------- Timer ----------
    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="observation-simulator", daemon=True)
        self._thread.start()
        logger.info("仿真已启动，周期 %d ms", self.tick_ms)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("仿真已停止")

    def _run(self) -> None:
        interval = self.tick_ms / 1000.0
        while not self._stop_event.wait(interval):
            try:
                self.tick()
            except Exception as e:
                logger.exception("仿真 tick 出错: %s", e)
