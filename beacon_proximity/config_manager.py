from __future__ import annotations

import logging
import os
from copy import deepcopy

import yaml

from typing import Callable, Any


logger = logging.getLogger(__name__)


def _env_or_default(env_key: str, default: Any, cast: Callable[[str], Any] = str) -> Any:
    v = os.environ.get(env_key)
    if v is not None:
        try:
            return cast(v)
        except ValueError:
            return v
    return default


def _env_bool(v: str) -> bool:
    return v.lower() in ("1", "true", "yes")


DEFAULT_CONFIG_PATH = _env_or_default(
    "BEACON_PROXIMITY_CONFIG",
    os.path.join(".", "config", "config.yaml"),
)


class ConfigManager:
    """配置管理类，负责读写YAML配置文件"""

    def __init__(self, config_file: str | None = None, persist: bool = True):
        self.config_file = config_file or DEFAULT_CONFIG_PATH
        # persist=False 时只读，不写回磁盘（测试与嵌入场景）
        self.persist = persist
        self.default_config = {
            "ranging": {
                "window_size": _env_or_default("BEACON_WINDOW_SIZE", 18, int),
                "ema_alpha": _env_or_default("BEACON_EMA_ALPHA", 0.25, float),
                "mad_min_samples": _env_or_default("BEACON_MAD_MIN_SAMPLES", 4, int),
                "fresh_ms": _env_or_default("BEACON_FRESH_MS", 3000, float),
                "stable_mad": _env_or_default("BEACON_STABLE_MAD", 0.25, float),
                "moderate_mad": _env_or_default("BEACON_MODERATE_MAD", 0.6, float),
                "trend_deadband": _env_or_default("BEACON_TREND_DEADBAND", 0.2, float),
            },
            "simulation": {
                "enabled": _env_or_default("BEACON_SIM_ENABLED", True, _env_bool),
                "tick_ms": _env_or_default("BEACON_SIM_TICK_MS", 650, int),
                "max_entities": _env_or_default("BEACON_SIM_MAX_ENTITIES", 12, int),
                "toward_drift": _env_or_default("BEACON_SIM_TOWARD_DRIFT", -0.35, float),
                "idle_drift": _env_or_default("BEACON_SIM_IDLE_DRIFT", 0.05, float),
                "distance_noise": _env_or_default("BEACON_SIM_DISTANCE_NOISE", 0.3, float),
                "initial_min": _env_or_default("BEACON_SIM_INITIAL_MIN", 6.0, float),
                "initial_span": _env_or_default("BEACON_SIM_INITIAL_SPAN", 25.0, float),
                "min_distance": _env_or_default("BEACON_SIM_MIN_DISTANCE", 0.8, float),
                "max_distance": _env_or_default("BEACON_SIM_MAX_DISTANCE", 35.0, float),
                "rssi_at_1m": _env_or_default("BEACON_SIM_RSSI_1M", -45.0, float),
                "rssi_slope": _env_or_default("BEACON_SIM_RSSI_SLOPE", 18.0, float),
                "rssi_noise": _env_or_default("BEACON_SIM_RSSI_NOISE", 5.0, float),
                "seed": _env_or_default("BEACON_SIM_SEED", None, int),
            },
            "geo": {
                "radius_m": _env_or_default("BEACON_GEO_RADIUS", 45.0, float),
                "reference_lat": _env_or_default("BEACON_GEO_REF_LAT", 33.5207, float),
                "reference_lon": _env_or_default("BEACON_GEO_REF_LON", -86.8025, float),
                "fallback_jitter_deg": _env_or_default("BEACON_GEO_JITTER", 0.001, float),
                "fix_timeout_s": _env_or_default("BEACON_GEO_TIMEOUT", 8.0, float),
            },
            "mqtt": {
                "ip": _env_or_default("BEACON_MQTT_IP", "localhost"),
                "port": _env_or_default("BEACON_MQTT_PORT", 1883, int),
                "topic": _env_or_default("BEACON_MQTT_TOPIC", "/beacon/observation/+"),
            },
            "paths": {
                "asset_db": _env_or_default(
                    "BEACON_PATH_ASSET_DB", os.path.join(".", "beacon", "assets.csv")
                ),
            },
        }
        self.load_config()

    def load_config(self) -> None:
        """加载配置文件，如果不存在则创建默认配置"""
        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, "r", encoding="utf-8") as f:
                    self.config = yaml.safe_load(f) or {}
                self._merge_default_config()
            else:
                self.config = deepcopy(self.default_config)
                self.save_config()
        except (OSError, yaml.YAMLError) as e:
            # 发生异常时回退到默认配置
            logger.warning("读取配置文件 %s 失败，使用默认配置: %s", self.config_file, e)
            self.config = deepcopy(self.default_config)

    def _merge_default_config(self) -> None:
        def merge_dict(default, current):
            for key, value in default.items():
                if key not in current:
                    current[key] = deepcopy(value)
                elif isinstance(value, dict) and isinstance(current[key], dict):
                    merge_dict(value, current[key])

        merge_dict(self.default_config, self.config)

    def save_config(self) -> None:
        if not self.persist:
            return
        try:
            os.makedirs(os.path.dirname(self.config_file) or ".", exist_ok=True)
            with open(self.config_file, "w", encoding="utf-8") as f:
                yaml.dump(
                    self.config,
                    f,
                    default_flow_style=False,
                    allow_unicode=True,
                    indent=2,
                )
        except OSError as e:
            logger.warning("保存配置文件 %s 失败: %s", self.config_file, e)

    # ---------- Accessors ----------
    def get_ranging_config(self):
        return self.config["ranging"]

    def get_simulation_config(self):
        return self.config["simulation"]

    def get_geo_config(self):
        return self.config["geo"]

    def get_mqtt_config(self):
        return self.config["mqtt"]

    def get_paths(self):
        return self.config.get("paths", {})

    def get_asset_db_path(self):
        return self.get_paths()["asset_db"]

    def set_mqtt_config(self, ip, port, topic=None):
        self.config["mqtt"]["ip"] = ip
        self.config["mqtt"]["port"] = port
        if topic is not None:
            self.config["mqtt"]["topic"] = topic
        self.save_config()

    def set_simulation_config(self, **kwargs) -> None:
        unknown = set(kwargs) - set(self.default_config["simulation"])
        if unknown:
            raise KeyError(f"未知的仿真参数: {sorted(unknown)}")
        self.config["simulation"].update(kwargs)
        self.save_config()
