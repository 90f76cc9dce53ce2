from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Optional

import paho.mqtt.client as mqtt
from paho.mqtt.client import MQTTMessage

from .config_manager import ConfigManager
from .engine import ProximityEngine
from .freshness import now_ms
from .models import BeaconIdentity


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Observation:
    """
    一条原始观测。
    MQTT 负载格式（JSON）：{"uuid": ..., "major": ..., "minor": ..., "distance": 米, "rssi": dBm, "ts": 毫秒(可选)}
    """

    identity: BeaconIdentity
    distance: float
    rssi: float
    timestamp: Optional[float] = None

    @classmethod
    def parse(cls, data_str: str) -> Optional["Observation"]:
        try:
            data = json.loads(data_str)
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict):
            return None
        try:
            identity = BeaconIdentity(
                uuid=str(data["uuid"]), major=int(data["major"]), minor=int(data["minor"])
            )
            distance = float(data["distance"])
            rssi = float(data["rssi"])
            ts = data.get("ts")
            timestamp = float(ts) if ts is not None else None
        except (KeyError, TypeError, ValueError):
            return None
        return cls(identity=identity, distance=distance, rssi=rssi, timestamp=timestamp)


class MQTTObservationSource:
    """从 MQTT 订阅真实扫描器上报的观测，并送入 ProximityEngine"""

    def __init__(self, config_manager: ConfigManager, engine: ProximityEngine):
        self.lock = threading.Lock()
        self.config_manager = config_manager
        self.engine = engine
        self.client: Optional[mqtt.Client] = None
        self.current_topic: Optional[str] = None

    # ---------- Core processing ----------
    def handle_payload(self, payload: str) -> bool:
        observation = Observation.parse(payload)
        if observation is None:
            logger.warning("消息解析无有效观测数据: %s", payload)
            return False
        ts = observation.timestamp if observation.timestamp is not None else now_ms()
        return self.engine.ingest(observation.identity, observation.distance, observation.rssi, ts)

    # ---------- MQTT ----------
    def start_mqtt_client(self):
        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        self.client.on_connect = self.on_connect
        self.client.on_message = self.on_message
        try:
            mqtt_config = self.config_manager.get_mqtt_config()
            self.client.connect(mqtt_config["ip"], mqtt_config["port"], 60)
            logger.info("连接到MQTT服务器 %s:%s", mqtt_config["ip"], mqtt_config["port"])
            self.client.loop_forever()
        except OSError as e:
            logger.error("MQTT连接错误: %s", e)

    def stop_mqtt_client(self):
        if self.client is not None:
            try:
                self.client.disconnect()
                self.client.loop_stop()
                logger.info("MQTT连接已断开")
            except OSError as e:
                logger.error("断开MQTT连接时出错: %s", e)

    # ---------- MQTT handlers ----------
    def on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code == 0:
            logger.info("成功连接到MQTT服务器")
            topic = self.config_manager.get_mqtt_config().get("topic", "/beacon/observation/+")
            client.subscribe(topic)
            self.current_topic = topic
            logger.info("已订阅主题: %s", topic)
        else:
            logger.error("连接失败，返回码: %s", reason_code)

    def on_message(self, client, userdata, msg: MQTTMessage):
        try:
            payload = msg.payload.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("消息不是有效的 UTF-8: %r", msg.payload)
            return
        with self.lock:
            self.handle_payload(payload)
