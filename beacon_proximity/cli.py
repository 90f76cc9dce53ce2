from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
import time

from .asset_catalog import AssetCatalog
from .classifier import format_age, to_feet
from .config_manager import ConfigManager
from .engine import ProximityEngine
from .geo import GeoTargetPlacer, StaticLocationProvider
from .models import Position
from .mqtt_processor import MQTTObservationSource
from .simulator import ObservationSimulator


logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _parse_site(value):
    if value is None or value == "all":
        return None
    return int(value)


def _parse_position(value):
    if not value:
        return None
    lat, lon = value.split(",")
    return Position(latitude=float(lat), longitude=float(lon))


def log_ranking(engine: ProximityEngine, catalog: AssetCatalog, site, query: str, placer=None) -> None:
    rows = engine.rank(catalog, site=site, query=query)
    if not rows:
        logger.info("没有匹配当前过滤条件的资产")
        return
    for row in rows:
        view = row.view
        feet = to_feet(view.distance_estimate)
        distance = f"{round(feet)} ft" if view.fresh and feet is not None else "Unknown"
        age = "Never" if view.last_seen_age is None else f"{format_age(view.last_seen_age)} ago"
        target = placer.target_for(row.asset.beacon) if placer else None
        logger.info(
            "%-28s %-9s %-12s %-16s 距离: %-8s 信号: %s dBm 最近: %s%s",
            row.asset.display_name,
            "Live" if view.fresh else "Out of range",
            view.stability.value,
            view.trend.value,
            distance,
            round(view.last_signal_strength) if view.last_signal_strength is not None else "—",
            age,
            f" 目标: ({target.latitude:.6f}, {target.longitude:.6f})" if target else "",
        )


def run_simulate(args):
    config = ConfigManager(args.config)
    if not config.get_simulation_config().get("enabled", True):
        logger.warning("仿真已在配置中关闭 (simulation.enabled=false)，不启动观测生成")
        return 0
    catalog = AssetCatalog(config)
    catalog.load()
    engine = ProximityEngine(config)
    simulator = ObservationSimulator(engine, catalog.all, config)
    simulator.site = _parse_site(args.site)
    if args.target:
        target = catalog.get(args.target)
        if target is None:
            logger.error("未找到资产: %s", args.target)
            return 1
        simulator.set_target(target.beacon)

    observer = _parse_position(args.observer)
    placer = GeoTargetPlacer(config)
    placer.place(catalog.unique_identities(), StaticLocationProvider(observer) if observer else None)

    stop = threading.Event()

    # graceful shutdown
    def handle_sigint(sig, frame):
        stop.set()

    previous = {s: signal.signal(s, handle_sigint) for s in (signal.SIGINT, signal.SIGTERM)}

    simulator.start()
    deadline = time.monotonic() + args.duration if args.duration else None
    try:
        while not stop.wait(args.interval):
            log_ranking(engine, catalog, simulator.site, args.query, placer)
            if deadline is not None and time.monotonic() >= deadline:
                break
    finally:
        simulator.stop()
        for s, handler in previous.items():
            signal.signal(s, handler)
    return 0


def run_mqtt(args):
    config = ConfigManager(args.config)
    engine = ProximityEngine(config)
    catalog = AssetCatalog(config)
    catalog.load()
    source = MQTTObservationSource(config, engine)

    t = threading.Thread(target=source.start_mqtt_client, daemon=True)
    t.start()

    # graceful shutdown
    def handle_sigint(sig, frame):
        source.stop_mqtt_client()
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_sigint)
    signal.signal(signal.SIGTERM, handle_sigint)

    while t.is_alive():
        t.join(args.interval)
        log_ranking(engine, catalog, _parse_site(args.site), args.query)
    return 0


def run_import(args):
    config = ConfigManager(args.config)
    catalog = AssetCatalog(config)
    catalog.load()
    result = catalog.import_csv(args.csv)
    for message in result.messages:
        logger.warning(message)
    logger.info("Imported: %d created, %d skipped, %d errors.", result.created, result.skipped, result.errors)
    return 0 if result.ok else 1


def run_commission(args):
    config = ConfigManager(args.config)
    catalog = AssetCatalog(config)
    catalog.load()
    try:
        asset = catalog.commission(args.major, args.minor, args.type, args.tag, args.hint)
    except ValueError as e:
        logger.error("登记失败: %s", e)
        return 1
    logger.info("已登记: %s id=%s 信标=%s", asset.display_name, asset.id, asset.beacon.key)
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(prog="beacon-proximity", description="Beacon proximity engine CLI")
    parser.add_argument("--config", default=None, help="配置文件路径，默认读取 ./config/config.yaml 或环境变量 BEACON_PROXIMITY_CONFIG")
    parser.add_argument("--log-level", default="INFO", help="日志级别")
    sub = parser.add_subparsers(dest="cmd")

    p_sim = sub.add_parser("simulate", help="运行合成观测并输出排序")
    p_sim.add_argument("--site", default="all", help="站点 major，all 表示全部")
    p_sim.add_argument("--query", default="", help="名称/标签/类型/minor 过滤")
    p_sim.add_argument("--target", default=None, help="模拟走向的资产 id")
    p_sim.add_argument("--observer", default=None, help="观察者坐标 lat,lon；缺省时使用参考点")
    p_sim.add_argument("--interval", type=float, default=2.0, help="输出排序的间隔（秒）")
    p_sim.add_argument("--duration", type=float, default=0.0, help="运行时长（秒），0 表示一直运行")
    p_sim.set_defaults(func=run_simulate)

    p_mqtt = sub.add_parser("mqtt", help="从 MQTT 接入真实观测")
    p_mqtt.add_argument("--site", default="all")
    p_mqtt.add_argument("--query", default="")
    p_mqtt.add_argument("--interval", type=float, default=2.0)
    p_mqtt.set_defaults(func=run_mqtt)

    p_imp = sub.add_parser("import", help="从 CSV 导入资产")
    p_imp.add_argument("csv")
    p_imp.set_defaults(func=run_import)

    p_com = sub.add_parser("commission", help="登记新的信标资产")
    p_com.add_argument("--major", type=int, required=True)
    p_com.add_argument("--minor", type=int, required=True)
    p_com.add_argument("--type", default="Access Point")
    p_com.add_argument("--tag", required=True)
    p_com.add_argument("--hint", default=None)
    p_com.set_defaults(func=run_commission)

    args = parser.parse_args(argv)
    setup_logging(args.log_level)
    # 无子命令时默认运行仿真
    if not hasattr(args, "func"):
        argv = sys.argv[1:] if argv is None else list(argv)
        args = parser.parse_args([*argv, "simulate"])
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
