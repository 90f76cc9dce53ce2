"""Beacon proximity engine package.

This package provides:
- ProximityEngine: per-beacon observation ingestion, freshness and ranking
- DistanceFilter: median pre-filter + EMA distance smoothing
- RangeClassifier: stability (MAD) and trend (EMA delta) labels
- ObservationSimulator: synthetic RSSI/distance observations on a fixed tick
- GeoTargetPlacer / GeoCrossCheck: target placement and GPS cross-check distance
- AssetCatalog: pandas/CSV backed asset inventory
- MQTTObservationSource: MQTT ingestion of real observations
"""

from .asset_catalog import AssetCatalog
from .classifier import RangeClassifier
from .config_manager import ConfigManager
from .engine import ProximityEngine
from .filters import DistanceFilter
from .freshness import FreshnessTracker
from .geo import GeoCrossCheck, GeoTargetPlacer, haversine_distance
from .models import Asset, BeaconIdentity, RangeState, RangeView, Stability, Trend
from .mqtt_processor import MQTTObservationSource
from .simulator import ObservationSimulator

__all__ = [
    "AssetCatalog",
    "Asset",
    "BeaconIdentity",
    "ConfigManager",
    "DistanceFilter",
    "FreshnessTracker",
    "GeoCrossCheck",
    "GeoTargetPlacer",
    "MQTTObservationSource",
    "ObservationSimulator",
    "ProximityEngine",
    "RangeClassifier",
    "RangeState",
    "RangeView",
    "Stability",
    "Trend",
    "haversine_distance",
]
