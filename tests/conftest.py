"""
Pytest configuration and shared fixtures for the beacon proximity engine tests.
"""

import pytest
import numpy as np

from beacon_proximity.asset_catalog import AssetCatalog
from beacon_proximity.config_manager import ConfigManager
from beacon_proximity.engine import ProximityEngine
from beacon_proximity.models import ORG_UUID, Asset, BeaconIdentity


@pytest.fixture
def config(tmp_path) -> ConfigManager:
    """Read-only configuration with all defaults, isolated in tmp_path."""
    return ConfigManager(str(tmp_path / "config.yaml"), persist=False)


@pytest.fixture
def engine(config) -> ProximityEngine:
    return ProximityEngine(config)


@pytest.fixture
def catalog() -> AssetCatalog:
    """Built-in five asset fixture (two sites, two assets excluded from simulation)."""
    c = AssetCatalog()
    c.load_fixture()
    return c


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


def make_identity(minor: int, major: int = 23456) -> BeaconIdentity:
    return BeaconIdentity(uuid=ORG_UUID, major=major, minor=minor)


def make_asset(
    asset_id: str,
    name: str,
    minor: int,
    major: int = 23456,
    asset_type: str = "Switch",
    simulate: bool = True,
) -> Asset:
    return Asset(
        id=asset_id,
        display_name=name,
        asset_type=asset_type,
        asset_tag=f"T{minor}",
        site_major=major,
        beacon=make_identity(minor, major),
        simulate=simulate,
    )
