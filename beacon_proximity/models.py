from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple
from enum import Enum


ORG_UUID = "2F234454-CF6D-4A0F-ADF2-F4911BA9FFA6"


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class GeoFix:
    position: Position
    accuracy: Optional[float] = None


@dataclass(frozen=True)
class BeaconIdentity:
    """iBeacon 三元组：组织 UUID + major + minor"""

    uuid: str
    major: int
    minor: int

    @property
    def key(self) -> str:
        return f"{self.uuid}|{self.major}|{self.minor}"

    @classmethod
    def parse(cls, key: str) -> "BeaconIdentity":
        parts = key.split("|")
        if len(parts) != 3:
            raise ValueError(f"无效的信标键: {key!r}")
        uuid, major, minor = parts
        return cls(uuid=uuid, major=int(major), minor=int(minor))

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class Site:
    major: int
    name: str


@dataclass(frozen=True)
class Asset:
    """绑定到单个信标的资产（由外部清单维护，引擎只读）"""

    id: str
    display_name: str
    asset_type: str
    asset_tag: str
    site_major: int
    beacon: BeaconIdentity
    location_hint: Optional[str] = None
    simulate: bool = True

    def matches(self, needle: str) -> bool:
        """大小写不敏感的自由文本匹配（名称/标签/类型/minor）"""
        needle = needle.strip().lower()
        if not needle:
            return True
        return (
            needle in (self.display_name or "").lower()
            or needle in (self.asset_tag or "").lower()
            or needle in (self.asset_type or "").lower()
            or needle in str(self.beacon.minor)
        )


@dataclass(frozen=True)
class RangeState:
    """
    单个信标的测距状态快照。
    每次 ingest 产生新的快照，旧快照不会被修改。
    """

    samples: Tuple[float, ...] = ()
    last_seen: float = 0.0
    ema_distance: Optional[float] = None
    last_ema_distance: Optional[float] = None
    mad_distance: Optional[float] = None
    delta_distance: Optional[float] = None
    last_signal_strength: Optional[float] = None


class Stability(Enum):
    WARMING_UP = "Warming up"
    STABLE = "Stable"
    MODERATE = "Moderate"
    UNSTABLE = "Unstable"

    @property
    def variant(self) -> str:
        if self is Stability.STABLE:
            return "default"
        if self is Stability.UNSTABLE:
            return "destructive"
        return "secondary"


class Trend(Enum):
    COLLECTING = "Collecting"
    FLAT = "Flat"
    GETTING_CLOSER = "Getting closer"
    GETTING_FARTHER = "Getting farther"


@dataclass(frozen=True)
class RangeView:
    """对外只读视图；失效（stale）时距离与信号强度为 None"""

    fresh: bool
    distance_estimate: Optional[float]
    stability: Stability
    trend: Trend
    last_seen_age: Optional[float]
    last_signal_strength: Optional[float]


@dataclass(frozen=True)
class RankedAsset:
    asset: Asset
    view: RangeView

    @property
    def key(self) -> str:
        return self.asset.beacon.key


@dataclass
class ImportResult:
    created: int = 0
    skipped: int = 0
    errors: int = 0
    messages: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.errors == 0
