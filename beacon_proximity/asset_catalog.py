from __future__ import annotations

import logging
import os
import uuid as uuidlib
from typing import Dict, Iterator, List, Optional, cast

import pandas as pd

from .config_manager import ConfigManager
from .models import ORG_UUID, Asset, BeaconIdentity, ImportResult, Site


logger = logging.getLogger(__name__)

COLUMNS = [
    "id",
    "display_name",
    "asset_type",
    "asset_tag",
    "site_major",
    "location_hint",
    "uuid",
    "major",
    "minor",
    "simulate",
]
REQUIRED_COLUMNS = ["asset_type", "asset_tag", "major", "minor"]

DEFAULT_SITES = [
    Site(major=23456, name="23456 - BHM JS Tech II"),
    Site(major=9567, name="09567 - Microsoft Data Center"),
]

DEFAULT_ASSETS = [
    {"id": "a1", "asset_type": "Access Point", "asset_tag": "C1234", "site_major": 23456,
     "location_hint": "IDF-2, Rack A", "major": 23456, "minor": 501, "simulate": True},
    {"id": "a2", "asset_type": "Switch", "asset_tag": "C2388", "site_major": 23456,
     "location_hint": "MDF, Rack B", "major": 23456, "minor": 502, "simulate": True},
    {"id": "a3", "asset_type": "Cradlepoint", "asset_tag": "C9910", "site_major": 9567,
     "location_hint": "Trailer, Network Cabinet", "major": 9567, "minor": 601, "simulate": True},
    {"id": "a4", "asset_type": "Access Point", "asset_tag": "C4501", "site_major": 9567,
     "location_hint": "IDF-1, Rack C", "major": 9567, "minor": 602, "simulate": False},
    {"id": "a5", "asset_type": "Switch", "asset_tag": "C4502", "site_major": 9567,
     "location_hint": "MDF, Rack D", "major": 9567, "minor": 603, "simulate": False},
]


def display_name_for(asset_type: str, asset_tag: str) -> str:
    return f"{asset_type} – {asset_tag}"


def _to_bool(v) -> bool:
    if isinstance(v, str):
        return v.strip().lower() not in ("0", "false", "no", "")
    if pd.isna(v):
        return True
    return bool(v)


def _blank(v) -> bool:
    if v is None:
        return True
    if isinstance(v, str):
        return not v.strip()
    return bool(pd.isna(v))


class AssetCatalog:
    """资产清单（pandas + CSV），索引为资产 id，保持清单顺序"""

    def __init__(self, config_manager: Optional[ConfigManager] = None, sites: Optional[List[Site]] = None):
        self._df = pd.DataFrame(columns=COLUMNS[1:])
        self._df.index.name = "id"
        self._config = config_manager
        self._sites: Dict[int, Site] = {s.major: s for s in (sites or DEFAULT_SITES)}

    # ---- Utils ----
    def _normalize_df(self, df: pd.DataFrame) -> pd.DataFrame:
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise KeyError(f"CSV 文件缺少列: {missing}")
        df = df.copy()
        if "id" not in df.columns:
            df["id"] = [f"a{i + 1}" for i in range(len(df))]
        if "uuid" not in df.columns:
            df["uuid"] = ORG_UUID
        df["uuid"] = df["uuid"].fillna(ORG_UUID).astype(str)
        for col in ["major", "minor"]:
            df[col] = pd.to_numeric(df[col], errors="coerce")
        # major/minor 非法的行直接丢弃
        df = df.dropna(subset=["major", "minor"])
        df = df.astype({"major": "int64", "minor": "int64"})
        if "site_major" not in df.columns:
            df["site_major"] = df["major"]
        df["site_major"] = pd.to_numeric(df["site_major"], errors="coerce").fillna(df["major"]).astype("int64")
        if "display_name" not in df.columns:
            df["display_name"] = None
        names = pd.Series(
            [display_name_for(t, g) for t, g in zip(df["asset_type"].astype(str), df["asset_tag"].astype(str))],
            index=df.index,
        )
        df["display_name"] = df["display_name"].where(df["display_name"].notna(), names)
        if "location_hint" not in df.columns:
            df["location_hint"] = None
        if "simulate" not in df.columns:
            df["simulate"] = True
        df["simulate"] = df["simulate"].map(_to_bool)
        df["id"] = df["id"].astype(str)

        df = df[COLUMNS].drop_duplicates(subset=["id"], keep="last").set_index("id")
        df.index.name = "id"
        return df

    @staticmethod
    def _row_to_asset(asset_id, row: pd.Series) -> Asset:
        hint = row.at["location_hint"]
        return Asset(
            id=str(asset_id),
            display_name=str(row.at["display_name"]),
            asset_type=str(row.at["asset_type"]),
            asset_tag=str(row.at["asset_tag"]),
            site_major=int(row.at["site_major"]),
            beacon=BeaconIdentity(uuid=str(row.at["uuid"]), major=int(row.at["major"]), minor=int(row.at["minor"])),
            location_hint=None if hint is None or pd.isna(hint) else str(hint),
            simulate=bool(row.at["simulate"]),
        )

    @staticmethod
    def _asset_to_row(asset: Asset) -> dict:
        return {
            "display_name": asset.display_name,
            "asset_type": asset.asset_type,
            "asset_tag": asset.asset_tag,
            "site_major": asset.site_major,
            "location_hint": asset.location_hint,
            "uuid": asset.beacon.uuid,
            "major": asset.beacon.major,
            "minor": asset.beacon.minor,
            "simulate": asset.simulate,
        }

    def _default_path(self) -> Optional[str]:
        return self._config.get_asset_db_path() if self._config else None

    # ---- Load/Save ----
    def load(self, asset_file_path: Optional[str] = None) -> None:
        csv_path = asset_file_path or self._default_path()
        if not csv_path or not os.path.exists(csv_path):
            logger.info("资产清单 %s 不存在，使用内置示例", csv_path)
            self.load_fixture()
            return
        try:
            df = pd.read_csv(csv_path, dtype={"id": str, "uuid": str})
            self._df = self._normalize_df(df)
            logger.info("已加载 %d 个资产: %s", len(self._df), csv_path)
        except (OSError, KeyError, ValueError, pd.errors.ParserError) as e:
            # 出错时使用示例，保证系统可运行
            logger.warning("加载资产清单 %s 失败，使用内置示例: %s", csv_path, e)
            self.load_fixture()

    def load_fixture(self) -> None:
        self._df = self._normalize_df(pd.DataFrame(DEFAULT_ASSETS))

    def save(self, asset_file_path: Optional[str] = None) -> None:
        csv_path = asset_file_path or self._default_path()
        if not csv_path:
            return
        os.makedirs(os.path.dirname(csv_path) or ".", exist_ok=True)
        # 保存为 CSV（将索引写为列 id）
        self._df.to_csv(csv_path, index=True, index_label="id", encoding="utf-8")

    def import_csv(self, csv_path: str) -> ImportResult:
        """导入 CSV：已存在的 id 跳过，缺字段或 major/minor 非法的行计为错误"""
        result = ImportResult()
        try:
            raw = pd.read_csv(csv_path, dtype={"id": str, "uuid": str})
        except (OSError, ValueError, pd.errors.ParserError) as e:
            result.errors += 1
            result.messages.append(f"无法读取 {csv_path}: {e}")
            return result
        missing = [c for c in REQUIRED_COLUMNS if c not in raw.columns]
        if missing:
            result.errors += 1
            result.messages.append(f"CSV 文件缺少列: {missing}")
            return result

        for idx, row in raw.iterrows():
            row_s = cast(pd.Series, row)
            major = pd.to_numeric(row_s.get("major"), errors="coerce")
            minor = pd.to_numeric(row_s.get("minor"), errors="coerce")
            if pd.isna(major) or pd.isna(minor) or int(major) <= 0 or int(minor) <= 0:
                result.errors += 1
                result.messages.append(f"第 {idx} 行 major/minor 非法")
                continue
            if _blank(row_s.get("asset_type")) or _blank(row_s.get("asset_tag")):
                result.errors += 1
                result.messages.append(f"第 {idx} 行缺少 asset_type/asset_tag")
                continue
            asset_id = row_s.get("id")
            if asset_id is None or pd.isna(asset_id):
                asset_id = self._new_id()
            if str(asset_id) in self._df.index:
                result.skipped += 1
                continue
            one = self._normalize_df(pd.DataFrame([{**row_s.to_dict(), "id": str(asset_id)}]))
            self._df = pd.concat([self._df, one])
            result.created += 1

        if result.created:
            self.save()
        logger.info(
            "导入完成: %d 新建, %d 跳过, %d 错误", result.created, result.skipped, result.errors
        )
        return result

    # ---- CRUD ----
    def _new_id(self) -> str:
        return f"m{uuidlib.uuid4().hex[:12]}"

    def commission(
        self,
        site_major: int,
        minor: int,
        asset_type: str,
        asset_tag: str,
        location_hint: Optional[str] = None,
    ) -> Asset:
        """登记新信标资产，挂在组织 UUID 下"""
        if not site_major or not minor:
            raise ValueError("major 与 minor 必须为非零整数")
        asset = Asset(
            id=self._new_id(),
            display_name=display_name_for(asset_type, asset_tag),
            asset_type=asset_type,
            asset_tag=asset_tag,
            site_major=int(site_major),
            beacon=BeaconIdentity(uuid=ORG_UUID, major=int(site_major), minor=int(minor)),
            location_hint=location_hint,
        )
        # 新登记的资产排在最前
        row = pd.DataFrame([self._asset_to_row(asset)], index=pd.Index([asset.id], name="id"))
        self._df = pd.concat([row, self._df])
        self.save()
        logger.info("已登记资产 %s (%s)", asset.display_name, asset.beacon.key)
        return asset

    def delete(self, asset_id: str) -> bool:
        if asset_id in self._df.index:
            self._df = self._df.drop(index=asset_id)
            self.save()
            return True
        return False

    # ---- Accessors ----
    def __len__(self) -> int:
        return len(self._df)

    def __iter__(self) -> Iterator[Asset]:
        for asset_id, row in self._df.iterrows():
            yield self._row_to_asset(asset_id, cast(pd.Series, row))

    def has(self, asset_id: str) -> bool:
        return asset_id in self._df.index

    def get(self, asset_id: str) -> Optional[Asset]:
        if asset_id not in self._df.index:
            return None
        return self._row_to_asset(asset_id, cast(pd.Series, self._df.loc[asset_id]))

    def all(self) -> List[Asset]:
        return list(self)

    def filter(self, site: Optional[int] = None, query: str = "") -> List[Asset]:
        return [a for a in self if (site is None or a.site_major == site) and a.matches(query)]

    def unique_identities(self) -> List[BeaconIdentity]:
        seen: Dict[str, BeaconIdentity] = {}
        for asset in self:
            seen.setdefault(asset.beacon.key, asset.beacon)
        return list(seen.values())

    @property
    def sites(self) -> List[Site]:
        return list(self._sites.values())

    def site_name(self, major: int) -> str:
        site = self._sites.get(major)
        return site.name if site else "Project"
