"""Unit tests for the pandas/CSV backed asset catalog."""

import pandas as pd
import pytest

from beacon_proximity.asset_catalog import AssetCatalog
from beacon_proximity.config_manager import ConfigManager
from beacon_proximity.models import ORG_UUID


@pytest.fixture
def stored_config(tmp_path) -> ConfigManager:
    config = ConfigManager(str(tmp_path / "config.yaml"), persist=False)
    config.get_paths()["asset_db"] = str(tmp_path / "beacon" / "assets.csv")
    return config


class TestFixture:
    def test_missing_file_loads_fixture(self, stored_config):
        catalog = AssetCatalog(stored_config)
        catalog.load()
        assert len(catalog) == 5
        assert [a.id for a in catalog] == ["a1", "a2", "a3", "a4", "a5"]

    def test_fixture_contents(self, catalog):
        a1 = catalog.get("a1")
        assert a1.display_name == "Access Point – C1234"
        assert a1.beacon.key == f"{ORG_UUID}|23456|501"
        assert a1.location_hint == "IDF-2, Rack A"
        assert a1.simulate
        assert not catalog.get("a4").simulate
        assert catalog.get("missing") is None

    def test_filter(self, catalog):
        assert [a.id for a in catalog.filter(site=9567)] == ["a3", "a4", "a5"]
        assert [a.id for a in catalog.filter(query="C9910")] == ["a3"]
        assert [a.id for a in catalog.filter(query="502")] == ["a2", "a5"]
        assert len(catalog.filter()) == 5

    def test_sites(self, catalog):
        assert catalog.site_name(23456) == "23456 - BHM JS Tech II"
        assert catalog.site_name(1) == "Project"
        assert [s.major for s in catalog.sites] == [23456, 9567]

    def test_unique_identities(self, catalog):
        idents = catalog.unique_identities()
        assert len(idents) == 5
        assert len({i.key for i in idents}) == 5


class TestLoadSave:
    def test_load_csv(self, tmp_path):
        path = tmp_path / "assets.csv"
        pd.DataFrame(
            [
                {"id": "x1", "asset_type": "Switch", "asset_tag": "S1", "major": 7, "minor": 70, "simulate": False},
                {"id": "x2", "asset_type": "Router", "asset_tag": "R2", "major": 7, "minor": 71},
            ]
        ).to_csv(path, index=False)
        catalog = AssetCatalog()
        catalog.load(str(path))
        assert [a.id for a in catalog] == ["x1", "x2"]
        x1 = catalog.get("x1")
        assert x1.display_name == "Switch – S1"
        assert x1.site_major == 7
        assert x1.beacon.uuid == ORG_UUID
        assert not x1.simulate
        assert catalog.get("x2").simulate
        assert catalog.get("x2").location_hint is None

    def test_unreadable_csv_falls_back_to_fixture(self, tmp_path):
        path = tmp_path / "assets.csv"
        path.write_text("name,colour\nfoo,blue\n", encoding="utf-8")
        catalog = AssetCatalog()
        catalog.load(str(path))
        assert len(catalog) == 5

    def test_commission_persists(self, stored_config):
        catalog = AssetCatalog(stored_config)
        catalog.load()
        asset = catalog.commission(23456, 777, "Switch", "C7777")
        assert asset.display_name == "Switch – C7777"
        assert asset.beacon.uuid == ORG_UUID
        assert asset.beacon.major == 23456 and asset.beacon.minor == 777
        assert next(iter(catalog)).id == asset.id

        reloaded = AssetCatalog(stored_config)
        reloaded.load()
        again = reloaded.get(asset.id)
        assert again is not None
        assert again.beacon == asset.beacon
        assert again.simulate
        assert again.location_hint is None

    @pytest.mark.parametrize("major, minor", [(0, 1), (1, 0)])
    def test_commission_rejects_zero(self, catalog, major, minor):
        with pytest.raises(ValueError):
            catalog.commission(major, minor, "Switch", "C1")

    def test_delete(self, catalog):
        assert catalog.delete("a1")
        assert not catalog.delete("a1")
        assert not catalog.has("a1")
        assert len(catalog) == 4


class TestImport:
    def test_import_counts(self, catalog, tmp_path):
        path = tmp_path / "import.csv"
        pd.DataFrame(
            [
                {"id": "a1", "asset_type": "Access Point", "asset_tag": "C1234", "major": 23456, "minor": 501},
                {"id": "n1", "asset_type": "Switch", "asset_tag": "C5555", "major": 23456, "minor": 555},
                {"id": "bad", "asset_type": "Switch", "asset_tag": "C6666", "major": "abc", "minor": 556},
            ]
        ).to_csv(path, index=False)
        result = catalog.import_csv(str(path))
        assert (result.created, result.skipped, result.errors) == (1, 1, 1)
        assert not result.ok
        assert catalog.get("n1").display_name == "Switch – C5555"
        assert len(catalog) == 6

    def test_import_missing_columns(self, catalog, tmp_path):
        path = tmp_path / "import.csv"
        path.write_text("id,name\nq,w\n", encoding="utf-8")
        result = catalog.import_csv(str(path))
        assert result.errors == 1 and result.created == 0
        assert len(catalog) == 5

    def test_import_missing_file(self, catalog, tmp_path):
        result = catalog.import_csv(str(tmp_path / "nope.csv"))
        assert result.errors == 1

    def test_import_blank_type_or_tag_is_error(self, catalog, tmp_path):
        path = tmp_path / "import.csv"
        path.write_text(
            "asset_type,asset_tag,major,minor\n"
            ",,23456,777\n"
            "Switch,,23456,778\n"
            "  ,C7790,23456,779\n"
            "Switch,C7800,23456,780\n",
            encoding="utf-8",
        )
        result = catalog.import_csv(str(path))
        assert (result.created, result.skipped, result.errors) == (1, 0, 3)
        assert len(catalog) == 6
        assert all("nan" not in a.display_name for a in catalog)
        assert [a.display_name for a in catalog.filter(query="C7800")] == ["Switch – C7800"]
