"""Unit tests for the synthetic observation generator."""

import time

import numpy as np
import pytest

from beacon_proximity.simulator import ObservationSimulator

from conftest import make_asset


@pytest.fixture
def simulator(engine, catalog, config, rng) -> ObservationSimulator:
    return ObservationSimulator(engine, catalog.all, config, rng=rng)


class TestEligibility:
    def test_skips_assets_excluded_from_simulation(self, simulator, engine):
        assert [a.id for a in simulator.eligible()] == ["a1", "a2", "a3"]
        assert simulator.tick(now=0.0) == 3
        assert len(engine.states()) == 3

    def test_site_filter(self, simulator):
        simulator.site = 9567
        assert [a.id for a in simulator.eligible()] == ["a3"]

    def test_capped_to_first_twelve_in_catalog_order(self, engine, config, rng):
        assets = [make_asset(f"x{i}", f"Item {i}", 100 + i) for i in range(20)]
        sim = ObservationSimulator(engine, assets, config, rng=rng)
        assert [a.id for a in sim.eligible()] == [f"x{i}" for i in range(12)]
        assert sim.tick(now=0.0) == 12


class TestTruthModel:
    def test_initial_distance_range(self, engine, config):
        assets = [make_asset(f"x{i}", f"Item {i}", 100 + i) for i in range(12)]
        for seed in range(20):
            sim = ObservationSimulator(engine, assets, config, rng=np.random.default_rng(seed))
            sim.tick(now=float(seed))
            for a in assets:
                # first step already applied drift + noise
                assert 6.0 - 0.35 <= sim.true_distance(a.beacon) <= 31.0 + 0.35

    def test_walk_toward_target_is_monotonic_and_clamped(self, simulator, catalog):
        target = catalog.get("a1").beacon
        simulator.set_target(target)
        assert simulator.target == target.key
        previous = None
        for i in range(700):
            simulator.tick(now=i * 650.0)
            d = simulator.true_distance(target)
            assert 0.8 <= d <= 35.0
            if previous is not None:
                assert d <= previous
            previous = d
        assert simulator.true_distance(target) == pytest.approx(0.8)

    def test_idle_entities_stay_in_range(self, simulator, catalog):
        for i in range(2000):
            simulator.tick(now=i * 650.0)
        for a in simulator.eligible():
            assert 0.8 <= simulator.true_distance(a.beacon) <= 35.0
        # slow outward drift dominates over a long run
        assert all(simulator.true_distance(a.beacon) > 25.0 for a in simulator.eligible())

    def test_changing_target_keeps_other_truths(self, simulator, catalog):
        a1, a2 = catalog.get("a1").beacon, catalog.get("a2").beacon
        simulator.set_target(a1)
        for i in range(10):
            simulator.tick(now=i * 650.0)
        before = simulator.true_distance(a2)
        simulator.set_target(a2)
        assert simulator.true_distance(a2) == before
        simulator.set_target(None)
        assert simulator.target is None

    def test_truth_is_separate_from_estimate(self, simulator, engine, catalog):
        a1 = catalog.get("a1").beacon
        simulator.tick(now=0.0)
        assert engine.state(a1).ema_distance == simulator.true_distance(a1)
        simulator.tick(now=650.0)
        # median + EMA smoothing lags behind the raw truth
        assert engine.state(a1).samples[-1] == simulator.true_distance(a1)
        assert engine.state(a1).last_signal_strength is not None


class TestRssiModel:
    def test_log_distance_path_loss(self, simulator):
        for _ in range(200):
            assert -50 <= simulator.rssi_for(1.0) <= -40
            assert -68 <= simulator.rssi_for(10.0) <= -58

    def test_rssi_is_integer(self, simulator):
        assert isinstance(simulator.rssi_for(3.3), int)


class TestTimer:
    def test_start_and_stop_release_the_thread(self, engine, catalog, config):
        config.get_simulation_config()["tick_ms"] = 10
        sim = ObservationSimulator(engine, catalog.all, config, rng=np.random.default_rng(0))
        sim.start()
        assert sim.running
        time.sleep(0.2)
        sim.stop(timeout=2.0)
        assert not sim.running
        assert len(engine.states()) == 3

    def test_stop_without_start(self, simulator):
        simulator.stop()
        assert not simulator.running
