"""Tests for the calibration constant and its caches."""

import json
import threading

import pytest

from resourcenetworks.calibration import (
    CalibrationCache,
    CalibrationEngine,
    FileCalibrationCache,
    InMemoryCalibrationCache,
    alpha,
    calibration_integral,
    compute_alpha,
    integrand_precision,
)
from resourcenetworks.errors import InvalidArgumentError


class TestComputeAlpha:
    """Tests for the numeric integration of alpha."""

    @pytest.mark.parametrize("gamma,expected", [(16, 0.673), (32, 0.697), (64, 0.709)])
    def test_matches_published_constants(self, gamma, expected):
        """Flajolet et al. tabulate alpha_16, alpha_32 and alpha_64 to 3 digits."""
        assert compute_alpha(gamma) == pytest.approx(expected, abs=5e-4)

    @pytest.mark.parametrize("gamma", [128, 1024, 4096])
    def test_matches_large_gamma_approximation(self, gamma):
        """For large gamma alpha ~ 0.7213 / (1 + 1.079 / gamma)."""
        assert compute_alpha(gamma) == pytest.approx(0.7213 / (1 + 1.079 / gamma), abs=2e-4)

    @pytest.mark.parametrize("gamma", [1024, 2048, 4096])
    def test_large_gamma_integrates_in_bounded_work(self, gamma):
        """Register counts used in practice converge without hitting the depth limit."""
        result = calibration_integral(gamma)

        assert not result.max_depth_reached
        assert result.evaluations < 100_000
        assert result.error <= integrand_precision(gamma) * result.value + 1e-16
        assert 1.0 / (gamma * result.value) == pytest.approx(
            0.7213 / (1 + 1.079 / gamma), abs=2e-4
        )

    def test_integrand_precision_grows_with_gamma(self):
        assert integrand_precision(4096) > integrand_precision(16) > 0

    def test_gamma_two(self):
        """Integrand has a non-zero limit at s = 0 when gamma = 2."""
        value = compute_alpha(2)
        assert 0.3 < value < 0.6

    @pytest.mark.parametrize("gamma", [0, -4])
    def test_rejects_non_positive_gamma(self, gamma):
        with pytest.raises(InvalidArgumentError, match="positive"):
            compute_alpha(gamma)

    def test_rejects_divergent_gamma_one(self):
        with pytest.raises(InvalidArgumentError, match="diverges"):
            compute_alpha(1)

    def test_rejects_non_integer_gamma(self):
        with pytest.raises(InvalidArgumentError, match="int"):
            compute_alpha(16.0)


class TestCalibrationEngine:
    """Tests for cached lookups."""

    def test_second_call_is_cache_hit(self):
        engine = CalibrationEngine()

        first = engine.alpha(16)
        second = engine.alpha(16)

        assert first == second
        assert engine.integrations == 1

    def test_distinct_gammas_integrate_separately(self):
        engine = CalibrationEngine()
        engine.alpha(16)
        engine.alpha(32)
        engine.alpha(16)

        assert engine.integrations == 2

    def test_prefilled_cache_skips_integration(self):
        cache = InMemoryCalibrationCache({64: 0.5})
        engine = CalibrationEngine(cache)

        assert engine.alpha(64) == 0.5
        assert engine.integrations == 0

    def test_stores_result_in_cache(self):
        cache = InMemoryCalibrationCache()
        value = CalibrationEngine(cache).alpha(16)

        assert cache.get(16) == value
        assert 16 in cache

    def test_rejects_invalid_gamma_before_cache_lookup(self):
        class ExplodingCache:
            def get(self, gamma):
                raise AssertionError("cache consulted")

            def put(self, gamma, value):
                raise AssertionError("cache written")

        with pytest.raises(InvalidArgumentError):
            CalibrationEngine(ExplodingCache()).alpha(0)

    def test_module_level_alpha_uses_cache(self):
        cache = InMemoryCalibrationCache({16: 0.25})
        assert alpha(16, cache) == 0.25

    def test_caches_satisfy_protocol(self, tmp_path):
        assert isinstance(InMemoryCalibrationCache(), CalibrationCache)
        assert isinstance(FileCalibrationCache(tmp_path / "a.json"), CalibrationCache)


class TestFileCalibrationCache:
    """Tests for the persisted cache."""

    def test_miss_on_missing_file(self, tmp_path):
        assert FileCalibrationCache(tmp_path / "alpha.json").get(16) is None

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "alpha.json"
        value = CalibrationEngine(FileCalibrationCache(path)).alpha(16)

        engine = CalibrationEngine(FileCalibrationCache(path))
        assert engine.alpha(16) == value
        assert engine.integrations == 0

    def test_put_merges_with_other_writers(self, tmp_path):
        path = tmp_path / "alpha.json"
        writer_a = FileCalibrationCache(path)
        writer_b = FileCalibrationCache(path)

        writer_a.put(16, 0.673)
        writer_b.put(32, 0.697)

        assert json.loads(path.read_text()) == {"16": 0.673, "32": 0.697}

    def test_exact_float_round_trip(self, tmp_path):
        cache = FileCalibrationCache(tmp_path / "alpha.json")
        value = compute_alpha(32)
        cache.put(32, value)

        assert cache.get(32) == value

    def test_unreadable_file_is_a_miss(self, tmp_path, caplog):
        path = tmp_path / "alpha.json"
        path.write_text("not json")

        assert FileCalibrationCache(path).get(16) is None
        assert "unreadable" in caplog.text

    def test_concurrent_writers_keep_every_key(self, tmp_path):
        cache = FileCalibrationCache(tmp_path / "alpha.json")
        threads = [
            threading.Thread(target=cache.put, args=(gamma, float(gamma)))
            for gamma in (2, 4, 8, 16, 32, 64)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert all(cache.get(gamma) == float(gamma) for gamma in (2, 4, 8, 16, 32, 64))

    def test_clear(self, tmp_path):
        cache = FileCalibrationCache(tmp_path / "alpha.json")
        cache.put(16, 1.0)
        cache.clear()
        cache.clear()

        assert not cache.path.exists()
