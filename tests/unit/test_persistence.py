"""Tests for SimulationRecord and SimulationDatabase."""

import subprocess

import pytest

from resourcenetworks.persistence import (
    UNKNOWN_REVISION,
    SimulationDatabase,
    SimulationRecord,
    source_revision,
)


def _record(graph_type="grid", p=0.2, estimate=(1.5, 2.0)) -> SimulationRecord:
    return SimulationRecord(
        graph_type=graph_type,
        graph_parameters={"periodic": True},
        num_nodes=len(estimate),
        register_width=6,
        message_bits=6144,
        resource_probability=p,
        radius=12,
        estimate=list(estimate),
        selected_marker_nodes=[1],
        ground_truth=[1, 2],
        argmax_ground_truth_node=1,
        has_resource=[True, False],
        source_revision="abc123",
    )


@pytest.fixture
def database(tmp_path) -> SimulationDatabase:
    db = SimulationDatabase(tmp_path / "runs" / "simulations.db")
    db.initialize()
    return db


class TestSimulationRecord:
    """Tests for record serialization."""

    def test_timestamp_defaults_to_now(self):
        assert _record().timestamp.endswith("+00:00")

    def test_to_dict(self):
        data = _record().to_dict()
        assert data["graph_parameters"] == {"periodic": True}
        assert data["estimate"] == [1.5, 2.0]


class TestSimulationDatabase:
    """Tests for the sqlite store."""

    def test_initialize_is_idempotent(self, database):
        database.initialize()
        assert database.path.exists()

    def test_save_and_load(self, database):
        record = _record()
        [simulation_id] = database.save([record])

        [loaded] = database.load([simulation_id])

        assert loaded == record

    def test_ids_increase(self, database):
        ids = database.save([_record(), _record()])
        assert ids[1] == ids[0] + 1

    def test_run_query_filters(self, database):
        database.save([_record("grid", 0.2), _record("grid", 0.5), _record("ring", 0.2)])

        matches = database.run_query(
            "SELECT id FROM simulations WHERE graph_type = ? AND p = ?", ("grid", 0.2)
        )

        assert len(matches) == 1
        assert matches[0].graph_type == "grid"
        assert matches[0].resource_probability == 0.2

    def test_select_star_query(self, database):
        database.save([_record(), _record("ring")])
        assert len(database.run_query("SELECT * FROM simulations")) == 2

    def test_load_missing_id(self, database):
        with pytest.raises(KeyError, match="no simulation"):
            database.load([42])


class TestSourceRevision:
    """Tests for source_revision."""

    def test_returns_git_output(self, monkeypatch):
        def fake_run(cmd, **kwargs):
            assert cmd[:2] == ["git", "log"]
            return subprocess.CompletedProcess(cmd, 0, stdout="deadbeef\n", stderr="")

        monkeypatch.setattr(subprocess, "run", fake_run)
        assert source_revision() == "deadbeef"

    def test_unknown_without_git(self, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise FileNotFoundError("git")

        monkeypatch.setattr(subprocess, "run", fake_run)
        assert source_revision() == UNKNOWN_REVISION

    def test_unknown_on_git_failure(self, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise subprocess.CalledProcessError(128, cmd)

        monkeypatch.setattr(subprocess, "run", fake_run)
        assert source_revision() == UNKNOWN_REVISION
