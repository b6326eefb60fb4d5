"""Storage of finished runs.

A SimulationRecord is everything one protocol run produced, together with the
parameters and source revision that produced it. SimulationDatabase keeps
records in a single sqlite table so ensembles can be filtered later with
plain SQL, e.g.::

    db = SimulationDatabase("simulations.db")
    db.initialize()
    db.save(records)
    grid_runs = db.run_query(
        "SELECT id FROM simulations WHERE graph_type = ? AND p = ?", ("grid", 0.2)
    )

Vector fields are stored as JSON text.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import subprocess
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

UNKNOWN_REVISION = "unknown"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS simulations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    graph_type TEXT NOT NULL,
    graph_parameters TEXT NOT NULL,
    N INTEGER NOT NULL,
    l INTEGER NOT NULL,
    m INTEGER NOT NULL,
    p REAL NOT NULL,
    R INTEGER NOT NULL,
    timestamp TEXT NOT NULL,
    source_revision TEXT NOT NULL,
    estimate TEXT NOT NULL,
    selected_marker_nodes TEXT NOT NULL,
    ground_truth TEXT NOT NULL,
    argmax_ground_truth_node INTEGER NOT NULL,
    has_resource TEXT NOT NULL
)
"""

_COLUMNS = (
    "graph_type",
    "graph_parameters",
    "N",
    "l",
    "m",
    "p",
    "R",
    "timestamp",
    "source_revision",
    "estimate",
    "selected_marker_nodes",
    "ground_truth",
    "argmax_ground_truth_node",
    "has_resource",
)


def utc_timestamp() -> str:
    return datetime.now(tz=UTC).isoformat()


def source_revision(path: str | Path | None = None) -> str:
    """Hash of the last git commit touching ``path`` (the repository if None).

    Returns "unknown" when git is missing or the path is not tracked.
    """
    cmd = ["git", "log", "-n", "1", "--pretty=format:%H"]
    cwd = None
    if path is not None:
        path = Path(path)
        cwd = path if path.is_dir() else path.parent
        cmd += ["--", str(path.resolve())]
    try:
        completed = subprocess.run(
            cmd, cwd=cwd, capture_output=True, text=True, check=True, timeout=10
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.info("Could not determine source revision: %s", exc)
        return UNKNOWN_REVISION
    return completed.stdout.strip() or UNKNOWN_REVISION


@dataclass
class SimulationRecord:
    """Inputs and outputs of one protocol run.

    Attributes:
        graph_type: Name of the topology family, e.g. "grid".
        graph_parameters: Parameters of the topology generator.
        num_nodes: N.
        register_width: l.
        message_bits: m.
        resource_probability: p.
        radius: R.
        estimate: Per-node estimates before marker flooding.
        selected_marker_nodes: Nodes still holding a marker after flooding.
        ground_truth: Exact per-node counts within radius R.
        argmax_ground_truth_node: Node with the largest exact count.
        has_resource: Per-node resource flags.
        timestamp: ISO-8601 UTC creation time.
        source_revision: Revision of the code that produced the run.
    """

    graph_type: str
    graph_parameters: dict[str, Any]
    num_nodes: int
    register_width: int
    message_bits: int
    resource_probability: float
    radius: int
    estimate: list[float]
    selected_marker_nodes: list[int]
    ground_truth: list[int]
    argmax_ground_truth_node: int
    has_resource: list[bool]
    timestamp: str = field(default_factory=utc_timestamp)
    source_revision: str = UNKNOWN_REVISION

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_row(self) -> tuple[Any, ...]:
        """Values in ``simulations`` column order (without id)."""
        return (
            self.graph_type,
            json.dumps(self.graph_parameters, sort_keys=True),
            self.num_nodes,
            self.register_width,
            self.message_bits,
            self.resource_probability,
            self.radius,
            self.timestamp,
            self.source_revision,
            json.dumps(self.estimate),
            json.dumps(self.selected_marker_nodes),
            json.dumps(self.ground_truth),
            self.argmax_ground_truth_node,
            json.dumps(self.has_resource),
        )

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> SimulationRecord:
        return cls(
            graph_type=row["graph_type"],
            graph_parameters=json.loads(row["graph_parameters"]),
            num_nodes=row["N"],
            register_width=row["l"],
            message_bits=row["m"],
            resource_probability=row["p"],
            radius=row["R"],
            estimate=json.loads(row["estimate"]),
            selected_marker_nodes=json.loads(row["selected_marker_nodes"]),
            ground_truth=json.loads(row["ground_truth"]),
            argmax_ground_truth_node=row["argmax_ground_truth_node"],
            has_resource=json.loads(row["has_resource"]),
            timestamp=row["timestamp"],
            source_revision=row["source_revision"],
        )


class SimulationDatabase:
    """sqlite-backed store of SimulationRecords.

    Each call opens its own connection, so a database object can be shared
    by worker threads; sqlite serialises the writes.

    Args:
        path: Database file.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._path, timeout=30)
        connection.row_factory = sqlite3.Row
        return connection

    def initialize(self) -> None:
        """Create the ``simulations`` table if it does not exist."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        connection = self._connect()
        try:
            with connection:
                connection.execute(_SCHEMA)
        finally:
            connection.close()
        logger.info("Simulation database ready: %s", self._path)

    def save(self, records: Iterable[SimulationRecord]) -> list[int]:
        """Insert records; returns their new ids in order."""
        placeholders = ", ".join("?" for _ in _COLUMNS)
        statement = f"INSERT INTO simulations ({', '.join(_COLUMNS)}) VALUES ({placeholders})"
        ids: list[int] = []
        connection = self._connect()
        try:
            with connection:
                for record in records:
                    cursor = connection.execute(statement, record.to_row())
                    ids.append(cursor.lastrowid)
        finally:
            connection.close()
        logger.debug("Saved %d simulations to %s", len(ids), self._path)
        return ids

    def load(self, ids: Sequence[int]) -> list[SimulationRecord]:
        """Records for ``ids``, in the order given.

        Raises:
            KeyError: If an id does not exist.
        """
        records = []
        connection = self._connect()
        try:
            for simulation_id in ids:
                row = connection.execute(
                    "SELECT * FROM simulations WHERE id = ?", (simulation_id,)
                ).fetchone()
                if row is None:
                    raise KeyError(f"no simulation with id {simulation_id}")
                records.append(SimulationRecord.from_row(row))
        finally:
            connection.close()
        return records

    def matching_ids(self, query: str, params: Sequence[Any] = ()) -> list[int]:
        """Ids selected by ``query``, which must return an ``id`` column."""
        connection = self._connect()
        try:
            return [row["id"] for row in connection.execute(query, params)]
        finally:
            connection.close()

    def run_query(self, query: str, params: Sequence[Any] = ()) -> list[SimulationRecord]:
        """Records whose ids ``query`` selects."""
        return self.load(self.matching_ids(query, params))
