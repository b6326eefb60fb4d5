"""Per-node sketch state of a resource network.

A ResourceNetwork couples a topology with the resource flags of its nodes and
the state the protocol evolves: one register vector per node, one estimate per
node and one marker flag per node. Rounds never write into the arrays the
network exposes. Each round builds a fresh next-state buffer and hands it to a
``commit_*`` method, which validates it and swaps it in whole, so a reader sees
either the previous round or the next one and nothing in between.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import numpy as np

from resourcenetworks.config import registers_per_node
from resourcenetworks.errors import InvalidConfigurationError
from resourcenetworks.topology import AdjacencyTopology, Topology, as_adjacency_topology

logger = logging.getLogger(__name__)

RandomSource = np.random.Generator | int | None


def _read_only(array: np.ndarray) -> np.ndarray:
    view = array.view()
    view.flags.writeable = False
    return view


class ResourceNetwork:
    """Sketch state of every node in a topology.

    Prefer ``generate_network`` to build one; the constructor takes an
    explicit register matrix and is mostly useful for tests and for
    replaying stored runs.

    Args:
        topology: Graph of N nodes. Borrowed for the lifetime of the network.
        has_resource: N booleans.
        message_bits: Sketch size per node in bits (m).
        register_width: Bits per register (l).
        registers: N x (m // l) matrix of register values in [0, 2^l - 1].

    Raises:
        InvalidConfigurationError: If dimensions disagree or a register does
            not fit in ``register_width`` bits.
    """

    def __init__(
        self,
        topology: Topology,
        has_resource: Sequence[bool] | np.ndarray,
        message_bits: int,
        register_width: int,
        registers: np.ndarray,
    ):
        self._topology: AdjacencyTopology = as_adjacency_topology(topology)
        n = self._topology.number_of_nodes()

        flags = np.array(has_resource, dtype=bool)
        if flags.shape != (n,):
            raise InvalidConfigurationError(
                f"has_resource must have one flag per node ({n}), got shape {flags.shape}"
            )

        self._message_bits = message_bits
        self._register_width = register_width
        self._registers_per_node = registers_per_node(message_bits, register_width)
        self._max_register = (1 << register_width) - 1

        self._has_resource = flags
        self._registers = self._checked_registers(registers)
        self._estimate = np.zeros(n, dtype=np.float64)
        self._is_marker = np.ones(n, dtype=bool)

    def _checked_registers(self, registers: np.ndarray) -> np.ndarray:
        matrix = np.array(registers, dtype=np.int64)
        expected = (self.num_nodes, self._registers_per_node)
        if matrix.shape != expected:
            raise InvalidConfigurationError(
                f"registers must have shape {expected}, got {matrix.shape}"
            )
        if matrix.size and (matrix.min() < 0 or matrix.max() > self._max_register):
            raise InvalidConfigurationError(
                f"register values must be in [0, {self._max_register}]"
            )
        return matrix

    @property
    def topology(self) -> AdjacencyTopology:
        return self._topology

    @property
    def num_nodes(self) -> int:
        return self._topology.number_of_nodes()

    @property
    def message_bits(self) -> int:
        """Sketch size per node in bits (m)."""
        return self._message_bits

    @property
    def register_width(self) -> int:
        """Bits per register (l)."""
        return self._register_width

    @property
    def registers_per_node(self) -> int:
        """Registers per node (m // l), always a power of two."""
        return self._registers_per_node

    @property
    def max_register_value(self) -> int:
        """Largest value a register can hold, 2^l - 1."""
        return self._max_register

    @property
    def has_resource(self) -> np.ndarray:
        return _read_only(self._has_resource)

    @property
    def registers(self) -> np.ndarray:
        """Read-only N x (m // l) register matrix of the last committed round."""
        return _read_only(self._registers)

    @property
    def estimate(self) -> np.ndarray:
        """Read-only per-node estimates."""
        return _read_only(self._estimate)

    @property
    def is_marker(self) -> np.ndarray:
        """Read-only per-node marker flags."""
        return _read_only(self._is_marker)

    @property
    def marker_nodes(self) -> np.ndarray:
        """Ids of the nodes still holding a marker."""
        return np.flatnonzero(self._is_marker)

    def log_context(self, **fields: Any) -> dict[str, Any]:
        """Logging ``extra`` identifying this network, merged with ``fields``."""
        return {
            "num_nodes": self.num_nodes,
            "message_bits": self._message_bits,
            "register_width": self._register_width,
            "gamma": self._registers_per_node,
            **fields,
        }

    def commit_registers(self, next_registers: np.ndarray) -> None:
        """Replace the register matrix with a complete next-round matrix."""
        self._registers = self._checked_registers(next_registers)

    def commit_estimates(self, estimate: np.ndarray) -> None:
        """Replace the estimate vector computed from the current registers."""
        values = np.array(estimate, dtype=np.float64)
        if values.shape != (self.num_nodes,):
            raise InvalidConfigurationError(
                f"estimate must have shape ({self.num_nodes},), got {values.shape}"
            )
        self._estimate = values

    def commit_markers(self, estimate: np.ndarray, is_marker: np.ndarray) -> None:
        """Replace estimates and marker flags after one marker round.

        Raises:
            ValueError: If an estimate decreased or a marker was restored.
        """
        values = np.array(estimate, dtype=np.float64)
        markers = np.array(is_marker, dtype=bool)
        if values.shape != self._estimate.shape or markers.shape != self._is_marker.shape:
            raise InvalidConfigurationError("marker round produced arrays of the wrong shape")
        if np.any(values < self._estimate):
            raise ValueError("estimates must not decrease during marker propagation")
        if np.any(markers & ~self._is_marker):
            raise ValueError("a cleared marker cannot be restored")
        self._estimate = values
        self._is_marker = markers

    def __repr__(self) -> str:
        return (
            f"ResourceNetwork(nodes={self.num_nodes}, "
            f"resources={int(self._has_resource.sum())}, "
            f"m={self._message_bits}, l={self._register_width}, "
            f"markers={int(self._is_marker.sum())})"
        )


def generate_network(
    topology: Topology,
    has_resource: Sequence[bool] | np.ndarray,
    message_bits: int,
    register_width: int,
    rng: RandomSource = None,
) -> ResourceNetwork:
    """Build a network with freshly sampled sketches.

    Every resource node gets one observation: a register index drawn
    uniformly from ``[0, m // l)`` and a rank drawn from Geometric(1/2) on
    {1, 2, ...} (the position of the first set bit of a uniform hash). Ranks
    that do not fit in ``register_width`` bits are clamped to 2^l - 1 with a
    warning. All other registers are zero.

    Args:
        topology: Graph of N nodes.
        has_resource: N booleans.
        message_bits: Sketch size per node in bits (m).
        register_width: Bits per register (l).
        rng: numpy Generator or seed. Equal seeds give identical registers.

    Raises:
        InvalidConfigurationError: If m // l is not a power of two or the
            flags do not match the topology.
    """
    gamma = registers_per_node(message_bits, register_width)
    generator = np.random.default_rng(rng)
    adjacency = as_adjacency_topology(topology)
    n = adjacency.number_of_nodes()

    flags = np.array(has_resource, dtype=bool)
    if flags.shape != (n,):
        raise InvalidConfigurationError(
            f"has_resource must have one flag per node ({n}), got shape {flags.shape}"
        )

    holders = np.flatnonzero(flags)
    slots = generator.integers(0, gamma, size=holders.size)
    ranks = generator.geometric(0.5, size=holders.size).astype(np.int64)

    cap = (1 << register_width) - 1
    clamped = holders[ranks > cap]
    np.minimum(ranks, cap, out=ranks)

    registers = np.zeros((n, gamma), dtype=np.int64)
    registers[holders, slots] = ranks

    network = ResourceNetwork(adjacency, flags, message_bits, register_width, registers)
    for node in clamped:
        logger.warning(
            "Capping register sample at 2^%d - 1 for node %d",
            register_width,
            node,
            extra=network.log_context(),
        )
    logger.debug("Generated %r", network, extra=network.log_context())
    return network
