"""Synchronous flooding rounds over a resource network.

Both protocols here are bulk-synchronous: in each round every node computes
its next value from a frozen snapshot of the previous round, and the whole
next state is committed at once.

Register propagation is max-consensus on sketches. Max is idempotent and
associative, so after R rounds register j of node i holds the maximum of
register j over every node within R hops of i, and R1 rounds followed by R2
rounds equal R1 + R2 rounds.

Marker propagation is leader election by value flooding. Each node adopts the
largest estimate among its neighbours when it beats its own, and drops its
marker the first time that happens. With at least diameter-many rounds, the
surviving markers of a connected component all hold the component maximum.
"""

from __future__ import annotations

import logging

import numpy as np

from resourcenetworks.errors import InvalidArgumentError
from resourcenetworks.network import ResourceNetwork

logger = logging.getLogger(__name__)


def propagate_registers(network: ResourceNetwork, rounds: int) -> ResourceNetwork:
    """Run ``rounds`` register max-consensus rounds.

    Args:
        network: Network to update.
        rounds: Number of rounds (R >= 0).

    Returns:
        The same network, for chaining.

    Raises:
        InvalidArgumentError: If rounds is negative.
    """
    if rounds < 0:
        raise InvalidArgumentError(f"rounds must be non-negative, got {rounds}")

    sources, targets = network.topology.edge_arrays()
    for round_index in range(rounds):
        current = network.registers
        next_registers = current.copy()
        if sources.size:
            np.maximum.at(next_registers, sources, current[targets])
        network.commit_registers(next_registers)
        logger.debug(
            "Register round %d/%d committed",
            round_index + 1,
            rounds,
            extra=network.log_context(radius=rounds, round=round_index + 1),
        )

    return network


def propagate_markers(network: ResourceNetwork, rounds: int | None = None) -> ResourceNetwork:
    """Flood maximum estimates and clear the markers of dominated nodes.

    The round budget is fixed: all rounds run even if a fixpoint is reached
    earlier. N rounds always suffice since the diameter is below N.

    Args:
        network: Network whose estimates are already computed.
        rounds: Number of rounds (M >= 0). Defaults to the node count.

    Returns:
        The same network, for chaining.

    Raises:
        InvalidArgumentError: If rounds is negative.
    """
    budget = network.num_nodes if rounds is None else rounds
    if budget < 0:
        raise InvalidArgumentError(f"rounds must be non-negative, got {budget}")

    sources, targets = network.topology.edge_arrays()
    for round_index in range(budget):
        current = network.estimate
        best_neighbour = np.full(network.num_nodes, -np.inf)
        if sources.size:
            np.maximum.at(best_neighbour, sources, current[targets])

        dominated = best_neighbour > current
        network.commit_markers(
            np.where(dominated, best_neighbour, current),
            network.is_marker & ~dominated,
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Marker round %d/%d: %d markers left",
                round_index + 1,
                budget,
                int(network.is_marker.sum()),
                extra=network.log_context(round=round_index + 1),
            )

    return network
