"""Exact resource counts within a hop radius.

The oracle the sketch estimates are validated against: for every node, a
breadth-first search bounded to R hops counts the resource nodes it reaches,
the node itself included. It plays no part in the protocol rounds.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Sequence

import numpy as np

from resourcenetworks.errors import InvalidArgumentError, InvalidConfigurationError
from resourcenetworks.network import ResourceNetwork
from resourcenetworks.topology import Topology, as_adjacency_topology

logger = logging.getLogger(__name__)


def count_resources_within_radius(
    topology: Topology,
    has_resource: Sequence[bool] | np.ndarray,
    radius: int,
) -> np.ndarray:
    """Count resource nodes within ``radius`` hops of every node.

    One visited-stamp array and one distance array serve all N searches: a
    node counts as visited in the current search when its stamp equals the
    current source, so nothing is cleared or reallocated between sources.

    Args:
        topology: Graph of N nodes.
        has_resource: N booleans.
        radius: Hop bound R >= 0.

    Returns:
        int64 array of N exact counts.

    Raises:
        InvalidArgumentError: If radius is negative.
    """
    if radius < 0:
        raise InvalidArgumentError(f"radius must be non-negative, got {radius}")

    graph = as_adjacency_topology(topology)
    n = graph.number_of_nodes()
    flags = np.asarray(has_resource, dtype=bool)
    if flags.shape != (n,):
        raise InvalidConfigurationError(
            f"has_resource must have one flag per node ({n}), got shape {flags.shape}"
        )
    resource = flags.tolist()

    counts = np.zeros(n, dtype=np.int64)
    stamp = [-1] * n
    distance = [0] * n
    frontier: deque[int] = deque()

    for source in range(n):
        stamp[source] = source
        distance[source] = 0
        frontier.append(source)
        found = 0

        while frontier:
            node = frontier.popleft()
            if resource[node]:
                found += 1
            if distance[node] == radius:
                continue
            for neighbour in graph.neighbors(node):
                if stamp[neighbour] != source:
                    stamp[neighbour] = source
                    distance[neighbour] = distance[node] + 1
                    frontier.append(neighbour)

        counts[source] = found

    logger.debug("Counted resources within radius %d for %d nodes", radius, n)
    return counts


def ground_truth(network: ResourceNetwork, radius: int) -> np.ndarray:
    """Exact counts for a network's own topology and resource flags."""
    return count_resources_within_radius(network.topology, network.has_resource, radius)
