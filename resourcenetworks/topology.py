"""Graph topologies the protocol runs on.

The protocol only needs a node count and neighbour enumeration over node ids
``0..N-1``. Any object with ``number_of_nodes()`` and ``neighbors(node)``
satisfies the Topology protocol, including networkx graphs whose nodes are
labelled ``0..N-1`` or ``1..N``; the latter are shifted to 0-based ids on
conversion. AdjacencyTopology is the concrete, immutable implementation used
throughout the package; it also reads and writes the plain-text adjacency list
format used to exchange graphs between experiments.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import numpy as np

from resourcenetworks.errors import InvalidConfigurationError

if TYPE_CHECKING:
    import networkx as nx

logger = logging.getLogger(__name__)


@runtime_checkable
class Topology(Protocol):
    """Undirected simple graph with nodes ``0..N-1``."""

    def number_of_nodes(self) -> int:
        """Number of nodes N."""
        ...

    def neighbors(self, node: int) -> Iterable[int]:
        """Neighbour ids of ``node``."""
        ...


class AdjacencyTopology:
    """Immutable undirected simple graph stored as sorted adjacency lists.

    Args:
        adjacency: One neighbour sequence per node. Ids are 0-based. Every
            edge must appear in both endpoint lists; duplicates collapse.

    Raises:
        InvalidConfigurationError: On out-of-range ids, self loops or
            asymmetric adjacency.

    Example:
        path = AdjacencyTopology.from_edges(5, [(0, 1), (1, 2), (2, 3), (3, 4)])
        assert list(path.neighbors(2)) == [1, 3]
    """

    __slots__ = ("_adjacency", "_edge_arrays")

    def __init__(self, adjacency: Sequence[Iterable[int]]):
        n = len(adjacency)
        lists: list[tuple[int, ...]] = []
        for node, neighbours in enumerate(adjacency):
            unique = sorted({int(v) for v in neighbours})
            for v in unique:
                if not 0 <= v < n:
                    raise InvalidConfigurationError(
                        f"node {node} has neighbour {v} outside [0, {n})"
                    )
                if v == node:
                    raise InvalidConfigurationError(f"self loop at node {node}")
            lists.append(tuple(unique))

        for node, neighbours in enumerate(lists):
            for v in neighbours:
                if node not in lists[v]:
                    raise InvalidConfigurationError(
                        f"edge {node}-{v} is not listed at node {v}; graph must be undirected"
                    )

        self._adjacency: tuple[tuple[int, ...], ...] = tuple(lists)
        self._edge_arrays: tuple[np.ndarray, np.ndarray] | None = None

    @classmethod
    def from_edges(cls, num_nodes: int, edges: Iterable[tuple[int, int]]) -> AdjacencyTopology:
        """Build a topology from an undirected edge list."""
        if num_nodes < 0:
            raise InvalidConfigurationError(f"num_nodes must be non-negative, got {num_nodes}")
        adjacency: list[set[int]] = [set() for _ in range(num_nodes)]
        for u, v in edges:
            if not (0 <= u < num_nodes and 0 <= v < num_nodes):
                raise InvalidConfigurationError(
                    f"edge ({u}, {v}) outside [0, {num_nodes})"
                )
            adjacency[u].add(v)
            adjacency[v].add(u)
        return cls(adjacency)

    @classmethod
    def from_networkx(cls, graph: nx.Graph) -> AdjacencyTopology:
        """Convert a networkx graph, relabelling nodes in iteration order.

        Grid graphs from ``networkx.grid_2d_graph`` have tuple labels; those
        become ``0..N-1`` in ``graph.nodes`` order.
        """
        if graph.is_directed():
            raise InvalidConfigurationError("directed graphs are not supported")
        index = {node: i for i, node in enumerate(graph.nodes)}
        adjacency = [[index[v] for v in graph.neighbors(node)] for node in graph.nodes]
        return cls(adjacency)

    @classmethod
    def load_adjacency_list(cls, path: str | Path) -> tuple[AdjacencyTopology, str]:
        """Read a topology from the plain-text adjacency list format.

        The file starts with ``# Title: <title>`` and ``# Number of nodes: <N>``,
        then one more comment line and a blank line, then N lines of
        space-separated 0-based neighbour ids.

        Returns:
            The topology and its title.
        """
        with open(path, encoding="utf-8") as handle:
            title = handle.readline().split(": ", 1)[1].strip()
            num_nodes = int(handle.readline().split(": ", 1)[1])
            handle.readline()
            handle.readline()
            adjacency = [
                [int(token) for token in handle.readline().split()]
                for _ in range(num_nodes)
            ]
        logger.debug("Loaded %d-node topology %r from %s", num_nodes, title, path)
        return cls(adjacency), title

    def save_adjacency_list(self, path: str | Path, title: str) -> Path:
        """Write the topology in the plain-text adjacency list format."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(f"# Title: {title}\n")
            handle.write(f"# Number of nodes: {self.number_of_nodes()}\n")
            handle.write("# Each line contains space-separated neighbor indices for that node\n")
            handle.write("\n")
            for neighbours in self._adjacency:
                handle.write(" ".join(str(v) for v in neighbours) + "\n")
        return path

    def number_of_nodes(self) -> int:
        return len(self._adjacency)

    def neighbors(self, node: int) -> tuple[int, ...]:
        return self._adjacency[node]

    def degree(self, node: int) -> int:
        return len(self._adjacency[node])

    @property
    def edge_count(self) -> int:
        """Number of undirected edges."""
        return sum(len(n) for n in self._adjacency) // 2

    def edge_arrays(self) -> tuple[np.ndarray, np.ndarray]:
        """Directed ``(source, target)`` index arrays, both directions of every edge."""
        if self._edge_arrays is None:
            sources = np.fromiter(
                (u for u, nbrs in enumerate(self._adjacency) for _ in nbrs),
                dtype=np.intp,
            )
            targets = np.fromiter(
                (v for nbrs in self._adjacency for v in nbrs),
                dtype=np.intp,
            )
            self._edge_arrays = (sources, targets)
        return self._edge_arrays

    def __len__(self) -> int:
        return len(self._adjacency)

    def __repr__(self) -> str:
        return f"AdjacencyTopology(nodes={self.number_of_nodes()}, edges={self.edge_count})"


def as_adjacency_topology(topology: Topology) -> AdjacencyTopology:
    """Return ``topology`` as an AdjacencyTopology, converting if needed.

    Node ids may be ``0..N-1`` or ``1..N``; 1-based ids are shifted down by
    one. Graphs that expose their labels (networkx graphs) are checked up
    front. Graphs with other labels go through ``AdjacencyTopology.from_networkx``.

    Raises:
        InvalidConfigurationError: If the node ids are not one of the two
            consecutive ranges, or the graph is directed.
    """
    if isinstance(topology, AdjacencyTopology):
        return topology
    is_directed = getattr(topology, "is_directed", None)
    if is_directed is not None and is_directed():
        raise InvalidConfigurationError("directed graphs are not supported")

    n = topology.number_of_nodes()
    offset = 0
    labels = getattr(topology, "nodes", None)
    if labels is not None:
        ids = set(labels)
        if n and ids == set(range(1, n + 1)):
            offset = 1
        elif ids != set(range(n)):
            raise InvalidConfigurationError(
                f"node ids must be 0..{n - 1} or 1..{n}; "
                "relabel other graphs with AdjacencyTopology.from_networkx"
            )

    try:
        adjacency = [
            [int(v) - offset for v in topology.neighbors(node + offset)] for node in range(n)
        ]
    except KeyError as exc:
        raise InvalidConfigurationError(
            f"topology has no node {exc.args[0]!r}; node ids must be 0..{n - 1} or 1..{n}"
        ) from exc
    return AdjacencyTopology(adjacency)
