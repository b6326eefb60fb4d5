"""Tests for ResourceNetwork and sketch initialization."""

import logging

import numpy as np
import pytest

from resourcenetworks.errors import InvalidConfigurationError
from resourcenetworks.network import ResourceNetwork, generate_network
from resourcenetworks.topology import AdjacencyTopology


def _grid(n: int) -> AdjacencyTopology:
    edges = []
    for row in range(n):
        for col in range(n):
            node = row * n + col
            if col + 1 < n:
                edges.append((node, node + 1))
            if row + 1 < n:
                edges.append((node, node + n))
    return AdjacencyTopology.from_edges(n * n, edges)


class TestGenerateNetwork:
    """Tests for the sketch initializer."""

    def test_dimensions(self, path5):
        network = generate_network(path5, [True] * 5, message_bits=64, register_width=4, rng=1)

        assert network.registers_per_node == 16
        assert network.registers.shape == (5, 16)
        assert network.max_register_value == 15

    def test_one_nonzero_register_per_resource_node(self):
        topology = _grid(10)
        has_resource = np.arange(100) % 3 == 0
        network = generate_network(topology, has_resource, 320, 5, rng=7)

        nonzero = np.count_nonzero(network.registers, axis=1)
        assert np.all(nonzero[has_resource] == 1)
        assert np.all(nonzero[~has_resource] == 0)

    def test_register_values_fit_width(self):
        network = generate_network(_grid(10), [True] * 100, 64, 2, rng=3)

        assert network.registers.min() >= 0
        assert network.registers.max() <= 3

    def test_initial_estimates_and_markers(self, path5):
        network = generate_network(path5, [True, False, True, False, True], 64, 4, rng=1)

        assert np.all(network.estimate == 0.0)
        assert np.all(network.is_marker)

    def test_same_seed_same_registers(self):
        topology = _grid(8)
        flags = np.ones(64, dtype=bool)
        first = generate_network(topology, flags, 320, 5, rng=42)
        second = generate_network(topology, flags, 320, 5, rng=42)

        assert np.array_equal(first.registers, second.registers)

    def test_accepts_generator(self, path5):
        rng = np.random.default_rng(5)
        network = generate_network(path5, [True] * 5, 64, 4, rng=rng)
        assert np.count_nonzero(network.registers) == 5

    def test_ranks_are_geometric(self):
        """Rank x follows Geometric(1/2) on {1, 2, ...}: about half are 1."""
        network = generate_network(_grid(40), np.ones(1600, dtype=bool), 64, 8, rng=11)
        ranks = network.registers.max(axis=1)

        assert ranks.min() >= 1
        assert 0.45 < np.mean(ranks == 1) < 0.55
        assert 0.20 < np.mean(ranks == 2) < 0.30

    def test_overflow_is_clamped_with_warning(self, caplog):
        """With l = 1 every rank above 1 is clamped to 2^1 - 1."""
        with caplog.at_level(logging.WARNING, logger="resourcenetworks"):
            network = generate_network(_grid(10), np.ones(100, dtype=bool), 2, 1, rng=2)

        assert network.registers.max() == 1
        assert "Capping register sample" in caplog.text

    def test_rejects_non_power_of_two(self, path5):
        with pytest.raises(InvalidConfigurationError, match="power of two"):
            generate_network(path5, [True] * 5, message_bits=60, register_width=5)

    def test_rejects_single_register(self, path5):
        with pytest.raises(InvalidConfigurationError, match="at least 2"):
            generate_network(path5, [True] * 5, message_bits=4, register_width=4)

    def test_rejects_wrong_flag_count(self, path5):
        with pytest.raises(InvalidConfigurationError, match="one flag per node"):
            generate_network(path5, [True] * 4, 64, 4)


class TestResourceNetworkState:
    """Tests for the double-buffered state API."""

    @pytest.fixture
    def network(self, path5):
        return ResourceNetwork(path5, [True] * 5, 8, 4, np.zeros((5, 2), dtype=np.int64))

    def test_exposed_arrays_are_read_only(self, network):
        with pytest.raises(ValueError):
            network.registers[0, 0] = 3
        with pytest.raises(ValueError):
            network.estimate[0] = 1.0
        with pytest.raises(ValueError):
            network.is_marker[0] = False

    def test_commit_registers_swaps_whole_matrix(self, network):
        before = network.registers
        network.commit_registers(np.full((5, 2), 7))

        assert np.all(network.registers == 7)
        assert np.all(before == 0)

    def test_commit_registers_rejects_overflow(self, network):
        with pytest.raises(InvalidConfigurationError, match="register values"):
            network.commit_registers(np.full((5, 2), 16))

    def test_commit_registers_rejects_wrong_shape(self, network):
        with pytest.raises(InvalidConfigurationError, match="shape"):
            network.commit_registers(np.zeros((5, 3)))

    def test_commit_markers_rejects_decreasing_estimate(self, network):
        network.commit_estimates(np.ones(5))
        with pytest.raises(ValueError, match="decrease"):
            network.commit_markers(np.zeros(5), np.ones(5, dtype=bool))

    def test_commit_markers_rejects_restored_marker(self, network):
        cleared = np.array([False, True, True, True, True])
        network.commit_markers(np.zeros(5), cleared)
        with pytest.raises(ValueError, match="restored"):
            network.commit_markers(np.zeros(5), np.ones(5, dtype=bool))

    def test_marker_nodes(self, network):
        network.commit_markers(np.zeros(5), np.array([True, False, False, True, False]))
        assert network.marker_nodes.tolist() == [0, 3]
