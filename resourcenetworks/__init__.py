"""Distributed resource counting and leader election on graphs.

Nodes of a network each know whether they hold a resource. Exchanging only
fixed-size sketches with their neighbours, they estimate how many resources
lie within R hops (a HyperLogLog generalised to graphs), then elect the nodes
with the locally largest estimate by flooding.

Example:
    import networkx as nx
    import numpy as np
    from resourcenetworks import (
        AdjacencyTopology, CalibrationEngine, calculate_estimates,
        generate_network, ground_truth, propagate_markers, propagate_registers,
    )

    grid = AdjacencyTopology.from_networkx(nx.grid_2d_graph(100, 100, periodic=True))
    has_resource = np.random.default_rng(1).random(len(grid)) < 0.5
    network = generate_network(grid, has_resource, message_bits=5 * 64, register_width=5, rng=1)

    propagate_registers(network, rounds=2)
    calculate_estimates(network, CalibrationEngine())
    propagate_markers(network)
    exact = ground_truth(network, radius=2)

Logging is silent by default; see ``enable_console_logging``.
"""

import logging

from resourcenetworks.calibration import (
    CalibrationCache,
    CalibrationEngine,
    FileCalibrationCache,
    InMemoryCalibrationCache,
    alpha,
    compute_alpha,
)
from resourcenetworks.config import ExperimentConfig
from resourcenetworks.errors import InvalidArgumentError, InvalidConfigurationError
from resourcenetworks.estimation import calculate_estimates
from resourcenetworks.experiment import run_ensemble, run_experiment
from resourcenetworks.ground_truth import count_resources_within_radius, ground_truth
from resourcenetworks.logging_config import (
    configure_from_env,
    disable_logging,
    enable_console_logging,
    enable_file_logging,
    enable_json_logging,
    set_level,
    set_module_level,
)
from resourcenetworks.metrics import frac_re_lt, mae, medre, mre, rmse
from resourcenetworks.network import ResourceNetwork, generate_network
from resourcenetworks.persistence import SimulationDatabase, SimulationRecord
from resourcenetworks.propagation import propagate_markers, propagate_registers
from resourcenetworks.topology import AdjacencyTopology, Topology

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    # Topology
    "AdjacencyTopology",
    "Topology",
    # Protocol
    "ResourceNetwork",
    "calculate_estimates",
    "generate_network",
    "propagate_markers",
    "propagate_registers",
    # Calibration
    "CalibrationCache",
    "CalibrationEngine",
    "FileCalibrationCache",
    "InMemoryCalibrationCache",
    "alpha",
    "compute_alpha",
    # Validation
    "count_resources_within_radius",
    "frac_re_lt",
    "ground_truth",
    "mae",
    "medre",
    "mre",
    "rmse",
    # Experiments
    "ExperimentConfig",
    "SimulationDatabase",
    "SimulationRecord",
    "run_ensemble",
    "run_experiment",
    # Errors
    "InvalidArgumentError",
    "InvalidConfigurationError",
    # Logging
    "configure_from_env",
    "disable_logging",
    "enable_console_logging",
    "enable_file_logging",
    "enable_json_logging",
    "set_level",
    "set_module_level",
]
