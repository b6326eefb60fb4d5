"""Cardinality estimates from propagated registers.

Each node turns its register vector into an estimate of the number of
resource nodes within the propagation radius, the same way a HyperLogLog
sketch turns its buckets into a distinct count:

    Z = sum_j 2^-register[j]
    E = alpha(gamma) * gamma^2 / Z

with linear counting ``gamma * ln(gamma / V)`` replacing E in the small range
(``E <= 2.5 * gamma``) whenever V, the number of empty registers, is non-zero.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np

from resourcenetworks.calibration import CalibrationEngine
from resourcenetworks.network import ResourceNetwork

logger = logging.getLogger(__name__)

SMALL_RANGE_FACTOR = 2.5


def estimate_from_registers(
    registers: np.ndarray, alpha: float, log_context: dict[str, Any] | None = None
) -> np.ndarray:
    """Estimates for a matrix of register vectors, one row per node.

    Rows whose harmonic sum underflows to zero (registers saturated at a
    huge value) get estimate 0 and a warning, logged with ``log_context``
    as ``extra``.
    """
    registers = np.asarray(registers)
    gamma = registers.shape[1]
    z = np.exp2(-registers.astype(np.float64)).sum(axis=1)

    degenerate = z == 0.0
    for node in np.flatnonzero(degenerate):
        logger.warning("Node %d has Z = 0.0; recording estimate 0", node, extra=log_context)

    safe_z = np.where(degenerate, 1.0, z)
    raw = alpha * gamma * gamma / safe_z

    empty = np.count_nonzero(registers == 0, axis=1)
    small_range = (raw <= SMALL_RANGE_FACTOR * gamma) & (empty != 0)
    linear = gamma * np.log(gamma / np.where(empty == 0, 1, empty))

    estimate = np.where(small_range, linear, raw)
    estimate[degenerate] = 0.0
    return estimate


def calculate_estimates(
    network: ResourceNetwork,
    calibration: CalibrationEngine | None = None,
) -> ResourceNetwork:
    """Compute every node's estimate from its current registers.

    The calibration constant is looked up once for the whole network.

    Args:
        network: Network whose registers have been propagated.
        calibration: Engine providing alpha; a private in-memory engine is
            used when omitted.

    Returns:
        The same network, for chaining.
    """
    engine = calibration if calibration is not None else CalibrationEngine()
    alpha = engine.alpha(network.registers_per_node)
    context = network.log_context()
    network.commit_estimates(estimate_from_registers(network.registers, alpha, context))
    logger.debug(
        "Estimates computed for %d nodes (alpha=%.6f, mean=%.3f)",
        network.num_nodes,
        alpha,
        float(network.estimate.mean()) if network.num_nodes else 0.0,
        extra=context,
    )
    return network
