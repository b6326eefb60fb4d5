"""Error metrics comparing sketch estimates against exact counts.

All functions take ``(estimate, truth)`` vectors of equal length. Relative
errors divide by the true count; nodes whose true count is zero are handled
explicitly: an estimate of zero there is a perfect answer, any other estimate
has an infinite relative error.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from resourcenetworks.errors import InvalidArgumentError

if TYPE_CHECKING:
    from resourcenetworks.persistence import SimulationRecord

EPSILON = float(np.finfo(np.float64).eps)

ArrayLike = Sequence[float] | np.ndarray


def as_pair(estimate: ArrayLike, truth: ArrayLike) -> tuple[np.ndarray, np.ndarray]:
    x = np.asarray(estimate, dtype=np.float64)
    y = np.asarray(truth, dtype=np.float64)
    if x.shape != y.shape or x.ndim != 1:
        raise InvalidArgumentError(
            f"estimate and truth must be vectors of equal length, got {x.shape} and {y.shape}"
        )
    return x, y


def _relative_errors(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Relative errors over nodes with non-zero truth or both values zero."""
    valid = (y != 0) | (x == 0)
    return np.abs(x[valid] - y[valid]) / np.maximum(y[valid], EPSILON)


def rmse(estimate: ArrayLike, truth: ArrayLike) -> float:
    """Root mean square error."""
    x, y = as_pair(estimate, truth)
    return float(np.sqrt(np.mean((x - y) ** 2)))


def mae(estimate: ArrayLike, truth: ArrayLike) -> float:
    """Mean absolute error."""
    x, y = as_pair(estimate, truth)
    return float(np.mean(np.abs(x - y)))


def mre(estimate: ArrayLike, truth: ArrayLike) -> float:
    """Mean relative error; 0.0 when no node qualifies."""
    errors = _relative_errors(*as_pair(estimate, truth))
    return float(np.mean(errors)) if errors.size else 0.0


def medre(estimate: ArrayLike, truth: ArrayLike) -> float:
    """Median relative error; 0.0 when no node qualifies."""
    errors = _relative_errors(*as_pair(estimate, truth))
    return float(np.median(errors)) if errors.size else 0.0


def frac_re_lt(estimate: ArrayLike, truth: ArrayLike, threshold: float = 0.5) -> float:
    """Fraction of nodes whose relative error is below ``threshold``.

    Nodes with zero truth count as below the threshold when their estimate is
    also zero and as above it otherwise; every node is in the denominator.
    """
    x, y = as_pair(estimate, truth)
    if x.size == 0:
        return 0.0
    nonzero = y != 0
    below = np.zeros(x.shape, dtype=bool)
    below[nonzero] = np.abs(x[nonzero] - y[nonzero]) / y[nonzero] < threshold
    below[~nonzero] = x[~nonzero] == 0
    return float(np.count_nonzero(below) / x.size)


def summarize(estimate: ArrayLike, truth: ArrayLike, threshold: float = 0.5) -> dict[str, float]:
    """All metrics for one run, plus the mean true count."""
    x, y = as_pair(estimate, truth)
    return {
        "rmse": rmse(x, y),
        "mae": mae(x, y),
        "mre": mre(x, y),
        "medre": medre(x, y),
        "frac_re_lt": frac_re_lt(x, y, threshold),
        "mean_truth": float(np.mean(y)) if y.size else 0.0,
    }


def ensemble_summary(
    records: Iterable[SimulationRecord],
    threshold: float = 0.5,
) -> pd.DataFrame:
    """One row of metrics per run, with the run's parameters.

    ``frame.mean(numeric_only=True)`` gives the ensemble averages.
    """
    rows = []
    for record in records:
        row = {
            "graph_type": record.graph_type,
            "N": record.num_nodes,
            "l": record.register_width,
            "m": record.message_bits,
            "R": record.radius,
            "p": record.resource_probability,
            "markers": len(record.selected_marker_nodes),
        }
        row.update(summarize(record.estimate, record.ground_truth, threshold))
        rows.append(row)
    return pd.DataFrame(rows)
