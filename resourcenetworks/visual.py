"""Plots of estimate accuracy.

Both functions render with matplotlib's Agg backend straight to a file, so
they work on headless machines running long ensembles.
"""

from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402

from resourcenetworks.metrics import ArrayLike, as_pair  # noqa: E402


def plot_estimate_vs_truth(
    estimate: ArrayLike,
    truth: ArrayLike,
    path: str | Path,
    title: str = "Sketch estimate vs exact count",
) -> Path:
    """Scatter per-node estimates against exact counts, with the identity line."""
    x, y = as_pair(estimate, truth)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(figsize=(6, 5))
    ax.scatter(y, x, s=6, alpha=0.5, label="nodes")
    upper = float(max(x.max(initial=0.0), y.max(initial=0.0))) or 1.0
    ax.plot([0, upper], [0, upper], color="red", lw=1, label="exact")
    ax.set_xlabel("Exact count within R")
    ax.set_ylabel("Estimate")
    ax.set_title(title)
    ax.legend()
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)
    return path


def plot_relative_error_histogram(
    estimate: ArrayLike,
    truth: ArrayLike,
    path: str | Path,
    bins: int = 100,
    limit: float = 0.1,
) -> Path:
    """Density histogram of ``(truth - estimate) / truth`` over nodes with truth > 0.

    Args:
        estimate: Per-node estimates.
        truth: Per-node exact counts.
        path: Output image file.
        bins: Number of bins across ``[-limit, limit]``.
        limit: Half-width of the plotted error range.
    """
    x, y = as_pair(estimate, truth)
    counted = y != 0
    errors = (y[counted] - x[counted]) / y[counted]
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(figsize=(6, 4.5))
    ax.hist(errors, bins=np.linspace(-limit, limit, bins + 1), density=True)
    if errors.size:
        ax.axvline(float(np.mean(errors)), color="red", lw=1, label=f"mean = {np.mean(errors):.4f}")
        ax.legend()
    ax.set_xlabel("(F_R - E) / F_R")
    ax.set_ylabel("Density")
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)
    return path
