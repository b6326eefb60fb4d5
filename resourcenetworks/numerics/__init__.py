"""Numerical methods used by the calibration engine."""

from resourcenetworks.numerics.integration import (
    EPSILON,
    QuadratureResult,
    integrate_adaptive_simpson,
)

__all__ = [
    "EPSILON",
    "QuadratureResult",
    "integrate_adaptive_simpson",
]
