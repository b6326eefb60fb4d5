"""Numerical integration.

Adaptive Simpson quadrature in pure Python, used to integrate the smooth
calibration integrands of the sketch estimator to near machine precision.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass


EPSILON = 2.220446049250313e-16

# A panel whose error estimate is within a few ulps of its value cannot be
# improved by bisection.
_ROUNDOFF = 4 * EPSILON


@dataclass(frozen=True)
class QuadratureResult:
    """Result of a quadrature.

    Attributes:
        value: Estimated integral.
        error: Accumulated error estimate over all accepted panels.
        evaluations: Number of integrand evaluations.
        max_depth_reached: Whether some panel was accepted only because the
            subdivision limit was hit.
    """

    value: float
    error: float
    evaluations: int
    max_depth_reached: bool = False


def _simpson(fa: float, fm: float, fb: float, h: float) -> float:
    """Simpson's rule on a panel of half-width h."""
    return h / 3.0 * (fa + 4.0 * fm + fb)


def integrate_adaptive_simpson(
    f: Callable[[float], float],
    a: float,
    b: float,
    abs_tol: float = 1e-10,
    rel_tol: float = 0.0,
    max_depth: int = 50,
    roundoff: float = _ROUNDOFF,
) -> QuadratureResult:
    """Integrate f over [a, b] with adaptive Simpson's rule.

    Panels are refined until the Richardson error estimate of each panel is
    below its share of ``max(abs_tol, rel_tol * |coarse estimate|)``. The
    refinement uses an explicit work stack, so tight tolerances do not grow
    the Python call stack.

    Args:
        f: Integrand, smooth on [a, b] and finite at both endpoints.
        a: Lower bound.
        b: Upper bound.
        abs_tol: Absolute error tolerance.
        rel_tol: Relative error tolerance.
        max_depth: Maximum number of bisections of a panel.
        roundoff: Relative precision of the integrand's values. A panel whose
            error estimate is below ``roundoff`` times its value is accepted,
            since further bisection only resolves evaluation noise.

    Returns:
        QuadratureResult with the integral and bookkeeping.

    Raises:
        ValueError: If a tolerance is negative or both are zero.
    """
    if abs_tol < 0 or rel_tol < 0:
        raise ValueError(f"tolerances must be non-negative, got {abs_tol}, {rel_tol}")
    if abs_tol == 0 and rel_tol == 0:
        raise ValueError("at least one of abs_tol and rel_tol must be positive")
    if roundoff < 0:
        raise ValueError(f"roundoff must be non-negative, got {roundoff}")

    if a == b:
        return QuadratureResult(0.0, 0.0, 0)
    if a > b:
        flipped = integrate_adaptive_simpson(f, b, a, abs_tol, rel_tol, max_depth, roundoff)
        return QuadratureResult(
            -flipped.value, flipped.error, flipped.evaluations, flipped.max_depth_reached
        )

    fa = f(a)
    fb = f(b)
    fm = f((a + b) / 2.0)
    evaluations = 3
    s_whole = _simpson(fa, fm, fb, (b - a) / 2.0)
    tol = max(abs_tol, rel_tol * abs(s_whole))

    total = 0.0
    error = 0.0
    hit_limit = False

    # (a, b, f(a), f(mid), f(b), simpson estimate, depth, panel tolerance)
    stack = [(a, b, fa, fm, fb, s_whole, 0, tol)]
    while stack:
        lo, hi, flo, fmid, fhi, s_panel, depth, panel_tol = stack.pop()
        mid = (lo + hi) / 2.0
        h = (hi - lo) / 4.0
        flm = f((lo + mid) / 2.0)
        frm = f((mid + hi) / 2.0)
        evaluations += 2

        s_left = _simpson(flo, flm, fmid, h)
        s_right = _simpson(fmid, frm, fhi, h)
        delta = (s_left + s_right - s_panel) / 15.0

        converged = abs(delta) < panel_tol or abs(delta) <= roundoff * abs(s_left + s_right)
        if converged or depth >= max_depth:
            if not converged:
                hit_limit = True
            total += s_left + s_right + delta
            error += abs(delta)
            continue

        stack.append((mid, hi, fmid, frm, fhi, s_right, depth + 1, panel_tol / 2.0))
        stack.append((lo, mid, flo, flm, fmid, s_left, depth + 1, panel_tol / 2.0))

    return QuadratureResult(total, error, evaluations, hit_limit)
