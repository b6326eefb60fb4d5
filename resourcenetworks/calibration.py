"""Calibration constant of the sketch estimator.

The raw estimate ``alpha * gamma^2 / Z`` is unbiased only with the constant

    alpha(gamma) = 1 / (gamma * integral_0^inf (log2(2 + u) - log2(1 + u))^gamma du)

from Flajolet, Fusy, Gandouet, Meunier, "HyperLogLog: the analysis of a
near-optimal cardinality estimation algorithm" (2007). Substituting
``s = 1 / (1 + u)`` turns it into

    integral_0^1 log2(1 + s)^gamma / s^2 ds,

a smooth integrand on a finite interval, which adaptive Simpson quadrature
handles to near machine precision. Raising log2(1 + s) to the power gamma
multiplies its rounding error by gamma, so panels are only refined down to
that precision. The integral diverges for gamma = 1.

Integration is slow compared to the protocol rounds, so results are kept in a
cache injected into the CalibrationEngine. Two caches are provided: an
in-memory one, and a JSON file persisted across processes.
"""

from __future__ import annotations

import contextlib
import json
import logging
import math
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from resourcenetworks.errors import InvalidArgumentError
from resourcenetworks.numerics import EPSILON, QuadratureResult, integrate_adaptive_simpson

logger = logging.getLogger(__name__)

DEFAULT_CACHE_FILE = "alpha_cache.json"

INTEGRATION_TOLERANCE = 1e-16

_LN2 = math.log(2.0)


@runtime_checkable
class CalibrationCache(Protocol):
    """Key -> value store for calibration constants, keyed by register count."""

    def get(self, gamma: int) -> float | None:
        """Cached alpha for ``gamma``, or None on a miss."""
        ...

    def put(self, gamma: int, value: float) -> None:
        """Store alpha for ``gamma``."""
        ...


class InMemoryCalibrationCache:
    """Thread-safe dict-backed cache, shared by runs inside one process."""

    def __init__(self, values: dict[int, float] | None = None):
        self._values: dict[int, float] = dict(values) if values else {}
        self._lock = threading.Lock()

    def get(self, gamma: int) -> float | None:
        with self._lock:
            return self._values.get(gamma)

    def put(self, gamma: int, value: float) -> None:
        with self._lock:
            self._values[gamma] = value

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __contains__(self, gamma: object) -> bool:
        with self._lock:
            return gamma in self._values


class FileCalibrationCache:
    """Cache persisted as a JSON object ``{"<gamma>": alpha}``.

    ``put`` re-reads the file, merges the new entry into whatever other
    writers stored meanwhile, and replaces the file atomically through a
    temporary file in the same directory. Concurrent writers can therefore
    only lose work (a value gets recomputed), never corrupt the file. Values
    are deterministic, so the last writer of a key always writes the same
    number.

    Args:
        path: Cache file location. Created on first ``put``.
    """

    def __init__(self, path: str | Path = DEFAULT_CACHE_FILE):
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, float]:
        try:
            with open(self._path, encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable calibration cache %s", self._path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring calibration cache %s: not a JSON object", self._path)
            return {}
        return data

    def get(self, gamma: int) -> float | None:
        with self._lock:
            value = self._load().get(str(gamma))
        return None if value is None else float(value)

    def put(self, gamma: int, value: float) -> None:
        with self._lock:
            data = self._load()
            data[str(gamma)] = value
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=self._path.name, suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle, indent=2, sort_keys=True)
                os.replace(tmp_name, self._path)
            except BaseException:
                with contextlib.suppress(FileNotFoundError):
                    os.unlink(tmp_name)
                raise

    def clear(self) -> None:
        """Delete the cache file if it exists."""
        with self._lock, contextlib.suppress(FileNotFoundError):
            self._path.unlink()


def _validate_gamma(gamma: int) -> int:
    if isinstance(gamma, bool) or not isinstance(gamma, int):
        raise InvalidArgumentError(f"gamma must be an int, got {gamma!r}")
    if gamma <= 0:
        raise InvalidArgumentError(f"gamma must be positive, got {gamma}")
    if gamma == 1:
        raise InvalidArgumentError("alpha is undefined for gamma = 1: the integral diverges")
    return gamma


def integrand_precision(gamma: int) -> float:
    """Relative rounding error of ``log2(1 + s)^gamma / s^2`` in float64.

    log1p and the division by ln 2 each contribute about one ulp, which the
    power multiplies by gamma.
    """
    return 4 * (2 * gamma + 1) * EPSILON


def calibration_integral(
    gamma: int, tolerance: float = INTEGRATION_TOLERANCE
) -> QuadratureResult:
    """Integrate ``log2(1 + s)^gamma / s^2`` over [0, 1].

    Raises:
        InvalidArgumentError: If gamma <= 1.
    """
    gamma = _validate_gamma(gamma)

    def integrand(s: float) -> float:
        if s == 0.0:
            # log2(1 + s)^gamma / s^2 -> ln(2)^-2 for gamma == 2, else 0.
            return _LN2 ** -2 if gamma == 2 else 0.0
        return (math.log1p(s) / _LN2) ** gamma / (s * s)

    return integrate_adaptive_simpson(
        integrand,
        0.0,
        1.0,
        abs_tol=tolerance,
        rel_tol=tolerance,
        roundoff=integrand_precision(gamma),
    )


def compute_alpha(gamma: int, tolerance: float = INTEGRATION_TOLERANCE) -> float:
    """Integrate alpha(gamma) numerically, without any caching.

    Raises:
        InvalidArgumentError: If gamma <= 1.
    """
    result = calibration_integral(gamma, tolerance)
    if result.max_depth_reached:
        logger.warning(
            "alpha(%d) integration hit the subdivision limit (error estimate %.3g)",
            gamma,
            result.error,
            extra={"gamma": gamma},
        )
    logger.debug(
        "alpha(%d): integral=%.17g error=%.3g evaluations=%d",
        gamma,
        result.value,
        result.error,
        result.evaluations,
        extra={"gamma": gamma},
    )
    return 1.0 / (gamma * result.value)


class CalibrationEngine:
    """Looks up alpha(gamma) in a cache, integrating only on a miss.

    The engine keeps no state besides its cache and a count of integrations,
    so one engine can be shared by every network of an ensemble.

    Args:
        cache: Where to keep computed constants. Defaults to a private
            in-memory cache.
        tolerance: Absolute and relative integration tolerance.

    Example:
        engine = CalibrationEngine(FileCalibrationCache("alpha_cache.json"))
        engine.alpha(1024)  # ~0.7205, integrated once and persisted
    """

    def __init__(
        self,
        cache: CalibrationCache | None = None,
        tolerance: float = INTEGRATION_TOLERANCE,
    ):
        self._cache: CalibrationCache = cache if cache is not None else InMemoryCalibrationCache()
        self._tolerance = tolerance
        self._integrations = 0
        self._lock = threading.Lock()

    @property
    def cache(self) -> CalibrationCache:
        return self._cache

    @property
    def integrations(self) -> int:
        """Number of times this engine ran the numeric integration."""
        return self._integrations

    def alpha(self, gamma: int) -> float:
        """Calibration constant for ``gamma`` registers per node.

        Raises:
            InvalidArgumentError: If gamma <= 1.
        """
        gamma = _validate_gamma(gamma)
        cached = self._cache.get(gamma)
        if cached is not None:
            logger.debug("alpha(%d) cache hit", gamma, extra={"gamma": gamma})
            return cached

        value = compute_alpha(gamma, self._tolerance)
        with self._lock:
            self._integrations += 1
        self._cache.put(gamma, value)
        logger.info("Computed alpha(%d) = %.12f", gamma, value, extra={"gamma": gamma})
        return value


def alpha(gamma: int, cache: CalibrationCache | None = None) -> float:
    """Calibration constant for ``gamma`` registers, using ``cache`` if given."""
    return CalibrationEngine(cache).alpha(gamma)
