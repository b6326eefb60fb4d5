"""Validated experiment configuration.

Experiment scripts tend to pass parameters around as loose dictionaries
(``{"l": 6, "m": 6144, "R": 12, "p": 0.05}``). ExperimentConfig gives those
parameters names, types and range checks, and rejects bad combinations before
any network is built.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

from resourcenetworks.errors import InvalidConfigurationError

# Registers are held in int64 arrays, so a register value must fit in 62 bits.
MAX_REGISTER_WIDTH = 62


def is_power_of_two(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0


def registers_per_node(message_bits: int, register_width: int) -> int:
    """Number of registers per node, ``m // l``, validated.

    Raises:
        InvalidConfigurationError: If l is outside [1, 62], m < l, or m // l
            is not a power of two of at least 2. A single register has no
            calibration constant.
    """
    if not 1 <= register_width <= MAX_REGISTER_WIDTH:
        raise InvalidConfigurationError(
            f"register_width must be in [1, {MAX_REGISTER_WIDTH}], got {register_width}"
        )
    if message_bits < register_width:
        raise InvalidConfigurationError(
            f"message_bits ({message_bits}) must be at least register_width ({register_width})"
        )
    count = message_bits // register_width
    if not is_power_of_two(count):
        raise InvalidConfigurationError(
            f"m/l must be a power of two, got {message_bits}/{register_width} = {count}"
        )
    if count < 2:
        raise InvalidConfigurationError(
            f"m/l must be at least 2, got {message_bits}/{register_width} = {count}"
        )
    return count


# Short names used by experiment scripts -> field names.
_ALIASES = {
    "l": "register_width",
    "m": "message_bits",
    "R": "radius",
    "p": "resource_probability",
    "p_resource": "resource_probability",
    "M": "marker_rounds",
}


@dataclass(frozen=True)
class ExperimentConfig:
    """Parameters of one protocol run.

    Attributes:
        register_width: Bits per register (l).
        message_bits: Total sketch size per node in bits (m).
        radius: Propagation rounds and ground-truth radius (R).
        resource_probability: Probability a node holds a resource (p).
        seed: Seed for the random source; None draws fresh entropy.
        marker_rounds: Marker flooding rounds (M); None means one per node.
    """

    register_width: int
    message_bits: int
    radius: int
    resource_probability: float = 0.5
    seed: int | None = None
    marker_rounds: int | None = None

    def __post_init__(self) -> None:
        for name in ("register_width", "message_bits", "radius"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfigurationError(f"{name} must be an int, got {value!r}")
        registers_per_node(self.message_bits, self.register_width)
        if self.radius < 0:
            raise InvalidConfigurationError(f"radius must be non-negative, got {self.radius}")
        if not 0.0 <= self.resource_probability <= 1.0:
            raise InvalidConfigurationError(
                f"resource_probability must be in [0, 1], got {self.resource_probability}"
            )
        if self.marker_rounds is not None and self.marker_rounds < 0:
            raise InvalidConfigurationError(
                f"marker_rounds must be non-negative, got {self.marker_rounds}"
            )

    @property
    def registers_per_node(self) -> int:
        """Registers per node, ``message_bits // register_width``."""
        return self.message_bits // self.register_width

    @classmethod
    def from_dict(cls, params: Mapping[str, Any]) -> ExperimentConfig:
        """Build a config from a parameter dictionary.

        Accepts both field names and the short script names (l, m, R, p,
        p_resource, M). Unknown keys are rejected.
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in params.items():
            name = _ALIASES.get(key, key)
            if name not in known:
                raise InvalidConfigurationError(f"unknown experiment parameter {key!r}")
            if name in kwargs:
                raise InvalidConfigurationError(f"parameter {name!r} given twice")
            kwargs[name] = value
        try:
            return cls(**kwargs)
        except TypeError as exc:
            raise InvalidConfigurationError(str(exc)) from exc

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
