"""Exceptions raised by resourcenetworks.

Both exceptions subclass ValueError so callers that already guard input
validation with ``except ValueError`` keep working.
"""


class InvalidConfigurationError(ValueError):
    """Sketch dimensions, topology or experiment parameters are unusable."""


class InvalidArgumentError(ValueError):
    """An operation received an argument outside its domain."""
