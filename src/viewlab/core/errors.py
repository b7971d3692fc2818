"""
Error taxonomy for ViewLab.

Per-target errors (EmptyView, InsufficientData) are isolated by the run
loop and recorded as failures; ConfigurationError is raised before any
work is scheduled.
"""


class ViewLabError(Exception):
    """Base class for all ViewLab errors."""


class ConfigurationError(ViewLabError):
    """Invalid run configuration (unknown view type, bad fold count, ...)."""


class InvalidGeometry(ViewLabError):
    """Missing or malformed coordinates for one or more locations."""


class EmptyView(ViewLabError):
    """A feature selection produced a view with zero columns."""


class InsufficientData(ViewLabError):
    """Not enough samples to train on a fold."""


class SchemaMismatch(ViewLabError):
    """Views or result sets that cannot be combined."""


class CacheCorruption(ViewLabError):
    """A persisted cache entry could not be deserialized."""

    def __init__(self, key: str, reason: str = ""):
        self.key = key
        self.reason = reason
        msg = f"Corrupt cache entry {key}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
