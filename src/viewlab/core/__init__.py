"""
ViewLab core: errors, constants and configuration.
"""

from .errors import (
    ViewLabError,
    ConfigurationError,
    InvalidGeometry,
    EmptyView,
    InsufficientData,
    SchemaMismatch,
    CacheCorruption,
)
from .config import (
    KernelFamily,
    LearnerKind,
    IntrinsicSpec,
    DistanceWeightedSpec,
    NeighborGraphSpec,
    ViewSpec,
    LearnerConfig,
    RunConfig,
    spec_from_dict,
)

__all__ = [
    # Errors
    "ViewLabError",
    "ConfigurationError",
    "InvalidGeometry",
    "EmptyView",
    "InsufficientData",
    "SchemaMismatch",
    "CacheCorruption",
    # Configuration
    "KernelFamily",
    "LearnerKind",
    "IntrinsicSpec",
    "DistanceWeightedSpec",
    "NeighborGraphSpec",
    "ViewSpec",
    "LearnerConfig",
    "RunConfig",
    "spec_from_dict",
]
