"""
ViewLab: multi-view predictive modeling of spatially resolved measurements.

For every measured feature (target), ViewLab asks how much of its
variation is explained by the other features at the same location versus
features of the surrounding tissue. It provides:
- Views: intrinsic, kernel-weighted (paraview) and neighbor-graph
  (juxtaview) feature tables over a fixed set of locations
- Models: per-view ensemble regressors with out-of-fold predictions, a
  ridge meta-model fusing the views, and a signed-rank significance test
- Cache: content-addressed, resumable storage safe for parallel workers
- Results: aggregation across targets and samples, signatures, export

Example:
    >>> from viewlab import build_views, run, RunConfig, DistanceWeightedSpec
    >>> views = build_views(expression, positions, [DistanceWeightedSpec(radius=10)])
    >>> result = run(views, RunConfig.fast())
    >>> result.results.performance

Author: ViewLab developers
License: MIT
"""

__version__ = "0.1.0"
__author__ = "ViewLab developers"

from .core import (
    ViewLabError,
    ConfigurationError,
    InvalidGeometry,
    EmptyView,
    InsufficientData,
    SchemaMismatch,
    CacheCorruption,
    KernelFamily,
    LearnerKind,
    IntrinsicSpec,
    DistanceWeightedSpec,
    NeighborGraphSpec,
    LearnerConfig,
    RunConfig,
)
from .views import View, ViewCollection, build_view, build_views
from .models import FoldAssignment, FusedResult, PerViewResult
from .cache import FileCacheStore, MemoryCacheStore, ResultCache, fingerprint
from .results import AggregatedResultSet, merge, collect_from_cache, extract_signature
from .pipeline import run, run_target, RunResult, TargetFailure

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
    "LearnerConfig",
    "RunConfig",
    # Views
    "View",
    "ViewCollection",
    "build_view",
    "build_views",
    # Models
    "FoldAssignment",
    "FusedResult",
    "PerViewResult",
    # Cache
    "FileCacheStore",
    "MemoryCacheStore",
    "ResultCache",
    "fingerprint",
    # Results
    "AggregatedResultSet",
    "merge",
    "collect_from_cache",
    "extract_signature",
    # Pipeline
    "run",
    "run_target",
    "RunResult",
    "TargetFailure",
    "__version__",
]
