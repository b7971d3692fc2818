"""
ViewLab configuration.

Three kinds of settings control a run:

1. View specifications: which views to build and with what spatial
   parameter. Views are a closed set of variants:

   - IntrinsicSpec: the co-located features themselves
   - DistanceWeightedSpec(radius): kernel-weighted sum over all locations
   - NeighborGraphSpec(threshold): mean over Delaunay neighbors

2. Learner settings: the per-view ensemble regressor and its
   hyperparameters.

3. Run settings: fold count, seed, meta-model penalty and cache location.

All configuration is validated on construction so that errors surface
before any parallel work begins.
"""

from enum import Enum
from typing import Optional, Dict, Any, Union
from dataclasses import dataclass, field
import os

from .constants import (
    INTRINSIC_VIEW,
    PARAVIEW_PREFIX,
    JUXTAVIEW_PREFIX,
    DEFAULT_FOLDS,
    DEFAULT_SEED,
    DEFAULT_TREES,
    DEFAULT_CUTOFF,
    CACHE_ENV_VAR,
    DEFAULT_CACHE_DIR,
)
from .errors import ConfigurationError


class KernelFamily(Enum):
    """Distance decay used by distance-weighted views."""
    GAUSSIAN = "gaussian"
    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    CONSTANT = "constant"


class LearnerKind(Enum):
    """
    Per-view regressor.

    RANDOM_FOREST: bagged randomized trees (default)
    GRADIENT_BOOSTING: boosted shallow trees
    LINEAR: ordinary least squares
    """
    RANDOM_FOREST = "random_forest"
    GRADIENT_BOOSTING = "gradient_boosting"
    LINEAR = "linear"


def _format_param(value: float) -> str:
    """Render a spatial parameter for use in a view name (10.0 -> '10')."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


@dataclass(frozen=True)
class IntrinsicSpec:
    """The intrinsic view: features measured at each location."""
    name: str = INTRINSIC_VIEW

    def view_name(self) -> str:
        return self.name

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "intrinsic", "name": self.name}


@dataclass(frozen=True)
class DistanceWeightedSpec:
    """
    Kernel-weighted context view.

    Attributes:
        radius: Kernel length scale l.
        family: Kernel decay family.
        cutoff: Weights below this value are set to zero.
        zoi: Zone of indifference; locations closer than this are ignored.
        name: Explicit view name. Defaults to "paraview.<radius>".
    """
    radius: float
    family: KernelFamily = KernelFamily.GAUSSIAN
    cutoff: float = DEFAULT_CUTOFF
    zoi: float = 0.0
    name: Optional[str] = None

    def __post_init__(self):
        if not self.radius > 0:
            raise ConfigurationError(f"radius must be positive, got {self.radius}")
        if self.cutoff < 0:
            raise ConfigurationError(f"cutoff must be non-negative, got {self.cutoff}")
        if self.zoi < 0:
            raise ConfigurationError(f"zoi must be non-negative, got {self.zoi}")
        if not isinstance(self.family, KernelFamily):
            try:
                object.__setattr__(self, "family", KernelFamily(self.family))
            except ValueError:
                raise ConfigurationError(f"Unknown kernel family: {self.family!r}")

    def view_name(self) -> str:
        return self.name or f"{PARAVIEW_PREFIX}.{_format_param(self.radius)}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "distance_weighted",
            "name": self.view_name(),
            "radius": float(self.radius),
            "family": self.family.value,
            "cutoff": float(self.cutoff),
            "zoi": float(self.zoi),
        }


@dataclass(frozen=True)
class NeighborGraphSpec:
    """
    Neighbor-graph context view.

    Attributes:
        threshold: Maximum Delaunay edge length kept as adjacency.
        name: Explicit view name. Defaults to "juxtaview.<threshold>".
    """
    threshold: float
    name: Optional[str] = None

    def __post_init__(self):
        if not self.threshold > 0:
            raise ConfigurationError(
                f"threshold must be positive, got {self.threshold}"
            )

    def view_name(self) -> str:
        return self.name or f"{JUXTAVIEW_PREFIX}.{_format_param(self.threshold)}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "neighbor_graph",
            "name": self.view_name(),
            "threshold": float(self.threshold),
        }


ViewSpec = Union[IntrinsicSpec, DistanceWeightedSpec, NeighborGraphSpec]


def spec_from_dict(data: Dict[str, Any]) -> ViewSpec:
    """
    Parse a view specification from a plain mapping.

    Example:
        >>> spec_from_dict({"type": "distance_weighted", "radius": 10})
        DistanceWeightedSpec(radius=10, ...)
    """
    data = dict(data)
    kind = data.pop("type", None)
    if kind == "intrinsic":
        return IntrinsicSpec(**data)
    if kind == "distance_weighted":
        return DistanceWeightedSpec(**data)
    if kind == "neighbor_graph":
        return NeighborGraphSpec(**data)
    raise ConfigurationError(f"Unknown view type: {kind!r}")


@dataclass
class LearnerConfig:
    """
    Hyperparameters for the per-view regressor.

    Attributes:
        kind: Regressor family.
        n_estimators: Number of trees (forest / boosting).
        max_depth: Maximum tree depth, None for unlimited.
        min_samples_leaf: Minimum samples in a leaf.
        max_features: Predictor subsampling per split (forest only).
        n_jobs: Threads used by a single forest fit.
        min_train_size: Smallest acceptable training fold.
    """
    kind: LearnerKind = LearnerKind.RANDOM_FOREST
    n_estimators: int = DEFAULT_TREES
    max_depth: Optional[int] = None
    min_samples_leaf: int = 1
    max_features: Optional[Union[float, str]] = 1.0
    n_jobs: int = 1
    min_train_size: int = 2

    def __post_init__(self):
        if not isinstance(self.kind, LearnerKind):
            try:
                self.kind = LearnerKind(self.kind)
            except ValueError:
                raise ConfigurationError(f"Unknown learner kind: {self.kind!r}")
        if self.n_estimators < 1:
            raise ConfigurationError("n_estimators must be >= 1")
        if self.min_samples_leaf < 1:
            raise ConfigurationError("min_samples_leaf must be >= 1")
        if self.min_train_size < 1:
            raise ConfigurationError("min_train_size must be >= 1")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "n_estimators": self.n_estimators,
            "max_depth": self.max_depth,
            "min_samples_leaf": self.min_samples_leaf,
            "max_features": self.max_features,
            "min_train_size": self.min_train_size,
        }


def default_cache_dir() -> str:
    """Cache directory from VIEWLAB_CACHE_DIR, or the local default."""
    return os.getenv(CACHE_ENV_VAR, DEFAULT_CACHE_DIR)


@dataclass
class RunConfig:
    """
    Configuration for a full multi-view run.

    Attributes:
        n_folds: Cross-validation folds shared by all views and targets.
        seed: Random seed for folds and learners.
        learner: Per-view regressor settings.
        meta_alpha: L2 penalty of the ridge meta-model.
        intrinsic_name: Name of the intrinsic view in the collection.
        cache_dir: Where cached entries and run markers are written.
    """
    n_folds: int = DEFAULT_FOLDS
    seed: int = DEFAULT_SEED
    learner: LearnerConfig = field(default_factory=LearnerConfig)
    meta_alpha: float = 1.0
    intrinsic_name: str = INTRINSIC_VIEW
    cache_dir: str = field(default_factory=default_cache_dir)

    def __post_init__(self):
        if not isinstance(self.n_folds, int) or self.n_folds < 2:
            raise ConfigurationError(
                f"n_folds must be an integer >= 2, got {self.n_folds!r}"
            )
        if not self.meta_alpha > 0:
            raise ConfigurationError("meta_alpha must be positive")
        if isinstance(self.learner, dict):
            self.learner = LearnerConfig(**self.learner)

    @classmethod
    def default(cls) -> "RunConfig":
        """Default configuration."""
        return cls()

    @classmethod
    def fast(cls) -> "RunConfig":
        """Small forests and five folds, for exploration and tests."""
        return cls(n_folds=5, learner=LearnerConfig(n_estimators=25))

    def to_dict(self) -> Dict[str, Any]:
        """Parameters that affect results (cache_dir excluded)."""
        return {
            "n_folds": self.n_folds,
            "seed": self.seed,
            "learner": self.learner.to_dict(),
            "meta_alpha": float(self.meta_alpha),
            "intrinsic_name": self.intrinsic_name,
        }
