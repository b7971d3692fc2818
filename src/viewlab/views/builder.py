"""
ViewLab Views: view construction.

A view is a named feature table over a fixed set of locations. Three
view variants exist:

- intrinsic: the measured features themselves (identity pass-through)
- distance-weighted ("paraview"): kernel-weighted sum of features over
  all other locations
- neighbor-graph ("juxtaview"): mean of features over direct Delaunay
  neighbors

Views are combined in a ViewCollection that always holds exactly one
intrinsic view, followed by any number of context views sharing its
location index.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, List, Any, Sequence, Iterator, Union
import logging

import numpy as np
import pandas as pd
from scipy import sparse

from ..core.config import (
    IntrinsicSpec,
    DistanceWeightedSpec,
    NeighborGraphSpec,
    ViewSpec,
    KernelFamily,
)
from ..core.constants import INTRINSIC_VIEW
from ..core.errors import ConfigurationError, EmptyView, SchemaMismatch
from .geometry import (
    validate_positions,
    weight_matrix,
    delaunay_adjacency,
    neighbor_counts,
)

logger = logging.getLogger(__name__)


class ViewKind(Enum):
    """Construction variant of a view."""
    INTRINSIC = "intrinsic"
    DISTANCE_WEIGHTED = "distance_weighted"
    NEIGHBOR_GRAPH = "neighbor_graph"


@dataclass(frozen=True, eq=False)
class View:
    """
    A named, immutable feature table.

    Attributes
    ----------
    name : str
        View name, unique within a collection
    data : pd.DataFrame
        Location x feature table (private copy)
    kind : ViewKind
        How the view was constructed
    params : Dict[str, Any]
        Construction parameters (radius, threshold, ...)
    """
    name: str
    data: pd.DataFrame
    kind: ViewKind = ViewKind.INTRINSIC
    params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "data", _as_feature_table(self.data, self.name))
        object.__setattr__(self, "params", dict(self.params))

    @property
    def locations(self) -> pd.Index:
        return self.data.index

    @property
    def features(self) -> List[str]:
        return list(self.data.columns)

    @property
    def n_locations(self) -> int:
        return self.data.shape[0]

    @property
    def n_features(self) -> int:
        return self.data.shape[1]

    def with_locations(self, locations: Sequence) -> "View":
        """Return a copy restricted to (and ordered by) ``locations``."""
        locations = pd.Index(locations)
        missing = locations.difference(self.data.index)
        if len(missing) > 0:
            raise SchemaMismatch(
                f"View {self.name!r} lacks {len(missing)} requested location(s)"
            )
        return View(self.name, self.data.loc[locations], self.kind, self.params)

    def select_features(self, features: Sequence[str]) -> "View":
        """Return a copy with only ``features`` (order preserved)."""
        keep = [f for f in features if f in self.data.columns]
        if not keep:
            raise EmptyView(f"No requested features present in view {self.name!r}")
        return View(self.name, self.data[keep], self.kind, self.params)

    def renamed(self, name: str) -> "View":
        return View(name, self.data, self.kind, self.params)

    def describe(self) -> Dict[str, Any]:
        """Summary for logging and run markers."""
        return {
            "name": self.name,
            "kind": self.kind.value,
            "params": self.params,
            "n_locations": self.n_locations,
            "n_features": self.n_features,
        }

    def __repr__(self) -> str:
        return (
            f"View(name={self.name!r}, kind={self.kind.value}, "
            f"shape={self.data.shape})"
        )


def _as_feature_table(table: pd.DataFrame, name: str) -> pd.DataFrame:
    if not isinstance(table, pd.DataFrame):
        raise SchemaMismatch(f"View {name!r} data must be a DataFrame")
    if table.shape[1] == 0:
        raise EmptyView(f"View {name!r} has no features")
    if table.columns.has_duplicates:
        raise SchemaMismatch(f"View {name!r} has duplicate feature names")
    if table.index.has_duplicates:
        raise SchemaMismatch(f"View {name!r} has duplicate locations")
    try:
        return table.astype(float).copy()
    except (TypeError, ValueError) as e:
        raise SchemaMismatch(f"View {name!r} has non-numeric features: {e}")


class ViewCollection:
    """
    Ordered collection of views sharing one location index.

    The intrinsic view is always first. Every modifying operation returns
    a new collection; views themselves are never changed.

    Parameters
    ----------
    intrinsic : View
        The intrinsic view (target feature space)
    context : Sequence[View], optional
        Context views, in order

    Examples
    --------
    >>> views = ViewCollection(intrinsic_view(expr))
    >>> views = views.add(distance_weighted_view(expr, positions, radius=10))
    >>> views.names
    ['intraview', 'paraview.10']
    """

    def __init__(self, intrinsic: View, context: Sequence[View] = ()):
        self._views: Dict[str, View] = {intrinsic.name: intrinsic}
        self._intrinsic_name = intrinsic.name
        for view in context:
            self._check(view)
            self._views[view.name] = view

    def _check(self, view: View) -> None:
        if view.name in self._views:
            raise ConfigurationError(f"Duplicate view name: {view.name!r}")
        if not view.locations.equals(self.locations):
            raise SchemaMismatch(
                f"View {view.name!r} locations differ from the intrinsic view"
            )

    @property
    def intrinsic(self) -> View:
        return self._views[self._intrinsic_name]

    @property
    def context(self) -> List[View]:
        return [v for n, v in self._views.items() if n != self._intrinsic_name]

    @property
    def names(self) -> List[str]:
        return list(self._views)

    @property
    def locations(self) -> pd.Index:
        return self.intrinsic.locations

    @property
    def targets(self) -> List[str]:
        """Features that can be predicted (columns of the intrinsic view)."""
        return self.intrinsic.features

    def __getitem__(self, name: str) -> View:
        return self._views[name]

    def __contains__(self, name: str) -> bool:
        return name in self._views

    def __iter__(self) -> Iterator[View]:
        return iter(self._views.values())

    def __len__(self) -> int:
        return len(self._views)

    def add(self, view: View) -> "ViewCollection":
        """Return a new collection with ``view`` appended."""
        return ViewCollection(self.intrinsic, self.context + [view])

    def remove(self, name: str) -> "ViewCollection":
        """Return a new collection without context view ``name``."""
        if name == self._intrinsic_name:
            raise ConfigurationError("The intrinsic view cannot be removed")
        if name not in self._views:
            raise KeyError(name)
        return ViewCollection(
            self.intrinsic, [v for v in self.context if v.name != name]
        )

    def rename(self, old: str, new: str) -> "ViewCollection":
        """Return a new collection with view ``old`` renamed to ``new``."""
        if old not in self._views:
            raise KeyError(old)
        renamed = [v.renamed(new) if v.name == old else v for v in self]
        return ViewCollection(renamed[0], renamed[1:])

    def restrict(self, locations: Sequence) -> "ViewCollection":
        """Return a new collection with every view restricted to ``locations``."""
        restricted = [v.with_locations(locations) for v in self]
        return ViewCollection(restricted[0], restricted[1:])

    def filter_features(
        self,
        features: Sequence[str],
        views: Optional[Sequence[str]] = None,
    ) -> "ViewCollection":
        """
        Keep only ``features`` in the selected views (all views by default).

        Raises EmptyView if a selected view would be left without columns.
        """
        selected = set(views) if views is not None else set(self.names)
        filtered = [
            v.select_features(features) if v.name in selected else v
            for v in self
        ]
        return ViewCollection(filtered[0], filtered[1:])

    def describe(self) -> List[Dict[str, Any]]:
        return [v.describe() for v in self]

    def __repr__(self) -> str:
        return (
            f"ViewCollection(views={self.names}, "
            f"n_locations={len(self.locations)})"
        )


def _select(
    table: pd.DataFrame,
    locations: Optional[Sequence],
    features: Optional[Sequence[str]],
    name: str,
) -> pd.DataFrame:
    if features is not None:
        missing = [f for f in features if f not in table.columns]
        if missing:
            logger.warning(f"{name}: ignoring unknown features {missing[:5]}")
        features = [f for f in features if f in table.columns]
        if not features:
            raise EmptyView(f"Feature selection for {name!r} yields zero columns")
        table = table[features]
    if table.shape[1] == 0:
        raise EmptyView(f"Feature selection for {name!r} yields zero columns")
    if locations is not None:
        locations = pd.Index(locations)
        missing = locations.difference(table.index)
        if len(missing) > 0:
            raise SchemaMismatch(
                f"{len(missing)} requested location(s) absent from the source table"
            )
        table = table.loc[locations]
    return table


def intrinsic_view(
    table: pd.DataFrame,
    locations: Optional[Sequence] = None,
    features: Optional[Sequence[str]] = None,
    name: str = INTRINSIC_VIEW,
) -> View:
    """
    Build the intrinsic view: a pass-through of the source table.

    Args:
        table: Location x feature table.
        locations: Optional subset (and order) of locations.
        features: Optional subset of features.
        name: View name.

    Returns:
        The intrinsic View.
    """
    data = _select(table, locations, features, name)
    return View(name, data, ViewKind.INTRINSIC, {})


def distance_weighted_view(
    table: pd.DataFrame,
    positions: pd.DataFrame,
    radius: float,
    family: Union[KernelFamily, str] = KernelFamily.GAUSSIAN,
    cutoff: float = 0.01,
    zoi: float = 0.0,
    locations: Optional[Sequence] = None,
    features: Optional[Sequence[str]] = None,
    name: Optional[str] = None,
) -> View:
    """
    Build a distance-weighted context view.

    Each row is the kernel-weighted sum of the source features over all
    other source locations. Locations without any neighbor above the
    cutoff receive a zero vector.

    Args:
        table: Source feature table (all locations that contribute context).
        positions: Coordinates for every source location.
        radius: Kernel length scale.
        family: Kernel family.
        cutoff: Minimum kept weight.
        zoi: Zone of indifference.
        locations: Rows of the resulting view. Defaults to all source rows.
        features: Optional feature subset.
        name: View name, defaults to "paraview.<radius>".

    Raises:
        InvalidGeometry: Missing coordinates.
        EmptyView: Empty feature selection.
    """
    spec = DistanceWeightedSpec(
        radius=radius, family=family, cutoff=cutoff, zoi=zoi, name=name
    )
    source = _select(table, None, features, spec.view_name())
    targets = pd.Index(locations) if locations is not None else source.index

    source_xy = validate_positions(positions, source.index)
    target_xy = validate_positions(positions, targets)

    weights = weight_matrix(
        target_xy, source_xy,
        radius=spec.radius, family=spec.family,
        cutoff=spec.cutoff, zoi=spec.zoi,
    )
    isolated = int(np.sum(neighbor_counts(weights) == 0))
    if isolated:
        logger.debug(f"{spec.view_name()}: {isolated} location(s) without neighbors")

    values = weights @ source.to_numpy(dtype=float)
    data = pd.DataFrame(values, index=targets, columns=source.columns)

    return View(spec.view_name(), data, ViewKind.DISTANCE_WEIGHTED, spec.to_dict())


def neighbor_graph_view(
    table: pd.DataFrame,
    positions: pd.DataFrame,
    threshold: float,
    locations: Optional[Sequence] = None,
    features: Optional[Sequence[str]] = None,
    name: Optional[str] = None,
) -> View:
    """
    Build a neighbor-graph context view.

    Each row is the mean of the source features over the location's
    direct neighbors in the distance-pruned Delaunay graph. Isolated
    locations receive a zero vector.

    Args:
        table: Source feature table.
        positions: Coordinates for every source location.
        threshold: Maximum neighbor distance.
        locations: Rows of the resulting view. Defaults to all source rows.
        features: Optional feature subset.
        name: View name, defaults to "juxtaview.<threshold>".
    """
    spec = NeighborGraphSpec(threshold=threshold, name=name)
    source = _select(table, None, features, spec.view_name())
    targets = pd.Index(locations) if locations is not None else source.index

    source_xy = validate_positions(positions, source.index)
    validate_positions(positions, targets)

    adjacency = delaunay_adjacency(source_xy, spec.threshold).astype(float)
    degree = neighbor_counts(adjacency).astype(float)
    scale = np.divide(1.0, degree, out=np.zeros_like(degree), where=degree > 0)
    means = sparse.diags(scale) @ adjacency @ source.to_numpy(dtype=float)

    full = pd.DataFrame(means, index=source.index, columns=source.columns)
    data = full.reindex(targets, fill_value=0.0)

    return View(spec.view_name(), data, ViewKind.NEIGHBOR_GRAPH, spec.to_dict())


def build_view(
    spec: ViewSpec,
    table: pd.DataFrame,
    positions: Optional[pd.DataFrame] = None,
    locations: Optional[Sequence] = None,
    features: Optional[Sequence[str]] = None,
) -> View:
    """
    Construct a view from its specification.

    Each spec variant has exactly one construction function; an
    unrecognized variant is a configuration error.
    """
    if isinstance(spec, IntrinsicSpec):
        return intrinsic_view(table, locations, features, name=spec.name)
    if isinstance(spec, DistanceWeightedSpec):
        return distance_weighted_view(
            table, positions,
            radius=spec.radius, family=spec.family,
            cutoff=spec.cutoff, zoi=spec.zoi,
            locations=locations, features=features, name=spec.name,
        )
    if isinstance(spec, NeighborGraphSpec):
        return neighbor_graph_view(
            table, positions, threshold=spec.threshold,
            locations=locations, features=features, name=spec.name,
        )
    raise ConfigurationError(f"Unknown view specification: {spec!r}")


def build_views(
    table: pd.DataFrame,
    positions: Optional[pd.DataFrame],
    specs: Sequence[ViewSpec] = (),
    locations: Optional[Sequence] = None,
    features: Optional[Sequence[str]] = None,
    tables: Optional[Dict[str, pd.DataFrame]] = None,
    sources: Optional[Dict[str, str]] = None,
) -> ViewCollection:
    """
    Build a ViewCollection: the intrinsic view of ``table`` plus one
    context view per spec.

    Args:
        table: Intrinsic feature table.
        positions: Location coordinates (required for context views).
        specs: Context view specifications. An IntrinsicSpec in this list
            only renames the intrinsic view.
        locations: Optional location subset applied to every view.
        features: Optional feature subset for the intrinsic view.
        tables: Additional named source tables for context views.
        sources: Maps a context view name to a key of ``tables``; views
            not listed aggregate the intrinsic table.

    Returns:
        ViewCollection with the intrinsic view first.

    Example:
        >>> views = build_views(
        ...     expr, positions,
        ...     [DistanceWeightedSpec(radius=10), NeighborGraphSpec(threshold=15)],
        ... )
    """
    tables = tables or {}
    sources = sources or {}

    intrinsic_specs = [s for s in specs if isinstance(s, IntrinsicSpec)]
    if len(intrinsic_specs) > 1:
        raise ConfigurationError("At most one intrinsic view specification allowed")
    intrinsic_name = intrinsic_specs[0].name if intrinsic_specs else INTRINSIC_VIEW

    intrinsic = intrinsic_view(table, locations, features, name=intrinsic_name)
    collection = ViewCollection(intrinsic)

    for spec in specs:
        if isinstance(spec, IntrinsicSpec):
            continue
        source_key = sources.get(spec.view_name())
        if source_key is not None:
            if source_key not in tables:
                raise ConfigurationError(f"Unknown source table: {source_key!r}")
            source = tables[source_key]
        else:
            source = table
        view = build_view(
            spec, source, positions,
            locations=intrinsic.locations,
            features=features if source_key is None else None,
        )
        logger.info(f"Built view {view.name} ({view.n_features} features)")
        collection = collection.add(view)

    return collection
