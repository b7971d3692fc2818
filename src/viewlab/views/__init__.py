"""
ViewLab Views: spatial geometry and view construction.

A view is a named feature table over a fixed set of locations:

- intraview: features measured at each location
- paraview.<radius>: kernel-weighted sum of features over all locations
- juxtaview.<threshold>: mean of features over Delaunay neighbors

Usage:
    >>> from viewlab.views import build_views
    >>> from viewlab.core import DistanceWeightedSpec, NeighborGraphSpec
    >>>
    >>> views = build_views(
    ...     expression, positions,
    ...     [DistanceWeightedSpec(radius=10), NeighborGraphSpec(threshold=15)],
    ... )
    >>> views.names
    ['intraview', 'paraview.10', 'juxtaview.15']
"""

from .geometry import (
    validate_positions,
    pairwise_distances,
    kernel_weights,
    kernel_reach,
    weight_matrix,
    delaunay_adjacency,
    neighbor_counts,
)

from .builder import (
    View,
    ViewKind,
    ViewCollection,
    intrinsic_view,
    distance_weighted_view,
    neighbor_graph_view,
    build_view,
    build_views,
)

__all__ = [
    # Geometry
    "validate_positions",
    "pairwise_distances",
    "kernel_weights",
    "kernel_reach",
    "weight_matrix",
    "delaunay_adjacency",
    "neighbor_counts",

    # Views
    "View",
    "ViewKind",
    "ViewCollection",
    "intrinsic_view",
    "distance_weighted_view",
    "neighbor_graph_view",
    "build_view",
    "build_views",
]
