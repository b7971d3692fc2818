"""
ViewLab Views: spatial geometry.

Distances, kernel weights and Delaunay adjacency over 2D location
coordinates. All functions are pure: inputs are never modified.
"""

import logging
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from scipy import sparse
from scipy.spatial import Delaunay, QhullError, cKDTree
from scipy.spatial.distance import cdist

from ..core.config import KernelFamily
from ..core.errors import InvalidGeometry

logger = logging.getLogger(__name__)


def validate_positions(
    positions: pd.DataFrame,
    locations: Optional[Sequence] = None,
) -> pd.DataFrame:
    """
    Check coordinates and align them to a location set.

    Args:
        positions: DataFrame indexed by location. Uses columns "x" and "y"
            when present, otherwise the first two columns.
        locations: Locations that must all have coordinates. Defaults to
            every row of ``positions``.

    Returns:
        Float DataFrame with columns ["x", "y"] in ``locations`` order.

    Raises:
        InvalidGeometry: If coordinates are missing, duplicated or not finite.
    """
    if not isinstance(positions, pd.DataFrame):
        raise InvalidGeometry("positions must be a pandas DataFrame")
    if positions.index.has_duplicates:
        raise InvalidGeometry("positions index contains duplicate locations")

    if {"x", "y"}.issubset(positions.columns):
        coords = positions[["x", "y"]]
    elif positions.shape[1] >= 2:
        coords = positions.iloc[:, :2].set_axis(["x", "y"], axis=1)
    else:
        raise InvalidGeometry(
            f"positions needs two coordinate columns, got {positions.shape[1]}"
        )

    if locations is not None:
        locations = pd.Index(locations)
        missing = locations.difference(coords.index)
        if len(missing) > 0:
            preview = ", ".join(map(str, missing[:5]))
            raise InvalidGeometry(
                f"{len(missing)} location(s) lack coordinates: {preview}"
            )
        coords = coords.loc[locations]

    try:
        coords = coords.astype(float)
    except (TypeError, ValueError) as e:
        raise InvalidGeometry(f"Non-numeric coordinates: {e}")

    if not np.isfinite(coords.to_numpy()).all():
        raise InvalidGeometry("Coordinates contain NaN or infinite values")

    return coords


def pairwise_distances(coords: pd.DataFrame) -> np.ndarray:
    """Dense Euclidean distance matrix between all locations."""
    xy = coords.to_numpy(dtype=float)
    return cdist(xy, xy)


def kernel_weights(
    distances: np.ndarray,
    radius: float,
    family: KernelFamily = KernelFamily.GAUSSIAN,
    cutoff: float = 0.01,
    zoi: float = 0.0,
) -> np.ndarray:
    """
    Convert distances to neighbor weights, elementwise.

    Families:
        gaussian:    exp(-d^2 / l^2)
        exponential: exp(-d / l)
        linear:      max(0, 1 - d / l)
        constant:    1 for d <= l, else 0

    Weights below ``cutoff`` become 0, as do pairs closer than ``zoi``.

    Args:
        distances: Array of distances (any shape).
        radius: Length scale l.
        family: Decay family.
        cutoff: Minimum weight kept.
        zoi: Zone of indifference.

    Returns:
        Weights, same shape as ``distances``.
    """
    d = np.asarray(distances, dtype=float)

    if family is KernelFamily.GAUSSIAN:
        w = np.exp(-(d ** 2) / radius ** 2)
    elif family is KernelFamily.EXPONENTIAL:
        w = np.exp(-d / radius)
    elif family is KernelFamily.LINEAR:
        w = np.clip(1.0 - d / radius, 0.0, None)
    elif family is KernelFamily.CONSTANT:
        w = (d <= radius).astype(float)
    else:
        raise ValueError(f"Unhandled kernel family: {family!r}")

    w = np.where(w < cutoff, 0.0, w)
    if zoi > 0:
        w = np.where(d < zoi, 0.0, w)
    return w


def kernel_reach(
    radius: float,
    family: KernelFamily,
    cutoff: float,
) -> float:
    """
    Largest distance at which a kernel weight can still reach ``cutoff``.

    Returns ``inf`` when the kernel never drops below the cutoff.
    """
    if family is KernelFamily.CONSTANT:
        return float(radius)
    if family is KernelFamily.LINEAR:
        return float(radius * (1.0 - min(cutoff, 1.0)))
    if cutoff <= 0:
        return np.inf
    if cutoff >= 1:
        return 0.0
    if family is KernelFamily.GAUSSIAN:
        return float(radius * np.sqrt(-np.log(cutoff)))
    if family is KernelFamily.EXPONENTIAL:
        return float(-radius * np.log(cutoff))
    raise ValueError(f"Unhandled kernel family: {family!r}")


def weight_matrix(
    target: pd.DataFrame,
    source: pd.DataFrame,
    radius: float,
    family: KernelFamily = KernelFamily.GAUSSIAN,
    cutoff: float = 0.01,
    zoi: float = 0.0,
) -> sparse.csr_matrix:
    """
    Sparse kernel weights from every target location to every source location.

    Candidate pairs are found with a KD-tree bounded by the kernel reach,
    so memory grows with the number of neighbors rather than n^2. A
    location is never its own neighbor: pairs sharing a location id get
    weight 0.

    Args:
        target: Coordinates of the rows of the resulting view.
        source: Coordinates of the locations being aggregated.
        radius: Kernel length scale.
        family: Kernel family.
        cutoff: Minimum weight kept.
        zoi: Zone of indifference.

    Returns:
        CSR matrix of shape (len(target), len(source)).
    """
    t_xy = target.to_numpy(dtype=float)
    s_xy = source.to_numpy(dtype=float)
    shape = (len(t_xy), len(s_xy))

    reach = kernel_reach(radius, family, cutoff)
    if np.isfinite(reach):
        tree = cKDTree(s_xy)
        hits = tree.query_ball_point(t_xy, r=reach)
        lengths = np.fromiter((len(h) for h in hits), dtype=int, count=len(hits))
        rows = np.repeat(np.arange(len(t_xy)), lengths)
        cols = (
            np.concatenate([np.asarray(h, dtype=int) for h in hits])
            if lengths.sum() > 0 else np.empty(0, dtype=int)
        )
    else:
        rows, cols = np.indices(shape)
        rows, cols = rows.ravel(), cols.ravel()

    d = np.linalg.norm(t_xy[rows] - s_xy[cols], axis=1) if len(rows) else np.empty(0)
    w = kernel_weights(d, radius, family=family, cutoff=cutoff, zoi=zoi)

    same = target.index.to_numpy()[rows] == source.index.to_numpy()[cols]
    keep = (w > 0) & ~same

    return sparse.csr_matrix((w[keep], (rows[keep], cols[keep])), shape=shape)


def neighbor_counts(weights) -> np.ndarray:
    """Number of nonzero neighbors per location (dense or sparse input)."""
    if sparse.issparse(weights):
        return np.diff(sparse.csr_matrix(weights).indptr)
    return np.count_nonzero(weights, axis=1)


def _threshold_adjacency(xy: np.ndarray, threshold: float) -> sparse.csr_matrix:
    adj = cdist(xy, xy) <= threshold
    np.fill_diagonal(adj, False)
    return sparse.csr_matrix(adj)


def delaunay_adjacency(coords: pd.DataFrame, threshold: float) -> sparse.csr_matrix:
    """
    Planar neighbor graph from a Delaunay triangulation.

    Triangle edges longer than ``threshold`` are dropped. With fewer than
    three locations, or when all points are collinear, the triangulation
    does not exist and plain distance-threshold adjacency is used instead.

    Args:
        coords: Location coordinates (columns x, y).
        threshold: Maximum edge length.

    Returns:
        Symmetric boolean adjacency matrix (CSR), empty diagonal.
    """
    xy = coords.to_numpy(dtype=float)
    n = xy.shape[0]

    if n < 3:
        return _threshold_adjacency(xy, threshold)

    try:
        tri = Delaunay(xy)
    except QhullError:
        logger.debug("Delaunay triangulation failed, using threshold adjacency")
        return _threshold_adjacency(xy, threshold)

    simplices = tri.simplices
    edges = np.vstack([
        simplices[:, [0, 1]],
        simplices[:, [1, 2]],
        simplices[:, [0, 2]],
    ])
    edges = np.unique(np.sort(edges, axis=1), axis=0)

    lengths = np.linalg.norm(xy[edges[:, 0]] - xy[edges[:, 1]], axis=1)
    edges = edges[lengths <= threshold]

    rows = np.concatenate([edges[:, 0], edges[:, 1]])
    cols = np.concatenate([edges[:, 1], edges[:, 0]])
    data = np.ones(len(rows), dtype=bool)

    return sparse.csr_matrix((data, (rows, cols)), shape=(n, n))
