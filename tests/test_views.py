"""Tests for geometry and view construction."""

import pytest
import numpy as np
import pandas as pd

from viewlab.core import (
    KernelFamily,
    IntrinsicSpec,
    DistanceWeightedSpec,
    NeighborGraphSpec,
    ConfigurationError,
    InvalidGeometry,
    EmptyView,
    SchemaMismatch,
    spec_from_dict,
)
from viewlab.views import (
    validate_positions,
    kernel_weights,
    kernel_reach,
    weight_matrix,
    delaunay_adjacency,
    neighbor_counts,
    View,
    ViewKind,
    ViewCollection,
    intrinsic_view,
    distance_weighted_view,
    neighbor_graph_view,
    build_view,
    build_views,
)


class TestSpecs:
    """Tests for view specifications."""

    def test_default_names(self):
        """Test generated view names."""
        assert IntrinsicSpec().view_name() == "intraview"
        assert DistanceWeightedSpec(radius=10).view_name() == "paraview.10"
        assert DistanceWeightedSpec(radius=2.5).view_name() == "paraview.2.5"
        assert NeighborGraphSpec(threshold=15).view_name() == "juxtaview.15"

    def test_family_from_string(self):
        """Test kernel family given as a string."""
        spec = DistanceWeightedSpec(radius=5, family="exponential")
        assert spec.family is KernelFamily.EXPONENTIAL

    def test_invalid_parameters(self):
        """Test rejected spatial parameters."""
        with pytest.raises(ConfigurationError):
            DistanceWeightedSpec(radius=0)
        with pytest.raises(ConfigurationError):
            DistanceWeightedSpec(radius=5, family="cubic")
        with pytest.raises(ConfigurationError):
            NeighborGraphSpec(threshold=-1)

    def test_from_dict(self):
        """Test parsing specs from mappings."""
        spec = spec_from_dict({"type": "distance_weighted", "radius": 10})
        assert isinstance(spec, DistanceWeightedSpec)
        assert spec.radius == 10

        with pytest.raises(ConfigurationError):
            spec_from_dict({"type": "hexagonal"})


class TestGeometry:
    """Tests for distances, kernels and adjacency."""

    def test_validate_positions_missing(self, grid):
        """Test locations without coordinates."""
        _, positions = grid
        with pytest.raises(InvalidGeometry):
            validate_positions(positions, list(positions.index) + ["ghost"])

    def test_validate_positions_nan(self):
        """Test non-finite coordinates."""
        positions = pd.DataFrame({"x": [0.0, np.nan], "y": [0.0, 1.0]}, index=["a", "b"])
        with pytest.raises(InvalidGeometry):
            validate_positions(positions)

    def test_validate_positions_unnamed_columns(self):
        """Test fallback to the first two columns."""
        positions = pd.DataFrame({"row": [0, 1], "col": [2, 3]}, index=["a", "b"])
        coords = validate_positions(positions)
        assert list(coords.columns) == ["x", "y"]
        assert coords.loc["b", "y"] == 3.0

    def test_kernel_families(self):
        """Test kernel values at known distances."""
        d = np.array([0.0, 1.0, 2.0])
        gauss = kernel_weights(d, 1.0, KernelFamily.GAUSSIAN, cutoff=0.0)
        assert gauss == pytest.approx([1.0, np.exp(-1), np.exp(-4)])

        linear = kernel_weights(d, 2.0, KernelFamily.LINEAR, cutoff=0.0)
        assert linear == pytest.approx([1.0, 0.5, 0.0])

        constant = kernel_weights(d, 1.0, KernelFamily.CONSTANT, cutoff=0.0)
        assert constant == pytest.approx([1.0, 1.0, 0.0])

    def test_kernel_cutoff_and_zoi(self):
        """Test cutoff and zone of indifference."""
        d = np.array([0.5, 1.0, 3.0])
        w = kernel_weights(d, 1.0, KernelFamily.GAUSSIAN, cutoff=0.01, zoi=0.75)
        assert w[0] == 0.0
        assert w[1] > 0.0
        assert w[2] == 0.0

    def test_kernel_reach(self):
        """Test that weights vanish beyond the reach."""
        reach = kernel_reach(2.0, KernelFamily.GAUSSIAN, 0.01)
        inside = kernel_weights(np.array([reach * 0.99]), 2.0, cutoff=0.01)
        outside = kernel_weights(np.array([reach * 1.01]), 2.0, cutoff=0.01)
        assert inside[0] > 0
        assert outside[0] == 0
        assert np.isinf(kernel_reach(2.0, KernelFamily.EXPONENTIAL, 0.0))

    def test_weight_matrix_excludes_self(self, grid):
        """Test that a location is never its own neighbor."""
        _, positions = grid
        coords = validate_positions(positions)
        w = weight_matrix(coords, coords, 1.5, KernelFamily.CONSTANT)
        assert w.diagonal().sum() == 0
        counts = neighbor_counts(w)
        assert counts.max() == 8
        assert counts.min() == 3

    def test_delaunay_grid(self, grid):
        """Test Delaunay adjacency pruned to axis-aligned edges."""
        _, positions = grid
        adjacency = delaunay_adjacency(validate_positions(positions), threshold=1.0)
        assert (adjacency != adjacency.T).nnz == 0
        counts = neighbor_counts(adjacency)
        assert counts.max() == 4
        assert counts.min() == 2

    def test_delaunay_small_input(self):
        """Test fallback with fewer than three locations."""
        coords = pd.DataFrame({"x": [0.0, 1.0], "y": [0.0, 0.0]})
        adjacency = delaunay_adjacency(coords, threshold=2.0)
        assert adjacency.nnz == 2

    def test_delaunay_collinear(self):
        """Test fallback when all points lie on a line."""
        coords = pd.DataFrame({"x": [0.0, 1.0, 2.0, 3.0], "y": [0.0] * 4})
        counts = neighbor_counts(delaunay_adjacency(coords, threshold=1.0))
        assert counts.tolist() == [1, 2, 2, 1]


class TestViews:
    """Tests for View and ViewCollection."""

    def test_intrinsic_passthrough(self, grid):
        """Test that the intrinsic view equals the source table."""
        expression, _ = grid
        view = intrinsic_view(expression)
        assert view.kind is ViewKind.INTRINSIC
        pd.testing.assert_frame_equal(view.data, expression.astype(float))

    def test_view_is_a_copy(self, grid):
        """Test that source mutation does not leak into a view."""
        expression, _ = grid
        view = intrinsic_view(expression)
        before = view.data.iloc[0, 0]
        expression.iloc[0, 0] = 1e6
        assert view.data.iloc[0, 0] == before

    def test_empty_feature_selection(self, grid):
        """Test EmptyView on an empty feature selection."""
        expression, _ = grid
        with pytest.raises(EmptyView):
            intrinsic_view(expression, features=["missing"])

    def test_distance_weighted_sum(self, grid):
        """Test the constant-kernel view equals the sum over 8 neighbors."""
        expression, positions = grid
        view = distance_weighted_view(
            expression, positions, radius=1.5, family=KernelFamily.CONSTANT
        )
        assert view.name == "paraview.1.5"
        # cell011 is at (1, 1): neighbors are the 3x3 block minus itself
        block = [f"cell{i:03d}" for i in (0, 1, 2, 10, 12, 20, 21, 22)]
        expected = expression.loc[block].sum()
        assert view.data.loc["cell011"].to_numpy() == pytest.approx(expected.to_numpy())

    def test_isolated_location_gets_zeros(self):
        """Test that a location without neighbors gets a zero vector."""
        expression = pd.DataFrame({"a": [1.0, 2.0, 3.0]}, index=["p", "q", "r"])
        positions = pd.DataFrame(
            {"x": [0.0, 1.0, 100.0], "y": [0.0, 0.0, 0.0]}, index=["p", "q", "r"]
        )
        view = distance_weighted_view(
            expression, positions, radius=1.0, family=KernelFamily.CONSTANT
        )
        assert view.data.loc["r", "a"] == 0.0
        assert view.data.loc["p", "a"] == 2.0

    def test_neighbor_graph_mean(self, grid):
        """Test the juxtaview equals the mean over direct neighbors."""
        expression, positions = grid
        view = neighbor_graph_view(expression, positions, threshold=1.0)
        neighbors = [f"cell{i:03d}" for i in (1, 10, 12, 21)]
        expected = expression.loc[neighbors].mean()
        assert view.data.loc["cell011"].to_numpy() == pytest.approx(expected.to_numpy())

    def test_missing_positions(self, grid):
        """Test InvalidGeometry for locations without coordinates."""
        expression, positions = grid
        with pytest.raises(InvalidGeometry):
            distance_weighted_view(expression, positions.iloc[1:], radius=2.0)

    def test_collection_order_and_lookup(self, grid_views):
        """Test collection names and lookup."""
        assert grid_views.names == ["intraview", "paraview.1.5"]
        assert grid_views.intrinsic.name == "intraview"
        assert "paraview.1.5" in grid_views
        assert len(grid_views) == 2
        assert grid_views.targets == ["f1", "f2", "f3"]

    def test_duplicate_view_name(self, grid_views):
        """Test that view names are unique."""
        with pytest.raises(ConfigurationError):
            grid_views.add(grid_views["paraview.1.5"])

    def test_location_mismatch(self, grid_views):
        """Test that context views must share the intrinsic locations."""
        short = grid_views["paraview.1.5"].with_locations(grid_views.locations[:50])
        with pytest.raises(SchemaMismatch):
            grid_views.add(short.renamed("short"))

    def test_functional_updates(self, grid_views):
        """Test that collection updates return new collections."""
        renamed = grid_views.rename("paraview.1.5", "para")
        assert renamed.names == ["intraview", "para"]
        assert grid_views.names == ["intraview", "paraview.1.5"]

        removed = renamed.remove("para")
        assert removed.names == ["intraview"]
        with pytest.raises(ConfigurationError):
            removed.remove("intraview")

        restricted = grid_views.restrict(grid_views.locations[:20])
        assert all(v.n_locations == 20 for v in restricted)

    def test_build_view_dispatch(self, grid):
        """Test that each spec variant builds its view kind."""
        expression, positions = grid
        assert build_view(IntrinsicSpec(), expression).kind is ViewKind.INTRINSIC
        para = build_view(DistanceWeightedSpec(radius=2), expression, positions)
        assert para.kind is ViewKind.DISTANCE_WEIGHTED
        juxta = build_view(NeighborGraphSpec(threshold=1.5), expression, positions)
        assert juxta.kind is ViewKind.NEIGHBOR_GRAPH

        with pytest.raises(ConfigurationError):
            build_view("paraview", expression, positions)

    def test_build_views_with_source_table(self, grid):
        """Test a context view aggregating a different table."""
        expression, positions = grid
        other = pd.DataFrame({"g": np.ones(len(expression))}, index=expression.index)
        views = build_views(
            expression, positions,
            [DistanceWeightedSpec(radius=1.5, family="constant", name="para_g")],
            tables={"other": other},
            sources={"para_g": "other"},
        )
        assert views["para_g"].features == ["g"]
        assert views["para_g"].data["g"].max() == 8.0

    def test_view_rejects_non_numeric(self):
        """Test SchemaMismatch for non-numeric features."""
        with pytest.raises(SchemaMismatch):
            View("bad", pd.DataFrame({"a": ["x", "y"]}))
