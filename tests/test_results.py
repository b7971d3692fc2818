"""Tests for result aggregation, merging, signatures and export."""

import pytest
import numpy as np
import pandas as pd

from viewlab.core import SchemaMismatch
from viewlab.results import (
    AggregatedResultSet,
    merge,
    collect_from_cache,
    SignatureType,
    extract_signature,
    export_tables,
    load_tables,
)
from viewlab.cache import FileCacheStore, MemoryCacheStore


def result_set(grid_run, targets, sample="slide1", locations_key="grid"):
    return AggregatedResultSet.from_fused(
        [grid_run.fused[t] for t in targets],
        sample=sample,
        views=grid_run.views,
        locations_key=locations_key,
    )


class TestAggregatedResultSet:
    """Tests for building result tables."""

    def test_tables(self, grid_run):
        """Test row counts of each table."""
        results = grid_run.results
        assert results.n_targets == 3
        assert len(results.contributions) == 3 * 2
        assert results.n_failed == 0
        assert results.targets == ["f1", "f2", "f3"]
        assert set(results.importances["view"]) == {"intraview", "paraview.1.5"}

    def test_contributions_sum_to_one(self, grid_run):
        """Test per-target contribution normalization."""
        sums = grid_run.results.contributions.groupby("target")["contribution"].sum()
        assert np.allclose(sums.to_numpy(dtype=float), 1.0)

    def test_view_schema_checked(self, grid_run):
        """Test SchemaMismatch for results with other views."""
        with pytest.raises(SchemaMismatch):
            AggregatedResultSet.from_fused(
                [grid_run.fused["f1"]], views=["intraview", "juxtaview.2"]
            )

    def test_failures_table(self, grid_run):
        """Test failure rows."""
        results = AggregatedResultSet.from_fused(
            [grid_run.fused["f1"]],
            sample="s",
            failures=[{"target": "f9", "error": "InsufficientData", "message": "few"}],
        )
        assert results.n_failed == 1
        assert results.failures.iloc[0]["target"] == "f9"

    def test_improvement_stats(self, grid_run):
        """Test per-target statistics across samples."""
        merged = merge(
            result_set(grid_run, ["f1"], sample="a", locations_key="ka"),
            result_set(grid_run, ["f1"], sample="b", locations_key="kb"),
        )
        stats = merged.improvement_stats()
        row = stats[(stats["target"] == "f1") & (stats["measure"] == "gain.R2")].iloc[0]
        assert row["mean"] == pytest.approx(grid_run.fused["f1"].gain_r2)
        assert row["sd"] == pytest.approx(0.0)

    def test_weighted_importances(self, grid_run):
        """Test contribution-weighted importances."""
        plain = grid_run.results.aggregated_importances()
        weighted = grid_run.results.aggregated_importances(weighted=True)
        assert len(plain) == len(weighted)
        assert (weighted["importance"] <= plain["importance"] + 1e-12).all()

    def test_summary(self, grid_run):
        """Test the text summary."""
        text = grid_run.results.summary()
        assert "Targets computed: 3" in text


class TestMerge:
    """Tests for merging result sets."""

    def test_disjoint_targets(self, grid_run):
        """Test that row counts add up."""
        a = result_set(grid_run, ["f1"])
        b = result_set(grid_run, ["f2", "f3"])
        merged = merge(a, b)
        assert merged.n_targets == a.n_targets + b.n_targets
        assert len(merged.contributions) == len(a.contributions) + len(b.contributions)
        assert len(merged.importances) == len(a.importances) + len(b.importances)

    def test_different_views(self, grid_run):
        """Test SchemaMismatch for different view schemas."""
        a = result_set(grid_run, ["f1"])
        b = AggregatedResultSet(views=["intraview"])
        with pytest.raises(SchemaMismatch):
            merge(a, b)

    def test_duplicate_rows(self, grid_run):
        """Test SchemaMismatch for the same (sample, target) twice."""
        a = result_set(grid_run, ["f1"])
        with pytest.raises(SchemaMismatch):
            merge(a, result_set(grid_run, ["f1"]))

    def test_sample_location_conflict(self, grid_run):
        """Test SchemaMismatch for one sample over two location sets."""
        a = result_set(grid_run, ["f1"], locations_key="k1")
        b = result_set(grid_run, ["f2"], locations_key="k2")
        with pytest.raises(SchemaMismatch):
            merge(a, b)

    def test_collect_from_cache(self, grid_run):
        """Test rebuilding results from completion markers."""
        store = MemoryCacheStore()
        keys = {}
        for target in ["f1", "f2"]:
            key = f"key-{target}"
            store.put(key, grid_run.fused[target])
            keys[target] = key
        store.mark_complete("run-a", {
            "sample": "a",
            "views": grid_run.views,
            "result_keys": keys,
            "failures": [],
            "locations_key": "grid",
        })

        collected = collect_from_cache(store, ["run-a", "run-unfinished"])
        assert collected.n_targets == 2
        assert collected.samples == {"a": "grid"}

        with pytest.raises(SchemaMismatch):
            collect_from_cache(store, ["run-unfinished"])

    def test_collect_with_corrupt_entry(self, grid_run, tmp_path):
        """Test that an unreadable entry becomes a failure row."""
        store = FileCacheStore(tmp_path)
        keys = {"f1": "aa" + "0" * 62, "f2": "bb" + "0" * 62}
        for target, key in keys.items():
            store.put(key, grid_run.fused[target])
        store.mark_complete("run-a", {
            "sample": "a",
            "views": grid_run.views,
            "result_keys": keys,
            "failures": [],
            "locations_key": "grid",
        })
        store._entry_path(keys["f1"]).write_bytes(b"garbage")

        collected = collect_from_cache(store, ["run-a"])
        assert collected.targets == ["f2"]
        assert collected.failures["target"].tolist() == ["f1"]
        assert collected.failures["error"].tolist() == ["CacheCorruption"]

    def test_collect_with_missing_entry(self, grid_run):
        """Test that a deleted entry becomes a failure row."""
        store = MemoryCacheStore()
        store.put("key-f1", grid_run.fused["f1"])
        store.mark_complete("run-a", {
            "sample": "a",
            "views": grid_run.views,
            "result_keys": {"f1": "key-f1", "f2": "key-f2"},
            "failures": [{"target": "f3", "error": "InsufficientData", "message": ""}],
            "locations_key": "grid",
        })

        collected = collect_from_cache(store, ["run-a"])
        assert collected.n_targets == 1
        assert sorted(collected.failures["target"]) == ["f2", "f3"]


class TestSignatures:
    """Tests for per-sample signatures."""

    def test_performance_signature(self, grid_run):
        """Test one row per sample and one column per target."""
        merged = merge(
            result_set(grid_run, ["f1", "f2"], sample="a", locations_key="ka"),
            result_set(grid_run, ["f1"], sample="b", locations_key="kb"),
        )
        signature = extract_signature(merged, SignatureType.PERFORMANCE)
        assert list(signature.index) == ["a", "b"]
        assert list(signature.columns) == ["f1", "f2"]
        assert signature.loc["b", "f2"] == 0.0

    def test_contribution_signature(self, grid_run):
        """Test view_target column naming."""
        signature = extract_signature(grid_run.results, "contribution")
        assert "paraview.1.5_f1" in signature.columns
        assert signature.shape == (1, 6)

    def test_empty(self):
        """Test an empty result set."""
        signature = extract_signature(AggregatedResultSet(views=["intraview"]))
        assert signature.empty


class TestExport:
    """Tests for CSV export."""

    def test_export_and_load(self, grid_run, tmp_path):
        """Test that exported tables load back unchanged."""
        results = grid_run.results
        paths = export_tables(results, tmp_path / "out")
        assert paths["performance"].exists()

        loaded = load_tables(tmp_path / "out")
        assert loaded.views == results.views
        assert loaded.samples == results.samples
        pd.testing.assert_frame_equal(
            loaded.performance.reset_index(drop=True),
            results.performance.reset_index(drop=True),
            check_dtype=False,
        )

    def test_load_missing(self, tmp_path):
        """Test FileNotFoundError for a missing directory."""
        with pytest.raises(FileNotFoundError):
            load_tables(tmp_path / "nothing")
