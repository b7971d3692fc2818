"""
ViewLab Results: aggregation of fused results.

Turns per-target FusedResults, from one or many runs (samples, slides),
into flat joinable tables:

- performance:   one row per (sample, target)
- contributions: one row per (sample, target, view)
- importances:   one row per (sample, target, view, predictor)
- failures:      one row per failed (sample, target)

Result sets are purely derived: they can be rebuilt from the cache at
any time with ``collect_from_cache``.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, List, Any, Iterable, Sequence
import logging

import numpy as np
import pandas as pd

from ..core.errors import CacheCorruption, SchemaMismatch
from ..models.meta import FusedResult

logger = logging.getLogger(__name__)

PERFORMANCE_COLUMNS = [
    "sample", "target",
    "intra.R2", "multi.R2", "gain.R2",
    "intra.RMSE", "multi.RMSE", "gain.RMSE",
    "p.R2", "p.RMSE",
]
CONTRIBUTION_COLUMNS = ["sample", "target", "view", "coefficient", "contribution"]
IMPORTANCE_COLUMNS = ["sample", "target", "view", "predictor", "importance"]
FAILURE_COLUMNS = ["sample", "target", "error", "message"]


def _empty(columns: Sequence[str]) -> pd.DataFrame:
    return pd.DataFrame({c: pd.Series(dtype=object) for c in columns})


@dataclass
class AggregatedResultSet:
    """
    Flat result tables across targets and samples.

    Attributes:
        views: View names shared by every result (the schema).
        performance: Per-target performance and p-values.
        contributions: Per-view coefficients and normalized contributions.
        importances: Per-view predictor importances.
        failures: Targets that could not be computed, with the reason.
        samples: Sample name -> fingerprint of its location set.
    """
    views: List[str]
    performance: pd.DataFrame = field(default_factory=lambda: _empty(PERFORMANCE_COLUMNS))
    contributions: pd.DataFrame = field(default_factory=lambda: _empty(CONTRIBUTION_COLUMNS))
    importances: pd.DataFrame = field(default_factory=lambda: _empty(IMPORTANCE_COLUMNS))
    failures: pd.DataFrame = field(default_factory=lambda: _empty(FAILURE_COLUMNS))
    samples: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_fused(
        cls,
        results: Iterable[FusedResult],
        sample: str = "sample",
        views: Optional[Sequence[str]] = None,
        failures: Optional[Iterable[Dict[str, Any]]] = None,
        locations_key: str = "",
    ) -> "AggregatedResultSet":
        """
        Build a result set from the fused results of one sample.

        Args:
            results: FusedResult per successful target.
            sample: Sample / run identifier stamped on every row.
            views: Expected view schema; inferred from the first result
                when omitted.
            failures: Dicts with keys "target", "error", "message".
            locations_key: Fingerprint of the sample's location set.

        Raises:
            SchemaMismatch: If results disagree on their views.
        """
        results = list(results)
        schema = list(views) if views is not None else (
            list(results[0].views) if results else []
        )

        perf_rows, contrib_rows, imp_rows = [], [], []
        for result in results:
            if sorted(result.views) != sorted(schema):
                raise SchemaMismatch(
                    f"Target {result.target!r} has views {result.views}, "
                    f"expected {schema}"
                )
            perf_rows.append({"sample": sample, **result.performance_row()})
            for view in result.views:
                contrib_rows.append({
                    "sample": sample,
                    "target": result.target,
                    "view": view,
                    "coefficient": float(result.coefficients[view]),
                    "contribution": float(result.contributions[view]),
                })
            for view, importances in result.importances.items():
                for predictor, value in importances.items():
                    imp_rows.append({
                        "sample": sample,
                        "target": result.target,
                        "view": view,
                        "predictor": predictor,
                        "importance": float(value),
                    })

        failure_rows = [
            {
                "sample": sample,
                "target": f.get("target"),
                "error": f.get("error"),
                "message": f.get("message", ""),
            }
            for f in (failures or [])
        ]

        def frame(rows, columns):
            return pd.DataFrame(rows, columns=columns) if rows else _empty(columns)

        return cls(
            views=schema,
            performance=frame(perf_rows, PERFORMANCE_COLUMNS),
            contributions=frame(contrib_rows, CONTRIBUTION_COLUMNS),
            importances=frame(imp_rows, IMPORTANCE_COLUMNS),
            failures=frame(failure_rows, FAILURE_COLUMNS),
            samples={sample: locations_key},
        )

    @property
    def n_targets(self) -> int:
        return len(self.performance)

    @property
    def n_failed(self) -> int:
        return len(self.failures)

    @property
    def targets(self) -> List[str]:
        return sorted(self.performance["target"].unique().tolist())

    def improvement_stats(self) -> pd.DataFrame:
        """
        Mean, standard deviation and coefficient of variation of each
        performance measure per target, across samples.
        """
        measures = [c for c in PERFORMANCE_COLUMNS if c not in ("sample", "target")]
        if self.performance.empty:
            return pd.DataFrame(columns=["target", "measure", "mean", "sd", "cv"])

        long = self.performance.melt(
            id_vars=["target"], value_vars=measures, var_name="measure"
        )
        long["value"] = long["value"].astype(float)
        stats = (
            long.groupby(["target", "measure"])["value"]
            .agg(mean="mean", sd="std")
            .reset_index()
        )
        stats["sd"] = stats["sd"].fillna(0.0)
        stats["cv"] = np.where(
            stats["mean"] != 0, stats["sd"] / stats["mean"].abs(), np.nan
        )
        return stats

    def contribution_stats(self) -> pd.DataFrame:
        """Mean contribution of each view per target, across samples."""
        if self.contributions.empty:
            return pd.DataFrame(columns=["target", "view", "mean", "sd", "n"])
        df = self.contributions.copy()
        df["contribution"] = df["contribution"].astype(float)
        stats = (
            df.groupby(["target", "view"])["contribution"]
            .agg(mean="mean", sd="std", n="count")
            .reset_index()
        )
        stats["sd"] = stats["sd"].fillna(0.0)
        return stats

    def aggregated_importances(self, weighted: bool = False) -> pd.DataFrame:
        """
        Mean importance per (view, target, predictor) across samples.

        Args:
            weighted: Scale each importance by its view's contribution to
                the target before averaging.
        """
        if self.importances.empty:
            return pd.DataFrame(columns=["view", "target", "predictor", "importance"])
        df = self.importances.copy()
        df["importance"] = df["importance"].astype(float)
        if weighted:
            df = df.merge(
                self.contributions[["sample", "target", "view", "contribution"]],
                on=["sample", "target", "view"],
                how="left",
            )
            df["importance"] = df["importance"] * df["contribution"].astype(float).fillna(0.0)
        return (
            df.groupby(["view", "target", "predictor"])["importance"]
            .mean()
            .reset_index()
        )

    def summary(self) -> str:
        """Human-readable overview."""
        lines = [
            "=" * 60,
            "AGGREGATED RESULTS",
            "=" * 60,
            f"  Samples: {len(self.samples)}",
            f"  Views: {', '.join(self.views)}",
            f"  Targets computed: {self.n_targets}",
            f"  Targets failed: {self.n_failed}",
        ]
        if not self.performance.empty:
            perf = self.performance
            lines.extend([
                "",
                "PERFORMANCE (mean across rows):",
                f"  intra.R2: {perf['intra.R2'].astype(float).mean():.3f}",
                f"  multi.R2: {perf['multi.R2'].astype(float).mean():.3f}",
                f"  gain.R2:  {perf['gain.R2'].astype(float).mean():.3f}",
            ])
        if not self.failures.empty:
            lines.extend(["", "FAILURES:"])
            for _, row in self.failures.head(10).iterrows():
                lines.append(f"  {row['sample']}/{row['target']}: {row['error']}")
        lines.append("=" * 60)
        return "\n".join(lines)


def merge(*result_sets: AggregatedResultSet) -> AggregatedResultSet:
    """
    Combine result sets with the same view schema.

    Rows are concatenated; nothing is recomputed.

    Raises:
        SchemaMismatch: Different view sets, the same sample with a
            different location set, or the same (sample, target) twice.
    """
    if not result_sets:
        raise ValueError("merge() needs at least one result set")

    schema = sorted(result_sets[0].views)
    samples: Dict[str, str] = {}
    for rs in result_sets:
        if sorted(rs.views) != schema:
            raise SchemaMismatch(
                f"Cannot merge view schemas {sorted(rs.views)} and {schema}"
            )
        for sample, key in rs.samples.items():
            if sample in samples and samples[sample] != key:
                raise SchemaMismatch(
                    f"Sample {sample!r} appears with different location sets"
                )
            samples[sample] = key

    def concat(attr: str, columns: Sequence[str]) -> pd.DataFrame:
        frames = [getattr(rs, attr) for rs in result_sets if not getattr(rs, attr).empty]
        if not frames:
            return _empty(columns)
        return pd.concat(frames, ignore_index=True)

    performance = concat("performance", PERFORMANCE_COLUMNS)
    duplicated = performance.duplicated(subset=["sample", "target"])
    if duplicated.any():
        dupes = performance.loc[duplicated, ["sample", "target"]].values.tolist()[:5]
        raise SchemaMismatch(f"Duplicate (sample, target) rows: {dupes}")

    merged = AggregatedResultSet(
        views=list(result_sets[0].views),
        performance=performance,
        contributions=concat("contributions", CONTRIBUTION_COLUMNS),
        importances=concat("importances", IMPORTANCE_COLUMNS),
        failures=concat("failures", FAILURE_COLUMNS),
        samples=samples,
    )
    logger.info(
        f"Merged {len(result_sets)} result sets: "
        f"{merged.n_targets} targets, {merged.n_failed} failures"
    )
    return merged


def collect_from_cache(store, run_keys: Sequence[str]) -> AggregatedResultSet:
    """
    Rebuild a result set from completed runs in a cache store.

    Each run's completion marker lists the cache key of every successful
    target and the failures. Runs without a marker are skipped with a
    warning. A target whose entry is missing or unreadable is reported in
    the failures table instead of aborting the rebuild.

    Args:
        store: CacheStore the runs were written to.
        run_keys: Run fingerprints (see ``RunResult.run_key``).
    """
    sets = []
    for run_key in run_keys:
        marker = store.read_marker(run_key)
        if marker is None:
            logger.warning(f"Run {run_key[:12]} has no completion marker, skipping")
            continue

        fused, failures = [], list(marker.get("failures", []))
        for target, key in marker.get("result_keys", {}).items():
            try:
                fused.append(store.get(key))
            except CacheCorruption as e:
                logger.warning(f"Run {run_key[:12]}, target {target}: {e}")
                failures.append(
                    {"target": target, "error": "CacheCorruption", "message": str(e)}
                )
            except KeyError:
                logger.warning(
                    f"Run {run_key[:12]}, target {target}: entry {key[:12]} missing"
                )
                failures.append({
                    "target": target,
                    "error": "CacheCorruption",
                    "message": f"Missing cache entry {key}",
                })

        sets.append(AggregatedResultSet.from_fused(
            fused,
            sample=marker.get("sample", run_key[:12]),
            views=marker.get("views"),
            failures=failures,
            locations_key=marker.get("locations_key", ""),
        ))
    if not sets:
        raise SchemaMismatch("No completed runs to collect")
    return merge(*sets)
