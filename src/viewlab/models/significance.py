"""
Significance of the multi-view gain.

Compares fold-level performance of the multi-view meta-model with the
intrinsic-only baseline using a one-sided Wilcoxon signed-rank test on
the paired fold deltas. No resampling is involved, so the
result depends only on the inputs.
"""

from typing import Dict, Optional
import logging

import numpy as np
import pandas as pd
from scipy import stats

from ..core.constants import PERFORMANCE_MEASURES
from ..core.errors import SchemaMismatch
from .folds import FoldAssignment

logger = logging.getLogger(__name__)

# Deltas smaller than this are ties.
TIE_TOLERANCE = 1e-12


def fold_deltas(
    baseline: pd.DataFrame,
    combined: pd.DataFrame,
    measure: str,
) -> np.ndarray:
    """
    Per-fold improvement of the combined model for one measure.

    R2 improves upward (combined - baseline); RMSE improves downward
    (baseline - combined).
    """
    if measure == "R2":
        delta = combined[measure].to_numpy(float) - baseline[measure].to_numpy(float)
    elif measure == "RMSE":
        delta = baseline[measure].to_numpy(float) - combined[measure].to_numpy(float)
    else:
        raise ValueError(f"Unknown performance measure: {measure!r}")
    return delta[np.isfinite(delta)]


def signed_rank_pvalue(deltas: np.ndarray) -> float:
    """
    One-sided signed-rank p-value for H1: median delta > 0.

    Ties at zero are discarded. No remaining deltas means no evidence of
    improvement, reported as p = 1.
    """
    deltas = np.asarray(deltas, dtype=float)
    deltas = deltas[np.abs(deltas) > TIE_TOLERANCE]
    if len(deltas) == 0:
        return 1.0

    try:
        result = stats.wilcoxon(deltas, alternative="greater")
    except ValueError as e:
        logger.debug(f"Signed-rank test not computable: {e}")
        return 1.0

    p = float(result.pvalue)
    if not np.isfinite(p):
        return 1.0
    return float(np.clip(p, 0.0, 1.0))


def test(
    baseline: pd.DataFrame,
    combined: pd.DataFrame,
    folds: Optional[FoldAssignment] = None,
) -> Dict[str, float]:
    """
    P-values for the gain of the combined model over the baseline.

    Args:
        baseline: Per-fold performance of the intrinsic-only model,
            columns "R2" and "RMSE", one row per fold.
        combined: Per-fold performance of the multi-view model, same shape.
        folds: Fold assignment the rows refer to; used to check the row
            count.

    Returns:
        Mapping measure -> p-value in [0, 1]. Negative or zero gains give
        p-values at or near 1.
    """
    if len(baseline) != len(combined):
        raise SchemaMismatch("Baseline and combined fold tables differ in length")
    if folds is not None and len(baseline) != folds.n_folds:
        raise SchemaMismatch(
            f"Expected {folds.n_folds} fold rows, got {len(baseline)}"
        )

    return {
        measure: signed_rank_pvalue(fold_deltas(baseline, combined, measure))
        for measure in PERFORMANCE_MEASURES
    }
