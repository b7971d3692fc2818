"""
ViewLab Models: per-view learning, meta-model fusion and significance.

Pipeline for one target
-----------------------
1. ``FoldAssignment.create``: one deterministic k-fold partition per run
2. ``train``: per-view regressor, out-of-fold predictions and importances
3. ``combine``: ridge meta-model over the per-view predictions, with an
   intrinsic-only baseline cross-validated on the same folds
4. ``significance_test``: one-sided signed-rank test on fold deltas

Example
-------
>>> from viewlab.models import FoldAssignment, train, combine
>>>
>>> folds = FoldAssignment.create(views.locations, n_folds=10, seed=42)
>>> y = views.intrinsic.data["CD3"]
>>> per_view = {v.name: train(v, "CD3", y, folds) for v in views}
>>> fused = combine(y, {n: r.predictions for n, r in per_view.items()}, folds)
>>> print(f"Gain R2: {fused.gain_r2:.3f} (p={fused.p_values['R2']:.3g})")
"""

from viewlab.models.folds import FoldAssignment
from viewlab.models.learner import (
    PerViewResult,
    train,
    make_regressor,
    candidate_predictors,
    usable_predictors,
)
from viewlab.models.meta import (
    FusedResult,
    combine,
    normalize_contributions,
    r_squared,
    rmse,
)
from viewlab.models.significance import (
    test as significance_test,
    signed_rank_pvalue,
    fold_deltas,
)

__all__ = [
    # Folds
    "FoldAssignment",
    # Per-view learner
    "PerViewResult",
    "train",
    "make_regressor",
    "candidate_predictors",
    "usable_predictors",
    # Meta-model
    "FusedResult",
    "combine",
    "normalize_contributions",
    "r_squared",
    "rmse",
    # Significance
    "significance_test",
    "signed_rank_pvalue",
    "fold_deltas",
]
