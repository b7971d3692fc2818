"""
Meta-model combiner.

Fuses the out-of-fold predictions of all views for one target with a
ridge regression. The same fold partition used by the per-view learners
is reused to cross-validate the meta-model itself, once with every view
(multi-view model) and once with the intrinsic view alone (baseline).
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Mapping, List, Tuple, Iterable
import logging

import numpy as np
import pandas as pd
from sklearn.linear_model import Ridge

from ..core.constants import INTRINSIC_VIEW
from ..core.errors import SchemaMismatch
from .folds import FoldAssignment
from . import significance

logger = logging.getLogger(__name__)


def r_squared(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Coefficient of determination; 0 when the target is constant."""
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    ss_tot = float(np.sum((y_true - y_true.mean()) ** 2))
    if ss_tot == 0.0:
        return 0.0
    ss_res = float(np.sum((y_true - y_pred) ** 2))
    return 1.0 - ss_res / ss_tot


def rmse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Root mean squared error."""
    diff = np.asarray(y_true, dtype=float) - np.asarray(y_pred, dtype=float)
    return float(np.sqrt(np.mean(diff ** 2)))


def normalize_contributions(coefficients: pd.Series) -> pd.Series:
    """
    Absolute coefficients scaled to sum to 1.

    All-zero coefficients are split evenly across views.
    """
    magnitude = coefficients.abs()
    total = magnitude.sum()
    if not np.isfinite(total) or total <= 0:
        return pd.Series(1.0 / len(coefficients), index=coefficients.index)
    return magnitude / total


@dataclass
class FusedResult:
    """
    Multi-view result for one target.

    Attributes
    ----------
    target : str
        Predicted feature
    views : List[str]
        Participating views, in collection order
    predictions : pd.Series
        Cross-validated predictions of the multi-view model
    baseline_predictions : pd.Series
        Cross-validated predictions of the intrinsic-only model
    coefficients : pd.Series
        Ridge coefficient per view (full-data fit)
    intercept : float
        Ridge intercept (full-data fit)
    contributions : pd.Series
        Normalized absolute coefficients, sum to 1
    intra_r2, multi_r2 : float
        Pooled R2 of baseline and multi-view predictions
    intra_rmse, multi_rmse : float
        Pooled RMSE of baseline and multi-view predictions
    fold_performance : pd.DataFrame
        Per-fold R2 / RMSE of both models
    p_values : Dict[str, float]
        Significance of the R2 and RMSE gains
    importances : Dict[str, pd.Series]
        Per-view predictor importances
    """
    target: str
    views: List[str]
    predictions: pd.Series
    baseline_predictions: pd.Series
    coefficients: pd.Series
    intercept: float
    contributions: pd.Series
    intra_r2: float
    multi_r2: float
    intra_rmse: float
    multi_rmse: float
    fold_performance: pd.DataFrame
    p_values: Dict[str, float] = field(default_factory=dict)
    importances: Dict[str, pd.Series] = field(default_factory=dict)

    @property
    def gain_r2(self) -> float:
        """Absolute R2 improvement of the multi-view model."""
        return self.multi_r2 - self.intra_r2

    @property
    def gain_rmse(self) -> float:
        """Relative RMSE reduction of the multi-view model, in percent."""
        if self.intra_rmse == 0:
            return 0.0
        return (self.intra_rmse - self.multi_rmse) / self.intra_rmse * 100.0

    def performance_row(self) -> Dict[str, Any]:
        """Flat per-target performance record."""
        return {
            "target": self.target,
            "intra.R2": self.intra_r2,
            "multi.R2": self.multi_r2,
            "gain.R2": self.gain_r2,
            "intra.RMSE": self.intra_rmse,
            "multi.RMSE": self.multi_rmse,
            "gain.RMSE": self.gain_rmse,
            "p.R2": self.p_values.get("R2", 1.0),
            "p.RMSE": self.p_values.get("RMSE", 1.0),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            **self.performance_row(),
            "views": list(self.views),
            "coefficients": self.coefficients.to_dict(),
            "intercept": self.intercept,
            "contributions": self.contributions.to_dict(),
            "importances": {
                view: imp.to_dict() for view, imp in self.importances.items()
            },
        }


def _cross_validate(
    P: np.ndarray,
    y: np.ndarray,
    folds: FoldAssignment,
    alpha: float,
) -> Tuple[np.ndarray, pd.DataFrame]:
    predictions = np.full(len(y), np.nan)
    rows = []
    for fold, train_idx, test_idx in folds.split():
        model = Ridge(alpha=alpha).fit(P[train_idx], y[train_idx])
        predictions[test_idx] = model.predict(P[test_idx])
        rows.append({
            "fold": fold,
            "R2": r_squared(y[test_idx], predictions[test_idx]),
            "RMSE": rmse(y[test_idx], predictions[test_idx]),
        })
    return predictions, pd.DataFrame(rows).set_index("fold")


def combine(
    target_values: pd.Series,
    predictions: Mapping[str, pd.Series],
    folds: FoldAssignment,
    intrinsic: str = INTRINSIC_VIEW,
    alpha: float = 1.0,
    importances: Optional[Mapping[str, pd.Series]] = None,
    target: Optional[str] = None,
    uninformative: Iterable[str] = (),
) -> FusedResult:
    """
    Fit the ridge meta-model over per-view out-of-fold predictions.

    Parameters
    ----------
    target_values : pd.Series
        True target values indexed by location
    predictions : Mapping[str, pd.Series]
        Out-of-fold predictions per view (insertion order is kept)
    folds : FoldAssignment
        The fold partition used by the per-view learners
    intrinsic : str
        Name of the intrinsic view (baseline)
    alpha : float
        L2 penalty; keeps collinear view predictions stable
    importances : Mapping[str, pd.Series], optional
        Per-view importances to attach to the result
    target : str, optional
        Target name, defaults to ``target_values.name``
    uninformative : Iterable[str]
        Context views without usable predictors. They are left out of
        the meta-model and get a zero coefficient; their fold-mean
        predictions carry no location-level information.

    Returns
    -------
    FusedResult
    """
    if intrinsic not in predictions:
        raise SchemaMismatch(f"No predictions for intrinsic view {intrinsic!r}")

    locations = folds.locations
    views = list(predictions)
    P = pd.DataFrame(
        {name: predictions[name].reindex(locations) for name in views}
    ).to_numpy(dtype=float)
    y = target_values.reindex(locations).to_numpy(dtype=float)

    if np.isnan(P).any() or np.isnan(y).any():
        raise SchemaMismatch("Predictions or targets do not cover every location")

    skipped = set(uninformative) - {intrinsic}
    fitted = [i for i, name in enumerate(views) if name not in skipped]

    multi_pred, multi_folds = _cross_validate(P[:, fitted], y, folds, alpha)
    base_col = views.index(intrinsic)
    base_pred, base_folds = _cross_validate(P[:, [base_col]], y, folds, alpha)

    full = Ridge(alpha=alpha).fit(P[:, fitted], y)
    coefficients = pd.Series(0.0, index=views, name="coefficient")
    coefficients.iloc[fitted] = full.coef_

    fold_performance = pd.concat(
        {"intra": base_folds, "multi": multi_folds}, axis=1
    )
    fold_performance.columns = [f"{m}.{s}" for m, s in fold_performance.columns]

    p_values = significance.test(base_folds, multi_folds, folds)

    name = target if target is not None else str(target_values.name)
    result = FusedResult(
        target=name,
        views=views,
        predictions=pd.Series(multi_pred, index=locations, name="multi"),
        baseline_predictions=pd.Series(base_pred, index=locations, name="intra"),
        coefficients=coefficients,
        intercept=float(full.intercept_),
        contributions=normalize_contributions(coefficients),
        intra_r2=r_squared(y, base_pred),
        multi_r2=r_squared(y, multi_pred),
        intra_rmse=rmse(y, base_pred),
        multi_rmse=rmse(y, multi_pred),
        fold_performance=fold_performance,
        p_values=p_values,
        importances=dict(importances or {}),
    )
    logger.debug(
        f"{name}: intra.R2={result.intra_r2:.3f} multi.R2={result.multi_r2:.3f} "
        f"p.R2={p_values['R2']:.3g}"
    )
    return result
