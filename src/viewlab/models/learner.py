"""
Per-view learner.

Fits one regressor per cross-validation fold for a single (view, target)
pair and returns out-of-fold predictions together with fold-averaged
feature importances. Fitted fold models never leave this module.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
import logging

import numpy as np
import pandas as pd
from sklearn.base import RegressorMixin
from sklearn.ensemble import RandomForestRegressor, GradientBoostingRegressor
from sklearn.linear_model import LinearRegression

from ..core.config import LearnerConfig, LearnerKind
from ..core.constants import DEFAULT_SEED
from ..core.errors import InsufficientData, SchemaMismatch
from ..views.builder import View, ViewKind
from .folds import FoldAssignment

logger = logging.getLogger(__name__)


@dataclass
class PerViewResult:
    """
    Output of the per-view learner for one target.

    Attributes
    ----------
    view : str
        View name
    target : str
        Predicted feature
    predictions : pd.Series
        Out-of-fold prediction per location
    importances : pd.Series
        Fold-averaged importance per predictor feature
    n_predictors : int
        Number of predictors used after dropping constant columns
    trivial : bool
        True when the view had no usable predictor and a constant
        prediction was returned
    """
    view: str
    target: str
    predictions: pd.Series
    importances: pd.Series
    n_predictors: int
    trivial: bool = False
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "view": self.view,
            "target": self.target,
            "n_predictors": self.n_predictors,
            "trivial": self.trivial,
            "importances": self.importances.to_dict(),
            "params": self.params,
        }


def candidate_predictors(view: View, target: str) -> List[str]:
    """
    Predictor columns of ``view`` for ``target`` before constant columns
    are dropped.

    The target column is excluded from the intrinsic view only; context
    views keep the aggregated target as a predictor.
    """
    return [
        c for c in view.data.columns
        if not (view.kind is ViewKind.INTRINSIC and c == target)
    ]


def usable_predictors(view: View, target: str) -> List[str]:
    """Candidate predictors of ``view`` that vary across locations."""
    data = view.data
    return [
        c for c in candidate_predictors(view, target)
        if data[c].nunique(dropna=True) > 1
    ]


def make_regressor(config: LearnerConfig, seed: int) -> RegressorMixin:
    """Instantiate an unfitted regressor for ``config``."""
    if config.kind is LearnerKind.RANDOM_FOREST:
        return RandomForestRegressor(
            n_estimators=config.n_estimators,
            max_depth=config.max_depth,
            min_samples_leaf=config.min_samples_leaf,
            max_features=config.max_features,
            n_jobs=config.n_jobs,
            random_state=seed,
        )
    if config.kind is LearnerKind.GRADIENT_BOOSTING:
        return GradientBoostingRegressor(
            n_estimators=config.n_estimators,
            max_depth=config.max_depth or 3,
            min_samples_leaf=config.min_samples_leaf,
            random_state=seed,
        )
    if config.kind is LearnerKind.LINEAR:
        return LinearRegression()
    raise ValueError(f"Unhandled learner kind: {config.kind!r}")


def _importances(model: RegressorMixin, n_features: int) -> np.ndarray:
    if hasattr(model, "feature_importances_"):
        values = np.asarray(model.feature_importances_, dtype=float)
    else:
        values = np.abs(np.asarray(model.coef_, dtype=float)).ravel()
    if values.shape[0] != n_features:
        values = np.zeros(n_features)
    return np.nan_to_num(values, nan=0.0, posinf=0.0, neginf=0.0)


def train(
    view: View,
    target: str,
    target_values: pd.Series,
    folds: FoldAssignment,
    config: Optional[LearnerConfig] = None,
    seed: int = DEFAULT_SEED,
) -> PerViewResult:
    """
    Cross-validated training of one view against one target.

    For each fold a fresh regressor is fit on the remaining folds and
    predicts the held-out locations. Every location therefore receives
    exactly one prediction from a model that never saw it.

    Parameters
    ----------
    view : View
        Predictor view
    target : str
        Target feature name
    target_values : pd.Series
        True target values indexed by location
    folds : FoldAssignment
        Fold partition of the view's locations
    config : LearnerConfig, optional
        Regressor settings
    seed : int
        Random state for every fold model

    Returns
    -------
    PerViewResult
        Out-of-fold predictions and importances

    Raises
    ------
    InsufficientData
        If any training complement is smaller than ``config.min_train_size``
    SchemaMismatch
        If view, target values and folds disagree on locations
    """
    config = config or LearnerConfig()

    if not view.locations.equals(folds.locations):
        raise SchemaMismatch(f"View {view.name!r} and folds cover different locations")
    y_series = target_values.reindex(view.locations)
    if y_series.isna().any():
        raise InsufficientData(f"Target {target!r} has missing values")

    smallest = folds.min_train_size()
    if smallest < config.min_train_size:
        raise InsufficientData(
            f"Smallest training fold has {smallest} sample(s), "
            f"need {config.min_train_size}"
        )

    y = y_series.to_numpy(dtype=float)
    candidates = candidate_predictors(view, target)
    predictors = usable_predictors(view, target)

    # constant columns keep a zero importance so tables line up across samples
    importances = pd.Series(0.0, index=candidates, name=view.name, dtype=float)
    oof = np.full(len(y), np.nan)

    if not predictors:
        logger.warning(
            f"{view.name}/{target}: no usable predictors, predicting the "
            f"training-fold mean"
        )
        for _, train_idx, test_idx in folds.split():
            oof[test_idx] = y[train_idx].mean()
        return PerViewResult(
            view=view.name,
            target=target,
            predictions=pd.Series(oof, index=view.locations, name=view.name),
            importances=importances,
            n_predictors=0,
            trivial=True,
            params=config.to_dict(),
        )

    X = view.data[predictors].to_numpy(dtype=float)
    importance_sum = np.zeros(len(predictors))

    for fold, train_idx, test_idx in folds.split():
        model = make_regressor(config, seed)
        model.fit(X[train_idx], y[train_idx])
        oof[test_idx] = model.predict(X[test_idx])
        importance_sum += _importances(model, len(predictors))
        logger.debug(
            f"{view.name}/{target} fold {fold}: "
            f"train={len(train_idx)} test={len(test_idx)}"
        )

    importances.loc[predictors] = importance_sum / folds.n_folds
    return PerViewResult(
        view=view.name,
        target=target,
        predictions=pd.Series(oof, index=view.locations, name=view.name),
        importances=importances,
        n_predictors=len(predictors),
        trivial=False,
        params=config.to_dict(),
    )
