"""Shared fixtures: a small synthetic tissue on a regular grid."""

import pytest
import numpy as np
import pandas as pd

from viewlab import (
    RunConfig,
    LearnerConfig,
    MemoryCacheStore,
    DistanceWeightedSpec,
    build_views,
    run,
)
from viewlab.core import KernelFamily


def make_grid(side: int = 10, seed: int = 42):
    """
    Grid of side x side locations with three features.

    f1 is a smooth spatial field plus noise, f2 and f3 are pure noise, so
    f1 is poorly explained by the co-located features and well explained
    by its own neighborhood.
    """
    rng = np.random.default_rng(seed)
    xs, ys = np.meshgrid(np.arange(side), np.arange(side))
    x, y = xs.ravel().astype(float), ys.ravel().astype(float)
    locations = [f"cell{i:03d}" for i in range(side * side)]

    field = np.sin(x / 2.0) + np.cos(y / 2.0)
    expression = pd.DataFrame(
        {
            "f1": field + rng.normal(0, 0.1, side * side),
            "f2": rng.normal(0, 1, side * side),
            "f3": rng.normal(0, 1, side * side),
        },
        index=locations,
    )
    positions = pd.DataFrame({"x": x, "y": y}, index=locations)
    return expression, positions


@pytest.fixture
def grid():
    return make_grid()


@pytest.fixture
def grid_views(grid):
    expression, positions = grid
    return build_views(
        expression, positions,
        [DistanceWeightedSpec(radius=1.5, family=KernelFamily.CONSTANT)],
    )


@pytest.fixture
def fast_config(tmp_path):
    return RunConfig(
        n_folds=10,
        seed=42,
        learner=LearnerConfig(n_estimators=30),
        cache_dir=str(tmp_path / "cache"),
    )


@pytest.fixture(scope="session")
def grid_run():
    """One full run over the grid, shared by result-level tests."""
    expression, positions = make_grid()
    views = build_views(
        expression, positions,
        [DistanceWeightedSpec(radius=1.5, family=KernelFamily.CONSTANT)],
    )
    config = RunConfig(n_folds=10, seed=42, learner=LearnerConfig(n_estimators=20))
    return run(views, config, store=MemoryCacheStore(), sample="slide1")
