"""
Deterministic fold assignment shared by every view and target in a run.
"""

from dataclasses import dataclass
from typing import Iterator, Tuple, Sequence, Dict, Any

import numpy as np
import pandas as pd
from sklearn.model_selection import KFold

from ..core.errors import InsufficientData, SchemaMismatch


@dataclass(frozen=True, eq=False)
class FoldAssignment:
    """
    Partition of locations into k disjoint, non-empty folds.

    Attributes:
        labels: Fold label (0..k-1) per location, indexed by location.
        n_folds: Number of folds k.
        seed: Seed used for the shuffle.
    """
    labels: pd.Series
    n_folds: int
    seed: int

    @classmethod
    def create(
        cls,
        locations: Sequence,
        n_folds: int = 10,
        seed: int = 42,
    ) -> "FoldAssignment":
        """
        Shuffle locations with ``seed`` and split them into ``n_folds`` folds.

        Raises:
            InsufficientData: If there are fewer locations than folds.
        """
        locations = pd.Index(locations)
        n = len(locations)
        if n_folds < 2:
            raise InsufficientData(f"Need at least 2 folds, got {n_folds}")
        if n < n_folds:
            raise InsufficientData(
                f"{n} location(s) cannot be split into {n_folds} non-empty folds"
            )

        labels = np.empty(n, dtype=int)
        splitter = KFold(n_splits=n_folds, shuffle=True, random_state=seed)
        for fold, (_, test_idx) in enumerate(splitter.split(np.zeros(n))):
            labels[test_idx] = fold

        return cls(
            labels=pd.Series(labels, index=locations, name="fold"),
            n_folds=n_folds,
            seed=seed,
        )

    @property
    def locations(self) -> pd.Index:
        return self.labels.index

    def __len__(self) -> int:
        return len(self.labels)

    def sizes(self) -> np.ndarray:
        """Number of locations in each fold."""
        return np.bincount(self.labels.to_numpy(), minlength=self.n_folds)

    def split(self) -> Iterator[Tuple[int, np.ndarray, np.ndarray]]:
        """
        Yield (fold, train_positions, test_positions) as integer positions.
        """
        values = self.labels.to_numpy()
        for fold in range(self.n_folds):
            test = np.flatnonzero(values == fold)
            train = np.flatnonzero(values != fold)
            yield fold, train, test

    def min_train_size(self) -> int:
        """Size of the smallest training complement."""
        return int(len(self) - self.sizes().max())

    def aligned_to(self, locations: Sequence) -> "FoldAssignment":
        """Check that the assignment covers exactly ``locations``, in order."""
        if not self.labels.index.equals(pd.Index(locations)):
            raise SchemaMismatch("Fold assignment does not match the location set")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_folds": self.n_folds,
            "seed": self.seed,
            "sizes": self.sizes().tolist(),
        }
