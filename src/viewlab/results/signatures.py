"""
Per-sample signatures.

A signature is one row per sample, with one column per (target) or
(view, target) or (view, predictor, target) combination, suitable for
clustering or embedding samples downstream.
"""

from enum import Enum
from typing import Union

import pandas as pd

from .aggregate import AggregatedResultSet


class SignatureType(Enum):
    """Which result table a signature is built from."""
    PERFORMANCE = "performance"
    CONTRIBUTION = "contribution"
    IMPORTANCE = "importance"


def extract_signature(
    results: AggregatedResultSet,
    kind: Union[SignatureType, str] = SignatureType.PERFORMANCE,
    measure: str = "gain.R2",
    fill_value: float = 0.0,
) -> pd.DataFrame:
    """
    Build a sample x feature signature matrix.

    Args:
        results: Aggregated results over one or more samples.
        kind: Signature type.
        measure: Performance column used for performance signatures.
        fill_value: Value for combinations missing in a sample.

    Returns:
        DataFrame indexed by sample. Column names join their parts
        with "_", e.g. "paraview.10_CD3" for contributions.
    """
    kind = SignatureType(kind)

    if kind is SignatureType.PERFORMANCE:
        df = results.performance.copy()
        df["key"] = df["target"].astype(str)
        value = measure
    elif kind is SignatureType.CONTRIBUTION:
        df = results.contributions.copy()
        df["key"] = df["view"].astype(str) + "_" + df["target"].astype(str)
        value = "contribution"
    else:
        df = results.importances.copy()
        df["key"] = (
            df["view"].astype(str) + "_"
            + df["predictor"].astype(str) + "_"
            + df["target"].astype(str)
        )
        value = "importance"

    if df.empty:
        return pd.DataFrame(index=pd.Index([], name="sample"))

    df[value] = df[value].astype(float)
    signature = df.pivot_table(
        index="sample", columns="key", values=value, aggfunc="mean"
    )
    signature = signature.fillna(fill_value).sort_index(axis=1)
    signature.columns.name = None
    return signature
