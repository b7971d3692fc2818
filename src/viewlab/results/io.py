"""
ViewLab Results: export and reload of aggregated tables.

A result directory holds one CSV per table plus a small JSON file with
the view schema and sample fingerprints::

    <dir>/performance.csv
    <dir>/contributions.csv
    <dir>/importances.csv
    <dir>/failures.csv
    <dir>/meta.json
"""

import json
from pathlib import Path
from typing import Union, Dict

import pandas as pd

from .aggregate import (
    AggregatedResultSet,
    PERFORMANCE_COLUMNS,
    CONTRIBUTION_COLUMNS,
    IMPORTANCE_COLUMNS,
    FAILURE_COLUMNS,
)

TABLES = {
    "performance": PERFORMANCE_COLUMNS,
    "contributions": CONTRIBUTION_COLUMNS,
    "importances": IMPORTANCE_COLUMNS,
    "failures": FAILURE_COLUMNS,
}


def export_tables(
    results: AggregatedResultSet,
    directory: Union[str, Path],
) -> Dict[str, Path]:
    """
    Write every table of a result set as CSV.

    Args:
        results: Result set to export.
        directory: Output directory (created if missing).

    Returns:
        Mapping of table name to written path.

    Example:
        >>> paths = export_tables(results, "results/run1")
        >>> paths["performance"]
        PosixPath('results/run1/performance.csv')
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    paths = {}
    for name in TABLES:
        path = directory / f"{name}.csv"
        getattr(results, name).to_csv(path, index=False)
        paths[name] = path

    meta_path = directory / "meta.json"
    with open(meta_path, "w", encoding="utf-8") as f:
        json.dump({"views": results.views, "samples": results.samples}, f, indent=2)
    paths["meta"] = meta_path

    return paths


def load_tables(directory: Union[str, Path]) -> AggregatedResultSet:
    """
    Load a result set written by ``export_tables``.

    Raises:
        FileNotFoundError: If the directory or its meta.json is missing.
    """
    directory = Path(directory)
    meta_path = directory / "meta.json"
    if not meta_path.exists():
        raise FileNotFoundError(f"Result directory not found: {directory}")

    with open(meta_path, "r", encoding="utf-8") as f:
        meta = json.load(f)

    tables = {}
    for name, columns in TABLES.items():
        path = directory / f"{name}.csv"
        df = pd.read_csv(path, dtype={"sample": str, "target": str})
        tables[name] = df.reindex(columns=columns)

    return AggregatedResultSet(
        views=list(meta["views"]),
        samples=dict(meta.get("samples", {})),
        **tables,
    )
