"""
ViewLab Results: aggregation, signatures and export.

Usage:
    >>> from viewlab.results import merge, export_tables
    >>>
    >>> combined = merge(run_a.results, run_b.results)
    >>> combined.improvement_stats()
    >>> export_tables(combined, "results/")
"""

from .aggregate import (
    AggregatedResultSet,
    merge,
    collect_from_cache,
    PERFORMANCE_COLUMNS,
    CONTRIBUTION_COLUMNS,
    IMPORTANCE_COLUMNS,
    FAILURE_COLUMNS,
)

from .signatures import (
    SignatureType,
    extract_signature,
)

from .io import (
    export_tables,
    load_tables,
)

__all__ = [
    # Aggregation
    "AggregatedResultSet",
    "merge",
    "collect_from_cache",
    "PERFORMANCE_COLUMNS",
    "CONTRIBUTION_COLUMNS",
    "IMPORTANCE_COLUMNS",
    "FAILURE_COLUMNS",

    # Signatures
    "SignatureType",
    "extract_signature",

    # I/O
    "export_tables",
    "load_tables",
]
