"""
Content fingerprints for cache keys.

A fingerprint is a SHA-256 digest over a canonical serialization of its
inputs. Identical inputs always give identical keys, across processes
and runs; any change to view data, target, folds or hyperparameters
gives a different key.
"""

import hashlib
import json
from typing import Any

import numpy as np
import pandas as pd

from ..views.builder import View, ViewCollection
from ..models.folds import FoldAssignment


def _update(h: "hashlib._Hash", obj: Any) -> None:
    if isinstance(obj, ViewCollection):
        h.update(b"collection")
        for view in obj:
            _update(h, view)
    elif isinstance(obj, View):
        h.update(b"view")
        _update(h, {"name": obj.name, "kind": obj.kind.value, "params": obj.params})
        _update(h, obj.data)
    elif isinstance(obj, FoldAssignment):
        h.update(b"folds")
        _update(h, {"n_folds": obj.n_folds, "seed": obj.seed})
        _update(h, obj.labels)
    elif isinstance(obj, pd.DataFrame):
        h.update(b"frame")
        _update(h, [str(c) for c in obj.columns])
        _update(h, [str(t) for t in obj.dtypes])
        h.update(pd.util.hash_pandas_object(obj, index=True).to_numpy().tobytes())
    elif isinstance(obj, pd.Series):
        h.update(b"series")
        _update(h, str(obj.name))
        h.update(pd.util.hash_pandas_object(obj, index=True).to_numpy().tobytes())
    elif isinstance(obj, pd.Index):
        h.update(b"index")
        h.update(pd.util.hash_pandas_object(obj).to_numpy().tobytes())
    elif isinstance(obj, np.ndarray):
        h.update(b"array")
        _update(h, {"shape": list(obj.shape), "dtype": obj.dtype.str})
        if obj.dtype.hasobject:
            # object arrays hold pointers, hash their values instead
            _update(h, obj.tolist())
        else:
            h.update(np.ascontiguousarray(obj).tobytes())
    elif hasattr(obj, "to_dict") and callable(obj.to_dict):
        _update(h, obj.to_dict())
    else:
        canonical = json.dumps(
            obj, sort_keys=True, ensure_ascii=True, separators=(",", ":"), default=str
        )
        h.update(b"json")
        h.update(canonical.encode("utf-8"))


def fingerprint(*parts: Any) -> str:
    """
    Stable SHA-256 hex digest of any number of inputs.

    Supported inputs: ViewCollection, View, FoldAssignment, DataFrame, Index,
    Series, ndarray, objects with ``to_dict()``, and JSON-serializable
    values.

    Example:
        >>> key = fingerprint(views, "CD3", folds, config)
    """
    h = hashlib.sha256()
    for part in parts:
        _update(h, part)
        h.update(b"|")
    return h.hexdigest()


def view_fingerprint(view: View) -> str:
    """Fingerprint of a single view's name, parameters and data."""
    return fingerprint(view)


def collection_fingerprint(views: ViewCollection) -> str:
    """Fingerprint of an entire view collection."""
    return fingerprint(views)
