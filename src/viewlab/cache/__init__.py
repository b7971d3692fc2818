"""
ViewLab Cache: content-addressed, resumable result storage.

Every per-view and per-target result is stored under a fingerprint of
everything that determines it (view data, target, folds,
hyperparameters). Re-running an interrupted analysis reuses finished
entries; writes are atomic so a killed worker never leaves a partial
entry behind.

Example
-------
>>> from viewlab.cache import FileCacheStore, ResultCache, fingerprint
>>>
>>> cache = ResultCache(FileCacheStore(".viewlab_cache"))
>>> key = fingerprint(views, "CD3", folds, config)
>>> fused = cache.get_or_compute(key, lambda: run_target(...))
"""

from viewlab.cache.fingerprint import (
    fingerprint,
    view_fingerprint,
    collection_fingerprint,
)
from viewlab.cache.store import (
    CacheStore,
    FileCacheStore,
    MemoryCacheStore,
)
from viewlab.cache.result_cache import ResultCache

__all__ = [
    # Fingerprints
    "fingerprint",
    "view_fingerprint",
    "collection_fingerprint",
    # Stores
    "CacheStore",
    "FileCacheStore",
    "MemoryCacheStore",
    # Get-or-compute
    "ResultCache",
]
