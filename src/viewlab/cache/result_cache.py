"""
Compute-once result cache on top of a CacheStore.
"""

from typing import Any, Callable, TypeVar
import logging
import threading

from ..core.errors import CacheCorruption
from .store import CacheStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_once(operation: str, fn: Callable[[], T]) -> T:
    """Call ``fn``, calling it a second time if the first attempt raises OSError."""
    try:
        return fn()
    except OSError as e:
        logger.warning(f"Cache {operation} failed ({e}), retrying once")
        return fn()


class ResultCache:
    """
    Get-or-compute access to a cache store.

    ``get_or_compute`` holds the key's lock while it checks, computes and
    stores, so concurrent callers with the same key compute once and the
    others read the stored value. Corrupt entries are treated as misses.
    Store reads and writes that fail with OSError are retried once before
    propagating; ``compute_fn`` itself is never retried.

    Parameters
    ----------
    store : CacheStore
        Backing store
    enabled : bool
        When False, always compute and never read or write the store

    Examples
    --------
    >>> cache = ResultCache(FileCacheStore(".viewlab_cache"))
    >>> result = cache.get_or_compute(key, lambda: expensive(key))
    """

    def __init__(self, store: CacheStore, enabled: bool = True):
        self.store = store
        self.enabled = enabled
        self._stats_lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def _count(self, hit: bool) -> None:
        with self._stats_lock:
            if hit:
                self.hits += 1
            else:
                self.misses += 1

    def _lookup(self, key: str) -> Any:
        """Stored value, or raise KeyError on a miss or corrupt entry."""
        try:
            return self.store.get(key)
        except CacheCorruption as e:
            logger.warning(f"{e}; recomputing")
            self.store.delete(key)
            raise KeyError(key)

    def get_or_compute(self, key: str, compute_fn: Callable[[], T]) -> T:
        """
        Return the cached value for ``key``, computing and storing it on a miss.

        Parameters
        ----------
        key : str
            Content fingerprint of every input affecting the result
        compute_fn : Callable[[], T]
            Produces the value; called at most once per miss

        Returns
        -------
        T
            Cached or freshly computed value
        """
        if not self.enabled:
            self._count(hit=False)
            return compute_fn()

        with self.store.lock(key):
            try:
                value = retry_once("read", lambda: self._lookup(key))
                self._count(hit=True)
                return value
            except KeyError:
                pass

            value = compute_fn()
            retry_once("write", lambda: self.store.put(key, value))
            self._count(hit=False)
            return value

    def get(self, key: str) -> Any:
        """Cached value for ``key``; KeyError on a miss or corrupt entry."""
        return retry_once("read", lambda: self._lookup(key))

    def contains(self, key: str) -> bool:
        return self.enabled and self.store.exists(key)

    def stats(self) -> dict:
        with self._stats_lock:
            return {"hits": self.hits, "misses": self.misses}

    def __repr__(self) -> str:
        return f"ResultCache(store={self.store!r}, enabled={self.enabled})"
