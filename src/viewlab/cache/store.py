"""
Cache stores.

A store maps string keys to result objects. Two implementations:

- FileCacheStore: one joblib file per key on disk, atomic replace on
  write, guarded by a per-key file lock. Safe across threads and
  processes sharing the same directory.
- MemoryCacheStore: an in-process dict, for thread pools and tests.

Layout of a FileCacheStore root::

    <root>/entries/<key[:2]>/<key>.joblib
    <root>/locks/<key>.lock
    <root>/runs/<run_key>.json        (completion markers)

Lock files are left in place after a write. Deleting a lock file while
another process waits on it would let two writers hold the same key, so
they are only removed by ``FileCacheStore.prune_locks`` once no run is
using the directory. They are empty and one exists per key ever written.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union
import json
import logging
import os
import tempfile
import threading

import joblib
from filelock import FileLock

from ..core.errors import CacheCorruption

logger = logging.getLogger(__name__)


class CacheStore(ABC):
    """
    Abstract key-value store for cached results.

    Subclasses must make ``put`` atomic: a reader observes either the
    previous value, nothing, or the complete new value.
    """

    @abstractmethod
    def get(self, key: str) -> Any:
        """
        Return the value for ``key``.

        Raises KeyError on a miss and CacheCorruption when the stored
        entry cannot be read.
        """

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Whether ``key`` has an entry."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key``; return False if it was absent."""

    @abstractmethod
    def keys(self) -> List[str]:
        """All stored entry keys."""

    @abstractmethod
    def lock(self, key: str):
        """Context manager giving mutual exclusion on ``key``."""

    @abstractmethod
    def mark_complete(self, run_key: str, payload: Dict[str, Any]) -> None:
        """Record that run ``run_key`` finished, with a JSON payload."""

    @abstractmethod
    def read_marker(self, run_key: str) -> Optional[Dict[str, Any]]:
        """Completion payload of ``run_key``, or None if unfinished."""

    @abstractmethod
    def clear_marker(self, run_key: str) -> None:
        """Forget that run ``run_key`` finished."""

    def is_finished(self, run_key: str) -> bool:
        """Whether run ``run_key`` ended, with or without failed targets."""
        return self.read_marker(run_key) is not None

    def is_complete(self, run_key: str) -> bool:
        """Whether run ``run_key`` ended with every target computed."""
        marker = self.read_marker(run_key)
        return marker is not None and bool(marker.get("complete", False))

    def __contains__(self, key: str) -> bool:
        return self.exists(key)


def _atomic_write(path: Path, write_fn) -> None:
    """
    Write through a temp file in the target directory, then os.replace.

    ``write_fn`` receives the temp path. Readers never see a partial file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    os.close(fd)
    try:
        write_fn(tmp_name)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class FileCacheStore(CacheStore):
    """
    Directory-backed cache store.

    Parameters
    ----------
    root : str or Path
        Cache directory; created if missing
    lock_timeout : float
        Seconds to wait for a key lock (-1 waits forever)
    compress : int
        joblib compression level
    """

    def __init__(
        self,
        root: Union[str, Path],
        lock_timeout: float = -1,
        compress: int = 3,
    ):
        self.root = Path(root)
        self.lock_timeout = lock_timeout
        self.compress = compress
        for sub in ("entries", "locks", "runs"):
            (self.root / sub).mkdir(parents=True, exist_ok=True)

    def _entry_path(self, key: str) -> Path:
        return self.root / "entries" / key[:2] / f"{key}.joblib"

    def _lock_path(self, key: str) -> Path:
        return self.root / "locks" / f"{key}.lock"

    def _marker_path(self, run_key: str) -> Path:
        return self.root / "runs" / f"{run_key}.json"

    def get(self, key: str) -> Any:
        path = self._entry_path(key)
        if not path.exists():
            raise KeyError(key)
        try:
            return joblib.load(path)
        except FileNotFoundError:
            raise KeyError(key)
        except Exception as e:
            raise CacheCorruption(key, str(e)) from e

    def put(self, key: str, value: Any) -> None:
        _atomic_write(
            self._entry_path(key),
            lambda tmp: joblib.dump(value, tmp, compress=self.compress),
        )
        logger.debug(f"Cached entry {key[:12]}")

    def exists(self, key: str) -> bool:
        return self._entry_path(key).exists()

    def delete(self, key: str) -> bool:
        try:
            self._entry_path(key).unlink()
            return True
        except FileNotFoundError:
            return False

    def keys(self) -> List[str]:
        return sorted(p.stem for p in (self.root / "entries").glob("*/*.joblib"))

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        with FileLock(str(self._lock_path(key)), timeout=self.lock_timeout):
            yield

    def prune_locks(self) -> int:
        """
        Remove every lock file and return how many were removed.

        Only safe while no process is using this cache directory.
        """
        removed = 0
        for path in (self.root / "locks").glob("*.lock"):
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                pass
        logger.info(f"Removed {removed} lock file(s) from {self.root}")
        return removed

    def mark_complete(self, run_key: str, payload: Dict[str, Any]) -> None:
        data = json.dumps(payload, indent=2, sort_keys=True, default=str)
        _atomic_write(
            self._marker_path(run_key),
            lambda tmp: Path(tmp).write_text(data, encoding="utf-8"),
        )
        logger.info(
            f"Run {run_key[:12]} marker written (complete={payload.get('complete', False)})"
        )

    def read_marker(self, run_key: str) -> Optional[Dict[str, Any]]:
        path = self._marker_path(run_key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Unreadable run marker {path.name}: {e}")
            return None

    def clear_marker(self, run_key: str) -> None:
        try:
            self._marker_path(run_key).unlink()
        except FileNotFoundError:
            pass

    def __repr__(self) -> str:
        return f"FileCacheStore(root={str(self.root)!r})"


class MemoryCacheStore(CacheStore):
    """
    In-process cache store.

    Values are kept as-is; per-key locks are re-entrant thread locks.
    Not shareable across processes.
    """

    def __init__(self):
        self._entries: Dict[str, Any] = {}
        self._markers: Dict[str, Dict[str, Any]] = {}
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def get(self, key: str) -> Any:
        with self._guard:
            return self._entries[key]

    def put(self, key: str, value: Any) -> None:
        with self._guard:
            self._entries[key] = value

    def exists(self, key: str) -> bool:
        with self._guard:
            return key in self._entries

    def delete(self, key: str) -> bool:
        with self._guard:
            if key not in self._entries:
                return False
            del self._entries[key]
            return True

    def keys(self) -> List[str]:
        with self._guard:
            return sorted(self._entries)

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        with self._guard:
            key_lock = self._locks.setdefault(key, threading.RLock())
        with key_lock:
            yield

    def mark_complete(self, run_key: str, payload: Dict[str, Any]) -> None:
        with self._guard:
            self._markers[run_key] = json.loads(json.dumps(payload, default=str))

    def read_marker(self, run_key: str) -> Optional[Dict[str, Any]]:
        with self._guard:
            return self._markers.get(run_key)

    def clear_marker(self, run_key: str) -> None:
        with self._guard:
            self._markers.pop(run_key, None)

    def __len__(self) -> int:
        return len(self._entries)
