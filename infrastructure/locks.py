"""Per-key re-entrant locks for read-modify-write of shard and album files."""

from __future__ import annotations

from collections.abc import Hashable, Iterator
from contextlib import contextmanager
import threading


class KeyedLocks:
    """Lazily creates one `threading.RLock` per key.

    Locks are never discarded; the key space is bounded by principals and
    resource kinds, so growth is small.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.RLock] = {}

    def get(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for `key` for the duration of the block."""
        lock = self.get(key)
        with lock:
            yield
