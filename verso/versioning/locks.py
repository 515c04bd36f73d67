"""
In-process per-artifact serialization.

Every graph-mutating operation holds the artifact's lock for the whole
transaction, so two writers in the same process never compute the same
next version number. Across processes the row lock taken with
SELECT ... FOR UPDATE and the unique constraints do the same job.

Locks are held weakly: an artifact's lock lives only while some caller
references it, so the map stays the size of the in-flight writers.
"""

from __future__ import annotations

import threading
import weakref
from contextlib import contextmanager
from typing import Iterator


class ArtifactLocks:
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[str, threading.RLock]" = weakref.WeakValueDictionary()

    def get(self, artifact_id: str) -> threading.RLock:
        """The artifact's lock. Callers must keep the reference while they use it."""
        with self._guard:
            lock = self._locks.get(artifact_id)
            if lock is None:
                lock = self._locks[artifact_id] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, artifact_id: str) -> Iterator[None]:
        lock = self.get(artifact_id)
        with lock:
            yield

    def discard(self, artifact_id: str) -> None:
        """Forget the lock of a deleted artifact."""
        with self._guard:
            self._locks.pop(artifact_id, None)

    def __len__(self) -> int:
        return len(self._locks)


artifact_locks = ArtifactLocks()
