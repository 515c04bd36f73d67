"""Unit tests for verso.versioning.locks — per-artifact locks."""

import gc
import threading

from verso.versioning.locks import ArtifactLocks


class TestArtifactLocks:
    def test_same_artifact_same_lock(self):
        locks = ArtifactLocks()
        a = locks.get("a")
        b = locks.get("b")
        assert locks.get("a") is a
        assert a is not b
        assert len(locks) == 2

    def test_reentrant(self):
        locks = ArtifactLocks()
        with locks.hold("a"):
            with locks.hold("a"):
                pass

    def test_lock_kept_while_held(self):
        locks = ArtifactLocks()
        with locks.hold("a"):
            gc.collect()
            assert len(locks) == 1
            assert locks.get("a").acquire(blocking=False)
            locks.get("a").release()

    def test_idle_locks_are_dropped(self):
        locks = ArtifactLocks()
        for i in range(100):
            with locks.hold(f"artifact-{i}"):
                pass
        gc.collect()
        assert len(locks) == 0

    def test_discard(self):
        locks = ArtifactLocks()
        held = locks.get("a")
        locks.discard("a")
        locks.discard("never")
        assert len(locks) == 0
        assert locks.get("a") is not held

    def test_hold_serializes(self):
        locks = ArtifactLocks()
        inside = []
        overlap = []

        def worker():
            with locks.hold("a"):
                if inside:
                    overlap.append(True)
                inside.append(1)
                threading.Event().wait(0.01)
                inside.pop()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert overlap == []
