"""Unit tests for verso.security.permissions — CollaborationGuard."""

from unittest.mock import MagicMock

import pytest

from verso.engine.cache import NO_ACCESS
from verso.engine.errors import VersoNotFoundError, VersoPermissionError, VersoValidationError
from verso.security.permissions import PERMISSION_HIERARCHY, CollaborationGuard, implies


class TestHierarchy:
    @pytest.mark.parametrize(
        "held,required,expected",
        [
            ("admin", "read", True),
            ("admin", "write", True),
            ("admin", "admin", True),
            ("write", "read", True),
            ("write", "admin", False),
            ("read", "write", False),
            (None, "read", False),
            ("bogus", "read", False),
        ],
    )
    def test_implies(self, held, required, expected):
        assert implies(held, required) is expected

    def test_strict_chain(self):
        assert PERMISSION_HIERARCHY["read"] < PERMISSION_HIERARCHY["write"] < PERMISSION_HIERARCHY["admin"]


class TestGuard:
    def test_owner_is_admin(self, guard, artifact_id):
        assert guard.get_permission(artifact_id, "alice") == "admin"
        assert guard.require(artifact_id, "alice", "admin") == "admin"

    def test_stranger(self, guard, artifact_id):
        assert guard.get_permission(artifact_id, "bob") is None
        assert guard.check(artifact_id, "bob", "read") is False

    def test_missing_artifact(self, guard):
        with pytest.raises(VersoNotFoundError):
            guard.get_permission("missing", "alice")

    def test_require_denied(self, guard, artifact_id):
        guard.add_collaborator(artifact_id, "bob", "read", "alice")
        with pytest.raises(VersoPermissionError) as exc_info:
            guard.require(artifact_id, "bob", "write")
        err = exc_info.value
        assert (err.user_id, err.required_permission, err.held_permission) == ("bob", "write", "read")
        assert err.status_code == 403


class TestCollaborators:
    def test_add_update_remove(self, guard, artifact_id):
        record = guard.add_collaborator(artifact_id, "bob", "read", "alice")
        assert record.permission == "read"
        assert record.invited_by == "alice"

        guard.add_collaborator(artifact_id, "bob", "write", "alice")
        assert guard.get_permission(artifact_id, "bob") == "write"
        assert {c.user_id for c in guard.list_collaborators(artifact_id)} == {"alice", "bob"}

        assert guard.remove_collaborator(artifact_id, "bob", "alice") is True
        assert guard.get_permission(artifact_id, "bob") is None
        assert guard.remove_collaborator(artifact_id, "bob", "alice") is False

    def test_only_admin_invites(self, guard, artifact_id):
        guard.add_collaborator(artifact_id, "bob", "write", "alice")
        with pytest.raises(VersoPermissionError):
            guard.add_collaborator(artifact_id, "carol", "read", "bob")

    def test_delegated_admin(self, guard, artifact_id):
        guard.add_collaborator(artifact_id, "bob", "admin", "alice")
        guard.add_collaborator(artifact_id, "carol", "read", "bob")
        assert guard.get_permission(artifact_id, "carol") == "read"

    def test_unknown_permission(self, guard, artifact_id):
        with pytest.raises(VersoValidationError):
            guard.add_collaborator(artifact_id, "bob", "owner", "alice")

    def test_owner_cannot_be_demoted(self, guard, artifact_id):
        with pytest.raises(VersoValidationError, match="owner"):
            guard.add_collaborator(artifact_id, "alice", "read", "alice")

    def test_list_missing_artifact(self, guard):
        with pytest.raises(VersoNotFoundError):
            guard.list_collaborators("missing")


class TestCachedGuard:
    @pytest.fixture
    def cache(self):
        cache = MagicMock()
        cache.check.return_value = None
        return cache

    @pytest.fixture
    def cached_guard(self, session_factory, cache):
        return CollaborationGuard(session_factory, permission_cache=cache)

    def test_hit_skips_database(self, cached_guard, cache):
        cache.check.return_value = "write"
        # Artifact does not exist: a DB lookup would raise
        assert cached_guard.get_permission("missing", "bob") == "write"

    def test_cached_denial(self, cached_guard, cache):
        cache.check.return_value = NO_ACCESS
        assert cached_guard.get_permission("missing", "bob") is None

    def test_miss_stores_result(self, cached_guard, cache, artifact_id):
        assert cached_guard.get_permission(artifact_id, "bob") is None
        cache.store.assert_called_once_with(artifact_id, "bob", None)

    def test_session_bypasses_cache(self, cached_guard, cache, session_factory, artifact_id):
        cache.check.return_value = "admin"
        with session_factory() as session:
            assert cached_guard.get_permission(artifact_id, "bob", session=session) is None
        cache.check.assert_not_called()
        cache.store.assert_not_called()

    def test_changes_invalidate(self, cached_guard, cache, artifact_id):
        cached_guard.add_collaborator(artifact_id, "bob", "read", "alice")
        cached_guard.remove_collaborator(artifact_id, "bob", "alice")
        assert cache.invalidate_artifact.call_count == 2

    def test_invalidate_cache(self, cached_guard, cache):
        cached_guard.invalidate_cache()
        cache.invalidate_all.assert_called_once()
