"""Unit tests for verso.versioning.changelog — append-only audit ledger."""

import pytest

from verso.db.session import session_scope
from verso.engine.errors import VersoValidationError
from verso.versioning.models import CreateDetails, TagDetails, UpdateDetails


class TestAppend:
    def test_append_and_query(self, session_factory, changelog):
        with session_scope(session_factory) as session:
            changelog.append(session, "art", "create", "alice", CreateDetails(title="Doc"))
            changelog.append(
                session, "art", "update", "alice",
                UpdateDetails(version=2, content_hash="h" * 64), version_id="v2",
            )

        entries = changelog.query("art")
        assert [e.action for e in entries] == ["update", "create"]
        assert isinstance(entries[0].details, UpdateDetails)
        assert entries[0].details.version == 2
        assert entries[0].version_id == "v2"
        assert isinstance(entries[1].details, CreateDetails)

    def test_details_optional(self, session_factory, changelog):
        with session_scope(session_factory) as session:
            changelog.append(session, "art", "delete", "alice")
        assert changelog.query("art")[0].details is None

    def test_unknown_action(self, session_factory, changelog):
        with pytest.raises(VersoValidationError, match="Unknown"):
            with session_scope(session_factory) as session:
                changelog.append(session, "art", "rename", "alice")

    def test_details_must_match_action(self, session_factory, changelog):
        with pytest.raises(VersoValidationError, match="TagDetails"):
            with session_scope(session_factory) as session:
                changelog.append(session, "art", "branch", "alice", TagDetails(name="x", version_id="v"))

    def test_rolled_back_with_transaction(self, session_factory, changelog):
        with pytest.raises(RuntimeError):
            with session_scope(session_factory) as session:
                changelog.append(session, "art", "create", "alice", CreateDetails(title="Doc"))
                raise RuntimeError("abort")
        assert changelog.query("art") == []


class TestQuery:
    def test_filters(self, session_factory, changelog):
        with session_scope(session_factory) as session:
            for n in range(2, 6):
                changelog.append(
                    session, "art", "update", "alice", UpdateDetails(version=n, content_hash="h")
                )
            changelog.append(session, "art", "tag", "alice", TagDetails(name="v1", version_id="x"))
            changelog.append(session, "other", "create", "bob", CreateDetails(title="Other"))

        assert len(changelog.query("art")) == 5
        assert len(changelog.query("art", action="update")) == 4
        assert [e.details.version for e in changelog.query("art", action="update", limit=2)] == [5, 4]
        assert changelog.query("missing") == []

    def test_no_mutation_surface(self, changelog):
        assert not hasattr(changelog, "update")
        assert not hasattr(changelog, "delete")
