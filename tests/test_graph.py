"""Unit tests for verso.versioning.graph — VersionGraph over networkx."""

import pytest

from verso.engine.errors import VersoNotFoundError
from verso.versioning.graph import VersionGraph


@pytest.fixture
def branched():
    """
    v1 ─ v2 ─ v3 ─ v5
          └── v4
    """
    return VersionGraph(
        [("v1", 1, None), ("v2", 2, "v1"), ("v3", 3, "v2"), ("v4", 4, "v2"), ("v5", 5, "v3")]
    )


class TestStructure:
    def test_linear_chain(self):
        graph = VersionGraph([("a", 1, None), ("b", 2, "a"), ("c", 3, "b")])
        assert len(graph) == 3
        assert graph.lineage("c") == {"a", "b", "c"}
        assert graph.heads() == ["c"]
        assert graph.children("a") == ["b"]

    def test_child_before_parent(self):
        graph = VersionGraph([("b", 2, "a"), ("a", 1, None)])
        assert graph.number("a") == 1
        assert graph.is_ancestor("a", "b") is True

    def test_from_rows(self):
        class Row:
            def __init__(self, id, version, parent_version_id):
                self.id, self.version, self.parent_version_id = id, version, parent_version_id

        graph = VersionGraph.from_rows([Row("a", 1, None), Row("b", 2, "a")])
        assert "b" in graph
        assert graph.number("b") == 2

    def test_heads_newest_first(self, branched):
        assert branched.heads() == ["v5", "v4"]
        assert branched.children("v2") == ["v3", "v4"]

    def test_unknown_version(self):
        with pytest.raises(VersoNotFoundError):
            VersionGraph().lineage("missing")


class TestAncestry:
    def test_branch_lineage_excludes_sibling(self, branched):
        assert branched.lineage("v4") == {"v1", "v2", "v4"}
        assert branched.lineage("v5") == {"v1", "v2", "v3", "v5"}

    def test_is_ancestor(self, branched):
        assert branched.is_ancestor("v1", "v4") is True
        assert branched.is_ancestor("v3", "v4") is False
        assert branched.is_ancestor("v4", "v4") is True


class TestMergeBase:
    def test_fork_point(self, branched):
        assert branched.merge_base("v5", "v4") == "v2"
        assert branched.merge_base("v3", "v4") == "v2"

    def test_ancestor_is_its_own_base(self, branched):
        assert branched.merge_base("v2", "v5") == "v2"
        assert branched.merge_base("v5", "v5") == "v5"

    def test_disconnected(self):
        graph = VersionGraph([("a", 1, None), ("b", 2, None)])
        assert graph.merge_base("a", "b") is None
