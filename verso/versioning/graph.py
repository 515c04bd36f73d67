"""
Verso Version Graph — NetworkX view of an artifact's version DAG.

Nodes: version ids, with the version number as the `version` attribute.
Edges: parent → child (from `parent_version_id`), plus incoming → merge
commit for merges, when the caller adds them with `add_merge_parent`.

Built on demand from the rows of one artifact; never persisted. Stored
parent links alone form a tree: each version has at most one parent.
Merge edges, which live in the change log, make it a DAG.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Set, Tuple

import networkx as nx

from verso.engine.errors import VersoNotFoundError

logger = logging.getLogger("verso.versioning.graph")

# (version_id, version_number, parent_version_id)
VersionEdge = Tuple[str, int, Optional[str]]


class VersionGraph:
    def __init__(self, versions: Iterable[VersionEdge] = ()):
        self._graph = nx.DiGraph()
        for version_id, number, parent_id in versions:
            self.add_version(version_id, number, parent_id)

    @classmethod
    def from_rows(cls, rows) -> "VersionGraph":
        """Build from ORM rows or VersionRecords."""
        return cls((row.id, row.version, row.parent_version_id) for row in rows)

    def add_version(self, version_id: str, number: int, parent_id: Optional[str] = None) -> None:
        self._graph.add_node(version_id, version=number)
        if parent_id is not None:
            # A parent may be added after its child; the number arrives with it
            self._graph.add_edge(parent_id, version_id)

    def add_merge_parent(self, version_id: str, parent_id: Optional[str]) -> None:
        """Second parent of a merge commit. Ignored unless both versions are known."""
        if parent_id and self._graph.has_node(version_id) and self._graph.has_node(parent_id):
            self._graph.add_edge(parent_id, version_id)

    def _require(self, version_id: str) -> None:
        if not self._graph.has_node(version_id):
            raise VersoNotFoundError(f"Version not in graph: {version_id}", version_id=version_id)

    def number(self, version_id: str) -> int:
        self._require(version_id)
        return self._graph.nodes[version_id].get("version", 0)

    # -----------------------------------------------------------------------
    # Traversal
    # -----------------------------------------------------------------------

    def lineage(self, head_id: str) -> Set[str]:
        """The head plus every version reachable through parent links."""
        self._require(head_id)
        return set(nx.ancestors(self._graph, head_id)) | {head_id}

    def children(self, version_id: str) -> List[str]:
        self._require(version_id)
        return sorted(self._graph.successors(version_id), key=self.number)

    def heads(self) -> List[str]:
        """Versions nothing has been built on, newest first."""
        tips = [n for n in self._graph.nodes if self._graph.out_degree(n) == 0]
        return sorted(tips, key=self.number, reverse=True)

    def is_ancestor(self, ancestor_id: str, descendant_id: str) -> bool:
        self._require(ancestor_id)
        self._require(descendant_id)
        return ancestor_id == descendant_id or nx.has_path(self._graph, ancestor_id, descendant_id)

    def merge_base(self, version_a: str, version_b: str) -> Optional[str]:
        """
        Lowest common ancestor of two versions, or None when they share no
        history (possible once parents are deleted).

        Among several common ancestors with no ordering between them, the
        one with the highest version number wins.
        """
        self._require(version_a)
        self._require(version_b)

        common = self.lineage(version_a) & self.lineage(version_b)
        if not common:
            return None

        # Drop every common ancestor that is itself an ancestor of another one
        lowest = {
            node for node in common
            if not any(nx.has_path(self._graph, node, other) for other in common if other != node)
        }
        base = max(lowest, key=self.number)
        logger.debug(f"merge base of {version_a} and {version_b} → {base}")
        return base

    def __len__(self) -> int:
        return self._graph.number_of_nodes()

    def __contains__(self, version_id: str) -> bool:
        return self._graph.has_node(version_id)
