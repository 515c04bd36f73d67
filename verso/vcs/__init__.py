"""
Pure content algorithms: hashing, line diff, three-way merge, metadata.

Nothing in this package touches the database; every function is a pure
function of its inputs.
"""

from verso.vcs.diff import (
    apply_patch,
    create_patch,
    diff,
    hunks,
    similarity,
    split_diff,
    unified_diff,
)
from verso.vcs.hashing import (
    commit_hash,
    content_hash,
    content_signature,
    has_significant_changes,
)
from verso.vcs.merge import merge
from verso.vcs.models import DiffHunk, DiffResult, MergeConflict, MergeResult

__all__ = [
    "apply_patch",
    "commit_hash",
    "content_hash",
    "content_signature",
    "create_patch",
    "diff",
    "has_significant_changes",
    "hunks",
    "merge",
    "similarity",
    "split_diff",
    "unified_diff",
    "DiffHunk",
    "DiffResult",
    "MergeConflict",
    "MergeResult",
]
