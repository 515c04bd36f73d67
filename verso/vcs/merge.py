"""
Three-way merge by line position.

For each line index i across base, current and incoming:

- current[i] == incoming[i]          → take it (also covers convergent edits)
- current[i] == base[i] only          → take incoming[i]
- incoming[i] == base[i] only         → take current[i]
- otherwise                           → conflict, emitted inline with markers

Lines are aligned by index, not by content. An insertion or deletion above
a change shifts every later line, so such edits can surface as conflicts
even when a content-aware merge would resolve them. That is a known
limitation of this merge, kept on purpose: callers rely on its simple,
predictable semantics.

A line index beyond the end of a side counts as "absent"; an absent line
that wins a position is dropped rather than emitted as an empty line.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from verso.vcs.hashing import ensure_text
from verso.vcs.models import MergeConflict, MergeResult

CURRENT_MARKER = "<<<<<<< current"
SEPARATOR_MARKER = "======="
INCOMING_MARKER = ">>>>>>> incoming"


def _at(lines: Sequence[str], i: int) -> Optional[str]:
    return lines[i] if i < len(lines) else None


def merge(base: str, current: str, incoming: str) -> MergeResult:
    base_lines = ensure_text(base).split("\n")
    current_lines = ensure_text(current).split("\n")
    incoming_lines = ensure_text(incoming).split("\n")

    merged: List[str] = []
    conflicts: List[MergeConflict] = []

    for i in range(max(len(base_lines), len(current_lines), len(incoming_lines))):
        b = _at(base_lines, i)
        c = _at(current_lines, i)
        n = _at(incoming_lines, i)

        if c == n:
            chosen = c
        elif c == b:
            chosen = n
        elif n == b:
            chosen = c
        else:
            conflicts.append(MergeConflict(line=i + 1, current=c, incoming=n, base=b))
            merged.append(CURRENT_MARKER)
            if c is not None:
                merged.append(c)
            merged.append(SEPARATOR_MARKER)
            if n is not None:
                merged.append(n)
            merged.append(INCOMING_MARKER)
            continue

        if chosen is not None:
            merged.append(chosen)

    return MergeResult(success=not conflicts, content="\n".join(merged), conflicts=conflicts)


def has_conflict_markers(content: str) -> bool:
    """True if content still carries unresolved markers from `merge`."""
    lines = content.split("\n")
    return CURRENT_MARKER in lines and INCOMING_MARKER in lines
