"""
Result types for the diff and merge engines.

Plain pydantic models so they serialize straight into API responses.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------

class Modification(BaseModel):
    """A line replaced in place. `line` is the 1-based line in the new content."""

    line: int
    old_line: int
    old: str
    new: str


class DiffStats(BaseModel):
    added_lines: int = 0
    deleted_lines: int = 0
    modified_lines: int = 0

    @property
    def total(self) -> int:
        return self.added_lines + self.deleted_lines + self.modified_lines


class DiffResult(BaseModel):
    additions: List[str] = Field(default_factory=list)
    deletions: List[str] = Field(default_factory=list)
    modifications: List[Modification] = Field(default_factory=list)
    stats: DiffStats = Field(default_factory=DiffStats)

    @property
    def has_changes(self) -> bool:
        return self.stats.total > 0


class DiffLine(BaseModel):
    type: Literal["context", "add", "remove"]
    content: str
    old_line_number: Optional[int] = None
    new_line_number: Optional[int] = None
    missing_newline: bool = False


class DiffHunk(BaseModel):
    """
    One `@@` block. Start/length values are exactly what the header shows,
    so an empty range carries the line *before* the insertion point.
    """

    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    lines: List[DiffLine] = Field(default_factory=list)

    @property
    def header(self) -> str:
        return f"@@ -{_format_range(self.old_start, self.old_lines)} +{_format_range(self.new_start, self.new_lines)} @@"


def _format_range(start: int, length: int) -> str:
    if length == 1:
        return str(start)
    return f"{start},{length}"


class SplitCell(BaseModel):
    line_number: int
    content: str


class SplitRow(BaseModel):
    """One row of a side-by-side view."""

    type: Literal["context", "add", "remove", "modify"]
    hunk: int
    left: Optional[SplitCell] = None
    right: Optional[SplitCell] = None


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

class MergeConflict(BaseModel):
    line: int
    # None: the side has no line at this position
    current: Optional[str] = None
    incoming: Optional[str] = None
    base: Optional[str] = None


class MergeResult(BaseModel):
    success: bool
    content: str
    conflicts: List[MergeConflict] = Field(default_factory=list)

    @property
    def conflict_count(self) -> int:
        return len(self.conflicts)
