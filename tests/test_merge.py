"""Unit tests for verso.vcs.merge — positional three-way merge."""

import pytest

from verso.engine.errors import VersoEncodingError
from verso.vcs.merge import (
    CURRENT_MARKER,
    INCOMING_MARKER,
    SEPARATOR_MARKER,
    has_conflict_markers,
    merge,
)


class TestCleanMerge:
    def test_disjoint_edits(self):
        result = merge("a\nb\nc", "a\nB\nc", "a\nb\nC")
        assert result.success is True
        assert result.content == "a\nB\nC"
        assert result.conflict_count == 0

    def test_convergent_edit(self):
        result = merge("x", "y", "y")
        assert result.success is True
        assert result.content == "y"

    @pytest.mark.parametrize("base", ["", "x", "a\nb\nc", "completely\ndifferent\n", "\n\n"])
    @pytest.mark.parametrize("side", ["", "y", "a\nB\nc", "one\ntwo\nthree\nfour"])
    def test_identical_sides_always_merge(self, base, side):
        result = merge(base, side, side)
        assert result.success is True
        assert result.conflicts == []
        assert result.content == side

    def test_one_side_unchanged(self):
        assert merge("a\nb", "a\nb", "a\nz").content == "a\nz"

    def test_incoming_appends(self):
        assert merge("a", "a", "a\nz").content == "a\nz"

    def test_deleted_line_dropped(self):
        result = merge("a\nb", "a", "a\nb")
        assert result.success is True
        assert result.content == "a"


class TestConflicts:
    def test_conflict_markers(self):
        result = merge("a\nb", "a\nX", "a\nY")
        assert result.success is False
        assert result.conflict_count == 1
        conflict = result.conflicts[0]
        assert (conflict.line, conflict.current, conflict.incoming, conflict.base) == (2, "X", "Y", "b")
        assert result.content == "\n".join(
            ["a", CURRENT_MARKER, "X", SEPARATOR_MARKER, "Y", INCOMING_MARKER]
        )
        assert has_conflict_markers(result.content) is True

    def test_divergent_single_line(self):
        result = merge("x", "y", "z")
        assert result.success is False
        assert [(c.line, c.current, c.incoming, c.base) for c in result.conflicts] == [(1, "y", "z", "x")]

    def test_absent_side_in_conflict(self):
        result = merge("a", "a\nX", "a\nY\nZ")
        assert result.success is False
        assert [c.line for c in result.conflicts] == [2]
        assert result.content.endswith("Z")

    def test_absent_line_is_none_not_empty(self):
        # current deleted line 2, incoming edited it
        result = merge("a\nb", "a", "a\nB")
        conflict = result.conflicts[0]
        assert (conflict.current, conflict.incoming, conflict.base) == (None, "B", "b")

        # an empty line on one side is a real line
        result = merge("a\nb", "a\n", "a\nB")
        assert result.conflicts[0].current == ""

    def test_positional_alignment(self):
        # An insertion above an edit shifts lines, so the edit collides
        result = merge("a\nb", "top\na\nb", "a\nB")
        assert result.success is False
        assert result.content.startswith("top\n")

    def test_clean_content_has_no_markers(self):
        assert has_conflict_markers("a\nb") is False


class TestEncoding:
    def test_invalid_bytes(self):
        with pytest.raises(VersoEncodingError):
            merge(b"\xff", "", "")
