"""Unit tests for verso.vcs.diff — LCS diff, hunks, unified text, patches."""

import pytest

from verso.engine.errors import VersoValidationError
from verso.vcs.diff import (
    apply_patch,
    create_patch,
    diff,
    edit_script,
    hunks,
    opcodes,
    similarity,
    split_diff,
    split_keepends,
    split_lines,
    unified_diff,
)


class TestSplitting:
    def test_split_lines(self):
        assert split_lines("") == []
        assert split_lines("a\nb") == ["a", "b"]
        assert split_lines("a\n") == ["a", ""]

    def test_split_keepends(self):
        assert split_keepends("") == []
        assert split_keepends("a\nb") == ["a\n", "b"]
        assert split_keepends("a\nb\n") == ["a\n", "b\n"]


class TestEditScript:
    def test_identical(self):
        assert edit_script(["a", "b"], ["a", "b"]) == ["=", "="]

    def test_insert_does_not_shift(self):
        assert edit_script(["a", "b"], ["new", "a", "b"]) == ["+", "=", "="]

    def test_delete_before_insert(self):
        assert edit_script(["a", "b", "c"], ["a", "x", "c"]) == ["=", "-", "+", "="]

    def test_opcodes(self):
        assert opcodes(["a", "b", "c"], ["a", "c", "d"]) == [
            ("equal", 0, 1, 0, 1),
            ("delete", 1, 2, 1, 1),
            ("equal", 2, 3, 1, 2),
            ("insert", 3, 3, 2, 3),
        ]


class TestStructuralDiff:
    def test_modification(self):
        result = diff("a\nb\nc", "a\nx\nc")
        assert result.additions == []
        assert result.deletions == []
        assert len(result.modifications) == 1
        mod = result.modifications[0]
        assert (mod.line, mod.old_line, mod.old, mod.new) == (2, 2, "b", "x")
        assert result.stats.modified_lines == 1

    def test_addition_and_deletion(self):
        assert diff("a\nb", "a\nb\nc").additions == ["c"]
        assert diff("a\nb\nc", "a\nc").deletions == ["b"]

    def test_insert_at_top_is_single_addition(self):
        result = diff("a\nb", "new\na\nb")
        assert result.additions == ["new"]
        assert result.modifications == []

    def test_from_empty(self):
        result = diff("", "x\ny")
        assert result.additions == ["x", "y"]
        assert result.stats.added_lines == 2

    def test_both_empty(self):
        result = diff("", "")
        assert (result.additions, result.deletions, result.modifications) == ([], [], [])
        assert result.stats.total == 0

    def test_to_empty(self):
        result = diff("a\nb", "")
        assert result.deletions == ["a", "b"]
        assert result.additions == []
        assert result.modifications == []
        assert result.stats.deleted_lines == 2

    def test_no_changes(self):
        result = diff("same", "same")
        assert result.has_changes is False
        assert result.stats.total == 0

    def test_surplus_lines_in_block(self):
        result = diff("a\nb\nz", "a\nx\ny\nz")
        assert len(result.modifications) == 1
        assert result.additions == ["y"]


class TestSimilarity:
    def test_values(self):
        assert similarity("a\nb", "a\nc") == 0.5
        assert similarity("", "") == 1.0
        assert similarity("a", "") == 0.0
        assert similarity("a\nb", "a\nb") == 1.0


class TestHunks:
    OLD = "".join(f"l{i}\n" for i in range(1, 11))
    NEW = OLD.replace("l2\n", "X\n").replace("l9\n", "Y\n")

    def test_single_hunk(self):
        result = hunks("a\nb\nc\n", "a\nx\nc\n")
        assert len(result) == 1
        assert result[0].header == "@@ -1,3 +1,3 @@"
        assert [line.type for line in result[0].lines] == ["context", "remove", "add", "context"]
        assert result[0].lines[1].old_line_number == 2
        assert result[0].lines[2].new_line_number == 2

    def test_distant_changes_split(self):
        result = hunks(self.OLD, self.NEW, context=1)
        assert [h.header for h in result] == ["@@ -1,3 +1,3 @@", "@@ -8,3 +8,3 @@"]

    def test_large_context_merges(self):
        assert len(hunks(self.OLD, self.NEW, context=3)) == 1

    def test_zero_context_insertion(self):
        result = hunks("a\nc\n", "a\nb\nc\n", context=0)
        assert result[0].header == "@@ -1,0 +2 @@"

    def test_negative_context_rejected(self):
        with pytest.raises(VersoValidationError):
            hunks("a", "b", context=-1)

    def test_identical_inputs(self):
        assert hunks("a\n", "a\n") == []


class TestUnifiedDiff:
    def test_text(self):
        text = unified_diff("a\nb\nc\n", "a\nx\nc\n", "Version 1", "Version 2")
        assert text == (
            "--- Version 1\n"
            "+++ Version 2\n"
            "@@ -1,3 +1,3 @@\n"
            " a\n"
            "-b\n"
            "+x\n"
            " c\n"
        )

    def test_missing_trailing_newline(self):
        text = unified_diff("a", "b")
        assert text.endswith(
            "@@ -1 +1 @@\n"
            "-a\n"
            "\\ No newline at end of file\n"
            "+b\n"
            "\\ No newline at end of file\n"
        )

    def test_identical_is_empty(self):
        assert unified_diff("same\n", "same\n") == ""


class TestSplitDiff:
    def test_modify_row(self):
        rows = split_diff("a\nb\nc\n", "a\nx\nc\n")
        assert [r.type for r in rows] == ["context", "modify", "context"]
        assert rows[1].left.content == "b"
        assert rows[1].left.line_number == 2
        assert rows[1].right.content == "x"

    def test_pure_addition_row(self):
        rows = split_diff("a\n", "a\nb\n")
        assert rows[-1].type == "add"
        assert rows[-1].left is None
        assert rows[-1].right.content == "b"


class TestApplyPatch:
    @pytest.mark.parametrize(
        "old,new",
        [
            ("a\nb\nc\n", "a\nx\nc\n"),
            ("a\nc\n", "a\nb\nc\n"),
            ("a", "a\nb"),
            ("".join(f"l{i}\n" for i in range(20)), "".join(f"l{i}\n" for i in range(20) if i % 7)),
        ],
    )
    def test_patch_reproduces_target(self, old, new):
        assert apply_patch(old, create_patch(old, new)) == new

    def test_context_mismatch(self):
        patch = create_patch("a\nb\nc\n", "a\nx\nc\n")
        with pytest.raises(VersoValidationError, match="does not apply"):
            apply_patch("z\nb\nc\n", patch)

    def test_malformed_header(self):
        with pytest.raises(VersoValidationError, match="Malformed"):
            apply_patch("a\n", "--- a\n+++ b\n@@ bogus @@\n-a\n")

    def test_wrong_declared_length(self):
        with pytest.raises(VersoValidationError, match="declares"):
            apply_patch("a\nb\n", "@@ -1,2 +1,1 @@\n-a\n")
