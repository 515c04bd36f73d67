"""
Line-oriented diff engine.

Lines are aligned with a longest-common-subsequence edit script, so an
inserted or deleted line does not turn every following line into a
"modification". When several minimal scripts exist, the one with the fewest
separate change blocks wins (unchanged lines stay in contiguous runs), and
within a block deletions come before insertions. The result is
deterministic for a given pair of inputs.

Cost is O(n·m) time and memory in the size of the region left after the
common prefix and suffix are stripped, which is small for typical edits.

Two line models are used:

- `split_lines`: the content split on "\\n" (empty string → no lines). Used
  for the structural diff, similarity and by the merge engine.
- line-with-terminator: each line keeps its "\\n". Used for hunks, the
  unified text and patch application, so the output round-trips through
  standard `patch` including the "No newline at end of file" marker.
"""

from __future__ import annotations

import re
from typing import List, Sequence, Tuple

from verso.engine.errors import VersoValidationError
from verso.vcs.hashing import ensure_text
from verso.vcs.models import (
    DiffHunk,
    DiffLine,
    DiffResult,
    DiffStats,
    Modification,
    SplitCell,
    SplitRow,
)

DEFAULT_CONTEXT = 3
NO_NEWLINE_MARKER = "\\ No newline at end of file"

Opcode = Tuple[str, int, int, int, int]

_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


# ---------------------------------------------------------------------------
# Line splitting
# ---------------------------------------------------------------------------

def split_lines(content: str) -> List[str]:
    if content == "":
        return []
    return content.split("\n")


def split_keepends(content: str) -> List[str]:
    """Split after every "\\n", keeping it. The last line may lack one."""
    if content == "":
        return []
    lines = content.split("\n")
    result = [line + "\n" for line in lines[:-1]]
    if lines[-1]:
        result.append(lines[-1])
    return result


# ---------------------------------------------------------------------------
# Edit script
# ---------------------------------------------------------------------------

def edit_script(a: Sequence[str], b: Sequence[str]) -> List[str]:
    """
    Minimal edit script turning `a` into `b` as a list of "=", "-", "+".
    """
    prefix = 0
    while prefix < len(a) and prefix < len(b) and a[prefix] == b[prefix]:
        prefix += 1
    suffix = 0
    while (
        suffix < len(a) - prefix
        and suffix < len(b) - prefix
        and a[len(a) - 1 - suffix] == b[len(b) - 1 - suffix]
    ):
        suffix += 1

    middle = _middle_script(a[prefix:len(a) - suffix], b[prefix:len(b) - suffix])
    return ["="] * prefix + middle + ["="] * suffix


def _middle_script(a: Sequence[str], b: Sequence[str]) -> List[str]:
    n, m = len(a), len(b)
    if n == 0:
        return ["+"] * m
    if m == 0:
        return ["-"] * n

    # Cost = edits * weight + change_blocks, compared as a single int so the
    # edit count dominates and block count breaks ties.
    weight = n + m + 1
    inf = weight * weight

    # after_match[i][j]: best cost from (i, j) when the previous op was a match
    # (or the start); after_edit[i][j]: when it was an insert/delete.
    after_match = [[0] * (m + 1) for _ in range(n + 1)]
    after_edit = [[0] * (m + 1) for _ in range(n + 1)]

    for i in range(n, -1, -1):
        for j in range(m, -1, -1):
            if i == n and j == m:
                continue
            best_match_state = inf
            best_edit_state = inf
            if i < n and j < m and a[i] == b[j]:
                best_match_state = best_edit_state = after_match[i + 1][j + 1]
            if i < n:
                step = after_edit[i + 1][j] + weight
                best_match_state = min(best_match_state, step + 1)
                best_edit_state = min(best_edit_state, step)
            if j < m:
                step = after_edit[i][j + 1] + weight
                best_match_state = min(best_match_state, step + 1)
                best_edit_state = min(best_edit_state, step)
            after_match[i][j] = best_match_state
            after_edit[i][j] = best_edit_state

    ops: List[str] = []
    i = j = 0
    in_edit = False
    while i < n or j < m:
        target = (after_edit if in_edit else after_match)[i][j]
        opens = 0 if in_edit else 1
        if i < n and j < m and a[i] == b[j] and after_match[i + 1][j + 1] == target:
            ops.append("=")
            i += 1
            j += 1
            in_edit = False
        elif i < n and after_edit[i + 1][j] + weight + opens == target:
            ops.append("-")
            i += 1
            in_edit = True
        else:
            ops.append("+")
            j += 1
            in_edit = True
    return ops


def opcodes(a: Sequence[str], b: Sequence[str]) -> List[Opcode]:
    """
    Group the edit script into (tag, i1, i2, j1, j2) blocks, tag one of
    equal / replace / delete / insert (same shape as difflib opcodes).
    """
    codes: List[Opcode] = []
    i = j = 0
    script = edit_script(a, b)
    k = 0
    while k < len(script):
        i1, j1 = i, j
        if script[k] == "=":
            while k < len(script) and script[k] == "=":
                i += 1
                j += 1
                k += 1
            codes.append(("equal", i1, i, j1, j))
            continue
        while k < len(script) and script[k] != "=":
            if script[k] == "-":
                i += 1
            else:
                j += 1
            k += 1
        if i > i1 and j > j1:
            tag = "replace"
        elif i > i1:
            tag = "delete"
        else:
            tag = "insert"
        codes.append((tag, i1, i, j1, j))
    return codes


# ---------------------------------------------------------------------------
# Structural diff
# ---------------------------------------------------------------------------

def diff(old: str, new: str) -> DiffResult:
    """
    Additions, deletions and in-place modifications between two contents.

    Inside one change block the first min(deleted, inserted) lines pair up
    as modifications; the surplus is reported as pure additions/deletions.
    """
    a = split_lines(ensure_text(old))
    b = split_lines(ensure_text(new))

    additions: List[str] = []
    deletions: List[str] = []
    modifications: List[Modification] = []

    for tag, i1, i2, j1, j2 in opcodes(a, b):
        if tag == "equal":
            continue
        paired = min(i2 - i1, j2 - j1)
        for k in range(paired):
            modifications.append(
                Modification(line=j1 + k + 1, old_line=i1 + k + 1, old=a[i1 + k], new=b[j1 + k])
            )
        deletions.extend(a[i1 + paired:i2])
        additions.extend(b[j1 + paired:j2])

    return DiffResult(
        additions=additions,
        deletions=deletions,
        modifications=modifications,
        stats=DiffStats(
            added_lines=len(additions),
            deleted_lines=len(deletions),
            modified_lines=len(modifications),
        ),
    )


def similarity(a: str, b: str) -> float:
    """
    Matching lines over the longer side's line count, in [0, 1].
    Two empty contents are identical (1.0).
    """
    left = split_lines(ensure_text(a))
    right = split_lines(ensure_text(b))
    longest = max(len(left), len(right))
    if longest == 0:
        return 1.0
    matched = sum(i2 - i1 for tag, i1, i2, _, _ in opcodes(left, right) if tag == "equal")
    return matched / longest


# ---------------------------------------------------------------------------
# Hunks / unified / split
# ---------------------------------------------------------------------------

def _grouped_opcodes(codes: List[Opcode], context: int) -> List[List[Opcode]]:
    if not any(tag != "equal" for tag, *_ in codes):
        return []

    codes = list(codes)
    tag, i1, i2, j1, j2 = codes[0]
    if tag == "equal":
        codes[0] = (tag, max(i1, i2 - context), i2, max(j1, j2 - context), j2)
    tag, i1, i2, j1, j2 = codes[-1]
    if tag == "equal":
        codes[-1] = (tag, i1, min(i2, i1 + context), j1, min(j2, j1 + context))

    groups: List[List[Opcode]] = []
    group: List[Opcode] = []
    for tag, i1, i2, j1, j2 in codes:
        # A long unchanged run closes the current hunk and opens the next
        if tag == "equal" and i2 - i1 > 2 * context:
            group.append((tag, i1, min(i2, i1 + context), j1, min(j2, j1 + context)))
            groups.append(group)
            group = []
            i1, j1 = max(i1, i2 - context), max(j1, j2 - context)
        group.append((tag, i1, i2, j1, j2))
    if group and not (len(group) == 1 and group[0][0] == "equal"):
        groups.append(group)
    return groups


def _header_range(start: int, stop: int) -> Tuple[int, int]:
    length = stop - start
    # An empty range names the line before the insertion point
    return (start if length == 0 else start + 1), length


def _diff_line(kind: str, raw: str, old_no=None, new_no=None) -> DiffLine:
    missing = not raw.endswith("\n")
    return DiffLine(
        type=kind,
        content=raw if missing else raw[:-1],
        old_line_number=old_no,
        new_line_number=new_no,
        missing_newline=missing,
    )


def hunks(old: str, new: str, context: int = DEFAULT_CONTEXT) -> List[DiffHunk]:
    """Structured `@@` hunks with `context` unchanged lines around each change."""
    if context < 0:
        raise VersoValidationError("context must be >= 0", context=context)
    a = split_keepends(ensure_text(old))
    b = split_keepends(ensure_text(new))

    result: List[DiffHunk] = []
    for group in _grouped_opcodes(opcodes(a, b), context):
        old_start, old_len = _header_range(group[0][1], group[-1][2])
        new_start, new_len = _header_range(group[0][3], group[-1][4])
        hunk = DiffHunk(old_start=old_start, old_lines=old_len, new_start=new_start, new_lines=new_len)
        for tag, i1, i2, j1, j2 in group:
            if tag == "equal":
                for k in range(i2 - i1):
                    hunk.lines.append(_diff_line("context", a[i1 + k], i1 + k + 1, j1 + k + 1))
                continue
            for k in range(i1, i2):
                hunk.lines.append(_diff_line("remove", a[k], old_no=k + 1))
            for k in range(j1, j2):
                hunk.lines.append(_diff_line("add", b[k], new_no=k + 1))
        result.append(hunk)
    return result


_PREFIX = {"context": " ", "remove": "-", "add": "+"}


def unified_diff(
    old: str,
    new: str,
    old_label: str = "a/file",
    new_label: str = "b/file",
    context: int = DEFAULT_CONTEXT,
) -> str:
    """
    Standard unified diff text (`diff -u` format). Identical inputs produce
    an empty string, like `diff -u` itself.
    """
    hunk_list = hunks(old, new, context)
    if not hunk_list:
        return ""

    out = [f"--- {old_label}\n", f"+++ {new_label}\n"]
    for hunk in hunk_list:
        out.append(hunk.header + "\n")
        for line in hunk.lines:
            out.append(f"{_PREFIX[line.type]}{line.content}\n")
            if line.missing_newline:
                out.append(NO_NEWLINE_MARKER + "\n")
    return "".join(out)


def create_patch(old: str, new: str, old_label: str = "a/file", new_label: str = "b/file") -> str:
    return unified_diff(old, new, old_label, new_label)


def split_diff(old: str, new: str, context: int = DEFAULT_CONTEXT) -> List[SplitRow]:
    """
    Side-by-side rows. Removed and added lines inside one change block are
    paired into `modify` rows; the remainder stays `remove` / `add`.
    """
    rows: List[SplitRow] = []
    for index, hunk in enumerate(hunks(old, new, context)):
        removed: List[DiffLine] = []
        added: List[DiffLine] = []

        def flush() -> None:
            for k in range(max(len(removed), len(added))):
                left = removed[k] if k < len(removed) else None
                right = added[k] if k < len(added) else None
                if left and right:
                    kind = "modify"
                elif left:
                    kind = "remove"
                else:
                    kind = "add"
                rows.append(
                    SplitRow(
                        type=kind,
                        hunk=index,
                        left=SplitCell(line_number=left.old_line_number, content=left.content) if left else None,
                        right=SplitCell(line_number=right.new_line_number, content=right.content) if right else None,
                    )
                )
            removed.clear()
            added.clear()

        for line in hunk.lines:
            if line.type == "remove":
                removed.append(line)
            elif line.type == "add":
                added.append(line)
            else:
                flush()
                rows.append(
                    SplitRow(
                        type="context",
                        hunk=index,
                        left=SplitCell(line_number=line.old_line_number, content=line.content),
                        right=SplitCell(line_number=line.new_line_number, content=line.content),
                    )
                )
        flush()
    return rows


# ---------------------------------------------------------------------------
# Patch application
# ---------------------------------------------------------------------------

def _parse_patch(patch: str) -> List[Tuple[int, int, List[Tuple[str, str]]]]:
    parsed: List[Tuple[int, int, List[Tuple[str, str]]]] = []
    body: List[Tuple[str, str]] = []
    for raw in split_keepends(patch):
        if raw.startswith("@@"):
            match = _HUNK_HEADER.match(raw)
            if not match:
                raise VersoValidationError(f"Malformed hunk header: {raw.rstrip()}")
            old_start = int(match.group(1))
            old_len = int(match.group(2)) if match.group(2) is not None else 1
            body = []
            parsed.append((old_start, old_len, body))
        elif not parsed:
            # File headers and anything before the first hunk
            continue
        elif raw.startswith("\\"):
            if not body:
                raise VersoValidationError("Newline marker without a preceding line")
            kind, text = body[-1]
            body[-1] = (kind, text[:-1] if text.endswith("\n") else text)
        elif raw in ("\n", ""):
            body.append((" ", "\n"))
        elif raw[0] in " -+":
            body.append((raw[0], raw[1:]))
        else:
            raise VersoValidationError(f"Unexpected patch line: {raw.rstrip()}")
    return parsed


def apply_patch(content: str, patch: str) -> str:
    """
    Apply a unified diff to `content`. Context and removed lines must match
    exactly; any mismatch raises VersoValidationError.
    """
    source = split_keepends(ensure_text(content))
    out: List[str] = []
    pos = 0

    for number, (old_start, old_len, body) in enumerate(_parse_patch(ensure_text(patch)), start=1):
        consumed = sum(1 for kind, _ in body if kind != "+")
        if consumed != old_len:
            raise VersoValidationError(
                f"Hunk {number} declares {old_len} old lines but carries {consumed}",
                hunk=number,
            )
        start = old_start - 1 if old_len else old_start
        if start < pos or start > len(source):
            raise VersoValidationError(f"Hunk {number} is out of range", hunk=number)

        out.extend(source[pos:start])
        pos = start
        for kind, text in body:
            if kind == "+":
                out.append(text)
                continue
            if pos >= len(source) or source[pos] != text:
                raise VersoValidationError(
                    f"Hunk {number} does not apply at line {pos + 1}",
                    hunk=number,
                    line=pos + 1,
                )
            if kind == " ":
                out.append(text)
            pos += 1

    out.extend(source[pos:])
    return "".join(out)
