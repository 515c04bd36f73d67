"""Unit tests for verso.vcs.hashing — content and commit digests."""

import os
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

from verso.engine.errors import VersoEncodingError
from verso.vcs.hashing import (
    commit_hash,
    content_hash,
    content_signature,
    ensure_text,
    has_significant_changes,
    normalize,
)

WHEN = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestContentHash:
    def test_known_digests(self):
        assert content_hash("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        assert content_hash("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_str_and_bytes_agree(self):
        assert content_hash("héllo") == content_hash("héllo".encode("utf-8"))

    def test_invalid_utf8_bytes(self):
        with pytest.raises(VersoEncodingError) as exc_info:
            content_hash(b"ok\xff")
        assert exc_info.value.context["position"] == 2

    def test_lone_surrogate(self):
        with pytest.raises(VersoEncodingError):
            content_hash("bad \ud800")

    def test_stable_across_processes(self):
        content = "Hello\nwörld\n"
        script = (
            "import sys; from verso.vcs.hashing import content_hash; "
            "print(content_hash(sys.argv[1]))"
        )
        env = {**os.environ, "PYTHONHASHSEED": "12345", "PYTHONIOENCODING": "utf-8"}
        out = subprocess.run(
            [sys.executable, "-c", script, content],
            cwd=Path(__file__).resolve().parents[1],
            env=env,
            capture_output=True,
            text=True,
            encoding="utf-8",
            check=True,
        ).stdout.strip()
        assert out == content_hash(content)


class TestCommitHash:
    def test_deterministic(self):
        assert commit_hash("art", 1, "A", WHEN) == commit_hash("art", 1, "A", WHEN)

    def test_same_content_different_version(self):
        assert commit_hash("art", 1, "A", WHEN) != commit_hash("art", 3, "A", WHEN)

    def test_differs_from_content_hash(self):
        digest = commit_hash("art", 1, "A", WHEN)
        assert len(digest) == 64
        assert digest != content_hash("A")

    def test_naive_timestamp_treated_as_utc(self):
        naive = WHEN.replace(tzinfo=None)
        assert commit_hash("art", 1, "A", naive) == commit_hash("art", 1, "A", WHEN)


class TestSignature:
    def test_ensure_text(self):
        assert ensure_text(b"abc") == "abc"
        assert ensure_text("abc") == "abc"

    def test_normalize(self):
        assert normalize("  a \n\n\tb\n") == "a\nb"

    def test_whitespace_only_edit_not_significant(self):
        assert content_signature("a\nb") == content_signature("  a\n\n b  ")
        assert has_significant_changes("a\nb", "a\n\nb  ") is False

    def test_real_edit_is_significant(self):
        assert has_significant_changes("a\nb", "a\nc") is True
