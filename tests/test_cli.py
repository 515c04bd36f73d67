"""Unit tests for verso.cli — commands against a SQLite file database."""

import json

import pytest

import verso.cli as cli_mod
from verso.engine.config import VersoConfig
from verso.engine.runtime import VersoRuntime


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    # Keep auto-discovery away from any verso.yaml above the test directory
    monkeypatch.chdir(tmp_path)
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    assert cli_mod.main(["--db-url", url, "init"]) == 0
    return url


@pytest.fixture
def seeded(db_url):
    """Artifact with main: v1 "a\\nb" → v2 "a\\nB", and dev: v1 → v3 "a\\nb\\nc"."""
    with VersoRuntime(VersoConfig(), db_url=db_url, enable_file_logging=False) as runtime:
        v1 = runtime.store.create_artifact("Doc", "a\nb", "alice")
        artifact_id = v1.artifact_id
        runtime.store.create_version(artifact_id, "Doc", "a\nB", "alice", commit_message="Capitalize")
        runtime.refs.create_branch(artifact_id, "dev", v1.id, "alice")
        runtime.store.create_version(artifact_id, "Doc", "a\nb\nc", "alice", branch="dev")
        runtime.refs.create_tag(artifact_id, v1.id, "first", "alice")
    return db_url, artifact_id


def run(db_url, *argv):
    return cli_mod.main(["--db-url", db_url, *argv])


class TestCLIParsing:
    def test_module_has_expected_commands(self):
        for name in ("cmd_init", "cmd_history", "cmd_diff", "cmd_merge", "cmd_restore", "cmd_log"):
            assert hasattr(cli_mod, name)

    def test_no_command_prints_help(self, capsys):
        assert cli_mod.main([]) == 0
        assert "usage: verso" in capsys.readouterr().out

    def test_merge_requires_user(self):
        with pytest.raises(SystemExit):
            cli_mod.main(["merge", "a", "auto", "b", "c"])


class TestCmdInit:
    def test_lists_tables(self, db_url, capsys):
        capsys.readouterr()
        assert cli_mod.main(["--db-url", db_url, "init"]) == 0
        out = capsys.readouterr().out
        assert "[OK] Database ready" in out
        assert "artifact_versions" in out


class TestCmdHistory:
    def test_all_versions(self, seeded, capsys):
        db_url, artifact_id = seeded
        capsys.readouterr()
        assert run(db_url, "history", artifact_id) == 0
        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 3
        assert lines[0].startswith("* v3")
        assert "Capitalize" in lines[1]

    def test_branch(self, seeded, capsys):
        db_url, artifact_id = seeded
        capsys.readouterr()
        run(db_url, "history", artifact_id, "--branch", "main")
        lines = capsys.readouterr().out.splitlines()
        assert [line.lstrip("* ").split()[0] for line in lines] == ["v2", "v1"]

    def test_missing_artifact(self, db_url, capsys):
        capsys.readouterr()
        assert run(db_url, "history", "nope") == 1
        assert "[ERROR] VersoNotFoundError" in capsys.readouterr().out


class TestCmdDiff:
    def test_refs(self, seeded, capsys):
        db_url, artifact_id = seeded
        capsys.readouterr()
        assert run(db_url, "diff", artifact_id, "first", "main") == 0
        out = capsys.readouterr().out
        assert out.startswith("--- Version 1\n+++ Version 2\n")
        assert "-b\n\\ No newline at end of file\n+B" in out
        assert "0 added, 0 deleted, 1 modified" in out


class TestCmdMerge:
    def test_auto_base_preview(self, seeded, capsys):
        db_url, artifact_id = seeded
        capsys.readouterr()
        assert run(db_url, "merge", artifact_id, "auto", "main", "dev", "--user", "alice") == 0
        assert capsys.readouterr().out == "a\nB\nc\n"

    def test_commit(self, seeded, capsys):
        db_url, artifact_id = seeded
        capsys.readouterr()
        code = run(db_url, "merge", artifact_id, "v1", "main", "dev", "--user", "alice", "--commit", "-m", "merge dev")
        assert code == 0
        assert "[OK] Committed v4" in capsys.readouterr().out

    def test_conflict_exit_code(self, seeded, capsys):
        db_url, artifact_id = seeded
        with VersoRuntime(VersoConfig(), db_url=db_url, enable_file_logging=False) as runtime:
            runtime.store.create_version(artifact_id, "Doc", "a\nX", "alice", branch="dev")
        capsys.readouterr()
        assert run(db_url, "merge", artifact_id, "first", "main", "dev", "--user", "alice", "--commit") == 1
        out = capsys.readouterr().out
        assert "[CONFLICT] 1 conflicting line(s)" in out
        assert "<<<<<<< current" in out

    def test_permission_denied(self, seeded, capsys):
        db_url, artifact_id = seeded
        capsys.readouterr()
        assert run(db_url, "merge", artifact_id, "first", "main", "dev", "--user", "eve", "--commit") == 1
        assert "VersoPermissionError" in capsys.readouterr().out


class TestCmdRestore:
    def test_restore(self, seeded, capsys):
        db_url, artifact_id = seeded
        capsys.readouterr()
        assert run(db_url, "restore", artifact_id, "first", "--user", "alice") == 0
        assert "[OK] Restored v1 as v4" in capsys.readouterr().out


class TestCmdLog:
    def test_text(self, seeded, capsys):
        db_url, artifact_id = seeded
        capsys.readouterr()
        assert run(db_url, "log", artifact_id, "--limit", "2") == 0
        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 2
        assert " tag " in lines[0]

    def test_json(self, seeded, capsys):
        db_url, artifact_id = seeded
        capsys.readouterr()
        run(db_url, "log", artifact_id, "--action", "update", "--json")
        entries = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
        assert [e["details"]["version"] for e in entries] == [3, 2]
        assert all(e["action"] == "update" for e in entries)
