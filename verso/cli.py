"""
Verso CLI — database bootstrap and version-graph inspection.

Commands:
- verso init      — Create the schema in the configured database
- verso history   — List an artifact's versions (optionally one branch)
- verso diff      — Unified diff between two versions
- verso merge     — Three-way merge of three versions, optionally committed
- verso restore   — Re-commit an earlier version as the newest one
- verso log       — Show the change log of an artifact

Version arguments accept anything BranchTagRegistry.resolve() does: a
branch name, a tag name, a version id or a version number ("3", "v3").
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional

from verso.engine.errors import VersoError

logger = logging.getLogger("verso.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="verso",
        description="Verso — artifact version control",
    )
    parser.add_argument("--config", default=None, help="Path to verso.yaml (default: auto-discover)")
    parser.add_argument("--db-url", default=None, help="Database URL (overrides verso.yaml)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # verso init
    subparsers.add_parser("init", help="Create database tables")

    # verso history
    history_parser = subparsers.add_parser("history", help="List versions of an artifact")
    history_parser.add_argument("artifact_id", help="Artifact id")
    history_parser.add_argument("--branch", help="Only versions reachable from this branch")

    # verso diff
    diff_parser = subparsers.add_parser("diff", help="Unified diff between two versions")
    diff_parser.add_argument("artifact_id", help="Artifact id")
    diff_parser.add_argument("from_ref", help="Old version (ref)")
    diff_parser.add_argument("to_ref", help="New version (ref)")
    diff_parser.add_argument("--context", "-U", type=int, default=None, help="Context lines")

    # verso merge
    merge_parser = subparsers.add_parser("merge", help="Three-way merge of versions")
    merge_parser.add_argument("artifact_id", help="Artifact id")
    merge_parser.add_argument("base_ref", help="Common ancestor (ref), or 'auto' for the merge base")
    merge_parser.add_argument("current_ref", help="Current version (ref)")
    merge_parser.add_argument("incoming_ref", help="Incoming version (ref)")
    merge_parser.add_argument("--user", required=True, help="Acting user id")
    merge_parser.add_argument("--commit", action="store_true", help="Commit a clean merge as a new version")
    merge_parser.add_argument("--message", "-m", help="Commit message")

    # verso restore
    restore_parser = subparsers.add_parser("restore", help="Restore an earlier version")
    restore_parser.add_argument("artifact_id", help="Artifact id")
    restore_parser.add_argument("ref", help="Version to restore (ref)")
    restore_parser.add_argument("--user", required=True, help="Acting user id")

    # verso log
    log_parser = subparsers.add_parser("log", help="Show the change log of an artifact")
    log_parser.add_argument("artifact_id", help="Artifact id")
    log_parser.add_argument("--action", help="Only entries with this action")
    log_parser.add_argument("--limit", type=int, default=None, help="Maximum number of entries")
    log_parser.add_argument("--json", action="store_true", help="One JSON object per line")

    args = parser.parse_args(argv)

    commands = {
        "init": cmd_init,
        "history": cmd_history,
        "diff": cmd_diff,
        "merge": cmd_merge,
        "restore": cmd_restore,
        "log": cmd_log,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 0

    try:
        runtime = _start_runtime(args, create_tables=args.command == "init")
    except VersoError as e:
        print(f"[ERROR] {e.message}")
        return 1

    try:
        return command(runtime, args)
    except VersoError as e:
        print(f"[ERROR] {e.error_type}: {e.message}")
        return 1
    finally:
        runtime.shutdown()


def _start_runtime(args: argparse.Namespace, create_tables: bool = False):
    from verso.engine.config import load_config
    from verso.engine.runtime import VersoRuntime

    config = load_config(args.config)
    runtime = VersoRuntime(
        config,
        db_url=args.db_url,
        create_tables=create_tables,
        enable_file_logging=False,
    )
    runtime.startup()
    return runtime


def cmd_init(runtime, args: argparse.Namespace) -> int:
    """Tables are created by the runtime on startup; report what exists."""
    from verso.db.base import Base

    print("[OK] Database ready")
    for table in sorted(Base.metadata.tables):
        print(f"  - {table}")
    return 0


def cmd_history(runtime, args: argparse.Namespace) -> int:
    versions = runtime.store.get_history(args.artifact_id, branch=args.branch)
    for v in versions:
        marker = "*" if v.is_active else " "
        branch = f" [{v.branch_name}]" if v.branch_name else ""
        message = v.commit_message or ""
        print(
            f"{marker} v{v.version:<4} {v.commit_hash[:10]}  "
            f"{v.created_at:%Y-%m-%d %H:%M}  {v.author_id}{branch}  {message}"
        )
    return 0


def cmd_diff(runtime, args: argparse.Namespace) -> int:
    old = runtime.refs.resolve(args.artifact_id, args.from_ref)
    new = runtime.refs.resolve(args.artifact_id, args.to_ref)
    result = runtime.store.diff_versions(old.id, new.id, context=args.context)
    sys.stdout.write(result.unified)
    stats = result.diff.stats
    print(
        f"{stats.added_lines} added, {stats.deleted_lines} deleted, "
        f"{stats.modified_lines} modified"
    )
    return 0


def cmd_merge(runtime, args: argparse.Namespace) -> int:
    current = runtime.refs.resolve(args.artifact_id, args.current_ref)
    incoming = runtime.refs.resolve(args.artifact_id, args.incoming_ref)
    if args.base_ref == "auto":
        base = runtime.store.merge_base(current.id, incoming.id)
        if base is None:
            print("[ERROR] Versions share no common ancestor")
            return 1
    else:
        base = runtime.refs.resolve(args.artifact_id, args.base_ref)

    outcome = runtime.store.merge_versions(
        args.artifact_id,
        base.id,
        current.id,
        incoming.id,
        args.user,
        commit=args.commit,
        commit_message=args.message,
    )
    result = outcome.result
    if not result.success:
        print(f"[CONFLICT] {result.conflict_count} conflicting line(s)")
        for conflict in result.conflicts:
            print(f"  line {conflict.line}: current={conflict.current!r} incoming={conflict.incoming!r}")
        sys.stdout.write(result.content + "\n")
        return 1

    if outcome.committed_version is not None:
        print(f"[OK] Committed v{outcome.committed_version.version}")
    else:
        sys.stdout.write(result.content + "\n")
    return 0


def cmd_restore(runtime, args: argparse.Namespace) -> int:
    target = runtime.refs.resolve(args.artifact_id, args.ref)
    restored = runtime.store.restore_version(args.artifact_id, target.id, args.user)
    print(f"[OK] Restored v{target.version} as v{restored.version}")
    return 0


def cmd_log(runtime, args: argparse.Namespace) -> int:
    entries = runtime.store.changelog.query(args.artifact_id, action=args.action, limit=args.limit)
    for entry in entries:
        if args.json:
            print(json.dumps(entry.model_dump(mode="json")))
            continue
        details = entry.details.model_dump(exclude={"kind"}, exclude_none=True) if entry.details else {}
        print(f"{entry.timestamp:%Y-%m-%d %H:%M:%S}  {entry.action:<8} {entry.user_id}  {details}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
