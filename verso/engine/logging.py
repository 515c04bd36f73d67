"""
Verso Logging System — Structured JSON file-based logging with async queue.

Implements:
- FileLogger: Per-object-type, per-category log files (daily rotation)
- AsyncLogQueue: In-memory queue with background flush (100ms / 50 entries)
- Log entry builders for version-graph events
- LogRetentionManager: gzip + delete by age

This is the operational log. The audit ledger proper is the change log
table (verso.versioning.changelog); entries here are best-effort.
"""

from __future__ import annotations

import gzip
import json
import logging
import shutil
import threading
import time
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Dict, List, Optional

logger = logging.getLogger("verso.engine.logging")

# Valid object types and their permitted categories
OBJECT_TYPE_CATEGORIES = {
    "artifacts": ["execution", "security"],
    "versions": ["execution", "performance"],
    "branches": ["execution"],
    "tags": ["execution"],
    "merges": ["execution", "performance"],
    "collaborators": ["execution", "security"],
    "system": ["execution", "security"],
}

# Retention defaults (days)
DEFAULT_RETENTION = {
    "execution": 90,
    "performance": 30,
    "security": 365,
}


class LogEntry:
    """A structured log entry destined for a specific file."""

    __slots__ = ("object_type", "category", "data")

    def __init__(self, object_type: str, category: str, data: Dict[str, Any]):
        self.object_type = object_type
        self.category = category
        self.data = data

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


class FileLogger:
    """
    Writes structured JSON log entries to per-object-type, per-category files.
    Files rotate daily: logs/{object_type}/{category}/{YYYY-MM-DD}.jsonl

    Thread-safe — uses a lock per file path.
    """

    def __init__(self, log_dir: str = "logs"):
        self._log_dir = Path(log_dir)
        self._file_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        for obj_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for cat in categories:
                (self._log_dir / obj_type / cat).mkdir(parents=True, exist_ok=True)

    def write(self, entry: LogEntry) -> None:
        """Write a single log entry to the appropriate file."""
        self.write_batch([entry])

    def write_batch(self, entries: List[LogEntry]) -> None:
        """Write a batch of entries, grouped by destination file."""
        grouped: Dict[str, List[LogEntry]] = defaultdict(list)
        for entry in entries:
            grouped[str(self._resolve_path(entry.object_type, entry.category))].append(entry)

        for file_path, batch in grouped.items():
            with self._file_locks[file_path]:
                with open(file_path, "a", encoding="utf-8") as f:
                    for entry in batch:
                        f.write(entry.to_json())
                        f.write("\n")

    def _resolve_path(self, object_type: str, category: str) -> Path:
        today = date.today().isoformat()
        return self._log_dir / object_type / category / f"{today}.jsonl"

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def query(
        self,
        object_type: str,
        category: str,
        *,
        days: int = 7,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        """
        Read entries for object_type/category from the last `days` days,
        newest first. `filters` matches top-level keys by equality.
        """
        base = self._log_dir / object_type / category
        if not base.exists():
            return []

        results: List[Dict[str, Any]] = []
        current = date.today()
        stop = current - timedelta(days=days)
        while current >= stop and len(results) < limit:
            file_path = base / f"{current.isoformat()}.jsonl"
            gz_path = file_path.with_suffix(".jsonl.gz")
            for path, opener in ((file_path, open), (gz_path, gzip.open)):
                if path.exists():
                    day = self._read_jsonl(path, opener, filters)
                    # Lines are chronological within a file
                    results.extend(reversed(day))
            current -= timedelta(days=1)

        return results[:limit]

    @staticmethod
    def _read_jsonl(path: Path, opener, filters: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        entries: List[Dict[str, Any]] = []
        try:
            with opener(path, "rt", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if filters and not all(data.get(k) == v for k, v in filters.items()):
                        continue
                    entries.append(data)
        except OSError as exc:
            logger.warning("Could not read log file %s: %s", path, exc)
        return entries


class AsyncLogQueue:
    """
    In-memory queue with a background flush thread.

    Entries are pushed non-blocking. The thread flushes to FileLogger every
    flush_interval_ms OR when flush_batch_size entries accumulate.
    """

    def __init__(
        self,
        file_logger: FileLogger,
        flush_interval_ms: int = 100,
        flush_batch_size: int = 50,
        max_queue_size: int = 10000,
    ):
        self._logger = file_logger
        self._flush_interval = flush_interval_ms / 1000.0
        self._flush_batch_size = flush_batch_size
        self._queue: Queue[LogEntry] = Queue(maxsize=max_queue_size)
        self._running = False
        self._flush_thread: Optional[threading.Thread] = None
        self._dropped_count = 0

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._flush_thread = threading.Thread(
            target=self._flush_loop,
            name="verso-log-flush",
            daemon=True,
        )
        self._flush_thread.start()
        logger.info("Async log queue started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the flush thread and drain remaining entries."""
        self._running = False
        if self._flush_thread and self._flush_thread.is_alive():
            self._flush_thread.join(timeout=timeout)
        self._drain()
        logger.info(f"Async log queue stopped (dropped: {self._dropped_count})")

    def push(self, entry: LogEntry) -> bool:
        """Queue an entry. Returns False if it was dropped (queue full)."""
        try:
            self._queue.put_nowait(entry)
            return True
        except Full:
            self._dropped_count += 1
            return False

    def _flush_loop(self) -> None:
        while self._running:
            batch = self._collect_batch()
            if batch:
                try:
                    self._logger.write_batch(batch)
                except OSError as e:
                    logger.error(f"Log flush error: {e}")
            else:
                time.sleep(self._flush_interval)

    def _collect_batch(self) -> List[LogEntry]:
        batch: List[LogEntry] = []
        deadline = time.monotonic() + self._flush_interval

        while len(batch) < self._flush_batch_size:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                batch.append(self._queue.get(timeout=min(remaining, 0.01)))
            except Empty:
                if batch:
                    break
        return batch

    def _drain(self) -> None:
        batch: List[LogEntry] = []
        while True:
            try:
                batch.append(self._queue.get_nowait())
            except Empty:
                break
        if batch:
            try:
                self._logger.write_batch(batch)
            except OSError as e:
                logger.error(f"Log drain error: {e}")

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped_count


# ---------------------------------------------------------------------------
# Log Entry Builders
# ---------------------------------------------------------------------------

def _base_entry(
    event: str,
    level: str,
    artifact_id: Optional[str] = None,
    user_id: Optional[Any] = None,
    **extra: Any,
) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
    }
    if artifact_id:
        entry["artifact_id"] = artifact_id
    if user_id is not None:
        entry["user_id"] = user_id
    entry.update({k: v for k, v in extra.items() if v is not None})
    return entry


def log_version_event(
    event: str,
    artifact_id: str,
    user_id: Any,
    version_id: Optional[str] = None,
    version: Optional[int] = None,
    content_hash: Optional[str] = None,
    attempts: Optional[int] = None,
    duration_ms: Optional[float] = None,
) -> LogEntry:
    """version_created / version_restored / version_commit_retry."""
    data = _base_entry(
        event=event,
        level="WARNING" if event.endswith("retry") else "INFO",
        artifact_id=artifact_id,
        user_id=user_id,
        version_id=version_id,
        version=version,
        content_hash=content_hash,
        attempts=attempts,
        duration_ms=duration_ms,
    )
    return LogEntry("versions", "execution", data)


def log_ref_event(
    event: str,
    ref_type: str,
    artifact_id: str,
    user_id: Any,
    name: str,
    version_id: Optional[str] = None,
) -> LogEntry:
    """branch_created / tag_created / branch_deleted / tag_deleted / default_branch_set."""
    data = _base_entry(
        event=event,
        level="INFO",
        artifact_id=artifact_id,
        user_id=user_id,
        name=name,
        version_id=version_id,
    )
    object_type = "branches" if ref_type == "branch" else "tags"
    return LogEntry(object_type, "execution", data)


def log_merge_event(
    artifact_id: str,
    user_id: Any,
    base_version_id: str,
    current_version_id: str,
    incoming_version_id: str,
    success: bool,
    conflict_count: int,
    committed_version_id: Optional[str] = None,
    duration_ms: Optional[float] = None,
) -> LogEntry:
    data = _base_entry(
        event="merge_attempted",
        level="INFO" if success else "WARNING",
        artifact_id=artifact_id,
        user_id=user_id,
        base_version_id=base_version_id,
        current_version_id=current_version_id,
        incoming_version_id=incoming_version_id,
        success=success,
        conflict_count=conflict_count,
        committed_version_id=committed_version_id,
        duration_ms=duration_ms,
    )
    return LogEntry("merges", "execution", data)


def log_security_event(
    event: str,
    artifact_id: str,
    user_id: Any,
    permission_needed: str,
    permission_held: Optional[str] = None,
    level: str = "WARNING",
) -> LogEntry:
    """Permission denials and collaborator changes."""
    data = _base_entry(
        event=event,
        level=level,
        artifact_id=artifact_id,
        user_id=user_id,
        permission_needed=permission_needed,
        permission_held=permission_held,
    )
    return LogEntry("collaborators", "security", data)


def log_system_event(
    event: str,
    level: str = "INFO",
    details: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    """Startup, shutdown, schema creation."""
    data = _base_entry(event=event, level=level, details=details)
    return LogEntry("system", "execution", data)


# ---------------------------------------------------------------------------
# Retention
# ---------------------------------------------------------------------------

class LogRetentionManager:
    """Deletes log files past retention; gzips files older than compress_after_days."""

    def __init__(
        self,
        log_dir: str = "logs",
        retention_days: Optional[Dict[str, int]] = None,
        compress_after_days: int = 7,
    ):
        self._log_dir = Path(log_dir)
        self._retention = retention_days or DEFAULT_RETENTION.copy()
        self._compress_after = compress_after_days

    def cleanup(self, today: Optional[date] = None) -> Dict[str, int]:
        """Returns {"deleted": N, "compressed": M}."""
        deleted = 0
        compressed = 0
        today = today or date.today()

        for obj_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for cat in categories:
                cat_dir = self._log_dir / obj_type / cat
                if not cat_dir.exists():
                    continue

                retention = self._retention.get(cat, 90)
                for file_path in cat_dir.iterdir():
                    if not file_path.is_file():
                        continue
                    file_date = self._parse_file_date(file_path)
                    if file_date is None:
                        continue

                    age_days = (today - file_date).days
                    if age_days > retention:
                        file_path.unlink()
                        deleted += 1
                    elif age_days > self._compress_after and file_path.suffix == ".jsonl":
                        if self._compress_file(file_path):
                            compressed += 1

        result = {"deleted": deleted, "compressed": compressed}
        logger.info(f"Log cleanup: {result}")
        return result

    @staticmethod
    def _parse_file_date(file_path: Path) -> Optional[date]:
        """2026-02-12.jsonl or 2026-02-12.jsonl.gz → date."""
        try:
            return date.fromisoformat(file_path.name.split(".")[0])
        except ValueError:
            return None

    @staticmethod
    def _compress_file(file_path: Path) -> bool:
        gz_path = file_path.with_suffix(file_path.suffix + ".gz")
        try:
            with open(file_path, "rb") as f_in:
                with gzip.open(gz_path, "wb") as f_out:
                    shutil.copyfileobj(f_in, f_out)
            file_path.unlink()
            return True
        except OSError as e:
            logger.error(f"Failed to compress {file_path}: {e}")
            if gz_path.exists():
                gz_path.unlink()
            return False


# ---------------------------------------------------------------------------
# Global Log Queue Singleton
# ---------------------------------------------------------------------------

_global_queue: Optional[AsyncLogQueue] = None


def init_logging(
    log_dir: str = "logs",
    flush_interval_ms: int = 100,
    flush_batch_size: int = 50,
    max_queue_size: int = 10000,
    level: str = "INFO",
) -> AsyncLogQueue:
    """Configure the stdlib `verso` logger level and start the global async queue."""
    global _global_queue
    logging.getLogger("verso").setLevel(level)
    _global_queue = AsyncLogQueue(
        file_logger=FileLogger(log_dir=log_dir),
        flush_interval_ms=flush_interval_ms,
        flush_batch_size=flush_batch_size,
        max_queue_size=max_queue_size,
    )
    _global_queue.start()
    return _global_queue


def get_log_queue() -> Optional[AsyncLogQueue]:
    return _global_queue


def log(entry: LogEntry) -> bool:
    """Push an entry to the global queue. Non-blocking; no-op before init_logging()."""
    if _global_queue is None:
        logger.debug("Log queue not initialized — %s entry dropped", entry.data.get("event"))
        return False
    return _global_queue.push(entry)


def shutdown_logging() -> None:
    """Flush and stop the global log queue."""
    global _global_queue
    if _global_queue:
        _global_queue.stop()
        _global_queue = None
