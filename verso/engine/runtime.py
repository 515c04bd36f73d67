"""
Verso Runtime — wires the engine's services from one VersoConfig.

Ties together:
- Database engine + session factory (verso.db.session)
- AsyncLogQueue (file-based operational logging)
- PermissionCache (Redis, optional)
- CollaborationGuard, ChangeLog, VersionStore, BranchTagRegistry
- ArtifactAPI (request layer)

Lifecycle:
    runtime = VersoRuntime(config)
    runtime.startup()
    runtime.store.create_version(...)
    runtime.shutdown()
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from verso.api.handlers import ArtifactAPI
from verso.db.session import close_all, init_db
from verso.engine.cache import PermissionCache, create_permission_cache
from verso.engine.config import VersoConfig, get_config
from verso.engine.logging import (
    AsyncLogQueue,
    LogRetentionManager,
    init_logging,
    log,
    log_system_event,
    shutdown_logging,
)
from verso.security.permissions import CollaborationGuard
from verso.versioning.changelog import ChangeLog
from verso.versioning.refs import BranchTagRegistry
from verso.versioning.store import VersionStore

logger = logging.getLogger("verso.engine.runtime")


class VersoRuntime:
    def __init__(
        self,
        config: Optional[VersoConfig] = None,
        db_url: Optional[str] = None,
        create_tables: bool = False,
        enable_file_logging: bool = True,
    ):
        self.config = config or get_config()
        self._db_url = db_url
        self._create_tables = create_tables
        self._enable_file_logging = enable_file_logging

        # Subsystems (initialized in startup())
        self.session_factory = None
        self.log_queue: Optional[AsyncLogQueue] = None
        self.permission_cache: Optional[PermissionCache] = None
        self.retention_manager: Optional[LogRetentionManager] = None
        self.guard: Optional[CollaborationGuard] = None
        self.changelog: Optional[ChangeLog] = None
        self.store: Optional[VersionStore] = None
        self.refs: Optional[BranchTagRegistry] = None
        self.api: Optional[ArtifactAPI] = None

        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def startup(self) -> None:
        if self._started:
            logger.warning("Runtime already started")
            return

        cfg = self.config
        logging.getLogger("verso").setLevel(cfg.logging.level)

        # 1. Logging
        if self._enable_file_logging:
            queue_cfg = cfg.logging.async_queue
            self.log_queue = init_logging(
                log_dir=cfg.logging.directory,
                flush_interval_ms=queue_cfg.flush_interval_ms,
                flush_batch_size=queue_cfg.flush_batch_size,
                max_queue_size=queue_cfg.max_queue_size,
                level=cfg.logging.level,
            )
            self.retention_manager = LogRetentionManager(
                log_dir=cfg.logging.directory,
                retention_days={
                    "execution": cfg.logging.retention.execution_days,
                    "performance": cfg.logging.retention.execution_days,
                    "security": cfg.logging.retention.security_days,
                },
                compress_after_days=cfg.logging.compress_after_days,
            )

        # 2. Database
        self.session_factory = init_db(
            cfg.database, db_url=self._db_url, create_tables=self._create_tables
        )

        # 3. Redis permission cache
        if cfg.security.cache_enabled:
            self.permission_cache = create_permission_cache(
                cfg.security.redis_url, ttl=cfg.security.permission_cache_ttl
            )

        # 4. Services
        self.guard = CollaborationGuard(self.session_factory, permission_cache=self.permission_cache)
        self.changelog = ChangeLog(self.session_factory)
        self.store = VersionStore(
            self.session_factory, self.guard, changelog=self.changelog, config=cfg.versioning
        )
        self.refs = BranchTagRegistry(self.session_factory, self.guard, changelog=self.changelog)
        self.api = ArtifactAPI(self.store, self.refs, guard=self.guard)

        self._started = True
        log(log_system_event("runtime_started", details=self._subsystem_status()))
        logger.info(f"{cfg.name} runtime started ({cfg.environment})")

    def shutdown(self) -> None:
        """Flush logs, close cache and DB connections."""
        if not self._started:
            return

        log(log_system_event("runtime_shutdown"))
        shutdown_logging()
        self.log_queue = None

        if self.permission_cache is not None:
            self.permission_cache.close()
        close_all()

        self._started = False
        logger.info("Runtime shut down")

    def cleanup_logs(self) -> Dict[str, int]:
        if self.retention_manager is None:
            return {"deleted": 0, "compressed": 0}
        return self.retention_manager.cleanup()

    def _subsystem_status(self) -> Dict[str, bool]:
        return {
            "file_logging": self.log_queue is not None,
            "permission_cache": self.permission_cache is not None,
            "database": self.session_factory is not None,
        }

    def __enter__(self) -> "VersoRuntime":
        self.startup()
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()
