"""
Verso Change Log — append-only audit ledger of every graph mutation.

Entries are written inside the caller's transaction, so an operation and
its audit row commit or roll back together. The public surface has no
update or delete: once written, an entry is permanent.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from verso.db.base import utcnow
from verso.db.models import CHANGE_ACTIONS, ArtifactChangeLog
from verso.engine.errors import VersoValidationError
from verso.versioning.models import ChangeLogRecord

logger = logging.getLogger("verso.versioning.changelog")


class ChangeLog:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def append(
        session: Session,
        artifact_id: str,
        action: str,
        user_id: str,
        details=None,
        version_id: Optional[str] = None,
    ) -> ArtifactChangeLog:
        """
        Add an entry to the current transaction.

        `details` must be the details model matching `action`
        (UpdateDetails for "update", TagDetails for "tag", ...).
        """
        if action not in CHANGE_ACTIONS:
            raise VersoValidationError(f"Unknown change-log action '{action}'", artifact_id=artifact_id)
        if details is not None and details.kind != action:
            raise VersoValidationError(
                f"{type(details).__name__} cannot describe a '{action}' entry",
                artifact_id=artifact_id,
            )

        entry = ArtifactChangeLog(
            artifact_id=artifact_id,
            version_id=version_id,
            action=action,
            user_id=user_id,
            details=details.model_dump(mode="json") if details is not None else None,
            timestamp=utcnow(),
        )
        session.add(entry)
        logger.debug(f"change-log {action} artifact={artifact_id} version={version_id}")
        return entry

    def query(
        self,
        artifact_id: str,
        action: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[ChangeLogRecord]:
        """Entries for an artifact, newest first."""
        stmt = select(ArtifactChangeLog).where(ArtifactChangeLog.artifact_id == artifact_id)
        if action is not None:
            stmt = stmt.where(ArtifactChangeLog.action == action)
        stmt = stmt.order_by(ArtifactChangeLog.timestamp.desc(), ArtifactChangeLog.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        with self._session_factory() as session:
            rows = session.scalars(stmt).all()
            return [ChangeLogRecord.model_validate(row) for row in rows]
