"""
Verso Collaboration Guard — per-artifact role checks.

Roles form a strict hierarchy: admin ⊃ write ⊃ read. The artifact owner
always holds admin, whether or not a collaborator row exists.

Checks are cache-first when a PermissionCache is configured: Redis hit →
return immediately, miss → query the DB → cache the result (denials are
cached too). Any collaborator change invalidates the artifact's entries.

Every check accepts an optional `session`, so store operations can run it
inside their own transaction and see uncommitted collaborator rows.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from verso.db.models import PERMISSIONS, Artifact, ArtifactCollaborator
from verso.engine.cache import NO_ACCESS, PermissionCache
from verso.engine.errors import (
    VersoNotFoundError,
    VersoPermissionError,
    VersoValidationError,
)
from verso.engine.logging import log, log_security_event
from verso.versioning.models import CollaboratorRecord

logger = logging.getLogger("verso.security.permissions")

# Higher includes lower
PERMISSION_HIERARCHY = {
    "admin": {"admin", "write", "read"},
    "write": {"write", "read"},
    "read": {"read"},
}


def implies(held: Optional[str], required: str) -> bool:
    """True when a held role satisfies the required one."""
    if held is None:
        return False
    return required in PERMISSION_HIERARCHY.get(held, set())


class CollaborationGuard:
    def __init__(
        self,
        session_factory: sessionmaker,
        permission_cache: Optional[PermissionCache] = None,
    ):
        self._session_factory = session_factory
        self._cache = permission_cache

    # -----------------------------------------------------------------------
    # Checks
    # -----------------------------------------------------------------------

    def get_permission(
        self,
        artifact_id: str,
        user_id: str,
        session: Optional[Session] = None,
    ) -> Optional[str]:
        """
        Effective role of `user_id` on the artifact, or None.

        Raises:
            VersoNotFoundError: The artifact does not exist.
        """
        if self._cache and session is None:
            cached = self._cache.check(artifact_id, user_id)
            if cached is not None:
                return None if cached == NO_ACCESS else cached

        if session is not None:
            permission = self._query_permission(session, artifact_id, user_id)
        else:
            with self._session_factory() as own_session:
                permission = self._query_permission(own_session, artifact_id, user_id)

        if self._cache and session is None:
            self._cache.store(artifact_id, user_id, permission)
        return permission

    @staticmethod
    def _query_permission(session: Session, artifact_id: str, user_id: str) -> Optional[str]:
        owner_id = session.scalar(select(Artifact.owner_id).where(Artifact.id == artifact_id))
        if owner_id is None:
            raise VersoNotFoundError(f"Artifact not found: {artifact_id}", artifact_id=artifact_id)
        if owner_id == user_id:
            return "admin"

        return session.scalar(
            select(ArtifactCollaborator.permission).where(
                ArtifactCollaborator.artifact_id == artifact_id,
                ArtifactCollaborator.user_id == user_id,
            )
        )

    def check(
        self,
        artifact_id: str,
        user_id: str,
        required: str,
        session: Optional[Session] = None,
    ) -> bool:
        return implies(self.get_permission(artifact_id, user_id, session=session), required)

    def require(
        self,
        artifact_id: str,
        user_id: str,
        required: str,
        session: Optional[Session] = None,
    ) -> str:
        """
        Return the held role, or raise when it is below `required`.

        Raises:
            VersoPermissionError: Role missing or insufficient.
            VersoNotFoundError: The artifact does not exist.
        """
        held = self.get_permission(artifact_id, user_id, session=session)
        if implies(held, required):
            return held

        logger.warning(
            f"Permission denied: user={user_id} artifact={artifact_id} "
            f"needs={required} holds={held}"
        )
        log(log_security_event(
            "permission_denied",
            artifact_id=artifact_id,
            user_id=user_id,
            permission_needed=required,
            permission_held=held,
        ))
        raise VersoPermissionError(
            f"User {user_id} needs '{required}' on artifact {artifact_id}",
            artifact_id=artifact_id,
            user_id=user_id,
            required_permission=required,
            held_permission=held,
        )

    # -----------------------------------------------------------------------
    # Collaborator management
    # -----------------------------------------------------------------------

    def add_collaborator(
        self,
        artifact_id: str,
        user_id: str,
        permission: str,
        invited_by: str,
    ) -> CollaboratorRecord:
        """Grant (or change) a role. The inviter must hold admin."""
        if permission not in PERMISSIONS:
            raise VersoValidationError(
                f"Unknown permission '{permission}'",
                artifact_id=artifact_id,
                validation_errors=[{"loc": ["permission"], "msg": f"must be one of {PERMISSIONS}"}],
            )

        with self._session_factory() as session:
            with session.begin():
                self.require(artifact_id, invited_by, "admin", session=session)
                owner_id = session.scalar(select(Artifact.owner_id).where(Artifact.id == artifact_id))
                if user_id == owner_id and permission != "admin":
                    raise VersoValidationError(
                        "The artifact owner always holds admin",
                        artifact_id=artifact_id,
                    )

                row = session.get(ArtifactCollaborator, (artifact_id, user_id))
                if row is None:
                    row = ArtifactCollaborator(
                        artifact_id=artifact_id,
                        user_id=user_id,
                        permission=permission,
                        invited_by=invited_by,
                    )
                    session.add(row)
                else:
                    row.permission = permission
                    row.invited_by = invited_by
                session.flush()
                record = CollaboratorRecord.model_validate(row)

        self.invalidate_artifact(artifact_id)
        logger.info(f"Collaborator {user_id} → {permission} on {artifact_id} (by {invited_by})")
        log(log_security_event(
            "collaborator_added",
            artifact_id=artifact_id,
            user_id=user_id,
            permission_needed=permission,
            level="INFO",
        ))
        return record

    def remove_collaborator(self, artifact_id: str, user_id: str, removed_by: str) -> bool:
        """Revoke a role. Returns False when the user had no collaborator row."""
        with self._session_factory() as session:
            with session.begin():
                self.require(artifact_id, removed_by, "admin", session=session)
                row = session.get(ArtifactCollaborator, (artifact_id, user_id))
                if row is None:
                    return False
                session.delete(row)

        self.invalidate_artifact(artifact_id)
        logger.info(f"Collaborator {user_id} removed from {artifact_id} (by {removed_by})")
        log(log_security_event(
            "collaborator_removed",
            artifact_id=artifact_id,
            user_id=user_id,
            permission_needed="admin",
            level="INFO",
        ))
        return True

    def list_collaborators(self, artifact_id: str) -> List[CollaboratorRecord]:
        with self._session_factory() as session:
            if session.get(Artifact, artifact_id) is None:
                raise VersoNotFoundError(f"Artifact not found: {artifact_id}", artifact_id=artifact_id)
            rows = session.scalars(
                select(ArtifactCollaborator)
                .where(ArtifactCollaborator.artifact_id == artifact_id)
                .order_by(ArtifactCollaborator.created_at, ArtifactCollaborator.user_id)
            ).all()
            return [CollaboratorRecord.model_validate(row) for row in rows]

    def invalidate_cache(self) -> None:
        """Drop every cached permission."""
        if self._cache:
            self._cache.invalidate_all()
            logger.info("Permission cache invalidated")

    def invalidate_artifact(self, artifact_id: str) -> None:
        if self._cache:
            self._cache.invalidate_artifact(artifact_id)
