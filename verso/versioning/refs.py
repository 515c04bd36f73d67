"""
Verso Branch & Tag Registry — named pointers into the version graph.

Branches are mutable: their head advances as versions are committed on
them. Tags are immutable: once created they only ever get deleted.

Ref names: 1–100 characters, no whitespace, no "..", not starting or
ending with "/".

Resolution order for `resolve(artifact_id, ref)`:
    1. Branch name → head version
    2. Tag name → tagged version
    3. Version id of this artifact
    4. Version number ("7" or "v7")
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from verso.db.models import Artifact, ArtifactBranch, ArtifactTag, ArtifactVersion
from verso.db.session import session_scope
from verso.engine.errors import (
    VersoConflictError,
    VersoNotFoundError,
    VersoValidationError,
)
from verso.engine.logging import log, log_ref_event
from verso.security.permissions import CollaborationGuard
from verso.versioning.changelog import ChangeLog
from verso.versioning.locks import ArtifactLocks, artifact_locks
from verso.versioning.models import (
    BranchDetails,
    BranchRecord,
    DeleteDetails,
    TagDetails,
    TagRecord,
    VersionRecord,
)

logger = logging.getLogger("verso.versioning.refs")

MAX_REF_NAME_LENGTH = 100
_VERSION_NUMBER = re.compile(r"^v?(\d+)$")


def validate_ref_name(name: str, ref_type: str = "ref") -> str:
    """Return the name unchanged or raise VersoValidationError."""
    problem = None
    if not name:
        problem = "must not be empty"
    elif len(name) > MAX_REF_NAME_LENGTH:
        problem = f"must be at most {MAX_REF_NAME_LENGTH} characters"
    elif any(ch.isspace() for ch in name):
        problem = "must not contain whitespace"
    elif ".." in name:
        problem = "must not contain '..'"
    elif name.startswith("/") or name.endswith("/"):
        problem = "must not start or end with '/'"

    if problem:
        raise VersoValidationError(
            f"Invalid {ref_type} name '{name}': {problem}",
            object_ref=name,
            validation_errors=[{"loc": ["name"], "msg": problem}],
        )
    return name


class BranchTagRegistry:
    def __init__(
        self,
        session_factory: sessionmaker,
        guard: CollaborationGuard,
        changelog: Optional[ChangeLog] = None,
        locks: Optional[ArtifactLocks] = None,
    ):
        self._session_factory = session_factory
        self._guard = guard
        self._changelog = changelog or ChangeLog(session_factory)
        self._locks = locks or artifact_locks

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    @staticmethod
    def _require_artifact(session: Session, artifact_id: str) -> Artifact:
        artifact = session.scalars(
            select(Artifact).where(Artifact.id == artifact_id).with_for_update()
        ).one_or_none()
        if artifact is None:
            raise VersoNotFoundError(f"Artifact not found: {artifact_id}", artifact_id=artifact_id)
        return artifact

    @staticmethod
    def _require_version(session: Session, artifact_id: str, version_id: str) -> ArtifactVersion:
        row = session.get(ArtifactVersion, version_id)
        if row is None or row.artifact_id != artifact_id:
            raise VersoNotFoundError(
                f"Version {version_id} not found on artifact {artifact_id}",
                artifact_id=artifact_id,
                version_id=version_id,
            )
        return row

    @staticmethod
    def _branch_row(session: Session, artifact_id: str, name: str) -> Optional[ArtifactBranch]:
        return session.scalars(
            select(ArtifactBranch).where(
                ArtifactBranch.artifact_id == artifact_id, ArtifactBranch.name == name
            )
        ).one_or_none()

    @staticmethod
    def _tag_row(session: Session, artifact_id: str, name: str) -> Optional[ArtifactTag]:
        return session.scalars(
            select(ArtifactTag).where(ArtifactTag.artifact_id == artifact_id, ArtifactTag.name == name)
        ).one_or_none()

    def _branch_or_raise(self, session: Session, artifact_id: str, name: str) -> ArtifactBranch:
        row = self._branch_row(session, artifact_id, name)
        if row is None:
            raise VersoNotFoundError(
                f"Branch '{name}' not found", artifact_id=artifact_id, object_ref=name
            )
        return row

    def _tag_or_raise(self, session: Session, artifact_id: str, name: str) -> ArtifactTag:
        row = self._tag_row(session, artifact_id, name)
        if row is None:
            raise VersoNotFoundError(f"Tag '{name}' not found", artifact_id=artifact_id, object_ref=name)
        return row

    # -------------------------------------------------------------------
    # Branches
    # -------------------------------------------------------------------

    def create_branch(
        self,
        artifact_id: str,
        name: str,
        from_version_id: str,
        user_id: str,
        is_default: bool = False,
    ) -> BranchRecord:
        validate_ref_name(name, "branch")
        try:
            with self._locks.hold(artifact_id):
                with session_scope(self._session_factory) as session:
                    self._require_artifact(session, artifact_id)
                    self._guard.require(artifact_id, user_id, "write", session=session)
                    self._require_version(session, artifact_id, from_version_id)

                    if self._branch_row(session, artifact_id, name) is not None:
                        raise VersoConflictError(
                            f"Branch '{name}' already exists", artifact_id=artifact_id, object_ref=name
                        )

                    previous_default = None
                    if is_default:
                        previous_default = self._clear_default(session, artifact_id)

                    row = ArtifactBranch(
                        artifact_id=artifact_id,
                        name=name,
                        head_version_id=from_version_id,
                        is_default=is_default,
                        created_by=user_id,
                    )
                    session.add(row)
                    self._changelog.append(
                        session,
                        artifact_id,
                        "branch",
                        user_id,
                        BranchDetails(
                            name=name,
                            head_version_id=from_version_id,
                            is_default=is_default,
                            previous_default=previous_default,
                        ),
                        version_id=from_version_id,
                    )
                    session.flush()
                    record = BranchRecord.model_validate(row)
        except IntegrityError as e:
            raise VersoConflictError(
                f"Branch '{name}' already exists", artifact_id=artifact_id, object_ref=name
            ) from e

        logger.info(f"Branch created: {artifact_id}@{name} → {from_version_id}")
        log(log_ref_event("branch_created", "branch", artifact_id, user_id, name, from_version_id))
        return record

    @staticmethod
    def _clear_default(session: Session, artifact_id: str) -> Optional[str]:
        """Unset the current default branch and return its name."""
        current = session.scalars(
            select(ArtifactBranch).where(
                ArtifactBranch.artifact_id == artifact_id,
                ArtifactBranch.is_default == True,  # noqa: E712
            )
        ).one_or_none()
        if current is None:
            return None
        current.is_default = False
        # Flush now so the partial unique index never sees two defaults
        session.flush()
        return current.name

    def list_branches(self, artifact_id: str) -> List[BranchRecord]:
        """Default branch first, then by name."""
        with self._session_factory() as session:
            rows = session.scalars(
                select(ArtifactBranch)
                .where(ArtifactBranch.artifact_id == artifact_id)
                .order_by(ArtifactBranch.is_default.desc(), ArtifactBranch.name)
            ).all()
            return [BranchRecord.model_validate(row) for row in rows]

    def get_branch(self, artifact_id: str, name: str) -> BranchRecord:
        with self._session_factory() as session:
            return BranchRecord.model_validate(self._branch_or_raise(session, artifact_id, name))

    def set_default_branch(self, artifact_id: str, name: str, user_id: str) -> BranchRecord:
        with self._locks.hold(artifact_id):
            with session_scope(self._session_factory) as session:
                self._require_artifact(session, artifact_id)
                self._guard.require(artifact_id, user_id, "write", session=session)
                row = self._branch_or_raise(session, artifact_id, name)
                if row.is_default:
                    return BranchRecord.model_validate(row)

                previous_default = self._clear_default(session, artifact_id)
                row.is_default = True
                self._changelog.append(
                    session,
                    artifact_id,
                    "branch",
                    user_id,
                    BranchDetails(
                        name=name,
                        head_version_id=row.head_version_id,
                        is_default=True,
                        previous_default=previous_default,
                    ),
                    version_id=row.head_version_id,
                )
                session.flush()
                record = BranchRecord.model_validate(row)

        logger.info(f"Default branch of {artifact_id} is now '{name}'")
        log(log_ref_event("default_branch_set", "branch", artifact_id, user_id, name, record.head_version_id))
        return record

    def delete_branch(self, artifact_id: str, name: str, user_id: str) -> None:
        """Delete a branch. The default branch cannot be deleted."""
        with self._locks.hold(artifact_id):
            with session_scope(self._session_factory) as session:
                self._require_artifact(session, artifact_id)
                self._guard.require(artifact_id, user_id, "write", session=session)
                row = self._branch_or_raise(session, artifact_id, name)
                if row.is_default:
                    raise VersoConflictError(
                        f"Branch '{name}' is the default branch and cannot be deleted",
                        artifact_id=artifact_id,
                        object_ref=name,
                    )
                head = row.head_version_id
                session.delete(row)
                self._changelog.append(
                    session,
                    artifact_id,
                    "delete",
                    user_id,
                    DeleteDetails(target="branch", name=name, version_id=head),
                )

        logger.info(f"Branch deleted: {artifact_id}@{name}")
        log(log_ref_event("branch_deleted", "branch", artifact_id, user_id, name, head))

    # -------------------------------------------------------------------
    # Tags
    # -------------------------------------------------------------------

    def create_tag(
        self,
        artifact_id: str,
        version_id: str,
        name: str,
        user_id: str,
        description: Optional[str] = None,
    ) -> TagRecord:
        validate_ref_name(name, "tag")
        try:
            with self._locks.hold(artifact_id):
                with session_scope(self._session_factory) as session:
                    self._require_artifact(session, artifact_id)
                    self._guard.require(artifact_id, user_id, "write", session=session)
                    self._require_version(session, artifact_id, version_id)

                    if self._tag_row(session, artifact_id, name) is not None:
                        raise VersoConflictError(
                            f"Tag '{name}' already exists", artifact_id=artifact_id, object_ref=name
                        )

                    row = ArtifactTag(
                        artifact_id=artifact_id,
                        version_id=version_id,
                        name=name,
                        description=description,
                        created_by=user_id,
                    )
                    session.add(row)
                    self._changelog.append(
                        session,
                        artifact_id,
                        "tag",
                        user_id,
                        TagDetails(name=name, version_id=version_id, description=description),
                        version_id=version_id,
                    )
                    session.flush()
                    record = TagRecord.model_validate(row)
        except IntegrityError as e:
            raise VersoConflictError(
                f"Tag '{name}' already exists", artifact_id=artifact_id, object_ref=name
            ) from e

        logger.info(f"Tag created: {artifact_id}#{name} → {version_id}")
        log(log_ref_event("tag_created", "tag", artifact_id, user_id, name, version_id))
        return record

    def list_tags(self, artifact_id: str) -> List[TagRecord]:
        """Newest first."""
        with self._session_factory() as session:
            rows = session.scalars(
                select(ArtifactTag)
                .where(ArtifactTag.artifact_id == artifact_id)
                .order_by(ArtifactTag.created_at.desc(), ArtifactTag.name)
            ).all()
            return [TagRecord.model_validate(row) for row in rows]

    def get_tag(self, artifact_id: str, name: str) -> TagRecord:
        with self._session_factory() as session:
            return TagRecord.model_validate(self._tag_or_raise(session, artifact_id, name))

    def delete_tag(self, artifact_id: str, name: str, user_id: str) -> None:
        with self._locks.hold(artifact_id):
            with session_scope(self._session_factory) as session:
                self._require_artifact(session, artifact_id)
                self._guard.require(artifact_id, user_id, "write", session=session)
                row = self._tag_or_raise(session, artifact_id, name)
                version_id = row.version_id
                session.delete(row)
                self._changelog.append(
                    session,
                    artifact_id,
                    "delete",
                    user_id,
                    DeleteDetails(target="tag", name=name, version_id=version_id),
                )

        logger.info(f"Tag deleted: {artifact_id}#{name}")
        log(log_ref_event("tag_deleted", "tag", artifact_id, user_id, name, version_id))

    # -------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------

    def resolve(self, artifact_id: str, ref: str) -> VersionRecord:
        """Branch name, tag name, version id or version number → version."""
        with self._session_factory() as session:
            if session.get(Artifact, artifact_id) is None:
                raise VersoNotFoundError(f"Artifact not found: {artifact_id}", artifact_id=artifact_id)

            version_id: Optional[str] = None
            branch = self._branch_row(session, artifact_id, ref)
            if branch is not None:
                version_id = branch.head_version_id
            else:
                tag = self._tag_row(session, artifact_id, ref)
                if tag is not None:
                    version_id = tag.version_id

            if version_id is not None:
                row = session.get(ArtifactVersion, version_id)
            else:
                row = session.get(ArtifactVersion, ref)
                if row is None or row.artifact_id != artifact_id:
                    row = None
                    match = _VERSION_NUMBER.match(ref)
                    if match:
                        row = session.scalars(
                            select(ArtifactVersion).where(
                                ArtifactVersion.artifact_id == artifact_id,
                                ArtifactVersion.version == int(match.group(1)),
                            )
                        ).one_or_none()

            if row is None:
                raise VersoNotFoundError(
                    f"Ref '{ref}' does not resolve on artifact {artifact_id}",
                    artifact_id=artifact_id,
                    object_ref=ref,
                )
            return VersionRecord.model_validate(row)
