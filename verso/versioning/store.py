"""
Verso Version Store — the version graph of every artifact.

Handles:
- Artifact creation (version 1, default branch, owner as admin)
- Appending versions: numbering, hashing, the single-active-version flip
- Restore as a new version (history is append-only, never rewound)
- Branch-aware history, version lookups, user/chat listings
- Version diffs and three-way merges between stored versions
- Artifact deletion

Write path (create_version, restore_version, merge commit):
    1. Per-artifact in-process lock (ArtifactLocks)
    2. SELECT ... FOR UPDATE on the artifact row
    3. CollaborationGuard.require(..., "write")
    4. next number = max(version) + 1
    5. UPDATE old active → inactive, INSERT new active version
    6. Advance the branch head, project title/content onto the artifact
    7. Append the change-log entry, commit

A unique-constraint collision (version number, active index, commit hash)
rolls the whole transaction back and the write is retried, up to
versioning.max_commit_retries times, before VersoConflictError surfaces.
Nothing else is retried.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from verso.db.base import utcnow
from verso.db.models import (
    ARTIFACT_KINDS,
    Artifact,
    ArtifactBranch,
    ArtifactChangeLog,
    ArtifactCollaborator,
    ArtifactTag,
    ArtifactVersion,
    ChatArtifact,
    new_id,
)
from verso.db.session import session_scope
from verso.engine.config import VersioningConfig
from verso.engine.errors import (
    VersoConflictError,
    VersoNotFoundError,
    VersoValidationError,
)
from verso.engine.logging import log, log_merge_event, log_version_event
from verso.security.permissions import CollaborationGuard
from verso.vcs.diff import diff, hunks, unified_diff
from verso.vcs.hashing import commit_hash, content_hash, ensure_text
from verso.vcs.merge import merge
from verso.vcs.metadata import extract_content_metadata
from verso.versioning.changelog import ChangeLog
from verso.versioning.graph import VersionGraph
from verso.versioning.locks import ArtifactLocks, artifact_locks
from verso.versioning.models import (
    ArtifactRecord,
    ArtifactWithVersion,
    ChatLinkRecord,
    CreateDetails,
    DeleteDetails,
    MergeDetails,
    MergeOutcome,
    RestoreDetails,
    UpdateDetails,
    UserArtifact,
    VersionDiff,
    VersionRecord,
)

logger = logging.getLogger("verso.versioning.store")


class VersionStore:
    """
    Artifact and version persistence.

    Every public method opens its own session from `session_factory`;
    results are immutable records, never live ORM rows.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        guard: CollaborationGuard,
        changelog: Optional[ChangeLog] = None,
        config: Optional[VersioningConfig] = None,
        locks: Optional[ArtifactLocks] = None,
    ):
        self._session_factory = session_factory
        self._guard = guard
        self._changelog = changelog or ChangeLog(session_factory)
        self._config = config or VersioningConfig()
        self._locks = locks or artifact_locks

    @property
    def changelog(self) -> ChangeLog:
        return self._changelog

    @property
    def guard(self) -> CollaborationGuard:
        return self._guard

    # -------------------------------------------------------------------
    # Write path helpers
    # -------------------------------------------------------------------

    def _validate_content(self, content, artifact_id: Optional[str] = None) -> str:
        text = ensure_text(content)
        size = len(text.encode("utf-8"))
        if size > self._config.max_content_bytes:
            raise VersoValidationError(
                f"Content is {size} bytes, limit is {self._config.max_content_bytes}",
                artifact_id=artifact_id,
            )
        return text

    def _write_with_retry(
        self,
        artifact_id: str,
        user_id: str,
        work: Callable[[Session], VersionRecord],
        event: str,
    ) -> VersionRecord:
        """Run `work` in a locked transaction, retrying version collisions."""
        max_attempts = self._config.max_commit_retries
        started = time.monotonic()

        for attempt in range(1, max_attempts + 1):
            try:
                with self._locks.hold(artifact_id):
                    with session_scope(self._session_factory) as session:
                        record = work(session)
            except IntegrityError as e:
                logger.warning(
                    f"Version collision on {artifact_id} "
                    f"(attempt {attempt}/{max_attempts}): {e.orig}"
                )
                log(log_version_event(
                    "version_commit_retry", artifact_id, user_id, attempts=attempt,
                ))
                if attempt == max_attempts:
                    raise VersoConflictError(
                        f"Could not commit a new version of {artifact_id} "
                        f"after {max_attempts} attempts",
                        artifact_id=artifact_id,
                        attempts=max_attempts,
                    ) from e
                continue

            duration_ms = (time.monotonic() - started) * 1000
            logger.info(f"{event}: {artifact_id} v{record.version} by {user_id}")
            log(log_version_event(
                event,
                artifact_id,
                user_id,
                version_id=record.id,
                version=record.version,
                content_hash=record.content_hash,
                attempts=attempt,
                duration_ms=round(duration_ms, 2),
            ))
            return record

    @staticmethod
    def _lock_artifact(session: Session, artifact_id: str) -> Artifact:
        artifact = session.scalars(
            select(Artifact).where(Artifact.id == artifact_id).with_for_update()
        ).one_or_none()
        if artifact is None:
            raise VersoNotFoundError(f"Artifact not found: {artifact_id}", artifact_id=artifact_id)
        return artifact

    @staticmethod
    def _version_of(session: Session, artifact_id: str, version_id: str) -> ArtifactVersion:
        """Load a version and check it belongs to the artifact."""
        row = session.get(ArtifactVersion, version_id)
        if row is None:
            raise VersoNotFoundError(
                f"Version not found: {version_id}", artifact_id=artifact_id, version_id=version_id
            )
        if row.artifact_id != artifact_id:
            raise VersoValidationError(
                f"Version {version_id} belongs to artifact {row.artifact_id}, not {artifact_id}",
                artifact_id=artifact_id,
                version_id=version_id,
            )
        return row

    @staticmethod
    def _target_branch(
        session: Session, artifact_id: str, branch: Optional[str]
    ) -> Optional[ArtifactBranch]:
        """The named branch, else the default branch (None if the artifact has none)."""
        stmt = select(ArtifactBranch).where(ArtifactBranch.artifact_id == artifact_id)
        if branch is not None:
            row = session.scalars(stmt.where(ArtifactBranch.name == branch)).one_or_none()
            if row is None:
                raise VersoNotFoundError(
                    f"Branch '{branch}' not found", artifact_id=artifact_id, object_ref=branch
                )
            return row
        return session.scalars(stmt.where(ArtifactBranch.is_default == True)).one_or_none()  # noqa: E712

    @staticmethod
    def _branch_at(session: Session, artifact_id: str, version_id: str) -> Optional[ArtifactBranch]:
        """The branch whose head is `version_id`; the default branch wins ties."""
        return session.scalars(
            select(ArtifactBranch)
            .where(
                ArtifactBranch.artifact_id == artifact_id,
                ArtifactBranch.head_version_id == version_id,
            )
            .order_by(ArtifactBranch.is_default.desc(), ArtifactBranch.name)
            .limit(1)
        ).first()

    @staticmethod
    def _load_graph(session: Session, artifact_id: str) -> VersionGraph:
        """Version graph of one artifact, merge commits joined to their incoming side."""
        graph = VersionGraph(session.execute(
            select(
                ArtifactVersion.id, ArtifactVersion.version, ArtifactVersion.parent_version_id
            ).where(ArtifactVersion.artifact_id == artifact_id)
        ).all())

        merges = session.execute(
            select(ArtifactChangeLog.version_id, ArtifactChangeLog.details).where(
                ArtifactChangeLog.artifact_id == artifact_id,
                ArtifactChangeLog.action == "merge",
            )
        ).all()
        for version_id, details in merges:
            if version_id and details:
                graph.add_merge_parent(version_id, details.get("incoming_version_id"))
        return graph

    def _check_descends(
        self, session: Session, artifact_id: str, branch_row: ArtifactBranch, parent_id: str
    ) -> None:
        """Refuse to move a branch head onto a line that does not contain it."""
        head_id = branch_row.head_version_id
        if head_id == parent_id:
            return
        if not self._load_graph(session, artifact_id).is_ancestor(head_id, parent_id):
            raise VersoValidationError(
                f"Version {parent_id} does not descend from the head of branch "
                f"'{branch_row.name}'",
                artifact_id=artifact_id,
                version_id=parent_id,
                validation_errors=[{
                    "loc": ["parent_version_id"],
                    "msg": f"must descend from the head of '{branch_row.name}'",
                }],
            )

    @staticmethod
    def _new_version_row(
        artifact_id: str,
        kind: str,
        number: int,
        title: str,
        content: str,
        author_id: str,
        commit_message: Optional[str],
        parent_id: Optional[str],
        branch_name: Optional[str],
    ) -> ArtifactVersion:
        now = utcnow()
        return ArtifactVersion(
            id=new_id(),
            artifact_id=artifact_id,
            version=number,
            commit_hash=commit_hash(artifact_id, number, content, now),
            parent_version_id=parent_id,
            branch_name=branch_name,
            title=title,
            content=content,
            content_hash=content_hash(content),
            commit_message=commit_message,
            author_id=author_id,
            created_at=now,
            is_active=True,
            content_metadata=extract_content_metadata(content, kind),
        )

    def _append_version(
        self,
        session: Session,
        artifact: Artifact,
        title: str,
        content: str,
        author_id: str,
        commit_message: Optional[str] = None,
        parent_version_id: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> ArtifactVersion:
        """
        Steps 4–6 of the write path. The caller holds the artifact lock.

        Which branch head advances:
        - `branch` given: that branch, provided the parent descends from its head
        - only `parent_version_id` given: the branch whose head is the parent,
          if any; otherwise the version is created off-branch
        - neither: the default branch
        """
        if parent_version_id is not None:
            parent_id = self._version_of(session, artifact.id, parent_version_id).id
            if branch is None:
                branch_row = self._branch_at(session, artifact.id, parent_id)
            else:
                branch_row = self._target_branch(session, artifact.id, branch)
                self._check_descends(session, artifact.id, branch_row, parent_id)
        else:
            branch_row = self._target_branch(session, artifact.id, branch)
            if branch_row is not None:
                parent_id = branch_row.head_version_id
            else:
                parent_id = session.scalar(
                    select(ArtifactVersion.id).where(
                        ArtifactVersion.artifact_id == artifact.id,
                        ArtifactVersion.is_active == True,  # noqa: E712
                    )
                )

        latest = session.scalar(
            select(func.max(ArtifactVersion.version)).where(ArtifactVersion.artifact_id == artifact.id)
        )
        number = (latest or 0) + 1

        # Deactivate first so the partial unique index never sees two active rows
        session.execute(
            update(ArtifactVersion)
            .where(
                ArtifactVersion.artifact_id == artifact.id,
                ArtifactVersion.is_active == True,  # noqa: E712
            )
            .values(is_active=False)
        )

        row = self._new_version_row(
            artifact.id,
            artifact.kind,
            number,
            title,
            content,
            author_id,
            commit_message,
            parent_id,
            branch_row.name if branch_row is not None else None,
        )
        session.add(row)
        # Branch heads reference the version; it must exist first
        session.flush()

        if branch_row is not None:
            branch_row.head_version_id = row.id
        artifact.title = title
        artifact.content = content
        session.flush()
        return row

    # -------------------------------------------------------------------
    # Artifact creation / deletion
    # -------------------------------------------------------------------

    def create_artifact(
        self,
        title: str,
        content,
        owner_id: str,
        kind: str = "text",
        artifact_id: Optional[str] = None,
        commit_message: Optional[str] = None,
    ) -> VersionRecord:
        """
        Create an artifact together with version 1.

        In one transaction: the artifact row, the owner as admin
        collaborator, version 1, the default branch pointing at it and a
        `create` change-log entry.

        Returns:
            The first version. Its `artifact_id` identifies the new artifact.
        """
        if kind not in ARTIFACT_KINDS:
            raise VersoValidationError(
                f"Unknown artifact kind '{kind}'",
                validation_errors=[{"loc": ["kind"], "msg": f"must be one of {ARTIFACT_KINDS}"}],
            )
        content = self._validate_content(content)
        artifact_id = artifact_id or new_id()
        default_branch = self._config.default_branch

        try:
            with self._locks.hold(artifact_id):
                with session_scope(self._session_factory) as session:
                    if session.get(Artifact, artifact_id) is not None:
                        raise VersoConflictError(
                            f"Artifact already exists: {artifact_id}", artifact_id=artifact_id
                        )

                    session.add(Artifact(
                        id=artifact_id, title=title, content=content, kind=kind, owner_id=owner_id,
                    ))
                    session.add(ArtifactCollaborator(
                        artifact_id=artifact_id, user_id=owner_id, permission="admin", invited_by=owner_id,
                    ))
                    session.flush()
                    row = self._new_version_row(
                        artifact_id, kind, 1, title, content, owner_id,
                        commit_message or "Initial version", None, default_branch,
                    )
                    session.add(row)
                    # The default branch references version 1; insert it first
                    session.flush()
                    session.add(ArtifactBranch(
                        artifact_id=artifact_id,
                        name=default_branch,
                        head_version_id=row.id,
                        is_default=True,
                        created_by=owner_id,
                    ))
                    self._changelog.append(
                        session,
                        artifact_id,
                        "create",
                        owner_id,
                        CreateDetails(title=title, version=1, default_branch=default_branch),
                        version_id=row.id,
                    )
                    session.flush()
                    record = VersionRecord.model_validate(row)
        except IntegrityError as e:
            raise VersoConflictError(
                f"Artifact could not be created: {e.orig}", artifact_id=artifact_id
            ) from e

        logger.info(f"Artifact created: {artifact_id} '{title}' ({kind}) by {owner_id}")
        log(log_version_event(
            "version_created", artifact_id, owner_id,
            version_id=record.id, version=1, content_hash=record.content_hash, attempts=1,
        ))
        return record

    def delete_artifact(self, artifact_id: str, user_id: str) -> None:
        """Delete an artifact and everything hanging off it. Admin only."""
        with self._locks.hold(artifact_id):
            with session_scope(self._session_factory) as session:
                artifact = self._lock_artifact(session, artifact_id)
                self._guard.require(artifact_id, user_id, "admin", session=session)
                title = artifact.title

                for model in (ArtifactBranch, ArtifactTag, ChatArtifact, ArtifactCollaborator):
                    session.execute(delete(model).where(model.artifact_id == artifact_id))
                # Unlink parents so row-by-row FK checks cannot trip on the self-reference
                session.execute(
                    update(ArtifactVersion)
                    .where(ArtifactVersion.artifact_id == artifact_id)
                    .values(parent_version_id=None)
                )
                session.execute(delete(ArtifactVersion).where(ArtifactVersion.artifact_id == artifact_id))
                session.execute(delete(Artifact).where(Artifact.id == artifact_id))

                self._changelog.append(
                    session, artifact_id, "delete", user_id,
                    DeleteDetails(target="artifact", name=title),
                )
        self._locks.discard(artifact_id)
        self._guard.invalidate_artifact(artifact_id)
        logger.info(f"Artifact deleted: {artifact_id} by {user_id}")

    # -------------------------------------------------------------------
    # Versions
    # -------------------------------------------------------------------

    def create_version(
        self,
        artifact_id: str,
        title: str,
        content,
        author_id: str,
        commit_message: Optional[str] = None,
        parent_version_id: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> VersionRecord:
        """
        Append a new active version.

        The parent defaults to the head of the target branch (the named
        branch, else the default branch); that branch head then advances
        to the new version.

        Raises:
            VersoNotFoundError: Artifact, parent or branch missing.
            VersoPermissionError: Author lacks write access.
            VersoValidationError: Parent belongs to another artifact, or content too large.
            VersoEncodingError: Content is not valid UTF-8.
            VersoConflictError: Version collisions persisted through every retry.
        """
        content = self._validate_content(content, artifact_id)

        def work(session: Session) -> VersionRecord:
            artifact = self._lock_artifact(session, artifact_id)
            self._guard.require(artifact_id, author_id, "write", session=session)
            row = self._append_version(
                session, artifact, title, content, author_id,
                commit_message=commit_message,
                parent_version_id=parent_version_id,
                branch=branch,
            )
            self._changelog.append(
                session,
                artifact_id,
                "update",
                author_id,
                UpdateDetails(
                    version=row.version,
                    commit_message=commit_message,
                    branch=row.branch_name,
                    parent_version_id=row.parent_version_id,
                    content_hash=row.content_hash,
                ),
                version_id=row.id,
            )
            session.flush()
            return VersionRecord.model_validate(row)

        return self._write_with_retry(artifact_id, author_id, work, "version_created")

    def restore_version(
        self,
        artifact_id: str,
        version_id: str,
        user_id: str,
        branch: Optional[str] = None,
    ) -> VersionRecord:
        """Re-commit an earlier version's title and content as a new version."""

        def work(session: Session) -> VersionRecord:
            artifact = self._lock_artifact(session, artifact_id)
            self._guard.require(artifact_id, user_id, "write", session=session)
            target = self._version_of(session, artifact_id, version_id)
            row = self._append_version(
                session, artifact, target.title, target.content, user_id,
                commit_message=f"Restored from version {target.version}",
                branch=branch,
            )
            self._changelog.append(
                session,
                artifact_id,
                "restore",
                user_id,
                RestoreDetails(
                    version=row.version,
                    restored_from_version=target.version,
                    restored_from_version_id=target.id,
                ),
                version_id=row.id,
            )
            session.flush()
            return VersionRecord.model_validate(row)

        return self._write_with_retry(artifact_id, user_id, work, "version_restored")

    def get_history(self, artifact_id: str, branch: Optional[str] = None) -> List[VersionRecord]:
        """
        Versions newest first. With `branch`, only those reachable from the
        branch head through parent links.
        """
        with self._session_factory() as session:
            if session.get(Artifact, artifact_id) is None:
                raise VersoNotFoundError(f"Artifact not found: {artifact_id}", artifact_id=artifact_id)

            rows = session.scalars(
                select(ArtifactVersion)
                .where(ArtifactVersion.artifact_id == artifact_id)
                .order_by(ArtifactVersion.version.desc())
            ).all()

            if branch is not None:
                head = self._target_branch(session, artifact_id, branch)
                reachable = VersionGraph.from_rows(rows).lineage(head.head_version_id)
                rows = [row for row in rows if row.id in reachable]

            return [VersionRecord.model_validate(row) for row in rows]

    def find_version(self, version_id: str) -> Optional[VersionRecord]:
        with self._session_factory() as session:
            row = session.get(ArtifactVersion, version_id)
            return VersionRecord.model_validate(row) if row is not None else None

    def get_version_by_id(self, version_id: str) -> VersionRecord:
        record = self.find_version(version_id)
        if record is None:
            raise VersoNotFoundError(f"Version not found: {version_id}", version_id=version_id)
        return record

    def get_active_version(self, artifact_id: str) -> Optional[VersionRecord]:
        with self._session_factory() as session:
            row = session.scalars(
                select(ArtifactVersion).where(
                    ArtifactVersion.artifact_id == artifact_id,
                    ArtifactVersion.is_active == True,  # noqa: E712
                )
            ).one_or_none()
            return VersionRecord.model_validate(row) if row is not None else None

    # -------------------------------------------------------------------
    # Artifacts
    # -------------------------------------------------------------------

    def get_artifact(self, artifact_id: str) -> ArtifactRecord:
        with self._session_factory() as session:
            artifact = session.get(Artifact, artifact_id)
            if artifact is None:
                raise VersoNotFoundError(f"Artifact not found: {artifact_id}", artifact_id=artifact_id)
            return ArtifactRecord.model_validate(artifact)

    def get_artifact_with_version(self, artifact_id: str) -> ArtifactWithVersion:
        return ArtifactWithVersion(
            artifact=self.get_artifact(artifact_id),
            current_version=self.get_active_version(artifact_id),
        )

    def list_user_artifacts(self, user_id: str, limit: int = 50, offset: int = 0) -> List[UserArtifact]:
        """Artifacts the user owns or collaborates on, most recently updated first."""
        shared = select(ArtifactCollaborator.artifact_id).where(ArtifactCollaborator.user_id == user_id)
        chat_count = (
            select(func.count())
            .select_from(ChatArtifact)
            .where(ChatArtifact.artifact_id == Artifact.id)
            .scalar_subquery()
        )

        with self._session_factory() as session:
            rows = session.execute(
                select(Artifact, ArtifactVersion, chat_count)
                .outerjoin(
                    ArtifactVersion,
                    (ArtifactVersion.artifact_id == Artifact.id)
                    & (ArtifactVersion.is_active == True),  # noqa: E712
                )
                .where(or_(Artifact.owner_id == user_id, Artifact.id.in_(shared)))
                .order_by(Artifact.updated_at.desc(), Artifact.id)
                .limit(limit)
                .offset(offset)
            ).all()

            return [
                UserArtifact(
                    artifact=ArtifactRecord.model_validate(artifact),
                    current_version=VersionRecord.model_validate(version) if version is not None else None,
                    chat_count=count or 0,
                )
                for artifact, version, count in rows
            ]

    # -------------------------------------------------------------------
    # Chat links
    # -------------------------------------------------------------------

    def link_to_chat(
        self,
        chat_id: str,
        artifact_id: str,
        user_id: str,
        message_id: Optional[str] = None,
        order: int = 0,
    ) -> ChatLinkRecord:
        """Attach an artifact to a chat (write access required)."""
        with session_scope(self._session_factory) as session:
            artifact = session.get(Artifact, artifact_id)
            if artifact is None:
                raise VersoNotFoundError(f"Artifact not found: {artifact_id}", artifact_id=artifact_id)
            self._guard.require(artifact_id, user_id, "write", session=session)

            if session.get(ChatArtifact, (chat_id, artifact_id)) is not None:
                raise VersoConflictError(
                    f"Artifact {artifact_id} is already linked to chat {chat_id}",
                    artifact_id=artifact_id,
                    chat_id=chat_id,
                )

            link = ChatArtifact(chat_id=chat_id, artifact_id=artifact_id, message_id=message_id, order=order)
            session.add(link)
            active_number = session.scalar(
                select(ArtifactVersion.version).where(
                    ArtifactVersion.artifact_id == artifact_id,
                    ArtifactVersion.is_active == True,  # noqa: E712
                )
            )
            self._changelog.append(
                session,
                artifact_id,
                "create",
                user_id,
                CreateDetails(
                    title=artifact.title,
                    version=active_number or 1,
                    chat_id=chat_id,
                    message_id=message_id,
                ),
            )
            session.flush()
            record = ChatLinkRecord.model_validate(link)

        logger.info(f"Artifact {artifact_id} linked to chat {chat_id}")
        return record

    def get_artifacts_by_chat(self, chat_id: str) -> List[ArtifactWithVersion]:
        with self._session_factory() as session:
            rows = session.execute(
                select(Artifact, ArtifactVersion)
                .join(ChatArtifact, ChatArtifact.artifact_id == Artifact.id)
                .outerjoin(
                    ArtifactVersion,
                    (ArtifactVersion.artifact_id == Artifact.id)
                    & (ArtifactVersion.is_active == True),  # noqa: E712
                )
                .where(ChatArtifact.chat_id == chat_id)
                .order_by(ChatArtifact.order, ChatArtifact.created_at.desc())
            ).all()
            return [
                ArtifactWithVersion(
                    artifact=ArtifactRecord.model_validate(artifact),
                    current_version=VersionRecord.model_validate(version) if version is not None else None,
                )
                for artifact, version in rows
            ]

    def get_chats_by_artifact(self, artifact_id: str) -> List[ChatLinkRecord]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(ChatArtifact)
                .where(ChatArtifact.artifact_id == artifact_id)
                .order_by(ChatArtifact.created_at.desc())
            ).all()
            return [ChatLinkRecord.model_validate(row) for row in rows]

    # -------------------------------------------------------------------
    # Diff / merge
    # -------------------------------------------------------------------

    def diff_versions(
        self,
        from_version_id: str,
        to_version_id: str,
        context: Optional[int] = None,
    ) -> VersionDiff:
        """Structured diff, hunks and unified text between two stored versions."""
        context = self._config.diff_context_lines if context is None else context
        old = self.get_version_by_id(from_version_id)
        new = self.get_version_by_id(to_version_id)

        return VersionDiff(
            from_version_id=old.id,
            to_version_id=new.id,
            from_version=old.version,
            to_version=new.version,
            diff=diff(old.content, new.content),
            hunks=hunks(old.content, new.content, context=context),
            unified=unified_diff(
                old.content,
                new.content,
                old_label=f"Version {old.version}",
                new_label=f"Version {new.version}",
                context=context,
            ),
        )

    def merge_versions(
        self,
        artifact_id: str,
        base_version_id: str,
        current_version_id: str,
        incoming_version_id: str,
        user_id: str,
        commit: bool = False,
        commit_message: Optional[str] = None,
    ) -> MergeOutcome:
        """
        Three-way merge of stored versions.

        With commit=True and no conflicts, the merged content becomes a new
        version whose parent is `current`. Only a branch whose head is
        `current` advances. The incoming side is recorded in the `merge`
        change-log entry and joins the graph used by `merge_base`. A
        conflicted merge is never committed.
        """
        started = time.monotonic()
        with self._session_factory() as session:
            base, current, incoming = (
                VersionRecord.model_validate(self._version_of(session, artifact_id, vid))
                for vid in (base_version_id, current_version_id, incoming_version_id)
            )

        result = merge(base.content, current.content, incoming.content)
        committed: Optional[VersionRecord] = None

        if commit and result.success:
            message = commit_message or f"Merged version {incoming.version} into version {current.version}"

            def work(session: Session) -> VersionRecord:
                artifact = self._lock_artifact(session, artifact_id)
                self._guard.require(artifact_id, user_id, "write", session=session)
                row = self._append_version(
                    session, artifact, current.title, result.content, user_id,
                    commit_message=message,
                    parent_version_id=current.id,
                )
                self._changelog.append(
                    session,
                    artifact_id,
                    "merge",
                    user_id,
                    MergeDetails(
                        version=row.version,
                        base_version_id=base.id,
                        current_version_id=current.id,
                        incoming_version_id=incoming.id,
                    ),
                    version_id=row.id,
                )
                session.flush()
                return VersionRecord.model_validate(row)

            committed = self._write_with_retry(artifact_id, user_id, work, "version_merged")

        log(log_merge_event(
            artifact_id,
            user_id,
            base_version_id=base.id,
            current_version_id=current.id,
            incoming_version_id=incoming.id,
            success=result.success,
            conflict_count=result.conflict_count,
            committed_version_id=committed.id if committed else None,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        ))
        if not result.success:
            logger.info(f"Merge on {artifact_id} produced {result.conflict_count} conflict(s)")

        return MergeOutcome(
            base_version_id=base.id,
            current_version_id=current.id,
            incoming_version_id=incoming.id,
            result=result,
            committed_version=committed,
        )

    def merge_base(self, version_a: str, version_b: str) -> Optional[VersionRecord]:
        """Lowest common ancestor of two versions of the same artifact."""
        a = self.get_version_by_id(version_a)
        b = self.get_version_by_id(version_b)
        if a.artifact_id != b.artifact_id:
            raise VersoValidationError(
                "Versions belong to different artifacts",
                artifact_id=a.artifact_id,
                version_id=version_b,
            )

        with self._session_factory() as session:
            base_id = self._load_graph(session, a.artifact_id).merge_base(a.id, b.id)
        return self.get_version_by_id(base_id) if base_id is not None else None
