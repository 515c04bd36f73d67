"""
Verso Models — SQLAlchemy tables for the version-control engine.

Tables:
1. artifacts               — Artifact identity + projection of the active version
2. artifact_versions       — Immutable content snapshots (DAG via parent_version_id)
3. artifact_branches       — Mutable named pointers to a head version
4. artifact_tags           — Immutable named pointers to a version
5. artifact_collaborators  — (artifact, user) → read | write | admin
6. artifact_change_log     — Append-only audit ledger
7. chat_artifacts          — Chat ↔ artifact links

The change log intentionally has no foreign keys: audit rows outlive the
artifact they describe.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)

from verso.db.base import Base, TimestampMixin, utcnow

ARTIFACT_KINDS = ("text", "code", "image", "sheet")
PERMISSIONS = ("read", "write", "admin")
CHANGE_ACTIONS = ("create", "update", "delete", "restore", "branch", "merge", "tag")


def new_id() -> str:
    return str(uuid.uuid4())


def _in(values) -> str:
    return ", ".join(f"'{v}'" for v in values)


# ---------------------------------------------------------------------------
# 1. Artifacts
# ---------------------------------------------------------------------------

class Artifact(Base, TimestampMixin):
    __tablename__ = "artifacts"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False, default="")
    kind = Column(String(20), nullable=False, default="text")
    owner_id = Column(String(64), nullable=False, index=True)

    __table_args__ = (
        CheckConstraint(f"kind IN ({_in(ARTIFACT_KINDS)})", name="ck_artifacts_kind"),
    )

    def __repr__(self) -> str:
        return f"<Artifact(id={self.id}, title='{self.title}')>"


# ---------------------------------------------------------------------------
# 2. Versions
# ---------------------------------------------------------------------------

class ArtifactVersion(Base):
    __tablename__ = "artifact_versions"

    id = Column(String(36), primary_key=True, default=new_id)
    artifact_id = Column(
        String(36), ForeignKey("artifacts.id", ondelete="CASCADE"), nullable=False
    )
    version = Column(Integer, nullable=False)
    commit_hash = Column(String(64), nullable=False, unique=True)
    parent_version_id = Column(
        String(36), ForeignKey("artifact_versions.id", ondelete="SET NULL"), nullable=True
    )
    branch_name = Column(String(100), nullable=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    content_hash = Column(String(64), nullable=False, index=True)
    commit_message = Column(Text, nullable=True)
    author_id = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    content_metadata = Column("metadata", JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint("artifact_id", "version", name="uq_artifact_version_number"),
        CheckConstraint("version >= 1", name="ck_artifact_versions_positive"),
        # At most one active version per artifact, enforced by the store too
        Index(
            "uq_artifact_versions_active",
            "artifact_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("idx_av_artifact_version", "artifact_id", "version"),
    )

    def __repr__(self) -> str:
        return (
            f"<ArtifactVersion(artifact_id={self.artifact_id}, v{self.version}, "
            f"active={self.is_active})>"
        )


# ---------------------------------------------------------------------------
# 3. Branches
# ---------------------------------------------------------------------------

class ArtifactBranch(Base, TimestampMixin):
    __tablename__ = "artifact_branches"

    id = Column(String(36), primary_key=True, default=new_id)
    artifact_id = Column(
        String(36), ForeignKey("artifacts.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(100), nullable=False)
    head_version_id = Column(
        String(36), ForeignKey("artifact_versions.id", ondelete="CASCADE"), nullable=False
    )
    is_default = Column(Boolean, default=False, nullable=False)
    created_by = Column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint("artifact_id", "name", name="uq_artifact_branch_name"),
        Index(
            "uq_artifact_branches_default",
            "artifact_id",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default = 1"),
        ),
    )

    def __repr__(self) -> str:
        return f"<ArtifactBranch(artifact_id={self.artifact_id}, name='{self.name}')>"


# ---------------------------------------------------------------------------
# 4. Tags
# ---------------------------------------------------------------------------

class ArtifactTag(Base):
    __tablename__ = "artifact_tags"

    id = Column(String(36), primary_key=True, default=new_id)
    artifact_id = Column(
        String(36), ForeignKey("artifacts.id", ondelete="CASCADE"), nullable=False
    )
    version_id = Column(
        String(36), ForeignKey("artifact_versions.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("artifact_id", "name", name="uq_artifact_tag_name"),
    )

    def __repr__(self) -> str:
        return f"<ArtifactTag(artifact_id={self.artifact_id}, name='{self.name}')>"


# ---------------------------------------------------------------------------
# 5. Collaborators
# ---------------------------------------------------------------------------

class ArtifactCollaborator(Base):
    __tablename__ = "artifact_collaborators"

    artifact_id = Column(
        String(36), ForeignKey("artifacts.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(String(64), primary_key=True)
    permission = Column(String(10), nullable=False, default="read")
    invited_by = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(f"permission IN ({_in(PERMISSIONS)})", name="ck_collaborators_permission"),
        Index("idx_ac_user_id", "user_id"),
    )


# ---------------------------------------------------------------------------
# 6. Change log
# ---------------------------------------------------------------------------

class ArtifactChangeLog(Base):
    __tablename__ = "artifact_change_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    artifact_id = Column(String(36), nullable=False, index=True)
    version_id = Column(String(36), nullable=True)
    action = Column(String(20), nullable=False)
    user_id = Column(String(64), nullable=False)
    details = Column(JSON, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(f"action IN ({_in(CHANGE_ACTIONS)})", name="ck_change_log_action"),
        Index("idx_acl_artifact_ts", "artifact_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<ArtifactChangeLog(artifact_id={self.artifact_id}, action='{self.action}')>"


# ---------------------------------------------------------------------------
# 7. Chat links
# ---------------------------------------------------------------------------

class ChatArtifact(Base):
    __tablename__ = "chat_artifacts"

    chat_id = Column(String(64), primary_key=True)
    artifact_id = Column(
        String(36), ForeignKey("artifacts.id", ondelete="CASCADE"), primary_key=True
    )
    message_id = Column(String(64), nullable=True)
    order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
