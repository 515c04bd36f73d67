"""
Verso Version-Graph Records — immutable pydantic snapshots of DB rows.

Services never hand out live ORM objects: every read returns one of these
records, built inside the transaction with `Record.model_validate(row)`.

Change-log details are a discriminated union keyed by `kind`, one model
per action, so consumers know exactly what each action records.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from verso.vcs.models import DiffHunk, DiffResult, MergeResult

Permission = Literal["read", "write", "admin"]
ChangeAction = Literal["create", "update", "delete", "restore", "branch", "merge", "tag"]


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

class ArtifactRecord(_Record):
    id: str
    title: str
    content: str
    kind: str
    owner_id: str
    created_at: datetime
    updated_at: datetime


class VersionRecord(_Record):
    """A numbered, immutable snapshot of an artifact's content."""

    id: str
    artifact_id: str
    version: int
    title: str
    content: str
    content_hash: str
    commit_hash: str
    parent_version_id: Optional[str] = None
    branch_name: Optional[str] = None
    commit_message: Optional[str] = None
    author_id: str
    created_at: datetime
    is_active: bool
    content_metadata: Optional[Dict[str, Any]] = None


class BranchRecord(_Record):
    id: str
    artifact_id: str
    name: str
    head_version_id: str
    is_default: bool
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class TagRecord(_Record):
    id: str
    artifact_id: str
    version_id: str
    name: str
    description: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime


class CollaboratorRecord(_Record):
    artifact_id: str
    user_id: str
    permission: Permission
    invited_by: str
    created_at: datetime


class ChatLinkRecord(_Record):
    chat_id: str
    artifact_id: str
    message_id: Optional[str] = None
    order: int
    created_at: datetime


# ---------------------------------------------------------------------------
# Change-log details (tagged union)
# ---------------------------------------------------------------------------

class CreateDetails(BaseModel):
    kind: Literal["create"] = "create"
    title: str
    version: int = 1
    default_branch: Optional[str] = None
    chat_id: Optional[str] = None
    message_id: Optional[str] = None


class UpdateDetails(BaseModel):
    kind: Literal["update"] = "update"
    version: int
    commit_message: Optional[str] = None
    branch: Optional[str] = None
    parent_version_id: Optional[str] = None
    content_hash: str


class RestoreDetails(BaseModel):
    kind: Literal["restore"] = "restore"
    version: int
    restored_from_version: int
    restored_from_version_id: str


class BranchDetails(BaseModel):
    kind: Literal["branch"] = "branch"
    name: str
    head_version_id: str
    is_default: bool = False
    previous_default: Optional[str] = None


class TagDetails(BaseModel):
    kind: Literal["tag"] = "tag"
    name: str
    version_id: str
    description: Optional[str] = None


class MergeDetails(BaseModel):
    kind: Literal["merge"] = "merge"
    version: int
    base_version_id: str
    current_version_id: str
    incoming_version_id: str


class DeleteDetails(BaseModel):
    kind: Literal["delete"] = "delete"
    target: Literal["artifact", "branch", "tag"]
    name: Optional[str] = None
    version_id: Optional[str] = None


ChangeDetails = Annotated[
    Union[
        CreateDetails,
        UpdateDetails,
        RestoreDetails,
        BranchDetails,
        TagDetails,
        MergeDetails,
        DeleteDetails,
    ],
    Field(discriminator="kind"),
]


class ChangeLogRecord(_Record):
    id: int
    artifact_id: str
    version_id: Optional[str] = None
    action: ChangeAction
    user_id: str
    details: Optional[ChangeDetails] = None
    timestamp: datetime


# ---------------------------------------------------------------------------
# Composite results
# ---------------------------------------------------------------------------

class ArtifactWithVersion(BaseModel):
    artifact: ArtifactRecord
    current_version: Optional[VersionRecord] = None


class UserArtifact(BaseModel):
    artifact: ArtifactRecord
    current_version: Optional[VersionRecord] = None
    chat_count: int = 0


class VersionDiff(BaseModel):
    from_version_id: str
    to_version_id: str
    from_version: int
    to_version: int
    diff: DiffResult
    hunks: List[DiffHunk]
    unified: str


class MergeOutcome(BaseModel):
    base_version_id: str
    current_version_id: str
    incoming_version_id: str
    result: MergeResult
    committed_version: Optional[VersionRecord] = None
