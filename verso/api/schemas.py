"""
Request schemas for the artifact API.

One model per action. GET actions validate their query params, POST
actions their JSON body; unknown fields are ignored.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from verso.versioning.models import ChangeAction, Permission

ArtifactKind = Literal["text", "code", "image", "sheet"]


# ---------------------------------------------------------------------------
# GET query params
# ---------------------------------------------------------------------------

class ChatQuery(BaseModel):
    chat_id: str = Field(min_length=1)


class ArtifactQuery(BaseModel):
    artifact_id: str = Field(min_length=1)


class HistoryQuery(ArtifactQuery):
    branch: Optional[str] = None


class UserArtifactsQuery(BaseModel):
    limit: int = Field(default=50, ge=1, le=200)
    offset: int = Field(default=0, ge=0)


class ChangeLogQuery(ArtifactQuery):
    action: Optional[ChangeAction] = None
    limit: Optional[int] = Field(default=None, ge=1)


# ---------------------------------------------------------------------------
# POST bodies
# ---------------------------------------------------------------------------

class LinkToChatRequest(BaseModel):
    chat_id: str = Field(min_length=1)
    artifact_id: str = Field(min_length=1)
    message_id: Optional[str] = None
    order: int = 0


class CreateArtifactRequest(BaseModel):
    title: str = Field(min_length=1)
    content: str = ""
    kind: ArtifactKind = "text"
    artifact_id: Optional[str] = None
    commit_message: Optional[str] = None
    chat_id: Optional[str] = None
    message_id: Optional[str] = None


class CreateVersionRequest(BaseModel):
    artifact_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    content: str
    commit_message: Optional[str] = None
    parent_version_id: Optional[str] = None
    branch: Optional[str] = None


class RestoreVersionRequest(BaseModel):
    artifact_id: str = Field(min_length=1)
    version_id: str = Field(min_length=1)
    branch: Optional[str] = None


class CreateBranchRequest(BaseModel):
    artifact_id: str = Field(min_length=1)
    name: str
    from_version_id: str = Field(min_length=1)
    is_default: bool = False


class CreateTagRequest(BaseModel):
    artifact_id: str = Field(min_length=1)
    version_id: str = Field(min_length=1)
    name: str
    description: Optional[str] = None


class AddCollaboratorRequest(BaseModel):
    artifact_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    permission: Permission = "read"


class DiffRequest(BaseModel):
    from_version_id: str = Field(min_length=1)
    to_version_id: str = Field(min_length=1)
    context: Optional[int] = Field(default=None, ge=0)


class MergeRequest(BaseModel):
    artifact_id: str = Field(min_length=1)
    base_version_id: str = Field(min_length=1)
    current_version_id: str = Field(min_length=1)
    incoming_version_id: str = Field(min_length=1)
    commit: bool = False
    commit_message: Optional[str] = None
