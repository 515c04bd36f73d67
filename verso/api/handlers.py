"""
Verso Artifact API — framework-agnostic request layer.

Pipeline (per-request):
    1. Resolve the action (unknown → 400)
    2. Require an authenticated caller (missing user_id → 401)
    3. Validate params/body with the action's pydantic schema (→ 422)
    4. Check the caller's role on the artifact for reads
    5. Delegate to VersionStore / BranchTagRegistry / CollaborationGuard
    6. Serialize the result, map VersoError subclasses to their status

Any HTTP framework can mount this: hand it the action name, the parsed
query params or JSON body, and the authenticated user id.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import BaseModel, ValidationError

from verso.api import schemas
from verso.engine.errors import VersoError, VersoValidationError
from verso.engine.logging import LogEntry, log
from verso.security.permissions import CollaborationGuard
from verso.versioning.refs import BranchTagRegistry
from verso.versioning.store import VersionStore

logger = logging.getLogger("verso.api.handlers")

Handler = Callable[[Dict[str, Any], str], Tuple[int, Any]]


class APIResponse(BaseModel):
    """Normalized outbound response."""

    status_code: int = 200
    body: Any = None


def _dump(result: Any) -> Any:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    if isinstance(result, list):
        return [_dump(item) for item in result]
    return result


def _error_body(error: VersoError) -> Dict[str, Any]:
    return {"error": error.to_dict()}


class ArtifactAPI:
    def __init__(
        self,
        store: VersionStore,
        refs: BranchTagRegistry,
        guard: Optional[CollaborationGuard] = None,
    ):
        self._store = store
        self._refs = refs
        self._guard = guard or store.guard

        self._get_actions: Dict[str, Handler] = {
            "by-chat": self._by_chat,
            "by-artifact": self._by_artifact,
            "version-history": self._version_history,
            "with-version": self._with_version,
            "user-artifacts": self._user_artifacts,
            "change-log": self._change_log,
            "branches": self._branches,
            "tags": self._tags,
            "collaborators": self._collaborators,
        }
        self._post_actions: Dict[str, Handler] = {
            "link-to-chat": self._link_to_chat,
            "create-artifact": self._create_artifact,
            "create-version": self._create_version,
            "restore-version": self._restore_version,
            "create-branch": self._create_branch,
            "create-tag": self._create_tag,
            "add-collaborator": self._add_collaborator,
            "diff": self._diff,
            "merge": self._merge,
        }

    @property
    def get_actions(self):
        return sorted(self._get_actions)

    @property
    def post_actions(self):
        return sorted(self._post_actions)

    # -----------------------------------------------------------------------
    # Entry points
    # -----------------------------------------------------------------------

    def get(
        self,
        action: str,
        params: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> APIResponse:
        return self._execute("GET", action, self._get_actions, dict(params or {}), user_id)

    def post(
        self,
        action: str,
        body: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        artifact_id: Optional[str] = None,
    ) -> APIResponse:
        """`artifact_id` comes from the URL path and wins over the body."""
        payload = dict(body or {})
        if artifact_id is not None:
            payload["artifact_id"] = artifact_id
        return self._execute("POST", action, self._post_actions, payload, user_id)

    def _execute(
        self,
        method: str,
        action: str,
        actions: Dict[str, Handler],
        payload: Dict[str, Any],
        user_id: Optional[str],
    ) -> APIResponse:
        start_time = time.monotonic()
        handler = actions.get(action)

        if handler is None:
            response = APIResponse(
                status_code=400,
                body={"error": {"error_type": "UnknownAction", "message": f"Unknown {method} action '{action}'"}},
            )
        elif not user_id:
            response = APIResponse(status_code=401, body={"error": {"error_type": "Unauthorized", "message": "Authentication required"}})
        else:
            try:
                status_code, result = handler(payload, user_id)
                response = APIResponse(status_code=status_code, body=_dump(result))
            except ValidationError as e:
                error = VersoValidationError(
                    f"Invalid request for '{action}'",
                    validation_errors=json.loads(e.json(include_url=False)),
                )
                response = APIResponse(status_code=error.status_code, body=_error_body(error))
            except VersoError as e:
                logger.info(f"{method} {action} → {e.status_code}: {e.message}")
                response = APIResponse(status_code=e.status_code, body=_error_body(e))
            except Exception as e:
                logger.exception(f"Unhandled error in {method} {action}: {e}")
                response = APIResponse(
                    status_code=500,
                    body={"error": {"error_type": "InternalError", "message": "Internal server error"}},
                )

        duration_ms = (time.monotonic() - start_time) * 1000
        self._log_request(method, action, user_id, payload, response.status_code, duration_ms)
        return response

    @staticmethod
    def _log_request(
        method: str,
        action: str,
        user_id: Optional[str],
        payload: Dict[str, Any],
        status_code: int,
        duration_ms: float,
    ) -> None:
        """Request summary; bodies are never logged."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": "INFO" if status_code < 500 else "ERROR",
            "event": "api_request",
            "method": method,
            "action": action,
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2),
        }
        if user_id:
            entry["user_id"] = user_id
        if payload.get("artifact_id"):
            entry["artifact_id"] = payload["artifact_id"]
        log(LogEntry(object_type="artifacts", category="execution", data=entry))

    # -----------------------------------------------------------------------
    # GET actions
    # -----------------------------------------------------------------------

    def _by_chat(self, params, user_id):
        query = schemas.ChatQuery.model_validate(params)
        linked = self._store.get_artifacts_by_chat(query.chat_id)
        visible = [item for item in linked if self._guard.check(item.artifact.id, user_id, "read")]
        return 200, visible

    def _by_artifact(self, params, user_id):
        query = schemas.ArtifactQuery.model_validate(params)
        self._guard.require(query.artifact_id, user_id, "read")
        return 200, self._store.get_chats_by_artifact(query.artifact_id)

    def _version_history(self, params, user_id):
        query = schemas.HistoryQuery.model_validate(params)
        self._guard.require(query.artifact_id, user_id, "read")
        return 200, self._store.get_history(query.artifact_id, branch=query.branch)

    def _with_version(self, params, user_id):
        query = schemas.ArtifactQuery.model_validate(params)
        self._guard.require(query.artifact_id, user_id, "read")
        return 200, self._store.get_artifact_with_version(query.artifact_id)

    def _user_artifacts(self, params, user_id):
        query = schemas.UserArtifactsQuery.model_validate(params)
        return 200, self._store.list_user_artifacts(user_id, limit=query.limit, offset=query.offset)

    def _change_log(self, params, user_id):
        query = schemas.ChangeLogQuery.model_validate(params)
        self._guard.require(query.artifact_id, user_id, "read")
        return 200, self._store.changelog.query(query.artifact_id, action=query.action, limit=query.limit)

    def _branches(self, params, user_id):
        query = schemas.ArtifactQuery.model_validate(params)
        self._guard.require(query.artifact_id, user_id, "read")
        return 200, self._refs.list_branches(query.artifact_id)

    def _tags(self, params, user_id):
        query = schemas.ArtifactQuery.model_validate(params)
        self._guard.require(query.artifact_id, user_id, "read")
        return 200, self._refs.list_tags(query.artifact_id)

    def _collaborators(self, params, user_id):
        query = schemas.ArtifactQuery.model_validate(params)
        self._guard.require(query.artifact_id, user_id, "read")
        return 200, self._guard.list_collaborators(query.artifact_id)

    # -----------------------------------------------------------------------
    # POST actions
    # -----------------------------------------------------------------------

    def _link_to_chat(self, body, user_id):
        req = schemas.LinkToChatRequest.model_validate(body)
        link = self._store.link_to_chat(
            req.chat_id, req.artifact_id, user_id, message_id=req.message_id, order=req.order
        )
        return 201, link

    def _create_artifact(self, body, user_id):
        req = schemas.CreateArtifactRequest.model_validate(body)
        version = self._store.create_artifact(
            req.title,
            req.content,
            user_id,
            kind=req.kind,
            artifact_id=req.artifact_id,
            commit_message=req.commit_message,
        )
        if req.chat_id:
            self._store.link_to_chat(req.chat_id, version.artifact_id, user_id, message_id=req.message_id)
        return 201, version

    def _create_version(self, body, user_id):
        req = schemas.CreateVersionRequest.model_validate(body)
        version = self._store.create_version(
            req.artifact_id,
            req.title,
            req.content,
            user_id,
            commit_message=req.commit_message,
            parent_version_id=req.parent_version_id,
            branch=req.branch,
        )
        return 201, version

    def _restore_version(self, body, user_id):
        req = schemas.RestoreVersionRequest.model_validate(body)
        return 201, self._store.restore_version(req.artifact_id, req.version_id, user_id, branch=req.branch)

    def _create_branch(self, body, user_id):
        req = schemas.CreateBranchRequest.model_validate(body)
        branch = self._refs.create_branch(
            req.artifact_id, req.name, req.from_version_id, user_id, is_default=req.is_default
        )
        return 201, branch

    def _create_tag(self, body, user_id):
        req = schemas.CreateTagRequest.model_validate(body)
        tag = self._refs.create_tag(
            req.artifact_id, req.version_id, req.name, user_id, description=req.description
        )
        return 201, tag

    def _add_collaborator(self, body, user_id):
        req = schemas.AddCollaboratorRequest.model_validate(body)
        return 201, self._guard.add_collaborator(req.artifact_id, req.user_id, req.permission, user_id)

    def _diff(self, body, user_id):
        req = schemas.DiffRequest.model_validate(body)
        old = self._store.get_version_by_id(req.from_version_id)
        new = self._store.get_version_by_id(req.to_version_id)
        for artifact_id in {old.artifact_id, new.artifact_id}:
            self._guard.require(artifact_id, user_id, "read")
        return 200, self._store.diff_versions(old.id, new.id, context=req.context)

    def _merge(self, body, user_id):
        req = schemas.MergeRequest.model_validate(body)
        self._guard.require(req.artifact_id, user_id, "write" if req.commit else "read")
        outcome = self._store.merge_versions(
            req.artifact_id,
            req.base_version_id,
            req.current_version_id,
            req.incoming_version_id,
            user_id,
            commit=req.commit,
            commit_message=req.commit_message,
        )
        return 200, outcome
