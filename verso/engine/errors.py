"""
Verso Error Hierarchy — Structured exceptions surfaced to the request layer.

Every error carries a message plus a free-form context dict that serializes
to JSON, so the request layer can log it and map it to a response without
string parsing.

Hierarchy:
    VersoError
    ├── VersoNotFoundError    — Artifact / version / branch / tag absent
    ├── VersoConflictError    — Duplicate ref name, version-number collision
    ├── VersoPermissionError  — Insufficient collaborator role
    ├── VersoEncodingError    — Content is not valid UTF-8
    ├── VersoValidationError  — Malformed input
    └── VersoConfigError      — Invalid verso.yaml
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_CORE_KEYS = ("artifact_id", "version_id", "object_ref")


class VersoError(Exception):
    """
    Base error for all engine failures.
    All context is serializable to JSON.
    """

    status_code: int = 500

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.artifact_id: Optional[str] = context.get("artifact_id")
        self.version_id: Optional[str] = context.get("version_id")
        self.object_ref: Optional[str] = context.get("object_ref")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict for logging and responses."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "artifact_id": self.artifact_id,
            "version_id": self.version_id,
            "object_ref": self.object_ref,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items() if k not in _CORE_KEYS
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.artifact_id:
            parts.append(f"artifact_id={self.artifact_id}")
        if self.version_id:
            parts.append(f"version_id={self.version_id}")
        return " | ".join(parts)


class VersoNotFoundError(VersoError):
    """Artifact, version, branch or tag does not exist."""

    status_code = 404


class VersoConflictError(VersoError):
    """
    Duplicate branch/tag name, or a version-number collision that survived
    the bounded retry loop.
    """

    status_code = 409

    def __init__(self, message: str, **context: Any):
        self.attempts: Optional[int] = context.get("attempts")
        super().__init__(message, **context)


class VersoPermissionError(VersoError):
    """
    Caller's collaborator role is below what the operation requires.
    Includes user_id, the required permission and the permission held.
    """

    status_code = 403

    def __init__(self, message: str, **context: Any):
        self.user_id: Optional[str] = context.get("user_id")
        self.required_permission: Optional[str] = context.get("required_permission")
        self.held_permission: Optional[str] = context.get("held_permission")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["user_id"] = self.user_id
        d["required_permission"] = self.required_permission
        d["held_permission"] = self.held_permission
        return d


class VersoEncodingError(VersoError):
    """Content could not be encoded/decoded as UTF-8."""

    status_code = 400


class VersoValidationError(VersoError):
    """
    Input validation failed (pydantic schema, ref name rules, patch format).
    Includes field-level error details when available.
    """

    status_code = 422

    def __init__(self, message: str, **context: Any):
        self.validation_errors: Optional[list] = context.get("validation_errors")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["validation_errors"] = self.validation_errors
        return d


class VersoConfigError(VersoError):
    """Configuration error — invalid verso.yaml."""

    status_code = 500
