"""
Content fingerprinting.

Two digests exist for every version:

- content hash: SHA-256 of the raw UTF-8 bytes. Identical content always
  hashes identically, so it is usable for deduplication and integrity checks.
- commit hash: SHA-256 salted with artifact id, version number and creation
  instant. Unique per version even when content repeats (e.g. a restore).
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from typing import Union

from verso.engine.errors import VersoEncodingError

Content = Union[str, bytes]


def _to_bytes(content: Content) -> bytes:
    if isinstance(content, bytes):
        try:
            content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise VersoEncodingError(
                f"Content is not valid UTF-8 (byte {e.start})", position=e.start
            ) from e
        return content
    try:
        return content.encode("utf-8")
    except UnicodeEncodeError as e:
        # Lone surrogates survive in str but have no UTF-8 encoding
        raise VersoEncodingError(
            f"Content cannot be encoded as UTF-8 (char {e.start})", position=e.start
        ) from e


def ensure_text(content: Content) -> str:
    """Validate content and return it as str."""
    if isinstance(content, bytes):
        return _to_bytes(content).decode("utf-8")
    _to_bytes(content)
    return content


def content_hash(content: Content) -> str:
    """64-hex SHA-256 of the content bytes."""
    return hashlib.sha256(_to_bytes(content)).hexdigest()


def _timestamp_ms(timestamp: datetime) -> int:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return int(timestamp.timestamp() * 1000)


def commit_hash(artifact_id: str, version: int, content: Content, timestamp: datetime) -> str:
    """64-hex commit identifier over artifact_id:version:content:epoch_ms."""
    digest = hashlib.sha256()
    digest.update(f"{artifact_id}:{version}:".encode("utf-8"))
    digest.update(_to_bytes(content))
    digest.update(f":{_timestamp_ms(timestamp)}".encode("utf-8"))
    return digest.hexdigest()


def normalize(content: str) -> str:
    """Trim every line and drop blank ones."""
    return "\n".join(line.strip() for line in content.split("\n") if line.strip())


def content_signature(content: Content) -> str:
    """Whitespace-insensitive fingerprint, used to spot cosmetic-only edits."""
    return content_hash(normalize(ensure_text(content)))


def has_significant_changes(old: Content, new: Content) -> bool:
    """True unless the two contents differ only in whitespace/blank lines."""
    return content_signature(old) != content_signature(new)
