"""Deterministic hashing utilities for Solspace.

Provides canonical JSON serialization and SHA-256 hashing for blobs,
working-tree manifests and snapshots. All hashing is deterministic: same
input always produces same output, regardless of dict key ordering.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json(data: Any) -> bytes:
    """Serialize data to canonical JSON bytes.

    Uses sorted keys, compact separators, and UTF-8 encoding
    to ensure deterministic output.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def blob_hash(data: bytes) -> str:
    """Compute the SHA-256 hex digest of raw file content."""
    return hashlib.sha256(data).hexdigest()


def tree_hash(tree: dict[str, str]) -> str:
    """Compute the hash of a working-tree manifest (path -> blob hash)."""
    return hashlib.sha256(canonical_json(tree)).hexdigest()


def snapshot_hash(
    tree_hash: str,
    parent_hash: str | None,
    message: str,
    timestamp_iso: str,
) -> str:
    """Compute SHA-256 hash of structured snapshot data.

    Args:
        tree_hash: Hash of the snapshot's tree manifest.
        parent_hash: Hash of the parent snapshot, or None for a root.
        message: The snapshot message.
        timestamp_iso: ISO 8601 timestamp string.

    Returns:
        Hex digest of SHA-256 hash.
    """
    data: dict[str, Any] = {
        "tree_hash": tree_hash,
        "parent_hash": parent_hash,
        "message": message,
        "timestamp_iso": timestamp_iso,
    }
    return hashlib.sha256(canonical_json(data)).hexdigest()
