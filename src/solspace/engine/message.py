"""Attempt message encoding.

An attempt's description and metadata travel together in the backend's
snapshot message as a JSON document tagged with a format name and version.
Messages written by other tools (plain text, or JSON of another shape) are
read back as a bare description with empty metadata.
"""

from __future__ import annotations

import json
from typing import Any

MESSAGE_FORMAT = "solspace/attempt"
MESSAGE_VERSION = 1


def encode_attempt_message(description: str, metadata: dict | None = None) -> str:
    """Serialize an attempt description and metadata into a snapshot message.

    Raises:
        TypeError: If metadata contains values that are not JSON-serializable.
    """
    payload = {
        "format": MESSAGE_FORMAT,
        "version": MESSAGE_VERSION,
        "description": description,
        "metadata": metadata or {},
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def decode_attempt_message(message: str) -> tuple[str, dict[str, Any]]:
    """Parse a snapshot message into ``(description, metadata)``.

    Tagged payloads and untagged ``{"description", "metadata"}`` payloads
    are both accepted. Anything else falls back to the raw message.
    """
    raw = message.strip()
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return raw, {}

    if not isinstance(payload, dict) or "description" not in payload:
        return raw, {}

    fmt = payload.get("format")
    if fmt is not None and fmt != MESSAGE_FORMAT:
        return raw, {}

    description = payload["description"]
    if not isinstance(description, str):
        description = json.dumps(description, ensure_ascii=False)
    metadata = payload.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}
    return description, metadata
