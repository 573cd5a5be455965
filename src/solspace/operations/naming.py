"""Name handling for solution spaces and patches.

Space names are sanitized into backend-safe lineage identifiers; patch
names are validated so they can be used directly as file names.
"""

from __future__ import annotations

import re

from solspace.exceptions import InvalidPatchNameError, InvalidSpaceNameError

_STRIP_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE_RUN = re.compile(r"\s+")
_HYPHEN_RUN = re.compile(r"-+")


def sanitize_space_name(name: str) -> str:
    """Derive the deterministic, backend-safe identifier for a space name.

    Lower-cases, treats underscores as separators, strips every other
    character outside ``[a-z0-9]``, turns whitespace runs into single
    hyphens, collapses repeated hyphens and trims hyphens from both ends.
    The result only ever contains lowercase alphanumerics and single
    hyphens, so sanitizing twice is the same as sanitizing once.

    Raises:
        InvalidSpaceNameError: If nothing usable is left.
    """
    sanitized = name.lower().replace("_", "-")
    sanitized = _STRIP_CHARS.sub("", sanitized)
    sanitized = _WHITESPACE_RUN.sub("-", sanitized)
    sanitized = _HYPHEN_RUN.sub("-", sanitized)
    sanitized = sanitized.strip("-")
    if not sanitized:
        raise InvalidSpaceNameError(name)
    return sanitized


def validate_patch_name(name: str) -> None:
    """Validate a patch name for use as ``<name>.patch``.

    Raises InvalidPatchNameError on violation.
    """
    if not name or not name.strip():
        raise InvalidPatchNameError(name, "patch name cannot be empty")

    if "/" in name or "\\" in name:
        raise InvalidPatchNameError(name, "patch name cannot contain path separators")

    if ".." in name:
        raise InvalidPatchNameError(name, "patch name cannot contain '..'")

    if name.startswith("."):
        raise InvalidPatchNameError(name, "patch name cannot start with '.'")
