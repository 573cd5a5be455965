"""Diff operations: textual comparison of files, trees and patch artifacts.

Produces git-style unified diff text so output from the in-process backend
reads the same as output from the git backend.
"""
from __future__ import annotations

import difflib
from collections.abc import Mapping


def _decode(data: bytes) -> str | None:
    """Decode file content as UTF-8 text, or None when it is binary."""
    if b"\x00" in data:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def unified_text_diff(
    text_a: str,
    text_b: str,
    label_a: str = "a",
    label_b: str = "b",
) -> str:
    """Unified diff of two texts, empty when they are identical."""
    lines = difflib.unified_diff(
        text_a.splitlines(keepends=True),
        text_b.splitlines(keepends=True),
        fromfile=label_a,
        tofile=label_b,
    )
    out: list[str] = []
    for line in lines:
        out.append(line if line.endswith("\n") else line + "\n\\ No newline at end of file\n")
    return "".join(out)


def file_diff(path: str, old: bytes | None, new: bytes | None) -> str:
    """Git-style diff section for one path.

    ``old`` is None for an added file, ``new`` is None for a deleted file.
    """
    if old == new:
        return ""

    header = [f"diff --git a/{path} b/{path}\n"]
    if old is None:
        header.append("new file\n")
    elif new is None:
        header.append("deleted file\n")

    old_text = _decode(old) if old is not None else ""
    new_text = _decode(new) if new is not None else ""
    if old_text is None or new_text is None:
        header.append(f"Binary files a/{path} and b/{path} differ\n")
        return "".join(header)

    label_a = f"a/{path}" if old is not None else "/dev/null"
    label_b = f"b/{path}" if new is not None else "/dev/null"
    return "".join(header) + unified_text_diff(old_text, new_text, label_a, label_b)


def tree_diff(old: Mapping[str, bytes], new: Mapping[str, bytes]) -> str:
    """Diff two working trees given as ``path -> content`` mappings.

    Paths are visited in sorted order so the output is deterministic.
    """
    sections = [
        file_diff(path, old.get(path), new.get(path))
        for path in sorted(set(old) | set(new))
    ]
    return "".join(s for s in sections if s)
