"""Protocol definitions for version-control backends.

A backend handle is bound to one working-copy root and owns one
active-lineage cursor. Every primitive may fail with BackendError.

No SQLAlchemy or subprocess imports allowed in this module -- pure
adapter contracts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class SnapshotRecord:
    """One snapshot as reported by a backend's history."""

    hash: str
    message: str
    timestamp: datetime


@runtime_checkable
class VersionBackend(Protocol):
    """The primitives the store and patch layers need from version control."""

    @property
    def root(self) -> Path:
        """Working-copy root this handle operates on."""
        ...

    def current_lineage(self) -> str:
        """Name of the active lineage."""
        ...

    def create_lineage(self, name: str) -> None:
        """Branch from the current state and make the new lineage active.

        Fails if the name already exists.
        """
        ...

    def snapshot(self, message: str, *, allow_empty: bool = False) -> str:
        """Record all tracked changes on the active lineage; return its hash.

        Fails if nothing changed, unless ``allow_empty`` is set.
        """
        ...

    def list_lineages(self) -> list[str]:
        """All lineage names, sorted."""
        ...

    def has_lineage(self, name: str) -> bool:
        """Whether a lineage with this name exists."""
        ...

    def history(self, lineage: str | None = None) -> list[SnapshotRecord]:
        """Snapshots reachable from a lineage (default: active), newest-first."""
        ...

    def get_snapshot(self, ref: str) -> SnapshotRecord:
        """Look up one snapshot by hash, hash prefix or lineage name."""
        ...

    def switch_active(self, name: str) -> None:
        """Make ``name`` the active lineage; fails on conflicting local changes."""
        ...

    def diff(self, ref_a: str, ref_b: str) -> str:
        """Textual diff between two snapshots."""
        ...

    def show(self, ref: str) -> str:
        """Textual diff of one snapshot against its parent."""
        ...

    def extract_patch(self, ref: str) -> bytes:
        """Portable patch capturing the single snapshot ``ref``."""
        ...

    def apply_patch(self, data: bytes, *, reverse: bool = False) -> None:
        """Apply (or reverse) a patch to the working state, all-or-nothing."""
        ...

    def delete_lineage(self, name: str, *, force: bool = True) -> None:
        """Remove a lineage; removing a missing lineage is a no-op."""
        ...

    def add_exclude(self, path: str) -> None:
        """Keep ``path`` (relative to the root) out of tracked state."""
        ...

    def is_dirty(self) -> bool:
        """Whether the working state differs from the active snapshot."""
        ...

    def discard_changes(self) -> None:
        """Reset the working state to the active snapshot."""
        ...

    def open_worktree(self, path: Path, lineage: str) -> VersionBackend:
        """Open an isolated working copy of ``lineage`` at ``path``."""
        ...

    def close(self) -> None:
        """Release resources held by this handle."""
        ...
