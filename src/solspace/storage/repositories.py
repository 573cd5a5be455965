"""Abstract repository interfaces for snapshot storage.

Defines ABC interfaces for all database operations. No SQLAlchemy
imports here -- pure abstract contracts.

Concrete implementations are in sqlite.py.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from solspace.storage.schema import BlobRow, HeadRow, SnapshotRow


class BlobRepository(ABC):
    """Abstract interface for blob storage operations."""

    @abstractmethod
    def get(self, content_hash: str) -> BlobRow | None:
        """Get a blob by its content hash. Returns None if not found."""
        ...

    @abstractmethod
    def save_if_absent(self, blob: BlobRow) -> None:
        """Store a blob only if its content_hash is not already present.

        Content-addressable: same content = same hash = stored once.
        """
        ...


class SnapshotRepository(ABC):
    """Abstract interface for snapshot storage operations."""

    @abstractmethod
    def get(self, snapshot_hash: str) -> SnapshotRow | None:
        """Get a snapshot by its hash. Returns None if not found."""
        ...

    @abstractmethod
    def save(self, snapshot: SnapshotRow) -> None:
        """Append a snapshot to storage."""
        ...

    @abstractmethod
    def next_seq(self) -> int:
        """Next store-wide creation sequence number."""
        ...

    @abstractmethod
    def get_ancestors(self, snapshot_hash: str) -> Sequence[SnapshotRow]:
        """Get the parent chain from a snapshot to its root (inclusive).

        Returns snapshots in reverse chronological order (newest first).
        """
        ...

    @abstractmethod
    def get_by_prefix(self, prefix: str) -> SnapshotRow | None:
        """Find a snapshot by hash prefix (min 4 chars).

        Raises BackendError if multiple snapshots match.
        Returns None if no match.
        """
        ...


class RefRepository(ABC):
    """Abstract interface for lineage ref operations."""

    @abstractmethod
    def get(self, lineage: str) -> str | None:
        """Tip snapshot hash of a lineage, or None if it does not exist."""
        ...

    @abstractmethod
    def set(self, lineage: str, snapshot_hash: str) -> None:
        """Create or move a lineage ref."""
        ...

    @abstractmethod
    def delete(self, lineage: str) -> bool:
        """Delete a lineage ref. Returns False if it did not exist."""
        ...

    @abstractmethod
    def list_lineages(self) -> list[str]:
        """All lineage names, sorted."""
        ...


class HeadRepository(ABC):
    """Abstract interface for per-handle active-lineage cursors."""

    @abstractmethod
    def get(self, handle_id: str) -> HeadRow | None:
        """Head row of a handle, or None if the handle is unknown."""
        ...

    @abstractmethod
    def set(self, handle_id: str, lineage: str, root: str) -> None:
        """Point a handle's cursor at a lineage."""
        ...

    @abstractmethod
    def delete(self, handle_id: str) -> None:
        """Forget a handle."""
        ...

    @abstractmethod
    def handles_on(self, lineage: str) -> list[str]:
        """Ids of all handles whose active lineage is ``lineage``."""
        ...
