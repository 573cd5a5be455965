"""SQLite implementations of repository interfaces.

All repositories use SQLAlchemy 2.0-style queries (select() + session.execute()).
Each repository takes a Session in its constructor.
"""

from __future__ import annotations

from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from solspace.exceptions import BackendError
from solspace.storage.repositories import (
    BlobRepository,
    HeadRepository,
    RefRepository,
    SnapshotRepository,
)
from solspace.storage.schema import BlobRow, HeadRow, RefRow, SnapshotRow


class SqliteBlobRepository(BlobRepository):
    """SQLite implementation of blob repository.

    Content-addressable: save_if_absent checks existence before insert.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, content_hash: str) -> BlobRow | None:
        stmt = select(BlobRow).where(BlobRow.content_hash == content_hash)
        return self._session.execute(stmt).scalar_one_or_none()

    def save_if_absent(self, blob: BlobRow) -> None:
        """Store blob only if content_hash not already present (dedup)."""
        existing = self.get(blob.content_hash)
        if existing is None:
            self._session.add(blob)
            self._session.flush()


class SqliteSnapshotRepository(SnapshotRepository):
    """SQLite implementation of snapshot repository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, snapshot_hash: str) -> SnapshotRow | None:
        stmt = select(SnapshotRow).where(SnapshotRow.snapshot_hash == snapshot_hash)
        return self._session.execute(stmt).scalar_one_or_none()

    def save(self, snapshot: SnapshotRow) -> None:
        self._session.add(snapshot)
        self._session.flush()

    def next_seq(self) -> int:
        current = self._session.execute(select(func.max(SnapshotRow.seq))).scalar()
        return (current or 0) + 1

    def get_ancestors(self, snapshot_hash: str) -> Sequence[SnapshotRow]:
        """Walk parent chain from snapshot to root.

        Returns snapshots in reverse chronological order (newest first).
        """
        result: list[SnapshotRow] = []
        current = self.get(snapshot_hash)
        while current is not None:
            result.append(current)
            if current.parent_hash is None:
                break
            current = self.get(current.parent_hash)
        return result

    def get_by_prefix(self, prefix: str) -> SnapshotRow | None:
        if len(prefix) < 4:
            return None
        stmt = select(SnapshotRow).where(
            SnapshotRow.snapshot_hash.startswith(prefix)
        ).limit(2)
        matches = self._session.execute(stmt).scalars().all()
        if len(matches) > 1:
            raise BackendError(f"resolve {prefix}", "ambiguous snapshot prefix")
        return matches[0] if matches else None


class SqliteRefRepository(RefRepository):
    """SQLite implementation of lineage refs."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def _get_row(self, lineage: str) -> RefRow | None:
        stmt = select(RefRow).where(RefRow.lineage == lineage)
        return self._session.execute(stmt).scalar_one_or_none()

    def get(self, lineage: str) -> str | None:
        row = self._get_row(lineage)
        return row.snapshot_hash if row else None

    def set(self, lineage: str, snapshot_hash: str) -> None:
        row = self._get_row(lineage)
        if row is None:
            self._session.add(RefRow(lineage=lineage, snapshot_hash=snapshot_hash))
        else:
            row.snapshot_hash = snapshot_hash
        self._session.flush()

    def delete(self, lineage: str) -> bool:
        row = self._get_row(lineage)
        if row is None:
            return False
        self._session.delete(row)
        self._session.flush()
        return True

    def list_lineages(self) -> list[str]:
        stmt = select(RefRow.lineage).order_by(RefRow.lineage)
        return list(self._session.execute(stmt).scalars().all())


class SqliteHeadRepository(HeadRepository):
    """SQLite implementation of per-handle cursors."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, handle_id: str) -> HeadRow | None:
        stmt = select(HeadRow).where(HeadRow.handle_id == handle_id)
        return self._session.execute(stmt).scalar_one_or_none()

    def set(self, handle_id: str, lineage: str, root: str) -> None:
        row = self.get(handle_id)
        if row is None:
            self._session.add(HeadRow(handle_id=handle_id, lineage=lineage, root=root))
        else:
            row.lineage = lineage
            row.root = root
        self._session.flush()

    def delete(self, handle_id: str) -> None:
        row = self.get(handle_id)
        if row is not None:
            self._session.delete(row)
            self._session.flush()

    def handles_on(self, lineage: str) -> list[str]:
        stmt = select(HeadRow.handle_id).where(HeadRow.lineage == lineage)
        return list(self._session.execute(stmt).scalars().all())
