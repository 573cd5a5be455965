"""SQLAlchemy ORM schema for the in-process snapshot log.

Defines all database tables: blobs, snapshots, refs, heads, _solspace_meta.

Blobs and snapshots are append-only and addressed by SHA-256. Refs are the
mutable lineage pointers; heads hold one active-lineage cursor per
working-copy handle.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all Solspace ORM models."""

    pass


class BlobRow(Base):
    """Content-addressable file content. Keyed by SHA-256 of the bytes."""

    __tablename__ = "blobs"

    content_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    byte_size: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class SnapshotRow(Base):
    """One immutable snapshot of a working tree.

    ``tree_json`` maps posix paths (relative to the working-copy root) to
    blob hashes. ``seq`` is a store-wide creation counter.
    """

    __tablename__ = "snapshots"

    snapshot_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    parent_hash: Mapped[Optional[str]] = mapped_column(
        String(64),
        ForeignKey("snapshots.snapshot_hash"),
        nullable=True,
    )
    tree_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    tree_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_snapshots_parent", "parent_hash"),
    )


class RefRow(Base):
    """Mutable named pointer to the tip snapshot of a lineage."""

    __tablename__ = "refs"

    lineage: Mapped[str] = mapped_column(String(255), primary_key=True)
    snapshot_hash: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("snapshots.snapshot_hash"),
        nullable=False,
    )


class HeadRow(Base):
    """Active-lineage cursor of one working-copy handle."""

    __tablename__ = "heads"

    handle_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    lineage: Mapped[str] = mapped_column(String(255), nullable=False)
    root: Mapped[str] = mapped_column(Text, nullable=False)


class StoreMetaRow(Base):
    """Key-value metadata table (schema version, etc)."""

    __tablename__ = "_solspace_meta"

    key: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
