"""In-process backend: a content-addressable snapshot log on SQLAlchemy.

File contents are stored once per SHA-256 in ``blobs``; each snapshot
records a tree manifest (path -> blob hash) and its parent; lineages are
refs pointing at tip snapshots; every working-copy handle has its own
active-lineage cursor in ``heads``.

Patches are JSON documents listing the before/after content of every
changed path. Applying one checks every ``before`` against the working
state first and only then writes, so a patch applies fully or not at all.
"""

from __future__ import annotations

import base64
import json
import logging
import shutil
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Sequence

from sqlalchemy.exc import SQLAlchemyError

from solspace.backends.protocols import SnapshotRecord
from solspace.engine.hashing import blob_hash, snapshot_hash, tree_hash
from solspace.exceptions import BackendError, BackendTimeoutError, EmptySnapshotError
from solspace.operations.diff import tree_diff
from solspace.storage.engine import create_session_factory, create_store_engine, init_db
from solspace.storage.schema import BlobRow, SnapshotRow
from solspace.storage.sqlite import (
    SqliteBlobRepository,
    SqliteHeadRepository,
    SqliteRefRepository,
    SqliteSnapshotRepository,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy import Engine
    from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

PATCH_FORMAT = "solspace/patch"
PATCH_VERSION = 1
STORE_DIR = ".solspace"
PRIMARY_HANDLE = "primary"


@dataclass
class _SharedStore:
    """Database state shared by every handle opened on one store."""

    engine: Engine
    session_factory: sessionmaker[Session]
    lock: threading.RLock
    owns_engine: bool = True


def _encode_content(data: bytes | None) -> dict | None:
    if data is None:
        return None
    try:
        return {"text": data.decode("utf-8")}
    except UnicodeDecodeError:
        return {"base64": base64.b64encode(data).decode("ascii")}


def _decode_content(entry: dict | None) -> bytes | None:
    if entry is None:
        return None
    if "text" in entry:
        return entry["text"].encode("utf-8")
    return base64.b64decode(entry["base64"])


class LocalBackend:
    """VersionBackend over an in-process snapshot log.

    Create via :meth:`LocalBackend.open`. All handles on one store
    serialize their database work through a shared lock; acquiring it is
    bounded by ``timeout``.

    Example::

        backend = LocalBackend.open(tmp_path, db_path=":memory:")
        backend.create_lineage("idea")
        (tmp_path / "notes.txt").write_text("first draft")
        backend.snapshot("draft")
    """

    def __init__(
        self,
        root: Path,
        *,
        shared: _SharedStore,
        handle_id: str,
        exclude: Sequence[str] = (".patches",),
        timeout: float | None = 60.0,
    ) -> None:
        self._root = Path(root).resolve()
        self._shared = shared
        self._handle_id = handle_id
        self._exclude: set[str] = set()
        for name in (STORE_DIR, ".git", *exclude):
            self.add_exclude(name)
        self._timeout = timeout
        self._session = shared.session_factory()
        self._blobs = SqliteBlobRepository(self._session)
        self._snapshots = SqliteSnapshotRepository(self._session)
        self._refs = SqliteRefRepository(self._session)
        self._heads = SqliteHeadRepository(self._session)
        self._closed = False

    @classmethod
    def open(
        cls,
        root: str | Path,
        *,
        db_path: str | None = None,
        url: str | None = None,
        initial_lineage: str = "main",
        exclude: Sequence[str] = (".patches",),
        timeout: float | None = 60.0,
    ) -> LocalBackend:
        """Open (or create) a store for the working copy at ``root``.

        Args:
            root: Working-copy directory; created if missing.
            db_path: SQLite file or ``":memory:"``. Defaults to
                ``<root>/.solspace/store.db``.
            url: Full SQLAlchemy URL, overrides *db_path*.
            initial_lineage: Lineage holding the initial snapshot of a new store.
            exclude: Paths relative to ``root`` that are never tracked.
            timeout: Seconds to wait for the store lock (None = forever).
        """
        root_path = Path(root)
        root_path.mkdir(parents=True, exist_ok=True)
        if url is None and db_path is None:
            (root_path / STORE_DIR).mkdir(exist_ok=True)
            db_path = str(root_path / STORE_DIR / "store.db")

        engine = create_store_engine(db_path or ":memory:", url=url)
        init_db(engine)
        shared = _SharedStore(
            engine=engine,
            session_factory=create_session_factory(engine),
            lock=threading.RLock(),
        )
        backend = cls(
            root_path,
            shared=shared,
            handle_id=PRIMARY_HANDLE,
            exclude=exclude,
            timeout=timeout,
        )
        backend._bootstrap(initial_lineage)
        return backend

    def _bootstrap(self, initial_lineage: str) -> None:
        with self._locked("open store"):
            head = self._heads.get(self._handle_id)
            if head is not None:
                self._heads.set(self._handle_id, head.lineage, str(self._root))
                return
            self._heads.set(self._handle_id, initial_lineage, str(self._root))
            if self._refs.get(initial_lineage) is None:
                self._write_snapshot("Initial snapshot", allow_empty=True)
                logger.info("Created snapshot store at %s", self._root)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @property
    def root(self) -> Path:
        return self._root

    @property
    def handle_id(self) -> str:
        return self._handle_id

    @contextmanager
    def _locked(self, command: str) -> Iterator[None]:
        """Hold the store lock for one primitive and commit or roll back."""
        if self._closed:
            raise BackendError(command, "backend handle is closed")
        wait = self._timeout if self._timeout is not None else -1
        if not self._shared.lock.acquire(timeout=wait):
            raise BackendTimeoutError(command, self._timeout or 0.0)
        try:
            yield
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise BackendError(command, str(exc)) from exc
        except OSError as exc:
            self._session.rollback()
            raise BackendError(command, str(exc)) from exc
        except BaseException:
            self._session.rollback()
            raise
        finally:
            self._shared.lock.release()

    def _active(self) -> str:
        head = self._heads.get(self._handle_id)
        if head is None:
            raise BackendError("resolve HEAD", "handle has no active lineage")
        return head.lineage

    def _tip(self, lineage: str) -> SnapshotRow | None:
        tip_hash = self._refs.get(lineage)
        return self._snapshots.get(tip_hash) if tip_hash else None

    def _resolve(self, ref: str) -> SnapshotRow:
        if ref == "HEAD":
            ref = self._active()
        row = self._tip(ref)
        if row is None:
            row = self._snapshots.get(ref) or self._snapshots.get_by_prefix(ref)
        if row is None:
            raise BackendError(f"resolve {ref}", "unknown snapshot or lineage")
        return row

    def _contents(self, row: SnapshotRow | None) -> dict[str, bytes]:
        if row is None:
            return {}
        contents: dict[str, bytes] = {}
        for path, content_hash in row.tree_json.items():
            blob = self._blobs.get(content_hash)
            if blob is None:
                raise BackendError(f"read {row.snapshot_hash[:12]}", f"missing blob for {path}")
            contents[path] = blob.data
        return contents

    def _scan(self) -> dict[str, bytes]:
        files: dict[str, bytes] = {}
        for path in sorted(self._root.rglob("*")):
            rel = path.relative_to(self._root)
            if self._is_excluded(rel) or not path.is_file():
                continue
            files[rel.as_posix()] = path.read_bytes()
        return files

    def _write_file(self, rel: str, data: bytes | None) -> None:
        target = self._root / rel
        if data is None:
            if target.exists():
                target.unlink()
            self._prune_dirs(target.parent)
            return
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def _prune_dirs(self, directory: Path) -> None:
        while directory != self._root and directory.is_dir() and not any(directory.iterdir()):
            directory.rmdir()
            directory = directory.parent

    def _write_snapshot(self, message: str, *, allow_empty: bool) -> str:
        lineage = self._active()
        parent = self._tip(lineage)
        files = self._scan()
        now = datetime.now(timezone.utc)
        tree: dict[str, str] = {}
        for path, data in files.items():
            digest = blob_hash(data)
            tree[path] = digest
            self._blobs.save_if_absent(
                BlobRow(content_hash=digest, data=data, byte_size=len(data), created_at=now)
            )
        if not allow_empty and parent is not None and parent.tree_json == tree:
            raise EmptySnapshotError("snapshot")

        t_hash = tree_hash(tree)
        parent_hash = parent.snapshot_hash if parent else None
        s_hash = snapshot_hash(t_hash, parent_hash, message, now.isoformat())
        self._snapshots.save(
            SnapshotRow(
                snapshot_hash=s_hash,
                parent_hash=parent_hash,
                tree_hash=t_hash,
                tree_json=tree,
                message=message,
                seq=self._snapshots.next_seq(),
                created_at=now,
            )
        )
        self._refs.set(lineage, s_hash)
        logger.debug("Snapshot %s on %s", s_hash[:12], lineage)
        return s_hash

    @staticmethod
    def _record(row: SnapshotRow) -> SnapshotRecord:
        created = row.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return SnapshotRecord(hash=row.snapshot_hash, message=row.message, timestamp=created)

    def _dirty_paths(self, head_tree: dict[str, bytes], files: dict[str, bytes]) -> set[str]:
        return {p for p in set(head_tree) | set(files) if head_tree.get(p) != files.get(p)}

    def _is_excluded(self, rel: Path) -> bool:
        parts = rel.parts
        return any(parts[: len(ex)] == ex for ex in (PurePosixPath(e).parts for e in self._exclude))

    # ------------------------------------------------------------------
    # Lineages
    # ------------------------------------------------------------------

    def current_lineage(self) -> str:
        with self._locked("current lineage"):
            return self._active()

    def create_lineage(self, name: str) -> None:
        command = f"create lineage {name}"
        with self._locked(command):
            if self._refs.get(name) is not None:
                raise BackendError(command, f"lineage '{name}' already exists")
            tip = self._tip(self._active())
            if tip is None:
                raise BackendError(command, "active lineage has no snapshots")
            self._refs.set(name, tip.snapshot_hash)
            self._heads.set(self._handle_id, name, str(self._root))

    def list_lineages(self) -> list[str]:
        with self._locked("list lineages"):
            return self._refs.list_lineages()

    def has_lineage(self, name: str) -> bool:
        with self._locked("has lineage"):
            return self._refs.get(name) is not None

    def switch_active(self, name: str) -> None:
        command = f"switch to {name}"
        with self._locked(command):
            target = self._tip(name)
            if target is None:
                raise BackendError(command, f"lineage '{name}' does not exist")
            current = self._active()
            if current == name:
                return
            if self._heads.handles_on(name):
                raise BackendError(command, f"lineage '{name}' is checked out in another working copy")
            head_tree = self._contents(self._tip(current))
            target_tree = self._contents(target)
            dirty = self._dirty_paths(head_tree, self._scan())
            conflicts = sorted(p for p in dirty if head_tree.get(p) != target_tree.get(p))
            if conflicts:
                raise BackendError(
                    command,
                    "local changes would be overwritten: " + ", ".join(conflicts),
                )
            for path in sorted(set(head_tree) | set(target_tree)):
                if path in dirty or head_tree.get(path) == target_tree.get(path):
                    continue
                self._write_file(path, target_tree.get(path))
            self._heads.set(self._handle_id, name, str(self._root))

    def delete_lineage(self, name: str, *, force: bool = True) -> None:
        command = f"delete lineage {name}"
        with self._locked(command):
            tip = self._refs.get(name)
            if tip is None:
                return
            if self._heads.handles_on(name):
                raise BackendError(command, f"lineage '{name}' is checked out")
            if not force:
                reachable = {
                    row.snapshot_hash
                    for row in self._snapshots.get_ancestors(self._resolve("HEAD").snapshot_hash)
                }
                if tip not in reachable:
                    raise BackendError(command, f"lineage '{name}' is not fully merged")
            self._refs.delete(name)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self, message: str, *, allow_empty: bool = False) -> str:
        with self._locked("snapshot"):
            return self._write_snapshot(message, allow_empty=allow_empty)

    def history(self, lineage: str | None = None) -> list[SnapshotRecord]:
        command = f"history {lineage or 'HEAD'}"
        with self._locked(command):
            name = lineage or self._active()
            tip = self._refs.get(name)
            if tip is None:
                raise BackendError(command, f"lineage '{name}' does not exist")
            return [self._record(row) for row in self._snapshots.get_ancestors(tip)]

    def get_snapshot(self, ref: str) -> SnapshotRecord:
        with self._locked(f"resolve {ref}"):
            return self._record(self._resolve(ref))

    def diff(self, ref_a: str, ref_b: str) -> str:
        with self._locked(f"diff {ref_a} {ref_b}"):
            return tree_diff(
                self._contents(self._resolve(ref_a)),
                self._contents(self._resolve(ref_b)),
            )

    def show(self, ref: str) -> str:
        with self._locked(f"show {ref}"):
            row = self._resolve(ref)
            parent = self._snapshots.get(row.parent_hash) if row.parent_hash else None
            body = "\n".join(f"    {line}" for line in row.message.splitlines())
            header = (
                f"snapshot {row.snapshot_hash}\n"
                f"Date:   {self._record(row).timestamp.isoformat()}\n\n"
                f"{body}\n\n"
            )
            return header + tree_diff(self._contents(parent), self._contents(row))

    # ------------------------------------------------------------------
    # Patches and working state
    # ------------------------------------------------------------------

    def extract_patch(self, ref: str) -> bytes:
        with self._locked(f"extract patch {ref}"):
            row = self._resolve(ref)
            parent = self._snapshots.get(row.parent_hash) if row.parent_hash else None
            old, new = self._contents(parent), self._contents(row)
            changes = [
                {
                    "path": path,
                    "before": _encode_content(old.get(path)),
                    "after": _encode_content(new.get(path)),
                }
                for path in sorted(set(old) | set(new))
                if old.get(path) != new.get(path)
            ]
            document = {
                "format": PATCH_FORMAT,
                "version": PATCH_VERSION,
                "snapshot": row.snapshot_hash,
                "message": row.message,
                "changes": changes,
            }
            return (json.dumps(document, indent=2, sort_keys=True, ensure_ascii=False) + "\n").encode("utf-8")

    def apply_patch(self, data: bytes, *, reverse: bool = False) -> None:
        command = "apply patch --reverse" if reverse else "apply patch"
        with self._locked(command):
            try:
                document = json.loads(data.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                raise BackendError(command, f"corrupt patch: {exc}") from exc
            if not isinstance(document, dict) or document.get("format") != PATCH_FORMAT:
                raise BackendError(command, "not a solspace patch")
            changes = document.get("changes") or []
            if not changes:
                raise BackendError(command, "patch contains no changes")

            planned: list[tuple[str, bytes | None]] = []
            conflicts: list[str] = []
            for change in changes:
                before = _decode_content(change["before"])
                after = _decode_content(change["after"])
                if reverse:
                    before, after = after, before
                path = change["path"]
                target = self._root / path
                current = target.read_bytes() if target.is_file() else None
                if current != before:
                    conflicts.append(path)
                planned.append((path, after))
            if conflicts:
                raise BackendError(
                    command,
                    "patch does not apply cleanly: " + ", ".join(conflicts),
                )
            for path, after in planned:
                self._write_file(path, after)

    def add_exclude(self, path: str) -> None:
        rel = PurePosixPath(path)
        if rel.is_absolute() or not rel.parts or ".." in rel.parts:
            raise BackendError(f"exclude {path}", "path must be relative to the working root")
        self._exclude.add(rel.as_posix())

    def is_dirty(self) -> bool:
        with self._locked("status"):
            return self._contents(self._resolve("HEAD")) != self._scan()

    def discard_changes(self) -> None:
        with self._locked("discard changes"):
            head_tree = self._contents(self._resolve("HEAD"))
            files = self._scan()
            for path in sorted(self._dirty_paths(head_tree, files)):
                self._write_file(path, head_tree.get(path))

    # ------------------------------------------------------------------
    # Worktrees
    # ------------------------------------------------------------------

    def open_worktree(self, path: Path, lineage: str) -> LocalBackend:
        command = f"open worktree {path}"
        path = Path(path)
        if path.exists() and any(path.iterdir()):
            raise BackendError(command, "path already exists")
        with self._locked(command):
            tip = self._tip(lineage)
            if tip is None:
                raise BackendError(command, f"lineage '{lineage}' does not exist")
            if self._heads.handles_on(lineage):
                raise BackendError(command, f"lineage '{lineage}' is already checked out")
            contents = self._contents(tip)
            handle = LocalBackend(
                path,
                shared=self._shared,
                handle_id=f"worktree-{uuid.uuid4().hex[:12]}",
                exclude=sorted(self._exclude),
                timeout=self._timeout,
            )
            self._heads.set(handle.handle_id, lineage, str(handle.root))
        handle.root.mkdir(parents=True, exist_ok=True)
        for rel, data in contents.items():
            handle._write_file(rel, data)
        logger.debug("Opened worktree %s on %s", handle.root, lineage)
        return handle

    def close(self) -> None:
        """Close this handle; worktree handles also remove their directory."""
        if self._closed:
            return
        if self._handle_id != PRIMARY_HANDLE:
            with self._locked(f"close worktree {self._root}"):
                self._heads.delete(self._handle_id)
            shutil.rmtree(self._root, ignore_errors=True)
        self._closed = True
        self._session.close()
        if self._handle_id == PRIMARY_HANDLE and self._shared.owns_engine:
            self._shared.engine.dispose()

    def __repr__(self) -> str:
        return f"LocalBackend({str(self._root)!r}, handle={self._handle_id!r})"
