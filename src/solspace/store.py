"""SpaceStore -- named solution spaces and their attempt history.

Wraps a VersionBackend: a solution space is a lineage, an attempt is a
snapshot whose message carries the attempt description and metadata.

A store handle has one active space. Each public call holds the handle's
re-entrant lock, and ``on_space()`` holds it across a whole block. For
parallel work, give each thread its own handle via ``open_worktree()``.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from solspace.engine.message import decode_attempt_message, encode_attempt_message
from solspace.exceptions import (
    AttemptNotFoundError,
    BackendError,
    EmptySnapshotError,
    NothingToSnapshotError,
    SolspaceError,
    SpaceExistsError,
    SpaceNotFoundError,
    StoreError,
    attach_cleanup_errors,
)
from solspace.models.attempt import Attempt
from solspace.models.config import StoreConfig
from solspace.models.space import SolutionSpace
from solspace.operations.naming import sanitize_space_name

if TYPE_CHECKING:
    from collections.abc import Iterator

    from solspace.backends.protocols import SnapshotRecord, VersionBackend

logger = logging.getLogger(__name__)


class SpaceStore:
    """Primary entry point for versioned solution spaces.

    Create a store via :meth:`SpaceStore.open` (recommended) or by passing
    any VersionBackend to the constructor.

    Example::

        with SpaceStore.open("workdir") as store:
            store.init_solution_space("Recursive approach", "fib via recursion")
            Path("workdir/fib.py").write_text(code)
            store.save_attempt("first try", {"complexity": "O(2^n)"})
            for attempt in store.get_attempt_history():
                print(attempt)
    """

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def __init__(
        self,
        backend: VersionBackend,
        *,
        config: StoreConfig | None = None,
    ) -> None:
        self._backend = backend
        self._config = config or StoreConfig()
        self._lock = threading.RLock()
        self._closed = False

    @classmethod
    def open(
        cls,
        root: str | Path = ".",
        *,
        backend: Literal["local", "git"] = "local",
        config: StoreConfig | None = None,
        db_path: str | None = None,
    ) -> SpaceStore:
        """Open a store on the working copy at ``root``.

        Args:
            root: Working-copy directory.
            backend: ``"local"`` for the in-process snapshot log, ``"git"``
                for a git repository (initialized if ``root`` is not one).
            config: Store configuration.
            db_path: Database location for the local backend
                (default ``<root>/.solspace/store.db``).
        """
        config = config or StoreConfig()
        root_path = Path(root)
        exclude = (config.patch_dir,)
        if backend == "git":
            from solspace.backends.git import GitBackend

            git_kwargs = {
                "timeout": config.timeout,
                "author_name": config.author_name,
                "author_email": config.author_email,
                "exclude": exclude,
            }
            if (root_path / ".git").exists():
                handle = GitBackend.open(root_path, **git_kwargs)
            else:
                handle = GitBackend.init(root_path, **git_kwargs)
        elif backend == "local":
            from solspace.backends.local import LocalBackend

            handle = LocalBackend.open(
                root_path,
                db_path=db_path,
                exclude=exclude,
                timeout=config.timeout,
            )
        else:
            raise ValueError(f"Unknown backend: {backend!r}")
        return cls(handle, config=config)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def backend(self) -> VersionBackend:
        """The VersionBackend this handle drives."""
        return self._backend

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def root(self) -> Path:
        """Working-copy root of this handle."""
        return self._backend.root

    @property
    def lock(self) -> threading.RLock:
        """Re-entrant lock serializing use of this handle's active space."""
        return self._lock

    @property
    def current_space(self) -> str:
        """Name of the active solution space."""
        with self._lock, self._backend_errors("read current space"):
            return self._backend.current_lineage()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _backend_errors(self, action: str) -> Iterator[None]:
        """Surface backend failures as StoreError with the backend message."""
        try:
            yield
        except EmptySnapshotError as exc:
            raise NothingToSnapshotError(f"Failed to {action}: {exc}") from exc
        except BackendError as exc:
            raise StoreError(f"Failed to {action}: {exc}") from exc

    def _resolve_space(self, name: str) -> str:
        """Lineage name for ``name``: an exact lineage, else the sanitized name."""
        with self._backend_errors(f"resolve space '{name}'"):
            if self._backend.has_lineage(name):
                return name
        return sanitize_space_name(name)

    def _to_attempt(self, record: SnapshotRecord, diff: str | None = None) -> Attempt:
        description, metadata = decode_attempt_message(record.message)
        return Attempt(
            hash=record.hash,
            timestamp=record.timestamp,
            description=description,
            metadata=metadata,
            diff=diff,
        )

    def _restore(self, lineage: str) -> None:
        with self._backend_errors(f"restore space '{lineage}'"):
            if self._backend.current_lineage() != lineage:
                self._backend.switch_active(lineage)

    # ------------------------------------------------------------------
    # Spaces
    # ------------------------------------------------------------------

    def init_solution_space(self, name: str, description: str) -> SolutionSpace:
        """Create a space branched from the current state and make it active.

        The new space gets one seed attempt carrying ``description``.

        Raises:
            InvalidSpaceNameError: If ``name`` sanitizes to nothing.
            SpaceExistsError: If the sanitized name is already taken.
            StoreError: If the backend cannot create the lineage.
        """
        sanitized = sanitize_space_name(name)
        action = f"initialize solution space '{sanitized}'"
        with self._lock:
            with self._backend_errors(action):
                previous = self._backend.current_lineage()
                if self._backend.has_lineage(sanitized):
                    raise SpaceExistsError(sanitized)
                self._backend.create_lineage(sanitized)
            try:
                seed = encode_attempt_message(
                    description,
                    {"space": sanitized, "name": name, "created_from": previous},
                )
                with self._backend_errors(action):
                    head = self._backend.snapshot(seed, allow_empty=True)
            except BaseException as exc:
                self._abandon_space(sanitized, previous, exc)
                raise

        logger.info("Created solution space %s from %s", sanitized, previous)
        return SolutionSpace(
            name=name,
            sanitized_name=sanitized,
            created_from=previous,
            description=description,
            head=head,
        )

    def _abandon_space(self, lineage: str, previous: str, error: BaseException) -> None:
        """Return to ``previous`` and drop a half-created space."""
        cleanup_errors: list[BaseException] = []
        for step in (
            lambda: self._backend.switch_active(previous),
            lambda: self._backend.delete_lineage(lineage, force=True),
        ):
            try:
                step()
            except SolspaceError as exc:
                logger.warning("Cleanup of space %s failed: %s", lineage, exc)
                cleanup_errors.append(exc)
        attach_cleanup_errors(error, cleanup_errors)

    def list_solution_spaces(self) -> list[str]:
        """All spaces except the protected default lineages, sorted by name."""
        protected = set(self._config.protected_spaces)
        with self._lock, self._backend_errors("list solution spaces"):
            return [
                name for name in self._backend.list_lineages() if name not in protected
            ]

    def has_space(self, name: str) -> bool:
        with self._lock:
            lineage = self._resolve_space(name)
            with self._backend_errors(f"look up space '{lineage}'"):
                return self._backend.has_lineage(lineage)

    def switch_solution_space(self, name: str) -> None:
        """Make ``name`` the active space.

        Raises:
            SpaceNotFoundError: If the space does not exist.
            StoreError: If the backend refuses (e.g. conflicting local changes).
        """
        with self._lock:
            lineage = self._resolve_space(name)
            with self._backend_errors(f"switch to solution space '{lineage}'"):
                if not self._backend.has_lineage(lineage):
                    raise SpaceNotFoundError(lineage)
                self._backend.switch_active(lineage)
        logger.debug("Switched to solution space %s", lineage)

    def delete_solution_space(self, name: str) -> None:
        """Force-remove a space and its attempts; a missing space is a no-op."""
        with self._lock:
            lineage = self._resolve_space(name)
            with self._backend_errors(f"delete solution space '{lineage}'"):
                self._backend.delete_lineage(lineage, force=True)
        logger.info("Deleted solution space %s", lineage)

    @contextmanager
    def on_space(self, name: str) -> Iterator[SpaceStore]:
        """Hold the handle on ``name`` for a block, then restore the previous space.

        The previous space is restored even when the block raises; a failed
        restore is attached to the block's error as ``cleanup_errors``.
        """
        with self._lock:
            previous = self.current_space
            self.switch_solution_space(name)
            try:
                yield self
            except BaseException as exc:
                try:
                    self._restore(previous)
                except SolspaceError as cleanup_exc:
                    logger.warning("Could not restore space %s: %s", previous, cleanup_exc)
                    attach_cleanup_errors(exc, [cleanup_exc])
                raise
            self._restore(previous)

    def open_worktree(self, path: str | Path, space: str) -> SpaceStore:
        """Open an isolated working copy of ``space`` as a new store handle.

        The handle shares spaces and attempts with this store but has its
        own working files and active space. Close it when done.
        """
        with self._lock:
            lineage = self._resolve_space(space)
            with self._backend_errors(f"open worktree for '{lineage}'"):
                if not self._backend.has_lineage(lineage):
                    raise SpaceNotFoundError(lineage)
                handle = self._backend.open_worktree(Path(path), lineage)
        return SpaceStore(handle, config=self._config)

    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------

    def save_attempt(self, description: str, metadata: dict | None = None) -> str:
        """Snapshot all tracked changes into the active space.

        Returns:
            The new attempt's hash.

        Raises:
            NothingToSnapshotError: If nothing changed since the last attempt.
            StoreError: If metadata is not JSON-serializable or the backend
                rejects the snapshot.
        """
        try:
            message = encode_attempt_message(description, metadata)
        except (TypeError, ValueError) as exc:
            raise StoreError(f"Failed to save attempt: metadata is not serializable: {exc}") from exc
        with self._lock, self._backend_errors("save attempt"):
            attempt_hash = self._backend.snapshot(message)
        logger.debug("Saved attempt %s: %s", attempt_hash[:12], description)
        return attempt_hash

    def get_attempt_history(self, space: str | None = None) -> list[Attempt]:
        """Attempts of the active space (or of ``space``), newest first.

        Reading another space's history does not switch the active space.
        """
        with self._lock:
            lineage = self._resolve_space(space) if space is not None else None
            with self._backend_errors("get attempt history"):
                if lineage is not None and not self._backend.has_lineage(lineage):
                    raise SpaceNotFoundError(lineage)
                records = self._backend.history(lineage)
        return [self._to_attempt(record) for record in records]

    def retrieve_attempt(self, attempt_hash: str) -> Attempt:
        """Look up one attempt, with its diff against the previous attempt.

        Raises:
            AttemptNotFoundError: If no attempt matches ``attempt_hash``.
        """
        with self._lock:
            try:
                record = self._backend.get_snapshot(attempt_hash)
            except BackendError as exc:
                raise AttemptNotFoundError(attempt_hash) from exc
            with self._backend_errors(f"retrieve attempt {attempt_hash}"):
                diff = self._backend.show(record.hash)
        return self._to_attempt(record, diff=diff)

    def compare_attempts(self, hash1: str, hash2: str) -> str:
        """Textual diff between two attempts, in any spaces."""
        with self._lock, self._backend_errors(f"compare attempts {hash1} and {hash2}"):
            return self._backend.diff(hash1, hash2)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release the backend handle."""
        if self._closed:
            return
        self._closed = True
        with self._backend_errors("close store"):
            self._backend.close()

    def __enter__(self) -> SpaceStore:
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"SpaceStore({self._backend!r})"
