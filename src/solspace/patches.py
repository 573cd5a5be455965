"""PatchLibrary -- solutions as named, portable patch files.

A solution is produced by running a modifier in a disposable space,
snapshotting the result and keeping the snapshot's patch as
``<patch_dir>/<name>.patch``. Patches can then be applied to, reverted
from, compared, and combined against any working state.

Every operation that creates a disposable space returns to the space it
started from and removes the disposable space, whether it succeeds or not.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Callable, TypeVar

from solspace.exceptions import (
    BackendError,
    EmptySnapshotError,
    PatchConflictError,
    PatchError,
    PatchExistsError,
    PatchNotFoundError,
    SolspaceError,
    attach_cleanup_errors,
)
from solspace.operations.diff import unified_text_diff
from solspace.operations.naming import validate_patch_name

if TYPE_CHECKING:
    from solspace.store import SpaceStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

PATCH_SUFFIX = ".patch"
SOLUTION_PREFIX = "solution/"
COMBINE_PREFIX = "combine/"


class PatchLibrary:
    """Named solution patches kept next to a SpaceStore's working copy.

    Example::

        library = PatchLibrary(store)

        def use_memo(root: Path) -> None:
            (root / "fib.py").write_text(MEMO_SOURCE)

        library.create_solution("memo", use_memo)
        library.apply_solution("memo")
    """

    def __init__(self, store: SpaceStore, patch_dir: str | Path | None = None) -> None:
        self._store = store
        if patch_dir is None:
            patch_dir = store.root / store.config.patch_dir
        self._patch_dir = Path(patch_dir)
        self._patch_dir.mkdir(parents=True, exist_ok=True)
        self._write_lock = threading.Lock()
        self._exclude_from_store()

    def _exclude_from_store(self) -> None:
        """Untrack the patch directory when it lives inside the working copy."""
        try:
            rel = self._patch_dir.resolve().relative_to(self._store.root)
        except ValueError:
            return
        if not rel.parts:
            raise PatchError("Patch directory cannot be the working-copy root")
        try:
            with self._store.lock:
                self._store.backend.add_exclude(rel.as_posix())
        except BackendError as exc:
            raise PatchError(f"Failed to exclude patch directory {self._patch_dir}: {exc}") from exc

    @property
    def patch_dir(self) -> Path:
        return self._patch_dir

    @property
    def store(self) -> SpaceStore:
        return self._store

    # ------------------------------------------------------------------
    # Patch files
    # ------------------------------------------------------------------

    def patch_path(self, name: str) -> Path:
        """Location of the patch named ``name``."""
        validate_patch_name(name)
        return self._patch_dir / f"{name}{PATCH_SUFFIX}"

    def list_solutions(self) -> list[str]:
        """Names of all stored patches, sorted."""
        return sorted(p.stem for p in self._patch_dir.glob(f"*{PATCH_SUFFIX}") if p.is_file())

    def has_solution(self, name: str) -> bool:
        return self.patch_path(name).is_file()

    def read_solution(self, name: str) -> bytes:
        """Raw bytes of a stored patch.

        Raises:
            PatchNotFoundError: If no patch named ``name`` exists.
        """
        path = self.patch_path(name)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise PatchNotFoundError(name) from None

    def delete_solution(self, name: str) -> None:
        path = self.patch_path(name)
        with self._write_lock:
            try:
                path.unlink()
            except FileNotFoundError:
                raise PatchNotFoundError(name) from None
        logger.info("Deleted solution patch %s", name)

    def _check_writable(self, name: str, overwrite: bool) -> Path:
        path = self.patch_path(name)
        if path.exists() and not overwrite:
            raise PatchExistsError(name)
        return path

    def _write(self, name: str, data: bytes, overwrite: bool) -> Path:
        with self._write_lock:
            path = self._check_writable(name, overwrite)
            path.write_bytes(data)
        logger.info("Wrote solution patch %s (%d bytes)", path, len(data))
        return path

    # ------------------------------------------------------------------
    # Disposable spaces
    # ------------------------------------------------------------------

    def _cleanup(self, home: str, disposable: str) -> list[BaseException]:
        """Discard edits, return home and drop the disposable space.

        Every step runs even when an earlier one fails. Failures are
        logged and returned.
        """
        backend = self._store.backend
        steps: list[tuple[str, Callable[[], None]]] = [
            ("discard changes", backend.discard_changes),
            (f"switch back to {home}", lambda: backend.switch_active(home)),
            (f"delete {disposable}", lambda: backend.delete_lineage(disposable, force=True)),
        ]
        errors: list[BaseException] = []
        for label, step in steps:
            try:
                step()
            except SolspaceError as exc:
                logger.warning("Cleanup step '%s' failed: %s", label, exc)
                errors.append(exc)
        return errors

    def _in_disposable_space(self, disposable: str, action: str, work: Callable[[], T]) -> T:
        """Run ``work`` on a fresh space named ``disposable``, then clean up.

        The working state must be clean. Errors from ``work`` propagate
        unchanged (backend failures are raised as PatchError) after cleanup,
        with any cleanup failures attached as ``cleanup_errors``.
        """
        backend = self._store.backend
        with self._store.lock:
            try:
                home = backend.current_lineage()
                if backend.is_dirty():
                    raise PatchError(f"Cannot {action}: working state has uncommitted changes")
                if backend.has_lineage(disposable):
                    logger.warning("Removing stale disposable space %s", disposable)
                    backend.delete_lineage(disposable, force=True)
                backend.create_lineage(disposable)
            except BackendError as exc:
                raise PatchError(f"Failed to {action}: {exc}") from exc

            try:
                try:
                    result = work()
                except EmptySnapshotError as exc:
                    raise PatchError(f"Failed to {action}: the result changed nothing") from exc
                except BackendError as exc:
                    raise PatchError(f"Failed to {action}: {exc}") from exc
            except BaseException as exc:
                attach_cleanup_errors(exc, self._cleanup(home, disposable))
                raise

            errors = self._cleanup(home, disposable)
            if errors:
                error = PatchError(f"Failed to {action}: could not restore space '{home}'")
                attach_cleanup_errors(error, errors)
                raise error from errors[0]
            return result

    # ------------------------------------------------------------------
    # Solutions
    # ------------------------------------------------------------------

    def create_solution(
        self,
        name: str,
        modifier: Callable[[Path], object],
        *,
        overwrite: bool = False,
    ) -> Path:
        """Run ``modifier`` in a disposable space and keep its changes as a patch.

        ``modifier`` receives the working-copy root and edits files under it.
        The working state and active space are unchanged afterwards.

        Returns:
            Path of the written patch file.

        Raises:
            PatchExistsError: If the name is taken and ``overwrite`` is False.
            PatchError: If the working state is dirty, the modifier changed
                nothing, or a backend step failed.
            Exception: Whatever ``modifier`` raises, after cleanup.
        """
        self._check_writable(name, overwrite)
        backend = self._store.backend
        root = self._store.root

        def build() -> bytes:
            modifier(root)
            ref = backend.snapshot(f"Solution: {name}")
            return backend.extract_patch(ref)

        data = self._in_disposable_space(f"{SOLUTION_PREFIX}{name}", f"create solution '{name}'", build)
        return self._write(name, data, overwrite)

    def apply_solution(self, name: str) -> None:
        """Apply a stored patch to the current working state (no snapshot).

        Raises:
            PatchNotFoundError: If the patch does not exist.
            PatchConflictError: If it does not apply cleanly; nothing is written.
        """
        data = self.read_solution(name)
        with self._store.lock:
            try:
                self._store.backend.apply_patch(data)
            except BackendError as exc:
                raise PatchConflictError(name, exc.detail) from exc
        logger.info("Applied solution patch %s", name)

    def revert_solution(self, name: str) -> None:
        """Undo a previously applied patch in the current working state."""
        data = self.read_solution(name)
        with self._store.lock:
            try:
                self._store.backend.apply_patch(data, reverse=True)
            except BackendError as exc:
                raise PatchConflictError(name, exc.detail, reverse=True) from exc
        logger.info("Reverted solution patch %s", name)

    def compare_solutions(self, name1: str, name2: str) -> str:
        """Unified diff between the text of two patch files."""
        text1 = self.read_solution(name1).decode("utf-8", "replace")
        text2 = self.read_solution(name2).decode("utf-8", "replace")
        return unified_text_diff(text1, text2, f"{name1}{PATCH_SUFFIX}", f"{name2}{PATCH_SUFFIX}")

    def combine_solutions(
        self,
        names: list[str],
        output_name: str,
        *,
        overwrite: bool = False,
    ) -> Path:
        """Apply several patches in order in a disposable space and keep the result.

        Patches are applied in the order given; each must apply cleanly on
        top of the ones before it.

        Raises:
            PatchNotFoundError: If an input patch does not exist.
            PatchConflictError: If an input patch does not apply; the
                working state and active space are unchanged.
        """
        if not names:
            raise PatchError("Cannot combine solutions: no input patches given")
        patches = [(name, self.read_solution(name)) for name in names]
        self._check_writable(output_name, overwrite)
        backend = self._store.backend

        def build() -> bytes:
            for name, data in patches:
                try:
                    backend.apply_patch(data)
                except BackendError as exc:
                    raise PatchConflictError(name, exc.detail) from exc
            ref = backend.snapshot(f"Combined solution: {output_name}")
            return backend.extract_patch(ref)

        data = self._in_disposable_space(
            f"{COMBINE_PREFIX}{output_name}",
            f"combine solutions into '{output_name}'",
            build,
        )
        return self._write(output_name, data, overwrite)

    def __repr__(self) -> str:
        return f"PatchLibrary({str(self._patch_dir)!r})"
