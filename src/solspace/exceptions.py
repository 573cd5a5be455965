"""Solspace exception hierarchy.

All Solspace-specific exceptions inherit from SolspaceError.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class SolspaceError(Exception):
    """Base exception for all Solspace errors."""


class BackendError(SolspaceError):
    """Raised when a version-control backend primitive fails."""

    def __init__(self, command: str, detail: str) -> None:
        self.command = command
        self.detail = detail
        super().__init__(f"{command} failed: {detail}")


class BackendTimeoutError(BackendError):
    """Raised when a backend primitive does not finish within its timeout."""

    def __init__(self, command: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(command, f"timed out after {timeout}s")


class EmptySnapshotError(BackendError):
    """Raised when a snapshot is requested but nothing changed."""

    def __init__(self, command: str) -> None:
        super().__init__(command, "nothing to snapshot, working state is unchanged")


class StoreError(SolspaceError):
    """Raised when a solution space or attempt operation fails."""


class InvalidSpaceNameError(StoreError):
    """Raised when a space name sanitizes to nothing."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Invalid solution space name: {name!r}")


class SpaceExistsError(StoreError):
    """Raised when creating a solution space that already exists."""

    def __init__(self, space: str) -> None:
        self.space = space
        super().__init__(f"Solution space already exists: {space}")


class SpaceNotFoundError(StoreError):
    """Raised when a solution space lookup fails."""

    def __init__(self, space: str) -> None:
        self.space = space
        super().__init__(f"Solution space not found: {space}")


class AttemptNotFoundError(StoreError):
    """Raised when an attempt hash lookup fails."""

    def __init__(self, attempt_hash: str) -> None:
        self.attempt_hash = attempt_hash
        super().__init__(f"Attempt not found: {attempt_hash}")


class NothingToSnapshotError(StoreError):
    """Raised when saving an attempt with no tracked changes."""


class PatchError(SolspaceError):
    """Raised when patch creation, application, reversal or combination fails."""


class InvalidPatchNameError(PatchError):
    """Raised when a patch name cannot be used as a file name."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid patch name '{name}': {reason}")


class PatchNotFoundError(PatchError):
    """Raised when a named patch does not exist in the patch directory."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Patch not found: {name}")


class PatchExistsError(PatchError):
    """Raised when writing a patch whose name is already taken."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Patch already exists: {name}. Use overwrite=True to replace it."
        )


class PatchConflictError(PatchError):
    """Raised when a patch does not apply cleanly to the working state."""

    def __init__(self, name: str, detail: str, *, reverse: bool = False) -> None:
        self.name = name
        self.detail = detail
        self.reverse = reverse
        action = "revert" if reverse else "apply"
        super().__init__(f"Cannot {action} patch '{name}': {detail}")


class EvaluationError(SolspaceError):
    """Raised internally when an evaluator fails or returns a non-score.

    Never surfaces from the exploration engine: the attempt is scored 0.
    """


def attach_cleanup_errors(error: BaseException, cleanup_errors: list[BaseException]) -> None:
    """Record secondary cleanup failures on the primary error.

    The errors are stored on ``error.cleanup_errors`` so callers can see
    both failures while the primary error keeps propagating.
    """
    if not cleanup_errors:
        return
    existing = list(getattr(error, "cleanup_errors", []) or [])
    try:
        error.cleanup_errors = existing + list(cleanup_errors)  # type: ignore[attr-defined]
    except AttributeError:
        logger.warning(
            "Could not attach %d cleanup error(s) to %s",
            len(cleanup_errors),
            type(error).__name__,
        )
