"""Solspace: versioned solution spaces for exploring alternative solutions.

Each solution space is an independent line of attempts on a version-control
backend. Solutions can be kept as portable patches, and parallel exploration
paths can be scored and converged into one final solution.
"""

from solspace._version import __version__

# Core entry points
from solspace.store import SpaceStore
from solspace.patches import PatchLibrary
from solspace.explorer import ExplorationEngine

# Backends
from solspace.backends import GitBackend, LocalBackend, SnapshotRecord, VersionBackend

# Models
from solspace.models.attempt import Attempt
from solspace.models.space import SolutionSpace
from solspace.models.solution import (
    BestSolution,
    ConvergedSolution,
    ExplorationReport,
    SolutionComparison,
)

# Configuration
from solspace.models.config import ExplorerConfig, StoreConfig

# Operations
from solspace.operations.naming import sanitize_space_name, validate_patch_name
from solspace.operations.selection import clamp_score, select_best

# Exceptions
from solspace.exceptions import (
    AttemptNotFoundError,
    BackendError,
    BackendTimeoutError,
    EmptySnapshotError,
    EvaluationError,
    InvalidPatchNameError,
    InvalidSpaceNameError,
    NothingToSnapshotError,
    PatchConflictError,
    PatchError,
    PatchExistsError,
    PatchNotFoundError,
    SolspaceError,
    SpaceExistsError,
    SpaceNotFoundError,
    StoreError,
)

__all__ = [
    "__version__",
    "SpaceStore",
    "PatchLibrary",
    "ExplorationEngine",
    # Backends
    "VersionBackend",
    "GitBackend",
    "LocalBackend",
    "SnapshotRecord",
    # Models
    "Attempt",
    "SolutionSpace",
    "BestSolution",
    "ConvergedSolution",
    "ExplorationReport",
    "SolutionComparison",
    # Configuration
    "StoreConfig",
    "ExplorerConfig",
    # Operations
    "sanitize_space_name",
    "validate_patch_name",
    "clamp_score",
    "select_best",
    # Exceptions
    "SolspaceError",
    "BackendError",
    "BackendTimeoutError",
    "EmptySnapshotError",
    "StoreError",
    "InvalidSpaceNameError",
    "SpaceExistsError",
    "SpaceNotFoundError",
    "AttemptNotFoundError",
    "NothingToSnapshotError",
    "PatchError",
    "InvalidPatchNameError",
    "PatchNotFoundError",
    "PatchExistsError",
    "PatchConflictError",
    "EvaluationError",
]
