"""Configuration models for Solspace.

StoreConfig holds per-store settings shared by the store and patch layers.
ExplorerConfig holds the in-memory configuration of an exploration run.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

DEFAULT_PROTECTED_SPACES: tuple[str, ...] = ("main", "master")


def _constant_evaluator(solution: Any) -> float:
    return 1.0


class StoreConfig(BaseModel):
    """Per-store configuration."""

    protected_spaces: tuple[str, ...] = DEFAULT_PROTECTED_SPACES
    patch_dir: str = ".patches"
    timeout: Optional[float] = Field(default=60.0, gt=0)  # None = no timeout
    author_name: str = "solspace"
    author_email: str = "solspace@localhost"


class ExplorerConfig(BaseModel):
    """Configuration for an exploration run.

    Attributes:
        num_explorations: Number of exploration spaces to create.
        convergence_threshold: Score at which an exploration path stops early
            and the run counts as converged.
        max_iterations: Maximum attempts per path in ``explore()``.
        evaluator: Scores a solution; results are clamped to [0, 1].
            May return an awaitable.
        path_prefix: Space name prefix; spaces are ``<prefix>-<i>``.
        convergence_space: Space that receives converged attempts.
        attempt_file: Tracked file the attempt record is written to.
        max_workers: Thread pool size for parallel exploration
            (None = one worker per path).
    """

    model_config = {"arbitrary_types_allowed": True}

    num_explorations: int = Field(default=3, ge=1)
    convergence_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    max_iterations: int = Field(default=5, ge=1)
    evaluator: Callable[[Any], Any] = _constant_evaluator
    path_prefix: str = "exploration-path"
    convergence_space: str = "converged-solution"
    attempt_file: str = "solution.json"
    max_workers: Optional[int] = Field(default=None, ge=1)
