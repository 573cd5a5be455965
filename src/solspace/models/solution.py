"""Exploration result models.

BestSolution, ConvergedSolution, SolutionComparison and ExplorationReport
are returned by the ExplorationEngine.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class BestSolution(BaseModel):
    """The highest-scoring attempt of one solution space."""

    space: str
    solution: Any = None
    score: float = 0.0
    description: str = ""
    hash: str

    def source_entry(self) -> dict[str, Any]:
        """Provenance record stored on converged attempts."""
        return {"space": self.space, "hash": self.hash, "score": self.score}


class ConvergedSolution(BaseModel):
    """A synthesized solution and the best-of-set it was built from."""

    solution: Any = None
    hash: str
    evaluation: float = 0.0
    source_solutions: list[BestSolution] = Field(default_factory=list)

    def pprint(self) -> None:
        """Pretty-print the converged solution and its sources."""
        from solspace.formatting import pprint_converged

        pprint_converged(self)


class SolutionComparison(BaseModel):
    """Diff between two attempts, identified by hash."""

    solution1: str
    solution2: str
    diff: str


class ExplorationReport(BaseModel):
    """Outcome of ``ExplorationEngine.explore()``.

    Attributes:
        task: The task description the run was seeded with.
        spaces: Exploration space names in path order.
        iterations: Number of attempts recorded per space.
        best: Best attempt of every listed space after the run.
        converged: Whether any best score reached the convergence threshold.
    """

    task: str
    spaces: list[str] = Field(default_factory=list)
    iterations: dict[str, int] = Field(default_factory=dict)
    best: list[BestSolution] = Field(default_factory=list)
    converged: bool = False

    def pprint(self) -> None:
        """Pretty-print the best-of table for this run."""
        from solspace.formatting import pprint_best_solutions

        pprint_best_solutions(self.best)
