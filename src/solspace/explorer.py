"""ExplorationEngine -- parallel solution paths, scoring and convergence.

An exploration run branches ``num_explorations`` spaces from a common base,
records scored attempts in each, selects the best attempt per space and
synthesizes a converged solution from them in a dedicated space.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import json
import logging
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Union

from solspace.exceptions import SolspaceError, StoreError, attach_cleanup_errors
from solspace.models.config import ExplorerConfig
from solspace.models.solution import (
    BestSolution,
    ConvergedSolution,
    ExplorationReport,
    SolutionComparison,
)
from solspace.operations.selection import attempt_score, clamp_score, select_best

if TYPE_CHECKING:
    from solspace.models.attempt import Attempt
    from solspace.store import SpaceStore

logger = logging.getLogger(__name__)

Strategy = Callable[[list[BestSolution]], Union[Any, Awaitable[Any]]]
Proposer = Callable[[str, int, Union[BestSolution, None]], Union[Any, Awaitable[Any]]]

TASK_SPACE_SEED = "{task} - Exploration Path {index}"
CONVERGED_SPACE_SEED = "Final converged solution"


async def _await(value: Awaitable[Any]) -> Any:
    return await value


def _resolve(value: Any) -> Any:
    """Run an awaitable to completion; plain values pass through.

    Inside a running event loop the awaitable is driven on a fresh loop in
    a worker thread, since ``asyncio.run`` refuses to nest.
    """
    if not inspect.isawaitable(value):
        return value
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(_await(value))
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, _await(value)).result()


class ExplorationEngine:
    """Runs exploration paths over a SpaceStore and converges their results.

    Example::

        engine = ExplorationEngine(store, ExplorerConfig(num_explorations=2, evaluator=score))
        engine.initialize_exploration_spaces("Implement fibonacci")
        store.switch_solution_space("exploration-path-1")
        engine.save_attempt("recursive", source_a)
        ...
        converged = engine.create_converged_solution("merged", pick_best)
    """

    def __init__(self, store: SpaceStore, config: ExplorerConfig | None = None) -> None:
        self._store = store
        self._config = config or ExplorerConfig()
        self._base_space: str | None = None

    @property
    def store(self) -> SpaceStore:
        return self._store

    @property
    def config(self) -> ExplorerConfig:
        return self._config

    @property
    def base_space(self) -> str | None:
        """Space the exploration paths were branched from, once initialized."""
        return self._base_space

    # ------------------------------------------------------------------
    # Spaces
    # ------------------------------------------------------------------

    def initialize_exploration_spaces(self, task_description: str) -> list[str]:
        """Create ``num_explorations`` spaces branched from the active space.

        Returns the space names in path order; the last one stays active.
        """
        with self._store.lock:
            base = self._store.current_space
            self._base_space = base
            spaces: list[str] = []
            for index in range(1, self._config.num_explorations + 1):
                if self._store.current_space != base:
                    self._store.switch_solution_space(base)
                info = self._store.init_solution_space(
                    f"{self._config.path_prefix}-{index}",
                    TASK_SPACE_SEED.format(task=task_description, index=index),
                )
                spaces.append(info.sanitized_name)
        logger.info("Initialized %d exploration spaces from %s", len(spaces), base)
        return spaces

    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------

    def evaluate_solution(self, solution: Any) -> float:
        """Score a solution with the configured evaluator, clamped to [0, 1].

        Any evaluator failure, non-numeric or NaN result scores 0.
        """
        try:
            return clamp_score(_resolve(self._config.evaluator(solution)))
        except Exception as exc:
            logger.warning("Evaluation failed, scoring 0: %s", exc)
            return 0.0

    def _record_attempt(
        self,
        description: str,
        solution: Any,
        metadata: dict | None,
    ) -> tuple[str, float]:
        metadata = dict(metadata or {})
        evaluation = self.evaluate_solution(solution)
        timestamp = datetime.now(timezone.utc).isoformat()
        iteration = int(metadata.get("iteration") or 0) + 1
        enriched = {
            **metadata,
            "solution": solution,
            "evaluation": evaluation,
            "timestamp": timestamp,
            "iteration": iteration,
        }
        record = {
            "description": description,
            "solution": solution,
            "evaluation": evaluation,
            "iteration": iteration,
            "timestamp": timestamp,
        }
        try:
            content = json.dumps(record, indent=2, sort_keys=True, ensure_ascii=False) + "\n"
        except (TypeError, ValueError) as exc:
            raise StoreError(f"Failed to save attempt: solution is not serializable: {exc}") from exc

        with self._store.lock:
            target = self._store.root / self._config.attempt_file
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            attempt_hash = self._store.save_attempt(description, enriched)
        logger.info("Recorded attempt %s scoring %.3f", attempt_hash[:12], evaluation)
        return attempt_hash, evaluation

    def save_attempt(self, description: str, solution: Any, metadata: dict | None = None) -> str:
        """Evaluate ``solution`` and record it in the active space.

        Returns:
            The attempt hash.
        """
        attempt_hash, _ = self._record_attempt(description, solution, metadata)
        return attempt_hash

    # ------------------------------------------------------------------
    # Selection and convergence
    # ------------------------------------------------------------------

    def get_best_solutions(self) -> list[BestSolution]:
        """The highest-scoring attempt of every listed space.

        Histories are read without switching the active space.
        """
        best: list[BestSolution] = []
        with self._store.lock:
            for space in self._store.list_solution_spaces():
                top = select_best(self._store.get_attempt_history(space))
                if top is None:
                    continue
                best.append(
                    BestSolution(
                        space=space,
                        solution=top.solution,
                        score=attempt_score(top),
                        description=top.description,
                        hash=top.hash,
                    )
                )
        return best

    def has_converged(self, best: list[BestSolution] | None = None) -> bool:
        """Whether any best score reaches the convergence threshold."""
        if best is None:
            best = self.get_best_solutions()
        return any(b.score >= self._config.convergence_threshold for b in best)

    def _enter_convergence_space(self) -> None:
        space = self._config.convergence_space
        if self._store.has_space(space):
            self._store.switch_solution_space(space)
            return
        base = self._base_space
        if base is not None and self._store.current_space != base:
            self._store.switch_solution_space(base)
        self._store.init_solution_space(space, CONVERGED_SPACE_SEED)

    def create_converged_solution(self, description: str, strategy: Strategy) -> ConvergedSolution:
        """Synthesize one solution from the best of every space.

        The result is recorded in the convergence space with provenance of
        the best attempts it was built from. If anything fails, the
        previously active space is restored before the error propagates.
        """
        with self._store.lock:
            best = self.get_best_solutions()
            previous = self._store.current_space
            try:
                self._enter_convergence_space()
                solution = _resolve(strategy(best))
                attempt_hash, evaluation = self._record_attempt(
                    description,
                    solution,
                    {"source_solutions": [b.source_entry() for b in best]},
                )
            except BaseException as exc:
                try:
                    if self._store.current_space != previous:
                        self._store.switch_solution_space(previous)
                except SolspaceError as cleanup_exc:
                    logger.warning("Could not restore space %s: %s", previous, cleanup_exc)
                    attach_cleanup_errors(exc, [cleanup_exc])
                raise

        logger.info(
            "Converged %d solution(s) into %s (score %.3f)",
            len(best),
            attempt_hash[:12],
            evaluation,
        )
        return ConvergedSolution(
            solution=solution,
            hash=attempt_hash,
            evaluation=evaluation,
            source_solutions=best,
        )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def compare_solutions(self, hashes: list[str]) -> list[SolutionComparison]:
        """Diff every pair of attempts, in index order."""
        comparisons: list[SolutionComparison] = []
        for i in range(len(hashes)):
            for j in range(i + 1, len(hashes)):
                comparisons.append(
                    SolutionComparison(
                        solution1=hashes[i],
                        solution2=hashes[j],
                        diff=self._store.compare_attempts(hashes[i], hashes[j]),
                    )
                )
        return comparisons

    def get_exploration_history(self) -> dict[str, list[Attempt]]:
        """Attempt history of every listed space."""
        with self._store.lock:
            return {
                space: self._store.get_attempt_history(space)
                for space in self._store.list_solution_spaces()
            }

    # ------------------------------------------------------------------
    # Driving a run
    # ------------------------------------------------------------------

    def _explore_path(self, space: str, propose: Proposer) -> int:
        """Record up to ``max_iterations`` proposals in the active space.

        Stops once an attempt reaches the convergence threshold. Returns the
        number of attempts recorded.
        """
        best: BestSolution | None = None
        for iteration in range(1, self._config.max_iterations + 1):
            solution = _resolve(propose(space, iteration, best))
            attempt_hash, score = self._record_attempt(
                f"{space} iteration {iteration}",
                solution,
                {"iteration": iteration - 1, "space": space},
            )
            if best is None or score > best.score:
                best = BestSolution(
                    space=space,
                    solution=solution,
                    score=score,
                    description=f"{space} iteration {iteration}",
                    hash=attempt_hash,
                )
            if score >= self._config.convergence_threshold:
                logger.info("Path %s converged at iteration %d", space, iteration)
                return iteration
        return self._config.max_iterations

    def _explore_parallel(
        self,
        spaces: list[str],
        propose: Proposer,
        worktree_root: Path | None,
    ) -> dict[str, int]:
        # A lineage cannot be open in two working copies at once.
        if self._base_space is not None and self._store.current_space != self._base_space:
            self._store.switch_solution_space(self._base_space)

        root = worktree_root or Path(tempfile.mkdtemp(prefix="solspace-"))
        engines: dict[str, ExplorationEngine] = {}
        try:
            for space in spaces:
                handle = self._store.open_worktree(root / space, space)
                engines[space] = ExplorationEngine(handle, self._config)
            workers = self._config.max_workers or len(spaces)
            with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as pool:
                futures = {
                    space: pool.submit(engine._explore_path, space, propose)
                    for space, engine in engines.items()
                }
                iterations = {space: future.result() for space, future in futures.items()}
        except BaseException as exc:
            attach_cleanup_errors(exc, self._close_worktrees(engines))
            if worktree_root is None:
                shutil.rmtree(root, ignore_errors=True)
            raise

        errors = self._close_worktrees(engines)
        if worktree_root is None:
            shutil.rmtree(root, ignore_errors=True)
        if errors:
            error = StoreError(f"Failed to close {len(errors)} exploration worktree(s)")
            attach_cleanup_errors(error, errors)
            raise error from errors[0]
        return iterations

    def _close_worktrees(self, engines: dict[str, ExplorationEngine]) -> list[BaseException]:
        errors: list[BaseException] = []
        for space, engine in engines.items():
            try:
                engine.store.close()
            except SolspaceError as exc:
                logger.warning("Could not close worktree for %s: %s", space, exc)
                errors.append(exc)
        engines.clear()
        return errors

    def explore(
        self,
        task_description: str,
        propose: Proposer,
        *,
        parallel: bool = False,
        worktree_root: str | Path | None = None,
    ) -> ExplorationReport:
        """Run a full exploration.

        Initializes the exploration spaces, then asks ``propose(space,
        iteration, best)`` for up to ``max_iterations`` solutions per space,
        recording and scoring each. ``best`` is the best attempt of that
        path so far, or None on the first iteration. A path stops early
        once an attempt reaches the convergence threshold.

        With ``parallel=True`` every path runs in its own worktree on a
        thread pool. Worktrees go under ``worktree_root`` (a temporary
        directory by default) and are removed afterwards.
        """
        spaces = self.initialize_exploration_spaces(task_description)
        if parallel:
            iterations = self._explore_parallel(
                spaces,
                propose,
                Path(worktree_root) if worktree_root is not None else None,
            )
        else:
            iterations = {}
            for space in spaces:
                with self._store.on_space(space):
                    iterations[space] = self._explore_path(space, propose)

        best = [b for b in self.get_best_solutions() if b.space in spaces]
        report = ExplorationReport(
            task=task_description,
            spaces=spaces,
            iterations=iterations,
            best=best,
            converged=self.has_converged(best),
        )
        logger.info(
            "Exploration of %d path(s) finished, converged=%s",
            len(spaces),
            report.converged,
        )
        return report
