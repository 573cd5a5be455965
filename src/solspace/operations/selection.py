"""Score normalization and best-attempt selection.

Pure functions: no backend access, no side effects.
"""

from __future__ import annotations

import math
import numbers
from typing import TYPE_CHECKING, Any

from solspace.exceptions import EvaluationError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from solspace.models.attempt import Attempt


def clamp_score(value: Any) -> float:
    """Clamp an evaluator result into ``[0, 1]``.

    Raises:
        EvaluationError: If the value is not a real number or is NaN.
    """
    if not isinstance(value, numbers.Real):
        raise EvaluationError(
            f"Evaluator returned {type(value).__name__}, expected a number"
        )
    score = float(value)
    if math.isnan(score):
        raise EvaluationError("Evaluator returned NaN")
    return max(0.0, min(1.0, score))


def attempt_score(attempt: Attempt) -> float:
    """Recorded evaluation of an attempt; 0.0 when missing or malformed."""
    value = attempt.metadata.get("evaluation")
    try:
        return clamp_score(value)
    except EvaluationError:
        return 0.0


def select_best(history: Sequence[Attempt]) -> Attempt | None:
    """Pick the attempt with the strictly highest evaluation.

    ``history`` is newest-first, so on ties the first encountered (the most
    recent) attempt wins. Returns None for an empty history.
    """
    if not history:
        return None
    best = history[0]
    best_score = attempt_score(best)
    for attempt in history[1:]:
        score = attempt_score(attempt)
        if score > best_score:
            best, best_score = attempt, score
    return best
