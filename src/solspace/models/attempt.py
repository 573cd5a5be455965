"""Attempt domain model for Solspace.

Attempt is the SDK-facing model returned when querying attempt history.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class Attempt(BaseModel):
    """An immutable recorded state within a solution space.

    Not an ORM model -- used for data transfer only. ``diff`` is only
    populated by ``SpaceStore.retrieve_attempt()``.
    """

    hash: str
    timestamp: datetime
    description: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    diff: Optional[str] = None

    @property
    def evaluation(self) -> float:
        """Recorded evaluation score, 0.0 when the attempt was never scored."""
        from solspace.operations.selection import attempt_score

        return attempt_score(self)

    @property
    def solution(self) -> Any:
        """The recorded solution value, if the attempt carries one."""
        return self.metadata.get("solution")

    def __str__(self) -> str:
        short_hash = self.hash[:8]
        desc = self.description
        if len(desc) > 60:
            desc = desc[:57] + "..."
        return f"{short_hash} {desc}"

    def __repr__(self) -> str:
        return f"Attempt({self.hash[:8]} {self.description!r})"

    def pprint(self) -> None:
        """Pretty-print this attempt using rich formatting."""
        from solspace.formatting import pprint_attempt

        pprint_attempt(self)
