"""Solution space domain model for Solspace."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class SolutionSpace(BaseModel):
    """SDK-facing solution space information.

    Returned by ``SpaceStore.init_solution_space()``. ``created_from`` is the
    space that was active when this one was created.
    """

    name: str
    sanitized_name: str
    created_from: Optional[str] = None
    description: str = ""
    head: Optional[str] = None

    def __str__(self) -> str:
        return self.sanitized_name
