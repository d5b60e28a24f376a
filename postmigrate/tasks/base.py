"""Task descriptors: named planners that turn a snapshot into ordered steps."""

from __future__ import annotations

from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..config import MatchRules
from ..contracts import Step, SystemSnapshot

Planner = Callable[[SystemSnapshot, MatchRules], List[Step]]


class Task(BaseModel):
    """A cleanup behaviour exposed as a CLI command.

    ``conflicts`` lists software patterns that must not be installed when the
    task runs; ``resolves`` lists software patterns the task removes, so a
    later task's conflict is satisfied within the same run. ``members``
    makes the task a composite of other registered tasks.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    description: str = ""
    planner: Optional[Planner] = None
    members: List[str] = Field(default_factory=list)
    conflicts: List[str] = Field(default_factory=list)
    resolves: List[str] = Field(default_factory=list)
    cleanup: bool = True

    def plan(self, snapshot: SystemSnapshot, rules: MatchRules) -> List[Step]:
        if self.planner is None:
            return []
        return list(self.planner(snapshot, rules))
