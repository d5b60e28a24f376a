"""In-memory implementation of the run repository."""

from __future__ import annotations

from typing import Dict

from ..contracts import WorkflowRun
from .repository import RunRepository


class InMemoryRunRepository(RunRepository):
    """Store runs in local memory.

    Useful for tests; data is not persisted across process restarts.
    """

    def __init__(self) -> None:
        self._runs: Dict[str, WorkflowRun] = {}

    def save_run(self, run: WorkflowRun) -> None:
        self._runs[run.run_id] = run.model_copy(deep=True)

    def get_run(self, run_id: str) -> WorkflowRun | None:
        return self._runs.get(run_id)

    def list_runs(self) -> list[WorkflowRun]:
        return sorted(self._runs.values(), key=lambda r: r.started_at)
