"""Repository abstraction for run history persistence."""

from __future__ import annotations

from typing import Protocol

from ..contracts import WorkflowRun


class RunRepository(Protocol):
    """Protocol for run history backends."""

    def save_run(self, run: WorkflowRun) -> None:
        """Persist a finalized run, replacing any earlier record with its id."""

    def get_run(self, run_id: str) -> WorkflowRun | None:
        """Retrieve a run by id."""

    def list_runs(self) -> list[WorkflowRun]:
        """Return all persisted runs, oldest first."""
