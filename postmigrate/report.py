"""Human-readable run summaries."""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from .constants import (
    EXIT_ABORTED,
    EXIT_OK,
    EXIT_PARTIAL_FAILURE,
    EXIT_PRECONDITION,
)
from .contracts import RunStatus, StepOutcome, WorkflowRun, WorkflowState

logger = logging.getLogger(__name__)

OUTCOME_LABELS = {
    StepOutcome.SUCCESS: "OK",
    StepOutcome.SUCCESS_REBOOT_REQUIRED: "OK (restart required)",
    StepOutcome.SKIPPED: "SKIPPED",
    StepOutcome.FAILED: "FAILED",
    StepOutcome.PLANNED: "WOULD RUN",
}

STATUS_LINES = {
    RunStatus.COMPLETED: "Completed successfully.",
    RunStatus.COMPLETED_WITH_ERRORS: "Completed with errors.",
    RunStatus.NOTHING_TO_DO: "No action needed.",
    RunStatus.DRY_RUN: "Dry run: no changes were made.",
    RunStatus.ABORTED_BY_OPERATOR: "Aborted by operator: no changes were made.",
    RunStatus.ABORTED_PRECONDITION: "Aborted: precondition failed, no changes were made.",
    RunStatus.ABORTED_BACKUP_FAILED: "Aborted: backup could not be written, no changes were made.",
}

EXIT_CODES = {
    RunStatus.COMPLETED: EXIT_OK,
    RunStatus.NOTHING_TO_DO: EXIT_OK,
    RunStatus.DRY_RUN: EXIT_OK,
    RunStatus.COMPLETED_WITH_ERRORS: EXIT_PARTIAL_FAILURE,
    RunStatus.ABORTED_BY_OPERATOR: EXIT_ABORTED,
    RunStatus.ABORTED_PRECONDITION: EXIT_PRECONDITION,
    RunStatus.ABORTED_BACKUP_FAILED: EXIT_PRECONDITION,
}


def exit_code_for(run: WorkflowRun) -> int:
    if run.status is None:
        return EXIT_PRECONDITION
    return EXIT_CODES[run.status]


def format_summary(run: WorkflowRun) -> str:
    """Single block naming every step's outcome and the undo path."""
    lines = [f"{run.workflow} run {run.run_id}"]
    if run.status is not None:
        lines.append(STATUS_LINES[run.status])
    if run.message:
        lines.append(run.message)
    if run.unattended:
        lines.append("Confirmation was bypassed (unattended run).")

    for result in run.results:
        label = OUTCOME_LABELS[result.outcome]
        detail = f": {result.detail}" if result.detail else ""
        code = (
            f" [code {result.code}]"
            if result.outcome is StepOutcome.FAILED and result.code is not None
            else ""
        )
        lines.append(f"  - {result.step}: {label}{code}{detail}")

    for item in run.unmapped:
        lines.append(f"  ! not restored: {item}")

    if run.backup is not None and run.workflow.startswith("restore"):
        lines.append(f"Restored from backup: {run.backup.id} at {run.backup.path}")
    elif run.backup is not None:
        lines.append(f"Backup: {run.backup.id} at {run.backup.path}")
        lines.append(f"Undo with: postmigrate restore --backup {run.backup.id}")
    elif run.status not in (RunStatus.NOTHING_TO_DO, RunStatus.DRY_RUN, None):
        lines.append("Backup: none taken")

    if run.reboot_required:
        lines.append("A restart is required to finish the changes.")
    return "\n".join(lines)


class RunReporter:
    """Finalizes runs: writes the summary to the log and the run history."""

    def __init__(self, repository=None, logger: logging.Logger = logger) -> None:
        self.repository = repository
        self._logger = logger

    def _emit(self, run: WorkflowRun) -> WorkflowRun:
        self._logger.info(format_summary(run))
        if self.repository is not None:
            try:
                self.repository.save_run(run)
            except (OSError, sqlite3.Error) as exc:
                self._logger.error(f"Could not record run {run.run_id} in history: {exc}")
        return run

    def complete(
        self, run: WorkflowRun, status: RunStatus, message: Optional[str] = None
    ) -> WorkflowRun:
        run.transition(WorkflowState.REPORTING)
        run.finalize(status, message)
        run.transition(WorkflowState.DONE)
        return self._emit(run)

    def abort(
        self, run: WorkflowRun, status: RunStatus, message: Optional[str] = None
    ) -> WorkflowRun:
        run.transition(WorkflowState.ABORTED)
        run.finalize(status, message)
        return self._emit(run)
