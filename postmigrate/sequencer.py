"""Workflow sequencer: scan, confirm, back up, execute, report."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from .backup import BackupStore
from .config import MatchRules
from .confirm import ConfirmationGate
from .contracts import (
    OperationResult,
    RunStatus,
    Step,
    SystemSnapshot,
    WorkflowRun,
    WorkflowState,
)
from .errors import BackupError, PreconditionError, SystemManagerError
from .executor import StepExecutor
from .history import RunRepository
from .inventory import InventoryProbe
from .logs import run_log_file
from .preconditions import check_preconditions
from .report import RunReporter
from .tasks import Task

logger = logging.getLogger(__name__)


class WorkflowSequencer:
    """Runs tasks through ``init → scanning → awaiting_confirmation →
    backing_up → executing → reporting → done``.

    ``aborted`` is reached when a precondition fails during scanning, the
    operator declines, or the backup cannot be written. When no planned step
    is applicable the run goes straight from scanning to reporting, without
    prompting or backing up. Dry runs report every applicable step as planned
    and never touch the backup store.
    """

    def __init__(
        self,
        probe: InventoryProbe,
        executor: StepExecutor,
        gate: ConfirmationGate,
        store: BackupStore,
        rules: Optional[MatchRules] = None,
        repository: Optional[RunRepository] = None,
        dry_run: bool = False,
        export_drivers: bool = True,
        log_dir: Optional[Path] = None,
        logger: logging.Logger = logger,
    ) -> None:
        self.probe = probe
        self.executor = executor
        self.gate = gate
        self.store = store
        self.rules = rules or MatchRules()
        self.dry_run = dry_run
        self.export_drivers = export_drivers
        self.log_dir = log_dir
        self._logger = logger
        self._reporter = RunReporter(repository, logger=logger)

    # ------------------------------------------------------------------
    def run(self, tasks: Sequence[Task], workflow: Optional[str] = None) -> WorkflowRun:
        run = WorkflowRun(
            workflow=workflow or "+".join(t.name for t in tasks),
            dry_run=self.dry_run,
            unattended=self.gate.unattended,
        )
        if self.log_dir is None:
            return self._run(run, tasks)
        with run_log_file(self.log_dir, run.run_id):
            return self._run(run, tasks)

    def _run(self, run: WorkflowRun, tasks: Sequence[Task]) -> WorkflowRun:
        self._logger.info(f"Starting {run.workflow} run {run.run_id}")
        run.transition(WorkflowState.SCANNING)
        snapshot = self.probe.capture()
        if snapshot.partial:
            run.events.append(f"partial_inventory: {', '.join(sorted(snapshot.errors))}")

        try:
            check_preconditions(snapshot, tasks, self.rules)
        except PreconditionError as exc:
            self._logger.error(str(exc))
            return self._reporter.abort(run, RunStatus.ABORTED_PRECONDITION, str(exc))

        steps = [step for task in tasks for step in task.plan(snapshot, self.rules)]
        applicable = [s for s in steps if self.executor.is_applicable(s, snapshot)]
        if not applicable:
            return self._reporter.complete(
                run, RunStatus.NOTHING_TO_DO, "No action needed: nothing matched."
            )

        if self.dry_run:
            for step in applicable:
                run.record(self.executor.plan(step, snapshot))
            return self._reporter.complete(run, RunStatus.DRY_RUN)

        run.transition(WorkflowState.AWAITING_CONFIRMATION)
        if self.gate.unattended:
            run.events.append("confirmation_bypassed")
        required = max(step.confirmations for step in applicable)
        if not self.gate.confirm(self._question(snapshot, applicable), required):
            run.events.append("confirmation_denied")
            return self._reporter.abort(
                run, RunStatus.ABORTED_BY_OPERATOR, "Operator declined confirmation."
            )

        run.transition(WorkflowState.BACKING_UP)
        if any(step.destructive for step in applicable):
            try:
                run.backup = self.store.save(snapshot)
            except BackupError as exc:
                self._logger.error(f"Backup failed: {exc}")
                return self._reporter.abort(run, RunStatus.ABORTED_BACKUP_FAILED, str(exc))
            if self.export_drivers:
                self._export_driver_store(run)

        run.transition(WorkflowState.EXECUTING)
        for step in applicable:
            run.record(self.executor.run(step, snapshot))

        status = (
            RunStatus.COMPLETED_WITH_ERRORS if run.has_failures else RunStatus.COMPLETED
        )
        return self._reporter.complete(run, status)

    # ------------------------------------------------------------------
    def _question(self, snapshot: SystemSnapshot, steps: Sequence[Step]) -> str:
        lines = [f"About to make {len(steps)} change(s) on {snapshot.hostname or 'this host'}:"]
        lines += [f"  - {step.description or step.name}" for step in steps]
        lines.append("Proceed?")
        return "\n".join(lines)

    def _export_driver_store(self, run: WorkflowRun) -> None:
        destination = self.store.driver_store(run.backup)
        try:
            result = self.executor.system.export_driver_packages(destination)
        except (SystemManagerError, OSError) as exc:
            result = OperationResult(code=1, message=str(exc))
        if result.succeeded:
            run.events.append("driver_store_exported")
        else:
            # The snapshot itself is saved; a missing export only limits restore.
            self._logger.warning(
                f"Driver packages not exported to {destination}: {result.message}"
            )
            run.events.append("driver_store_export_failed")
