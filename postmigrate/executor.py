"""Step execution engine for postmigrate workflows."""

from __future__ import annotations

import logging
from typing import Any

from .constants import REBOOT_REQUIRED_CODES
from .contracts import (
    OperationResult,
    Step,
    StepContext,
    StepOutcome,
    StepResult,
    SystemSnapshot,
)
from .errors import SystemManagerError
from .systems.base import SystemManager

logger = logging.getLogger(__name__)


def outcome_for(result: OperationResult) -> StepOutcome:
    """Map a utility exit code onto a step outcome."""
    if result.code == 0:
        return StepOutcome.SUCCESS
    if result.code in REBOOT_REQUIRED_CODES:
        return StepOutcome.SUCCESS_REBOOT_REQUIRED
    return StepOutcome.FAILED


class StepExecutor:
    """Runs a single step against live state.

    One mutation attempt per call and no automatic retries; whether to retry
    is the caller's decision.
    """

    def __init__(
        self,
        system: SystemManager,
        config: Any = None,
        logger: logging.Logger = logger,
    ) -> None:
        self.system = system
        self.config = config
        self._logger = logger

    def context(self, snapshot: SystemSnapshot) -> StepContext:
        return StepContext(system=self.system, snapshot=snapshot, config=self.config)

    def is_applicable(self, step: Step, snapshot: SystemSnapshot) -> bool:
        """Evaluate the predicate; a failing query counts as applicable.

        The failure then surfaces from ``run`` as a failed result instead of
        silently dropping the step.
        """
        try:
            return bool(step.predicate(self.context(snapshot)))
        except (SystemManagerError, OSError) as exc:
            self._logger.warning(f"Could not evaluate {step.name}: {exc}")
            return True

    def plan(self, step: Step, snapshot: SystemSnapshot) -> StepResult:
        """Report what ``run`` would do without calling the action."""
        if not self.is_applicable(step, snapshot):
            return StepResult(step=step.name, outcome=StepOutcome.SKIPPED, detail="not applicable")
        detail = f"would {step.description or step.name}"
        if not step.idempotent:
            detail += " (repeats on every run)"
        return StepResult(step=step.name, outcome=StepOutcome.PLANNED, detail=detail)

    def run(self, step: Step, snapshot: SystemSnapshot) -> StepResult:
        ctx = self.context(snapshot)
        try:
            applicable = step.predicate(ctx)
        except (SystemManagerError, OSError) as exc:
            self._logger.error(f"Step {step.name} failed evaluating its predicate: {exc}")
            return StepResult(
                step=step.name,
                outcome=StepOutcome.FAILED,
                detail=str(exc),
                code=getattr(exc, "code", None),
            )
        if not applicable:
            self._logger.info(f"Step {step.name}: nothing to do")
            return StepResult(step=step.name, outcome=StepOutcome.SKIPPED, detail="not applicable")

        self._logger.info(f"Running step {step.name}")
        try:
            result = step.action(ctx)
        except (SystemManagerError, OSError) as exc:
            self._logger.error(f"Step {step.name} failed: {exc}")
            return StepResult(
                step=step.name,
                outcome=StepOutcome.FAILED,
                detail=str(exc),
                code=getattr(exc, "code", None),
            )

        outcome = outcome_for(result)
        if result.timed_out:
            self._logger.error(f"Step {step.name} timed out: {result.message}")
            detail = f"timed out: {result.message}" if result.message else "timed out"
            return StepResult(
                step=step.name, outcome=StepOutcome.FAILED, detail=detail, code=result.code
            )
        if outcome is StepOutcome.FAILED:
            self._logger.error(
                f"Step {step.name} failed with code {result.code}: {result.message}"
            )
        elif outcome is StepOutcome.SUCCESS_REBOOT_REQUIRED:
            self._logger.info(f"Step {step.name} succeeded; restart required")
        else:
            self._logger.info(f"Step {step.name} succeeded")
        return StepResult(
            step=step.name, outcome=outcome, detail=result.message, code=result.code
        )
