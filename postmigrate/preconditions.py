"""Checks that must pass before any mutation is attempted."""

from __future__ import annotations

from typing import Iterable, Sequence

from .config import MatchRules
from .contracts import SystemSnapshot
from .errors import PreconditionError
from .systems.base import SystemManager
from .tasks import Task
from .tasks.matching import glob_match

SUPPORTED_PLATFORMS = ("windows", "linux", "inmemory")


def check_platform(backend: str) -> None:
    if backend not in SUPPORTED_PLATFORMS:
        raise PreconditionError(
            f"Unsupported platform '{backend}': postmigrate runs on Windows and Linux"
        )


def check_elevated(system: SystemManager) -> None:
    if not system.is_elevated():
        who = "an Administrator" if system.platform == "windows" else "root"
        raise PreconditionError(f"postmigrate must run as {who}")


def check_hypervisor(
    snapshot: SystemSnapshot, tasks: Iterable[Task], rules: MatchRules
) -> None:
    """Refuse to strip the drivers of the hypervisor the VM still runs on."""
    if not any(t.cleanup for t in tasks):
        return
    if snapshot.hypervisor and glob_match(snapshot.hypervisor, rules.source_hypervisors):
        raise PreconditionError(
            f"This machine is still running on '{snapshot.hypervisor}'; "
            "run cleanup only after migrating to the new hypervisor"
        )


def check_conflicts(snapshot: SystemSnapshot, tasks: Sequence[Task]) -> None:
    """Fail when a task's conflicting software is installed and no earlier task removes it."""
    removed: list[str] = []
    for task in tasks:
        for software in snapshot.software:
            blocked = glob_match(software.name, task.conflicts)
            if blocked and not glob_match(software.name, removed):
                raise PreconditionError(
                    f"'{software.name}' is still installed; uninstall it before "
                    f"{task.name} (it reinstalls what {task.name} removes)"
                )
        removed.extend(task.resolves)


def check_preconditions(
    snapshot: SystemSnapshot, tasks: Sequence[Task], rules: MatchRules
) -> None:
    check_hypervisor(snapshot, tasks, rules)
    check_conflicts(snapshot, tasks)
