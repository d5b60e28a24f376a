"""Registry of cleanup tasks."""

from __future__ import annotations

from typing import Dict, Iterable, List

from ..constants import DEFAULT_SOFTWARE_NAMES
from .base import Planner, Task
from .devices import plan_device_cleanup
from .disks import plan_disk_fixes
from .drivers import plan_driver_cleanup
from .network import plan_dns_flush, plan_network_reset
from .software import plan_software_removal

TOOLS_PACKAGES = list(DEFAULT_SOFTWARE_NAMES)

# Task names double as CLI command names. Registration order is the order
# tasks run in when several are combined.
TASKS: Dict[str, Task] = {}


def register_task(task: Task) -> Task:
    """Add ``task`` to ``TASKS``; re-registering a name replaces it."""
    TASKS[task.name] = task
    return task


def get_task(name: str) -> Task:
    try:
        return TASKS[name]
    except KeyError:
        raise KeyError(f"Unknown task: {name}") from None


def resolve_tasks(names: Iterable[str]) -> List[Task]:
    """Expand composite tasks into their members, dropping duplicates."""
    resolved: List[Task] = []
    seen: set[str] = set()

    def add(name: str) -> None:
        task = get_task(name)
        if task.members:
            for member in task.members:
                add(member)
        elif task.name not in seen:
            seen.add(task.name)
            resolved.append(task)

    for name in names:
        add(name)
    return resolved


register_task(
    Task(
        name="uninstall-tools",
        description="Uninstall the source hypervisor's guest tools",
        planner=plan_software_removal,
        resolves=TOOLS_PACKAGES,
    )
)
register_task(
    Task(
        name="clean-devices",
        description="Remove non-present devices left by the source hypervisor",
        planner=plan_device_cleanup,
        conflicts=TOOLS_PACKAGES,
    )
)
register_task(
    Task(
        name="clean-drivers",
        description="Delete source hypervisor driver packages from the driver store",
        planner=plan_driver_cleanup,
        conflicts=TOOLS_PACKAGES,
    )
)
register_task(
    Task(
        name="fix-disks",
        description="Bring offline or read-only disks online and writable",
        planner=plan_disk_fixes,
        cleanup=False,
    )
)
register_task(
    Task(
        name="flush-dns",
        description="Flush the DNS resolver cache",
        planner=plan_dns_flush,
        cleanup=False,
    )
)
register_task(
    Task(
        name="reset-network",
        description="Reset the network stack (restart required)",
        planner=plan_network_reset,
        cleanup=False,
    )
)
register_task(
    Task(
        name="clean-all",
        description="Uninstall tools, remove stale devices and drivers, flush DNS",
        members=["uninstall-tools", "clean-devices", "clean-drivers", "flush-dns"],
    )
)


__all__ = [
    "Planner",
    "Task",
    "TASKS",
    "register_task",
    "get_task",
    "resolve_tasks",
]
