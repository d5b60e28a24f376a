"""Silent removal of the source hypervisor's guest tools."""

from __future__ import annotations

from ..config import MatchRules
from ..contracts import InstalledSoftware, Step, StepContext, SystemSnapshot
from .matching import glob_match


def uninstall_step(software: InstalledSoftware) -> Step:
    name = software.name

    def still_installed(ctx: StepContext) -> bool:
        return ctx.system.get_software(name) is not None

    def uninstall(ctx: StepContext):
        live = ctx.system.get_software(name) or software
        return ctx.system.uninstall_software(live)

    version = f" {software.version}" if software.version else ""
    return Step(
        name=f"uninstall:{name}",
        description=f"uninstall {name}{version}",
        predicate=still_installed,
        action=uninstall,
    )


def plan_software_removal(snapshot: SystemSnapshot, rules: MatchRules) -> list[Step]:
    return [
        uninstall_step(software)
        for software in snapshot.software
        if glob_match(software.name, rules.software_names)
    ]
