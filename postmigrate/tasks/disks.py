"""Bringing migrated data disks back online and writable."""

from __future__ import annotations

from ..config import MatchRules
from ..contracts import DiskRecord, Step, StepContext, SystemSnapshot


def online_disk_step(disk: DiskRecord) -> Step:
    number = disk.number

    def needs_attention(ctx: StepContext) -> bool:
        live = ctx.system.get_disk(number)
        return live is not None and (live.offline or live.read_only)

    def bring_online(ctx: StepContext):
        return ctx.system.bring_disk_online(number)

    state = ", ".join(
        flag for flag, on in (("offline", disk.offline), ("read-only", disk.read_only)) if on
    )
    return Step(
        name=f"online-disk:{number}",
        description=f"bring disk {number} ({disk.name or 'unnamed'}, {state}) online and writable",
        predicate=needs_attention,
        action=bring_online,
    )


def plan_disk_fixes(snapshot: SystemSnapshot, rules: MatchRules) -> list[Step]:
    return [
        online_disk_step(disk)
        for disk in snapshot.disks
        if disk.offline or disk.read_only
    ]
