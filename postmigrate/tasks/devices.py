"""Removal of non-present devices left behind by the source hypervisor."""

from __future__ import annotations

from ..config import MatchRules
from ..contracts import DeviceRecord, Step, StepContext, SystemSnapshot
from .matching import is_stale_device


def remove_device_step(device: DeviceRecord) -> Step:
    instance_id = device.instance_id

    def still_hidden(ctx: StepContext) -> bool:
        live = ctx.system.get_device(instance_id)
        return live is not None and not live.present

    def remove(ctx: StepContext):
        return ctx.system.remove_device(instance_id)

    label = device.name or instance_id
    return Step(
        name=f"remove-device:{instance_id}",
        description=f"remove non-present device '{label}'",
        predicate=still_hidden,
        action=remove,
    )


def plan_device_cleanup(snapshot: SystemSnapshot, rules: MatchRules) -> list[Step]:
    return [
        remove_device_step(device)
        for device in snapshot.devices
        if is_stale_device(device, rules)
    ]
