"""Deletion of source-hypervisor packages from the driver store."""

from __future__ import annotations

from ..config import MatchRules
from ..contracts import DriverPackage, Step, StepContext, SystemSnapshot
from .matching import is_stale_driver


def delete_driver_step(package: DriverPackage) -> Step:
    published = package.published_name

    def still_staged(ctx: StepContext) -> bool:
        return ctx.system.get_driver_package(published) is not None

    def delete(ctx: StepContext):
        return ctx.system.delete_driver_package(published)

    return Step(
        name=f"delete-driver:{published}",
        description=(
            f"delete driver package {published} "
            f"({package.original_name or 'unknown'}, {package.provider or 'unknown provider'})"
        ),
        predicate=still_staged,
        action=delete,
    )


def plan_driver_cleanup(snapshot: SystemSnapshot, rules: MatchRules) -> list[Step]:
    return [
        delete_driver_step(package)
        for package in snapshot.drivers
        if is_stale_driver(package, rules)
    ]
