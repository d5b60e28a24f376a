"""Reapply driver, device, drive-letter and network state from a backup."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from .backup import BackupStore
from .confirm import ConfirmationGate
from .contracts import (
    BackupHandle,
    DiskRecord,
    DriverPackage,
    NetworkInterface,
    PartitionRecord,
    RunStatus,
    Step,
    StepContext,
    StepOutcome,
    StepResult,
    SystemSnapshot,
    WorkflowRun,
    WorkflowState,
    normalize_mac,
)
from .errors import CorruptDataError, NotFoundError, RestoreMappingError, SystemManagerError
from .executor import StepExecutor
from .history import RunRepository
from .logs import run_log_file
from .report import RunReporter
from .systems.base import SystemManager

logger = logging.getLogger(__name__)


def _package_key(package: DriverPackage) -> str:
    # Published names (oemNN.inf) are reassigned on reinstall.
    return (package.original_name or package.published_name).lower()


def missing_driver_packages(
    saved: Sequence[DriverPackage], live: Sequence[DriverPackage]
) -> list[DriverPackage]:
    present = {_package_key(p) for p in live}
    return [p for p in saved if _package_key(p) not in present]


def map_interfaces(
    saved: Sequence[NetworkInterface], live: Sequence[NetworkInterface]
) -> tuple[
    list[tuple[NetworkInterface, NetworkInterface]],
    list[tuple[NetworkInterface, RestoreMappingError]],
]:
    """Pair saved adapters with live ones, each live adapter used at most once.

    Every MAC match is claimed before any name is compared, so a name match
    can never take an adapter that another saved interface owns by MAC.
    Returns the pairs and the saved interfaces left without a target, both
    in snapshot order.
    """
    claimed: dict[str, NetworkInterface] = {}
    by_mac: dict[int, NetworkInterface] = {}
    for index, item in enumerate(saved):
        if not item.mac:
            continue
        for candidate in live:
            if candidate.id in claimed:
                continue
            if candidate.mac and normalize_mac(candidate.mac) == item.mac:
                by_mac[index] = candidate
                claimed[candidate.id] = item
                break

    mapped: list[tuple[NetworkInterface, NetworkInterface]] = []
    unmatched: list[tuple[NetworkInterface, RestoreMappingError]] = []
    for index, item in enumerate(saved):
        label = f"interface {item.name} ({item.mac or 'no MAC'})"
        if index in by_mac:
            mapped.append((item, by_mac[index]))
            continue
        named = [c for c in live if c.name.lower() == item.name.lower()]
        if not named:
            unmatched.append(
                (
                    item,
                    RestoreMappingError(
                        label, "no present interface with a matching MAC address or name"
                    ),
                )
            )
            continue
        target = named[0]
        if target.id in claimed:
            owner = claimed[target.id]
            unmatched.append(
                (
                    item,
                    RestoreMappingError(
                        label,
                        f"interface {target.name} is already the target of saved "
                        f"interface {owner.name}",
                    ),
                )
            )
            continue
        claimed[target.id] = item
        mapped.append((item, target))
    return mapped, unmatched


def map_interface(
    saved: NetworkInterface, live: Sequence[NetworkInterface]
) -> NetworkInterface:
    """Find the live adapter for ``saved``: MAC address first, then name.

    Raises:
        RestoreMappingError: no live adapter matches either way.
    """
    mapped, unmatched = map_interfaces([saved], live)
    if unmatched:
        raise unmatched[0][1]
    return mapped[0][1]


def map_partition(
    saved: PartitionRecord, disks: Sequence[DiskRecord]
) -> tuple[DiskRecord, PartitionRecord]:
    for disk in disks:
        for partition in disk.partitions:
            if partition.partition_id == saved.partition_id:
                return disk, partition
    raise RestoreMappingError(
        f"partition {saved.partition_id}", "no present partition with this identifier"
    )


def _same_addressing(a: NetworkInterface, b: NetworkInterface) -> bool:
    return (
        a.dhcp == b.dhcp
        and set(a.addresses) == set(b.addresses)
        and a.gateway == b.gateway
        and tuple(a.dns_servers) == tuple(b.dns_servers)
    )


# ----------------------------------------------------------------------
# Restore steps


def reinstall_drivers_step(saved: Sequence[DriverPackage], source: Path) -> Step:
    def packages_missing(ctx: StepContext) -> bool:
        return bool(missing_driver_packages(saved, ctx.system.list_driver_packages()))

    return Step(
        name="reinstall-drivers",
        description=f"reinstall driver packages from {source}",
        predicate=packages_missing,
        action=lambda ctx: ctx.system.import_driver_packages(source),
    )


def rescan_devices_step(saved_ids: Sequence[str]) -> Step:
    wanted = [i.upper() for i in saved_ids]

    def devices_missing(ctx: StepContext) -> bool:
        live = {d.instance_id.upper() for d in ctx.system.list_devices()}
        return any(i not in live for i in wanted)

    return Step(
        name="rescan-devices",
        description="rescan for hardware changes",
        predicate=devices_missing,
        action=lambda ctx: ctx.system.rescan_devices(),
        destructive=False,
    )


def assign_letter_step(saved: PartitionRecord, disk: int, partition: int) -> Step:
    letter = (saved.drive_letter or "").upper()

    def letter_differs(ctx: StepContext) -> bool:
        live = ctx.system.get_disk(disk)
        if live is None:
            return False
        for part in live.partitions:
            if part.number == partition:
                return (part.drive_letter or "").upper() != letter
        return False

    return Step(
        name=f"assign-letter:{saved.partition_id}",
        description=f"assign drive letter {letter}: to disk {disk} partition {partition}",
        predicate=letter_differs,
        action=lambda ctx: ctx.system.assign_drive_letter(disk, partition, letter),
    )


def apply_network_step(settings: NetworkInterface, target_id: str) -> Step:
    def addressing_differs(ctx: StepContext) -> bool:
        for live in ctx.system.list_interfaces():
            if live.id == target_id:
                return not _same_addressing(live, settings)
        return False

    def apply(ctx: StepContext):
        for live in ctx.system.list_interfaces():
            if live.id == target_id:
                return ctx.system.apply_interface(live, settings)
        raise SystemManagerError(f"Interface {target_id} disappeared")

    return Step(
        name=f"apply-network:{settings.name}",
        description=f"reapply addressing of '{settings.name}' to interface {target_id}",
        predicate=addressing_differs,
        action=apply,
        confirmations=2,
    )


class RestoreEngine:
    """Reverses cleanup using a stored snapshot.

    Driver and device state is always restored; network addressing only when
    asked for, since reapplying the wrong address can cut the host off.
    Items with no live counterpart are listed in ``run.unmapped`` and the
    remaining items are still restored. No adapter is ever created.
    """

    def __init__(
        self,
        system: SystemManager,
        store: BackupStore,
        gate: ConfirmationGate,
        executor: Optional[StepExecutor] = None,
        repository: Optional[RunRepository] = None,
        dry_run: bool = False,
        log_dir: Optional[Path] = None,
        logger: logging.Logger = logger,
    ) -> None:
        self.system = system
        self.store = store
        self.gate = gate
        self.executor = executor or StepExecutor(system, logger=logger)
        self.dry_run = dry_run
        self.log_dir = log_dir
        self._logger = logger
        self._reporter = RunReporter(repository, logger=logger)

    # ------------------------------------------------------------------
    def select(self, handle: Optional[BackupHandle] = None) -> tuple[BackupHandle, SystemSnapshot]:
        """Load ``handle``, or the newest readable backup when omitted.

        Raises:
            NotFoundError: no backup exists (or the given one is missing).
            CorruptDataError: the given backup is unreadable.
        """
        if handle is not None:
            return handle, self.store.load(handle)
        for backup_id in self.store.ids():
            try:
                candidate = self.store.handle(backup_id)
                return candidate, self.store.load(candidate)
            except CorruptDataError as exc:
                self._logger.warning(f"Skipping unreadable backup {backup_id}: {exc}")
        raise NotFoundError(f"No readable backups in {self.store.root}")

    def restore(
        self, handle: Optional[BackupHandle] = None, include_network: bool = False
    ) -> WorkflowRun:
        handle, snapshot = self.select(handle)
        run = WorkflowRun(
            workflow="restore+network" if include_network else "restore",
            dry_run=self.dry_run,
            unattended=self.gate.unattended,
            backup=handle,
        )
        run.events.append(f"restore_from:{handle.id}")
        if self.log_dir is None:
            return self._restore(run, handle, snapshot, include_network)
        with run_log_file(self.log_dir, run.run_id):
            return self._restore(run, handle, snapshot, include_network)

    # ------------------------------------------------------------------
    def _restore(
        self,
        run: WorkflowRun,
        handle: BackupHandle,
        snapshot: SystemSnapshot,
        include_network: bool,
    ) -> WorkflowRun:
        self._logger.info(f"Restoring from backup {handle.id} ({handle.path})")
        run.transition(WorkflowState.SCANNING)
        steps = self._driver_steps(run, handle, snapshot) + self._disk_steps(run, snapshot)
        skipped: list[StepResult] = []
        if include_network:
            network_steps, skipped = self._network_steps(run, snapshot)
            steps += network_steps

        applicable = [s for s in steps if self.executor.is_applicable(s, snapshot)]
        for result in skipped:
            run.record(result)
        origin = f"Restore from backup {handle.id}"
        if not applicable:
            return self._reporter.complete(
                run, RunStatus.NOTHING_TO_DO, f"{origin}: no action needed."
            )

        if self.dry_run:
            for step in applicable:
                run.record(self.executor.plan(step, snapshot))
            return self._reporter.complete(run, RunStatus.DRY_RUN, origin)

        run.transition(WorkflowState.AWAITING_CONFIRMATION)
        if self.gate.unattended:
            run.events.append("confirmation_bypassed")
        question = "\n".join(
            [f"Restore {len(applicable)} item(s) from backup {handle.id}:"]
            + [f"  - {s.description}" for s in applicable]
            + ["Proceed?"]
        )
        required = 2 if include_network else 1
        if not self.gate.confirm(question, required):
            run.events.append("confirmation_denied")
            return self._reporter.abort(
                run, RunStatus.ABORTED_BY_OPERATOR, "Operator declined restore."
            )

        run.transition(WorkflowState.EXECUTING)
        for step in applicable:
            run.record(self.executor.run(step, snapshot))
        status = (
            RunStatus.COMPLETED_WITH_ERRORS if run.has_failures else RunStatus.COMPLETED
        )
        return self._reporter.complete(run, status, origin)

    def _unmapped(self, run: WorkflowRun, exc: RestoreMappingError) -> None:
        self._logger.warning(f"Not restored: {exc}")
        run.unmapped.append(str(exc))

    def _driver_steps(
        self, run: WorkflowRun, handle: BackupHandle, snapshot: SystemSnapshot
    ) -> list[Step]:
        steps: list[Step] = []
        source = self.store.driver_store(handle)
        if snapshot.drivers:
            if source.is_dir():
                steps.append(reinstall_drivers_step(snapshot.drivers, source))
            else:
                try:
                    live = self.system.list_driver_packages()
                except SystemManagerError as exc:
                    self._logger.warning(f"Could not list driver packages: {exc}")
                    live = []
                for package in missing_driver_packages(snapshot.drivers, live):
                    self._unmapped(
                        run,
                        RestoreMappingError(
                            f"driver package {package.original_name or package.published_name}",
                            f"backup {handle.id} holds no exported copy",
                        ),
                    )
        present = [d.instance_id for d in snapshot.devices if d.present]
        if present:
            steps.append(rescan_devices_step(present))
        return steps

    def _disk_steps(self, run: WorkflowRun, snapshot: SystemSnapshot) -> list[Step]:
        lettered = [p for d in snapshot.disks for p in d.partitions if p.drive_letter]
        if not lettered:
            return []
        try:
            live = self.system.list_disks()
        except SystemManagerError as exc:
            self._logger.warning(f"Could not list disks: {exc}")
            live = []
        steps = []
        for saved in lettered:
            try:
                disk, partition = map_partition(saved, live)
            except RestoreMappingError as exc:
                self._unmapped(run, exc)
                continue
            steps.append(assign_letter_step(saved, disk.number, partition.number))
        return steps

    def _network_steps(
        self, run: WorkflowRun, snapshot: SystemSnapshot
    ) -> tuple[list[Step], list[StepResult]]:
        try:
            live = self.system.list_interfaces()
        except SystemManagerError as exc:
            self._logger.warning(f"Could not list network interfaces: {exc}")
            live = []
        mapped, unmatched = map_interfaces(snapshot.network, live)
        skipped: list[StepResult] = []
        for saved, exc in unmatched:
            self._unmapped(run, exc)
            skipped.append(
                StepResult(
                    step=f"apply-network:{saved.name}",
                    outcome=StepOutcome.SKIPPED,
                    detail=exc.reason,
                )
            )
        steps = [apply_network_step(saved, target.id) for saved, target in mapped]
        return steps, skipped
