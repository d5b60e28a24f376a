"""In-memory system manager for testing."""

from __future__ import annotations

import fnmatch
import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..constants import ERROR_SUCCESS_REBOOT_REQUIRED
from ..contracts import (
    DeviceRecord,
    DiskRecord,
    DriverPackage,
    InstalledSoftware,
    NetworkInterface,
    OperationResult,
)
from ..errors import SystemManagerError
from .base import SystemManager

_EXPORT_MANIFEST = "packages.json"


class InMemorySystemManager(SystemManager):
    """Simulated host whose state lives in Python lists.

    ``codes`` scripts the exit code of a mutation, keyed by
    ``"<operation>:<target>"`` (for example ``"remove_device:PCI\\VEN_15AD"``).
    Unscripted mutations succeed. Successful mutations (including
    reboot-required codes) change the simulated state; failed ones do not.
    Every mutation attempt is appended to ``calls``.
    """

    platform = "inmemory"

    def __init__(
        self,
        devices: Iterable[DeviceRecord] = (),
        drivers: Iterable[DriverPackage] = (),
        interfaces: Iterable[NetworkInterface] = (),
        software: Iterable[InstalledSoftware] = (),
        disks: Iterable[DiskRecord] = (),
        hostname: str = "vm-test",
        hypervisor: str = "Microsoft Corporation Virtual Machine",
        elevated: bool = True,
        codes: Optional[Dict[str, int]] = None,
        broken: Iterable[str] = (),
    ) -> None:
        super().__init__()
        self.devices: List[DeviceRecord] = list(devices)
        self.drivers: List[DriverPackage] = list(drivers)
        self.interfaces: List[NetworkInterface] = list(interfaces)
        self.software: List[InstalledSoftware] = list(software)
        self.disks: List[DiskRecord] = list(disks)
        self._hostname = hostname
        self._hypervisor = hypervisor
        self._elevated = elevated
        self.codes: Dict[str, int] = dict(codes or {})
        self.broken: Set[str] = set(broken)
        self.calls: List[Tuple[str, str]] = []

    # ------------------------------------------------------------------
    def _check(self, section: str) -> None:
        if section in self.broken:
            raise SystemManagerError(f"{section} query failed")

    def _mutate(self, operation: str, target: str, default: int = 0) -> OperationResult:
        self.calls.append((operation, target))
        code = self.codes.get(f"{operation}:{target}", default)
        if code == 0:
            return OperationResult.ok(f"{operation} {target}")
        return OperationResult(code=code, message=f"{operation} {target} exited {code}")

    @property
    def mutation_count(self) -> int:
        return len(self.calls)

    # ------------------------------------------------------------------
    def hostname(self) -> str:
        return self._hostname

    def hypervisor(self) -> str:
        return self._hypervisor

    def is_elevated(self) -> bool:
        return self._elevated

    # ------------------------------------------------------------------
    def list_devices(self) -> list[DeviceRecord]:
        self._check("devices")
        return list(self.devices)

    def remove_device(self, instance_id: str) -> OperationResult:
        result = self._mutate("remove_device", instance_id)
        if result.succeeded:
            self.devices = [
                d for d in self.devices if d.instance_id.upper() != instance_id.upper()
            ]
        return result

    def rescan_devices(self) -> OperationResult:
        return self._mutate("rescan_devices", "*")

    # ------------------------------------------------------------------
    def list_driver_packages(self) -> list[DriverPackage]:
        self._check("drivers")
        return list(self.drivers)

    def delete_driver_package(self, published_name: str) -> OperationResult:
        result = self._mutate("delete_driver_package", published_name)
        if result.succeeded:
            self.drivers = [
                p
                for p in self.drivers
                if p.published_name.lower() != published_name.lower()
            ]
        return result

    def export_driver_packages(self, destination: Path) -> OperationResult:
        result = self._mutate("export_driver_packages", str(destination))
        if result.succeeded:
            destination.mkdir(parents=True, exist_ok=True)
            payload = [p.model_dump(mode="json") for p in self.drivers]
            (destination / _EXPORT_MANIFEST).write_text(json.dumps(payload))
        return result

    def import_driver_packages(self, source: Path) -> OperationResult:
        manifest = source / _EXPORT_MANIFEST
        if not manifest.exists():
            self.calls.append(("import_driver_packages", str(source)))
            return OperationResult(code=2, message=f"No driver packages in {source}")
        result = self._mutate("import_driver_packages", str(source))
        if result.succeeded:
            known = {p.published_name.lower() for p in self.drivers}
            for item in json.loads(manifest.read_text()):
                package = DriverPackage.model_validate(item)
                if package.published_name.lower() not in known:
                    self.drivers.append(package)
        return result

    # ------------------------------------------------------------------
    def list_interfaces(self) -> list[NetworkInterface]:
        self._check("network")
        return list(self.interfaces)

    def apply_interface(
        self, target: NetworkInterface, settings: NetworkInterface
    ) -> OperationResult:
        result = self._mutate("apply_interface", target.id)
        if result.succeeded:
            updated = target.model_copy(
                update={
                    "addresses": settings.addresses,
                    "gateway": settings.gateway,
                    "dns_servers": settings.dns_servers,
                    "dhcp": settings.dhcp,
                }
            )
            self.interfaces = [
                updated if i.id == target.id else i for i in self.interfaces
            ]
        return result

    def flush_dns(self) -> OperationResult:
        return self._mutate("flush_dns", "*")

    def reset_network_stack(self) -> OperationResult:
        return self._mutate(
            "reset_network_stack", "*", default=ERROR_SUCCESS_REBOOT_REQUIRED
        )

    # ------------------------------------------------------------------
    def list_software(self, patterns: Iterable[str]) -> list[InstalledSoftware]:
        self._check("software")
        patterns = [p.lower() for p in patterns]
        return [
            s
            for s in self.software
            if any(fnmatch.fnmatchcase(s.name.lower(), p) for p in patterns)
        ]

    def uninstall_software(self, software: InstalledSoftware) -> OperationResult:
        result = self._mutate("uninstall_software", software.name)
        if result.succeeded:
            self.software = [s for s in self.software if s.name != software.name]
        return result

    # ------------------------------------------------------------------
    def list_disks(self) -> list[DiskRecord]:
        self._check("disks")
        return list(self.disks)

    def bring_disk_online(self, number: int) -> OperationResult:
        result = self._mutate("bring_disk_online", str(number))
        if result.succeeded:
            self.disks = [
                d.model_copy(update={"offline": False, "read_only": False})
                if d.number == number
                else d
                for d in self.disks
            ]
        return result

    def assign_drive_letter(
        self, disk: int, partition: int, letter: str
    ) -> OperationResult:
        result = self._mutate("assign_drive_letter", f"{disk}:{partition}")
        if result.succeeded:
            updated = []
            for d in self.disks:
                if d.number == disk:
                    parts = tuple(
                        p.model_copy(update={"drive_letter": letter})
                        if p.number == partition
                        else p
                        for p in d.partitions
                    )
                    d = d.model_copy(update={"partitions": parts})
                updated.append(d)
            self.disks = updated
        return result
