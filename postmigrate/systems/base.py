"""Base interface for the operating system management surface."""

from __future__ import annotations

import abc
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional

from ..constants import UNSUPPORTED_OPERATION_CODE
from ..contracts import (
    DeviceRecord,
    DiskRecord,
    DriverPackage,
    InstalledSoftware,
    NetworkInterface,
    OperationResult,
)
from ..errors import SystemManagerError
from ..utils.commands import CommandResult, run_command


class SystemManager(metaclass=abc.ABCMeta):
    """Abstract collaborator wrapping device, driver, network and disk utilities.

    Query methods raise ``SystemManagerError`` when the underlying utility
    fails. Mutating methods never raise for utility failures; they return an
    ``OperationResult`` carrying the utility's exit code and message.
    """

    platform: str = "unknown"

    def __init__(self, timeout: float = 300.0) -> None:
        self.timeout = timeout

    def run(self, *args: str, input_text: Optional[str] = None) -> CommandResult:
        return run_command(args, timeout=self.timeout, input_text=input_text)

    @contextmanager
    def parsing(self, what: str) -> Iterator[None]:
        """Report malformed utility output as a failed query."""
        try:
            yield
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise SystemManagerError(f"{what} output could not be parsed: {exc!r}") from exc

    def unsupported(self, operation: str) -> OperationResult:
        return OperationResult(
            code=UNSUPPORTED_OPERATION_CODE,
            message=f"{operation} is not supported on {self.platform}",
        )

    # -- host facts --------------------------------------------------------

    @abc.abstractmethod
    def hostname(self) -> str:
        raise NotImplementedError

    @abc.abstractmethod
    def hypervisor(self) -> str:
        """Return the manufacturer/product string of the virtual platform."""
        raise NotImplementedError

    @abc.abstractmethod
    def is_elevated(self) -> bool:
        raise NotImplementedError

    # -- devices -----------------------------------------------------------

    @abc.abstractmethod
    def list_devices(self) -> list[DeviceRecord]:
        """Return all devices, including non-present ones."""
        raise NotImplementedError

    def get_device(self, instance_id: str) -> Optional[DeviceRecord]:
        wanted = instance_id.upper()
        for device in self.list_devices():
            if device.instance_id.upper() == wanted:
                return device
        return None

    @abc.abstractmethod
    def remove_device(self, instance_id: str) -> OperationResult:
        raise NotImplementedError

    def rescan_devices(self) -> OperationResult:
        return self.unsupported("device rescan")

    # -- driver store ------------------------------------------------------

    @abc.abstractmethod
    def list_driver_packages(self) -> list[DriverPackage]:
        raise NotImplementedError

    def get_driver_package(self, published_name: str) -> Optional[DriverPackage]:
        wanted = published_name.lower()
        for package in self.list_driver_packages():
            if package.published_name.lower() == wanted:
                return package
        return None

    @abc.abstractmethod
    def delete_driver_package(self, published_name: str) -> OperationResult:
        raise NotImplementedError

    def export_driver_packages(self, destination: Path) -> OperationResult:
        return self.unsupported("driver export")

    def import_driver_packages(self, source: Path) -> OperationResult:
        return self.unsupported("driver import")

    # -- network -----------------------------------------------------------

    @abc.abstractmethod
    def list_interfaces(self) -> list[NetworkInterface]:
        raise NotImplementedError

    @abc.abstractmethod
    def apply_interface(
        self, target: NetworkInterface, settings: NetworkInterface
    ) -> OperationResult:
        """Apply addressing from ``settings`` to the live adapter ``target``."""
        raise NotImplementedError

    @abc.abstractmethod
    def flush_dns(self) -> OperationResult:
        raise NotImplementedError

    @abc.abstractmethod
    def reset_network_stack(self) -> OperationResult:
        raise NotImplementedError

    # -- installed software -----------------------------------------------

    @abc.abstractmethod
    def list_software(self, patterns: Iterable[str]) -> list[InstalledSoftware]:
        """Return installed software whose name matches one of ``patterns``."""
        raise NotImplementedError

    def get_software(self, name: str) -> Optional[InstalledSoftware]:
        for software in self.list_software([name]):
            if software.name.lower() == name.lower():
                return software
        return None

    @abc.abstractmethod
    def uninstall_software(self, software: InstalledSoftware) -> OperationResult:
        raise NotImplementedError

    # -- disks -------------------------------------------------------------

    @abc.abstractmethod
    def list_disks(self) -> list[DiskRecord]:
        raise NotImplementedError

    def get_disk(self, number: int) -> Optional[DiskRecord]:
        for disk in self.list_disks():
            if disk.number == number:
                return disk
        return None

    @abc.abstractmethod
    def bring_disk_online(self, number: int) -> OperationResult:
        """Bring disk ``number`` online and clear its read-only flag."""
        raise NotImplementedError

    def assign_drive_letter(
        self, disk: int, partition: int, letter: str
    ) -> OperationResult:
        return self.unsupported("drive letter assignment")
