"""Linux system manager built on sysfs, iproute2, kmod and the package manager."""

from __future__ import annotations

import fnmatch
import json
import logging
import os
import shutil
import socket
from pathlib import Path
from typing import Iterable, Optional

from ..constants import ERROR_SUCCESS_REBOOT_REQUIRED
from ..contracts import (
    DeviceRecord,
    DiskRecord,
    DriverPackage,
    InstalledSoftware,
    IpAddress,
    NetworkInterface,
    OperationResult,
    PartitionRecord,
)
from ..errors import CommandTimeoutError, SystemManagerError
from ..utils.commands import CommandResult
from .base import SystemManager

logger = logging.getLogger(__name__)

SYSFS_PCI = Path("/sys/bus/pci/devices")
SYSFS_DMI = Path("/sys/class/dmi/id")
RESOLV_CONF = Path("/etc/resolv.conf")


def _read(path: Path) -> str:
    try:
        return path.read_text().strip()
    except OSError:
        return ""


def _flag(value) -> bool:
    if isinstance(value, str):
        return value.strip() in ("1", "true")
    return bool(value)


class LinuxSystemManager(SystemManager):
    """Linux hosts have no hidden device store; cleanup targets modules and packages."""

    platform = "linux"

    def __init__(
        self,
        timeout: float = 300.0,
        pci_root: Path = SYSFS_PCI,
        dmi_root: Path = SYSFS_DMI,
        resolv_conf: Path = RESOLV_CONF,
    ) -> None:
        super().__init__(timeout=timeout)
        self.pci_root = pci_root
        self.dmi_root = dmi_root
        self.resolv_conf = resolv_conf
        self._disk_names: dict[int, str] = {}

    def _checked(self, result: CommandResult, what: str) -> CommandResult:
        if result.timed_out:
            raise CommandTimeoutError(f"{what} query timed out", code=result.returncode)
        if result.returncode != 0:
            raise SystemManagerError(
                f"{what} query failed: {result.output}", code=result.returncode
            )
        return result

    def _json(self, what: str, *args: str):
        result = self._checked(self.run(*args), what)
        try:
            return json.loads(result.stdout or "null")
        except json.JSONDecodeError as exc:
            raise SystemManagerError(f"{what} query returned invalid JSON: {exc}")

    # ------------------------------------------------------------------
    def hostname(self) -> str:
        return socket.gethostname()

    def hypervisor(self) -> str:
        vendor = _read(self.dmi_root / "sys_vendor")
        product = _read(self.dmi_root / "product_name")
        if vendor or product:
            return f"{vendor} {product}".strip()
        result = self.run("systemd-detect-virt")
        return result.stdout if result.returncode == 0 else ""

    def is_elevated(self) -> bool:
        return os.geteuid() == 0

    # ------------------------------------------------------------------
    def list_devices(self) -> list[DeviceRecord]:
        if not self.pci_root.is_dir():
            return []
        devices = []
        for entry in sorted(self.pci_root.iterdir()):
            vendor = _read(entry / "vendor").replace("0x", "").upper()
            device = _read(entry / "device").replace("0x", "").upper()
            driver = entry / "driver"
            devices.append(
                DeviceRecord(
                    instance_id=f"PCI\\{entry.name}",
                    name=os.path.basename(os.readlink(driver)) if driver.is_symlink() else "",
                    device_class=_read(entry / "class") or None,
                    present=True,
                    hardware_ids=(f"PCI\\VEN_{vendor}&DEV_{device}",),
                )
            )
        return devices

    def remove_device(self, instance_id: str) -> OperationResult:
        return self.unsupported("device removal")

    # ------------------------------------------------------------------
    def list_driver_packages(self) -> list[DriverPackage]:
        result = self._checked(self.run("lsmod"), "kernel module")
        packages = []
        for line in result.stdout.splitlines()[1:]:
            parts = line.split()
            if parts:
                packages.append(
                    DriverPackage(
                        published_name=parts[0],
                        original_name=parts[0],
                        provider="kernel",
                    )
                )
        return packages

    def delete_driver_package(self, published_name: str) -> OperationResult:
        return self.run("modprobe", "-r", published_name).to_operation(
            f"Unloaded {published_name}"
        )

    # ------------------------------------------------------------------
    def _nameservers(self) -> tuple[str, ...]:
        servers = []
        for line in _read(self.resolv_conf).splitlines():
            parts = line.split()
            if len(parts) >= 2 and parts[0] == "nameserver":
                servers.append(parts[1])
        return tuple(servers)

    def list_interfaces(self) -> list[NetworkInterface]:
        links = self._json("network interface", "ip", "-j", "addr", "show") or []
        routes = self._json("route", "ip", "-j", "route", "show", "default") or []
        dns = self._nameservers()
        interfaces = []
        with self.parsing("network interface"):
            gateways = {r.get("dev"): r.get("gateway") for r in routes if r.get("gateway")}
            for link in links:
                name = link.get("ifname", "")
                if name == "lo" or link.get("link_type") == "loopback":
                    continue
                inet = [a for a in link.get("addr_info", []) if a.get("family") == "inet"]
                interfaces.append(
                    NetworkInterface(
                        id=name,
                        name=name,
                        mac=link.get("address", ""),
                        addresses=tuple(
                            IpAddress(address=a["local"], prefix_length=int(a["prefixlen"]))
                            for a in inet
                        ),
                        gateway=gateways.get(name),
                        dns_servers=dns,
                        dhcp=any(a.get("dynamic") for a in inet) or not inet,
                    )
                )
        return interfaces

    def apply_interface(
        self, target: NetworkInterface, settings: NetworkInterface
    ) -> OperationResult:
        dev = target.name
        if settings.dhcp:
            if shutil.which("nmcli"):
                return self.run("nmcli", "device", "reapply", dev).to_operation(
                    f"Re-enabled DHCP on {dev}"
                )
            return self.run("dhclient", dev).to_operation(f"Re-enabled DHCP on {dev}")

        commands = [("ip", "addr", "flush", "dev", dev)]
        commands += [
            ("ip", "addr", "add", f"{a.address}/{a.prefix_length}", "dev", dev)
            for a in settings.addresses
        ]
        if settings.gateway:
            commands.append(
                ("ip", "route", "replace", "default", "via", settings.gateway, "dev", dev)
            )
        if settings.dns_servers and shutil.which("resolvectl"):
            commands.append(("resolvectl", "dns", dev, *settings.dns_servers))
        for args in commands:
            result = self.run(*args).to_operation()
            if result.code != 0:
                return result
        return OperationResult.ok(f"Applied settings to {dev}")

    def flush_dns(self) -> OperationResult:
        return self.run("resolvectl", "flush-caches").to_operation("Flushed DNS cache")

    def reset_network_stack(self) -> OperationResult:
        result = self.run("systemctl", "restart", "NetworkManager").to_operation()
        if result.code != 0:
            return result
        return OperationResult(
            code=ERROR_SUCCESS_REBOOT_REQUIRED,
            message="Restarted NetworkManager; restart required",
        )

    # ------------------------------------------------------------------
    def _package_tool(self) -> Optional[str]:
        for tool in ("rpm", "dpkg-query"):
            if shutil.which(tool):
                return tool
        return None

    def list_software(self, patterns: Iterable[str]) -> list[InstalledSoftware]:
        tool = self._package_tool()
        if tool is None:
            return []
        if tool == "rpm":
            args = ("rpm", "-qa", "--qf", "%{NAME}\t%{VERSION}\n")
        else:
            args = ("dpkg-query", "-W", "-f", "${Package}\t${Version}\n")
        result = self._checked(self.run(*args), "installed software")
        patterns = [p.lower() for p in patterns]
        found = []
        for line in result.stdout.splitlines():
            name, _, version = line.partition("\t")
            if any(fnmatch.fnmatchcase(name.lower(), p) for p in patterns):
                found.append(InstalledSoftware(name=name, version=version or None))
        return found

    def uninstall_software(self, software: InstalledSoftware) -> OperationResult:
        if shutil.which("dnf"):
            args = ("dnf", "remove", "-y", software.name)
        elif shutil.which("apt-get"):
            args = ("apt-get", "remove", "-y", software.name)
        else:
            return self.unsupported("package removal")
        return self.run(*args).to_operation(f"Removed {software.name}")

    # ------------------------------------------------------------------
    def list_disks(self) -> list[DiskRecord]:
        data = self._json(
            "block device",
            "lsblk", "-J", "-b", "-o", "NAME,TYPE,RO,SIZE,PARTN,PARTUUID",
        ) or {}
        disks = []
        self._disk_names = {}
        with self.parsing("block device"):
            for number, dev in enumerate(
                d for d in data.get("blockdevices", []) if d.get("type") == "disk"
            ):
                self._disk_names[number] = dev["name"]
                partitions = tuple(
                    PartitionRecord(
                        partition_id=child.get("partuuid") or child["name"],
                        number=int(child.get("partn") or index + 1),
                        size=int(child.get("size") or 0),
                    )
                    for index, child in enumerate(dev.get("children", []))
                    if child.get("type") == "part"
                )
                disks.append(
                    DiskRecord(
                        number=number,
                        name=dev["name"],
                        read_only=_flag(dev.get("ro")),
                        partitions=partitions,
                    )
                )
        return disks

    def bring_disk_online(self, number: int) -> OperationResult:
        if number not in self._disk_names:
            self.list_disks()
        name = self._disk_names.get(number)
        if name is None:
            return OperationResult(code=2, message=f"Disk {number} not found")
        return self.run("blockdev", "--setrw", f"/dev/{name}").to_operation(
            f"/dev/{name} writable"
        )
