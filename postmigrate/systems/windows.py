"""Windows system manager built on PowerShell, pnputil, netsh and diskpart."""

from __future__ import annotations

import fnmatch
import json
import logging
import ntpath
import re
import socket
from pathlib import Path
from typing import Any, Iterable, Optional

from ..constants import ERROR_SUCCESS_REBOOT_REQUIRED, UNSUPPORTED_OPERATION_CODE
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

_PRODUCT_CODE = re.compile(r"^\{[0-9A-Fa-f-]{36}\}$")

DEVICES_SCRIPT = (
    "Get-PnpDevice | Select-Object InstanceId, Class, FriendlyName, Present, HardwareID"
)

DRIVERS_SCRIPT = (
    "Get-WindowsDriver -Online | "
    "Select-Object Driver, OriginalFileName, ProviderName, ClassName, Version"
)

NETWORK_SCRIPT = r"""
Get-NetAdapter | ForEach-Object {
  $cfg = Get-NetIPConfiguration -InterfaceIndex $_.ifIndex
  $ipif = Get-NetIPInterface -InterfaceIndex $_.ifIndex -AddressFamily IPv4 -ErrorAction SilentlyContinue
  [pscustomobject]@{
    Index = $_.ifIndex
    Name = $_.Name
    Mac = $_.MacAddress
    Addresses = @($cfg.IPv4Address | ForEach-Object { [pscustomobject]@{ Address = $_.IPAddress; Prefix = $_.PrefixLength } })
    Gateway = ($cfg.IPv4DefaultGateway | Select-Object -First 1).NextHop
    Dns = @($cfg.DNSServer | Where-Object { $_.AddressFamily -eq 2 } | ForEach-Object { $_.ServerAddresses })
    Dhcp = ($ipif.Dhcp -eq 'Enabled')
  }
}
"""

SOFTWARE_SCRIPT = r"""
$paths = 'HKLM:\Software\Microsoft\Windows\CurrentVersion\Uninstall\*',
         'HKLM:\Software\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall\*'
Get-ItemProperty $paths -ErrorAction SilentlyContinue |
  Where-Object { $_.DisplayName } |
  Select-Object DisplayName, DisplayVersion, PSChildName, UninstallString, QuietUninstallString, WindowsInstaller
"""

DISKS_SCRIPT = r"""
Get-Disk | ForEach-Object {
  $d = $_
  $parts = @(Get-Partition -DiskNumber $d.Number -ErrorAction SilentlyContinue | ForEach-Object {
    $id = $_.Guid
    if (-not $id) { $id = "$($d.Signature):$($_.Offset)" }
    [pscustomobject]@{ Id = $id; Number = $_.PartitionNumber; Letter = [string]$_.DriveLetter; Size = $_.Size }
  })
  [pscustomobject]@{
    Number = $d.Number
    Name = $d.FriendlyName
    Offline = $d.IsOffline
    ReadOnly = $d.IsReadOnly
    Partitions = $parts
  }
}
"""

HYPERVISOR_SCRIPT = (
    "Get-CimInstance Win32_ComputerSystem | Select-Object Manufacturer, Model"
)


def _ps_quote(value: str) -> str:
    return "'" + str(value).replace("'", "''") + "'"


def _as_list(data: Any) -> list[dict]:
    if data is None:
        return []
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    return [data] if isinstance(data, dict) else []


def _as_strings(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, list):
        return tuple(str(v) for v in value if v)
    return (str(value),)


class WindowsSystemManager(SystemManager):
    """Talk to the Windows management surface through its command line tools."""

    platform = "windows"

    def __init__(self, timeout: float = 300.0) -> None:
        super().__init__(timeout=timeout)
        self._storage_cmdlets: Optional[bool] = None

    # ------------------------------------------------------------------
    # Helpers
    def powershell(self, script: str) -> CommandResult:
        return self.run(
            "powershell.exe",
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy",
            "Bypass",
            "-Command",
            script,
        )

    def query(self, script: str, what: str) -> list[dict]:
        """Run ``script`` and return its objects decoded from JSON."""
        result = self.powershell(f"{script} | ConvertTo-Json -Depth 5 -Compress")
        if result.timed_out:
            raise CommandTimeoutError(f"{what} query timed out", code=result.returncode)
        if result.returncode != 0:
            raise SystemManagerError(
                f"{what} query failed: {result.output}", code=result.returncode
            )
        if not result.stdout:
            return []
        try:
            return _as_list(json.loads(result.stdout))
        except json.JSONDecodeError as exc:
            raise SystemManagerError(f"{what} query returned invalid JSON: {exc}")

    def storage_cmdlets_available(self) -> bool:
        """Whether the Storage module (Set-Disk, Set-Partition) can be used."""
        if self._storage_cmdlets is None:
            result = self.powershell(
                "Get-Command Set-Disk, Set-Partition -ErrorAction Stop | Out-Null"
            )
            self._storage_cmdlets = result.returncode == 0
            if not self._storage_cmdlets:
                logger.info("Storage cmdlets unavailable; using diskpart")
        return self._storage_cmdlets

    def diskpart(self, *commands: str) -> OperationResult:
        script = "\n".join(commands) + "\nexit\n"
        return self.run("diskpart.exe", input_text=script).to_operation()

    # ------------------------------------------------------------------
    # Host facts
    def hostname(self) -> str:
        return socket.gethostname()

    def hypervisor(self) -> str:
        rows = self.query(HYPERVISOR_SCRIPT, "computer system")
        if not rows:
            return ""
        row = rows[0]
        return f"{row.get('Manufacturer') or ''} {row.get('Model') or ''}".strip()

    def is_elevated(self) -> bool:
        try:
            import ctypes

            return bool(ctypes.windll.shell32.IsUserAnAdmin())
        except (AttributeError, OSError):
            return False

    # ------------------------------------------------------------------
    # Devices
    def list_devices(self) -> list[DeviceRecord]:
        rows = self.query(DEVICES_SCRIPT, "device")
        with self.parsing("device"):
            return [
                DeviceRecord(
                    instance_id=row.get("InstanceId") or "",
                    name=row.get("FriendlyName") or "",
                    device_class=row.get("Class"),
                    present=bool(row.get("Present")),
                    hardware_ids=_as_strings(row.get("HardwareID")),
                )
                for row in rows
                if row.get("InstanceId")
            ]

    def remove_device(self, instance_id: str) -> OperationResult:
        return self.run("pnputil.exe", "/remove-device", instance_id).to_operation(
            f"Removed {instance_id}"
        )

    def rescan_devices(self) -> OperationResult:
        return self.run("pnputil.exe", "/scan-devices").to_operation("Rescanned devices")

    # ------------------------------------------------------------------
    # Driver store
    def list_driver_packages(self) -> list[DriverPackage]:
        rows = self.query(DRIVERS_SCRIPT, "driver package")
        with self.parsing("driver package"):
            return [
                DriverPackage(
                    published_name=row.get("Driver") or "",
                    original_name=ntpath.basename(row.get("OriginalFileName") or ""),
                    provider=row.get("ProviderName") or "",
                    device_class=row.get("ClassName"),
                    version=row.get("Version"),
                )
                for row in rows
                if row.get("Driver")
            ]

    def delete_driver_package(self, published_name: str) -> OperationResult:
        return self.run(
            "pnputil.exe", "/delete-driver", published_name, "/uninstall", "/force"
        ).to_operation(f"Deleted {published_name}")

    def export_driver_packages(self, destination: Path) -> OperationResult:
        destination.mkdir(parents=True, exist_ok=True)
        return self.run(
            "pnputil.exe", "/export-driver", "*", str(destination)
        ).to_operation(f"Exported driver packages to {destination}")

    def import_driver_packages(self, source: Path) -> OperationResult:
        return self.run(
            "pnputil.exe", "/add-driver", str(source / "*.inf"), "/subdirs", "/install"
        ).to_operation(f"Imported driver packages from {source}")

    # ------------------------------------------------------------------
    # Network
    def list_interfaces(self) -> list[NetworkInterface]:
        interfaces = []
        rows = self.query(NETWORK_SCRIPT, "network interface")
        with self.parsing("network interface"):
            for row in rows:
                addresses = tuple(
                    IpAddress(address=a["Address"], prefix_length=int(a["Prefix"]))
                    for a in _as_list(row.get("Addresses"))
                    if a.get("Address")
                )
                interfaces.append(
                    NetworkInterface(
                        id=str(row.get("Index")),
                        name=row.get("Name") or "",
                        mac=row.get("Mac") or "",
                        addresses=addresses,
                        gateway=row.get("Gateway") or None,
                        dns_servers=_as_strings(row.get("Dns")),
                        dhcp=bool(row.get("Dhcp")),
                    )
                )
        return interfaces

    def apply_interface(
        self, target: NetworkInterface, settings: NetworkInterface
    ) -> OperationResult:
        alias = _ps_quote(target.name)
        lines = ["$ErrorActionPreference = 'Stop'"]
        if settings.dhcp:
            lines += [
                f"Set-NetIPInterface -InterfaceAlias {alias} -AddressFamily IPv4 -Dhcp Enabled",
                f"Set-DnsClientServerAddress -InterfaceAlias {alias} -ResetServerAddresses",
            ]
        else:
            lines += [
                f"Set-NetIPInterface -InterfaceAlias {alias} -AddressFamily IPv4 -Dhcp Disabled",
                f"Get-NetIPAddress -InterfaceAlias {alias} -AddressFamily IPv4 -ErrorAction SilentlyContinue"
                " | Remove-NetIPAddress -Confirm:$false",
                f"Get-NetRoute -InterfaceAlias {alias} -DestinationPrefix '0.0.0.0/0' -ErrorAction SilentlyContinue"
                " | Remove-NetRoute -Confirm:$false",
            ]
            for index, addr in enumerate(settings.addresses):
                line = (
                    f"New-NetIPAddress -InterfaceAlias {alias} "
                    f"-IPAddress {_ps_quote(addr.address)} -PrefixLength {addr.prefix_length}"
                )
                if index == 0 and settings.gateway:
                    line += f" -DefaultGateway {_ps_quote(settings.gateway)}"
                lines.append(line + " | Out-Null")
            if settings.dns_servers:
                servers = ",".join(_ps_quote(s) for s in settings.dns_servers)
                lines.append(
                    f"Set-DnsClientServerAddress -InterfaceAlias {alias} -ServerAddresses ({servers})"
                )
        return self.powershell("\n".join(lines)).to_operation(
            f"Applied settings to {target.name}"
        )

    def flush_dns(self) -> OperationResult:
        return self.run("ipconfig.exe", "/flushdns").to_operation("Flushed DNS cache")

    def reset_network_stack(self) -> OperationResult:
        for args in (("netsh", "winsock", "reset"), ("netsh", "int", "ip", "reset")):
            result = self.run(*args).to_operation()
            if result.code != 0:
                return result
        return OperationResult(
            code=ERROR_SUCCESS_REBOOT_REQUIRED,
            message="Winsock and TCP/IP stack reset; restart required",
        )

    # ------------------------------------------------------------------
    # Installed software
    def list_software(self, patterns: Iterable[str]) -> list[InstalledSoftware]:
        patterns = [p.lower() for p in patterns]
        found = []
        rows = self.query(SOFTWARE_SCRIPT, "installed software")
        with self.parsing("installed software"):
            for row in rows:
                name = row.get("DisplayName") or ""
                if not any(fnmatch.fnmatchcase(name.lower(), p) for p in patterns):
                    continue
                key = row.get("PSChildName") or ""
                product_code = (
                    key if row.get("WindowsInstaller") and _PRODUCT_CODE.match(key) else None
                )
                found.append(
                    InstalledSoftware(
                        name=name,
                        version=row.get("DisplayVersion"),
                        product_code=product_code,
                        uninstall_command=row.get("UninstallString"),
                        quiet_uninstall_command=row.get("QuietUninstallString"),
                    )
                )
        return found

    def uninstall_software(self, software: InstalledSoftware) -> OperationResult:
        if software.product_code:
            return self.run(
                "msiexec.exe", "/x", software.product_code, "/qn", "/norestart"
            ).to_operation(f"Uninstalled {software.name}")
        if software.quiet_uninstall_command:
            return self.run(
                "cmd.exe", "/c", software.quiet_uninstall_command
            ).to_operation(f"Uninstalled {software.name}")
        return OperationResult(
            code=UNSUPPORTED_OPERATION_CODE,
            message=f"No silent uninstall command registered for {software.name}",
        )

    # ------------------------------------------------------------------
    # Disks
    def list_disks(self) -> list[DiskRecord]:
        disks = []
        rows = self.query(DISKS_SCRIPT, "disk")
        with self.parsing("disk"):
            for row in rows:
                partitions = []
                for part in _as_list(row.get("Partitions")):
                    letter = (part.get("Letter") or "").strip("\x00 ")
                    partitions.append(
                        PartitionRecord(
                            partition_id=str(part.get("Id") or ""),
                            number=int(part.get("Number") or 0),
                            drive_letter=letter.upper() if letter.isalpha() else None,
                            size=int(part.get("Size") or 0),
                        )
                    )
                disks.append(
                    DiskRecord(
                        number=int(row.get("Number")),
                        name=row.get("Name") or "",
                        offline=bool(row.get("Offline")),
                        read_only=bool(row.get("ReadOnly")),
                        partitions=tuple(partitions),
                    )
                )
        return disks

    def bring_disk_online(self, number: int) -> OperationResult:
        if self.storage_cmdlets_available():
            return self.powershell(
                "$ErrorActionPreference = 'Stop'\n"
                f"Set-Disk -Number {int(number)} -IsOffline $false\n"
                f"Set-Disk -Number {int(number)} -IsReadOnly $false"
            ).to_operation(f"Disk {number} online and writable")
        return self.diskpart(
            f"select disk {int(number)}",
            "online disk noerr",
            "attributes disk clear readonly noerr",
        )

    def assign_drive_letter(
        self, disk: int, partition: int, letter: str
    ) -> OperationResult:
        letter = letter.strip(":").upper()
        if self.storage_cmdlets_available():
            return self.powershell(
                f"Set-Partition -DiskNumber {int(disk)} -PartitionNumber {int(partition)} "
                f"-NewDriveLetter {letter} -ErrorAction Stop"
            ).to_operation(f"Assigned {letter}: to disk {disk} partition {partition}")
        return self.diskpart(
            f"select disk {int(disk)}",
            f"select partition {int(partition)}",
            f"assign letter={letter}",
        )
