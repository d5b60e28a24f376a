"""Builders for simulated hosts shortly after a VMware to Hyper-V migration."""

from postmigrate.contracts import (
    DeviceRecord,
    DiskRecord,
    DriverPackage,
    InstalledSoftware,
    IpAddress,
    NetworkInterface,
    PartitionRecord,
)
from postmigrate.systems import InMemorySystemManager

VMXNET3 = DeviceRecord(
    instance_id=r"PCI\VEN_15AD&DEV_07B0&SUBSYS_07B015AD&REV_01\FF565000A4EA9AFE00",
    name="vmxnet3 Ethernet Adapter",
    device_class="Net",
    present=False,
    hardware_ids=(r"PCI\VEN_15AD&DEV_07B0",),
)
PVSCSI = DeviceRecord(
    instance_id=r"PCI\VEN_15AD&DEV_07C0&SUBSYS_07C015AD&REV_02\FF565000A4EA9AFE01",
    name="VMware PVSCSI Controller",
    device_class="SCSIAdapter",
    present=False,
)
VMCI = DeviceRecord(
    instance_id=r"ROOT\VMWVMCIHOSTDEV\0000",
    name="VMCI Host Device",
    device_class="System",
    present=False,
)
HYPERV_NIC = DeviceRecord(
    instance_id=r"VMBUS\{F8615163-DF3E-46C5-913F-F2D2F965ED0E}\{0001}",
    name="Microsoft Hyper-V Network Adapter",
    device_class="Net",
    present=True,
)
OLD_PRINTER = DeviceRecord(
    instance_id=r"SWD\PRINTENUM\{8A4B5C1E}",
    name="Microsoft Print to PDF",
    device_class="PrintQueue",
    present=False,
)

VMXNET3_DRIVER = DriverPackage(
    published_name="oem3.inf",
    original_name="vmxnet3.inf",
    provider="VMware, Inc.",
    device_class="Net",
    version="1.9.2.0",
)
SVGA_DRIVER = DriverPackage(
    published_name="oem5.inf",
    original_name="vm3d.inf",
    provider="VMware, Inc.",
    device_class="Display",
)
MOUSE_DRIVER = DriverPackage(
    published_name="oem6.inf",
    original_name="vmusbmouse.inf",
    provider="Unknown",
    device_class="Mouse",
)
INTEL_DRIVER = DriverPackage(
    published_name="oem9.inf",
    original_name="e1d68x64.inf",
    provider="Intel",
    device_class="Net",
)

VMWARE_TOOLS = InstalledSoftware(
    name="VMware Tools",
    version="12.1.5",
    product_code="{FE2F6A2C-196E-4210-9C04-2B1BC21F07EF}",
)


def static_interface(
    name: str, mac: str, address: str, id: str = "", gateway: str = "10.0.0.1"
) -> NetworkInterface:
    return NetworkInterface(
        id=id or name,
        name=name,
        mac=mac,
        addresses=(IpAddress(address=address, prefix_length=24),),
        gateway=gateway,
        dns_servers=("10.0.0.2", "10.0.0.3"),
        dhcp=False,
    )


def dhcp_interface(name: str, mac: str, id: str = "") -> NetworkInterface:
    return NetworkInterface(id=id or name, name=name, mac=mac, dhcp=True)


def system_disk() -> DiskRecord:
    return DiskRecord(
        number=0,
        name="Msft Virtual Disk",
        partitions=(
            PartitionRecord(partition_id="{0A1B}", number=1, size=500 * 2**20),
            PartitionRecord(partition_id="{0C2D}", number=2, drive_letter="C", size=80 * 2**30),
        ),
    )


def data_disk(offline: bool = True, letter: str = "D") -> DiskRecord:
    return DiskRecord(
        number=1,
        name="Msft Virtual Disk",
        offline=offline,
        read_only=offline,
        partitions=(
            PartitionRecord(partition_id="{1E3F}", number=1, drive_letter=letter, size=100 * 2**30),
        ),
    )


def migrated_host(**overrides) -> InMemorySystemManager:
    """A Windows guest freshly booted on Hyper-V with VMware leftovers."""
    params = dict(
        devices=[VMXNET3, PVSCSI, VMCI, HYPERV_NIC, OLD_PRINTER],
        drivers=[VMXNET3_DRIVER, SVGA_DRIVER, MOUSE_DRIVER, INTEL_DRIVER],
        interfaces=[static_interface("Ethernet", "00-15-5D-01-02-03", "10.0.0.5")],
        software=[],
        disks=[system_disk()],
    )
    params.update(overrides)
    return InMemorySystemManager(**params)


def clean_host(**overrides) -> InMemorySystemManager:
    """A guest with nothing left to clean up."""
    params = dict(
        devices=[HYPERV_NIC],
        drivers=[INTEL_DRIVER],
        interfaces=[dhcp_interface("Ethernet", "00-15-5D-01-02-03")],
        disks=[system_disk()],
    )
    params.update(overrides)
    return InMemorySystemManager(**params)
