"""Shared constants for postmigrate."""

# Windows installer/pnputil codes meaning "succeeded, restart needed".
ERROR_SUCCESS_REBOOT_INITIATED = 1641
ERROR_SUCCESS_REBOOT_REQUIRED = 3010
REBOOT_REQUIRED_CODES = frozenset(
    {ERROR_SUCCESS_REBOOT_REQUIRED, ERROR_SUCCESS_REBOOT_INITIATED}
)

# Returned in OperationResult when a command was killed after its timeout.
COMMAND_TIMEOUT_CODE = -1
# Returned when a backend cannot perform an operation on this platform.
UNSUPPORTED_OPERATION_CODE = -2

EXIT_OK = 0
EXIT_PRECONDITION = 1
EXIT_PARTIAL_FAILURE = 2
EXIT_ABORTED = 3

BACKUP_FORMAT_VERSION = 1
BACKUP_SECTIONS = ("devices", "drivers", "network", "software", "disks")
DRIVER_STORE_DIRNAME = "driver-store"

DEFAULT_COMMAND_TIMEOUT = 300.0

DEFAULT_DEVICE_NAME_PATTERNS = [
    "VMware*",
    "*VMXNET*",
    "*PVSCSI*",
    "*VMCI*",
]
DEFAULT_DEVICE_HARDWARE_IDS = [
    "PCI\\VEN_15AD*",
    "ROOT\\VMWVMCIHOSTDEV*",
]
DEFAULT_DRIVER_PROVIDERS = ["VMware*"]
DEFAULT_DRIVER_NAME_KEYWORDS = [
    "vmci",
    "vmxnet",
    "pvscsi",
    "vm3d",
    "vmmouse",
    "vmusbmouse",
    "vmhgfs",
    "vmrawdsk",
    "vsock",
    "vmmemctl",
    "svga",
]
# Modules of the target hypervisors and the generic vsock core; never stale.
DEFAULT_DRIVER_NAME_EXCLUDES = [
    "*virtio*",
    "hv_*",
    "vsock",
    "vsock_*",
]
DEFAULT_SOFTWARE_NAMES = ["VMware Tools", "open-vm-tools*"]
DEFAULT_SOURCE_HYPERVISORS = ["VMware*"]
