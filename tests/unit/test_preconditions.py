import pytest
from fixtures.systems import VMWARE_TOOLS, migrated_host

from postmigrate.config import MatchRules
from postmigrate.contracts import InstalledSoftware, SystemSnapshot
from postmigrate.errors import PreconditionError
from postmigrate.preconditions import (
    check_conflicts,
    check_elevated,
    check_hypervisor,
    check_platform,
    check_preconditions,
)
from postmigrate.tasks import resolve_tasks

RULES = MatchRules()


def test_unsupported_platform():
    check_platform("windows")
    check_platform("linux")
    with pytest.raises(PreconditionError, match="darwin"):
        check_platform("darwin")


def test_not_elevated():
    check_elevated(migrated_host())
    with pytest.raises(PreconditionError, match="root"):
        check_elevated(migrated_host(elevated=False))


def test_cleanup_refused_while_still_on_vmware():
    snapshot = SystemSnapshot(hypervisor="VMware, Inc. VMware Virtual Platform")
    with pytest.raises(PreconditionError):
        check_hypervisor(snapshot, resolve_tasks(["clean-drivers"]), RULES)


def test_non_cleanup_tasks_allowed_on_any_hypervisor():
    snapshot = SystemSnapshot(hypervisor="VMware, Inc. VMware Virtual Platform")
    check_hypervisor(snapshot, resolve_tasks(["flush-dns", "fix-disks"]), RULES)


def test_proxmox_guest_passes():
    snapshot = SystemSnapshot(hypervisor="QEMU Standard PC (Q35 + ICH9, 2009)")
    check_preconditions(snapshot, resolve_tasks(["clean-all"]), RULES)


def test_installed_tools_conflict_with_device_cleanup():
    snapshot = SystemSnapshot(software=(VMWARE_TOOLS,))
    with pytest.raises(PreconditionError, match="VMware Tools"):
        check_conflicts(snapshot, resolve_tasks(["clean-devices"]))


def test_conflict_resolved_by_earlier_uninstall():
    snapshot = SystemSnapshot(software=(VMWARE_TOOLS,))
    check_conflicts(snapshot, resolve_tasks(["uninstall-tools", "clean-drivers"]))


def test_uninstall_after_cleanup_does_not_resolve_conflict():
    snapshot = SystemSnapshot(software=(InstalledSoftware(name="open-vm-tools"),))
    with pytest.raises(PreconditionError):
        check_conflicts(snapshot, resolve_tasks(["clean-drivers", "uninstall-tools"]))
