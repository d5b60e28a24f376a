from fixtures.systems import VMWARE_TOOLS, migrated_host

from postmigrate.config import MatchRules
from postmigrate.contracts import InstalledSoftware
from postmigrate.inventory import InventoryProbe


def test_capture_reads_every_section():
    system = migrated_host(software=[VMWARE_TOOLS])

    snapshot = InventoryProbe(system).capture()

    assert snapshot.hostname == "vm-test"
    assert snapshot.platform == "inmemory"
    assert snapshot.hypervisor.startswith("Microsoft")
    assert len(snapshot.devices) == 5
    assert len(snapshot.non_present_devices()) == 4
    assert len(snapshot.drivers) == 4
    assert snapshot.network[0].mac == "00:15:5D:01:02:03"
    assert [s.name for s in snapshot.software] == ["VMware Tools"]
    assert not snapshot.partial
    assert snapshot.errors == {}


def test_capture_has_no_side_effects():
    system = migrated_host()
    InventoryProbe(system).capture()
    assert system.calls == []


def test_failed_section_marks_snapshot_partial():
    system = migrated_host(broken=["drivers", "disks"])

    snapshot = InventoryProbe(system).capture()

    assert snapshot.partial
    assert set(snapshot.errors) == {"drivers", "disks"}
    assert snapshot.drivers == ()
    assert len(snapshot.devices) == 5


def test_software_is_limited_to_configured_names():
    system = migrated_host(
        software=[VMWARE_TOOLS, InstalledSoftware(name="7-Zip 23.01 (x64)")]
    )
    rules = MatchRules(software_names=["7-zip*"])

    snapshot = InventoryProbe(system, rules).capture()

    assert [s.name for s in snapshot.software] == ["7-Zip 23.01 (x64)"]
