import pytest
from fixtures.systems import (
    INTEL_DRIVER,
    clean_host,
    data_disk,
    dhcp_interface,
    migrated_host,
    static_interface,
    system_disk,
)

from postmigrate.backup import BackupStore
from postmigrate.confirm import ConfirmationGate
from postmigrate.contracts import RunStatus, StepOutcome, WorkflowState
from postmigrate.errors import CorruptDataError, NotFoundError, RestoreMappingError
from postmigrate.executor import StepExecutor
from postmigrate.inventory import InventoryProbe
from postmigrate.report import format_summary
from postmigrate.restore import RestoreEngine, map_interface, map_interfaces
from postmigrate.sequencer import WorkflowSequencer
from postmigrate.tasks import resolve_tasks


def make_engine(system, store, answers=(), yes=False, dry_run=False):
    answers = list(answers)
    prompts = []

    def prompt(text):
        prompts.append(text)
        return answers.pop(0)

    gate = ConfirmationGate(prompt=prompt, assume_yes=yes, dry_run=dry_run)
    engine = RestoreEngine(system, store, gate, executor=StepExecutor(system), dry_run=dry_run)
    return engine, prompts


def backup_of(system, store):
    return store.save(InventoryProbe(system).capture())


def test_network_restore_maps_by_mac_and_reports_unmatched(tmp_path):
    before = clean_host(
        interfaces=[
            static_interface("Ethernet0", "00:50:56:AA:00:01", "10.0.0.11"),
            static_interface("Ethernet1", "00:50:56:AA:00:02", "10.0.0.12"),
            static_interface("Ethernet2", "00:50:56:AA:00:03", "10.0.0.13"),
        ]
    )
    store = BackupStore(tmp_path / "backups")
    handle = backup_of(before, store)

    # After the move the adapters were renamed and fell back to DHCP; one is gone.
    system = clean_host(
        interfaces=[
            dhcp_interface("Ethernet 4", "00-50-56-aa-00-01", id="14"),
            dhcp_interface("Ethernet 5", "00-50-56-aa-00-02", id="15"),
        ]
    )
    engine, prompts = make_engine(system, store, answers=["y", "y"])

    run = engine.restore(handle, include_network=True)

    assert [c for c in system.calls if c[0] == "apply_interface"] == [
        ("apply_interface", "14"),
        ("apply_interface", "15"),
    ]
    assert len(run.unmapped) == 1
    assert "Ethernet2" in run.unmapped[0]
    assert len(system.interfaces) == 2
    restored = {i.id: i for i in system.interfaces}
    assert restored["14"].addresses[0].address == "10.0.0.11"
    assert restored["15"].dns_servers == ("10.0.0.2", "10.0.0.3")
    assert not restored["15"].dhcp
    skipped = [r for r in run.results if r.outcome is StepOutcome.SKIPPED]
    assert [r.step for r in skipped] == ["apply-network:Ethernet2"]
    assert len(prompts) == 2
    assert run.status is RunStatus.COMPLETED


def test_network_is_left_alone_unless_requested(tmp_path):
    store = BackupStore(tmp_path / "backups")
    handle = backup_of(
        clean_host(interfaces=[static_interface("Ethernet", "00:15:5D:00:00:01", "10.0.0.5")]),
        store,
    )
    system = clean_host(interfaces=[dhcp_interface("Ethernet", "00:15:5D:00:00:01")])
    engine, prompts = make_engine(system, store)

    run = engine.restore(handle)

    assert run.status is RunStatus.NOTHING_TO_DO
    assert system.mutation_count == 0
    assert prompts == []


def test_restore_reinstalls_drivers_removed_by_cleanup(tmp_path):
    system = migrated_host()
    store = BackupStore(tmp_path / "backups")
    sequencer = WorkflowSequencer(
        probe=InventoryProbe(system),
        executor=StepExecutor(system),
        gate=ConfirmationGate(assume_yes=True),
        store=store,
    )
    cleanup = sequencer.run(resolve_tasks(["clean-drivers"]))
    assert [p.published_name for p in system.drivers] == ["oem9.inf"]

    engine, prompts = make_engine(system, store, answers=["y"])
    run = engine.restore()

    assert [r.step for r in run.results] == ["reinstall-drivers"]
    assert run.results[0].outcome is StepOutcome.SUCCESS
    assert f"restore_from:{cleanup.backup.id}" in run.events
    assert {p.published_name for p in system.drivers} == {
        "oem3.inf",
        "oem5.inf",
        "oem6.inf",
        "oem9.inf",
    }
    assert len(prompts) == 1
    assert run.transitions[-1] is WorkflowState.DONE


def test_missing_driver_export_is_reported_as_unmapped(tmp_path):
    store = BackupStore(tmp_path / "backups")
    handle = backup_of(migrated_host(), store)
    system = migrated_host(drivers=[INTEL_DRIVER])
    engine, _ = make_engine(system, store, yes=True)

    run = engine.restore(handle)

    assert len(run.unmapped) == 3
    assert all("no exported copy" in item for item in run.unmapped)
    assert run.status is RunStatus.NOTHING_TO_DO


def test_restore_reassigns_drive_letters_by_partition_id(tmp_path):
    store = BackupStore(tmp_path / "backups")
    handle = backup_of(clean_host(disks=[system_disk(), data_disk(offline=False, letter="E")]), store)
    system = clean_host(disks=[system_disk(), data_disk(offline=False, letter=None)])
    engine, _ = make_engine(system, store, yes=True)

    run = engine.restore(handle)

    assert [r.step for r in run.results] == ["assign-letter:{1E3F}"]
    assert system.get_disk(1).partitions[0].drive_letter == "E"
    assert "confirmation_bypassed" in run.events


def test_rescan_runs_when_devices_are_missing(tmp_path):
    store = BackupStore(tmp_path / "backups")
    handle = backup_of(migrated_host(), store)
    system = migrated_host()
    system.devices = system.devices[:2]
    engine, _ = make_engine(system, store, yes=True)

    run = engine.restore(handle)

    assert "rescan-devices" in [r.step for r in run.results]
    assert ("rescan_devices", "*") in system.calls


def test_denied_restore_makes_no_changes(tmp_path):
    store = BackupStore(tmp_path / "backups")
    handle = backup_of(clean_host(disks=[system_disk(), data_disk(offline=False)]), store)
    system = clean_host(disks=[system_disk(), data_disk(offline=False, letter=None)])
    engine, _ = make_engine(system, store, answers=["n"])

    run = engine.restore(handle)

    assert run.status is RunStatus.ABORTED_BY_OPERATOR
    assert system.mutation_count == 0


def test_dry_run_restore_only_plans(tmp_path):
    store = BackupStore(tmp_path / "backups")
    handle = backup_of(clean_host(disks=[system_disk(), data_disk(offline=False)]), store)
    system = clean_host(disks=[system_disk(), data_disk(offline=False, letter=None)])
    engine, prompts = make_engine(system, store, dry_run=True)

    run = engine.restore(handle)

    assert run.status is RunStatus.DRY_RUN
    assert [r.outcome for r in run.results] == [StepOutcome.PLANNED]
    assert system.mutation_count == 0
    assert prompts == []


def test_restore_without_backups_raises_not_found(tmp_path):
    engine, _ = make_engine(clean_host(), BackupStore(tmp_path / "backups"), yes=True)

    with pytest.raises(NotFoundError):
        engine.restore()


def test_latest_unreadable_backup_falls_back_to_older_one(tmp_path):
    store = BackupStore(tmp_path / "backups")
    older = backup_of(clean_host(), store)
    newer = backup_of(clean_host(), store)
    (newer.path / "devices.json").write_text("{not json")
    engine, _ = make_engine(clean_host(), store, yes=True)

    handle, _ = engine.select()

    assert handle.id == older.id


def test_explicit_unreadable_backup_raises(tmp_path):
    store = BackupStore(tmp_path / "backups")
    handle = backup_of(clean_host(), store)
    (handle.path / "network.json").write_text("[{\"id\": 1}]")
    engine, _ = make_engine(clean_host(), store, yes=True)

    with pytest.raises(CorruptDataError):
        engine.restore(handle)


def test_map_interface_prefers_mac_over_name():
    saved = static_interface("Ethernet", "00:15:5D:00:00:01", "10.0.0.5")
    by_name = dhcp_interface("Ethernet", "00:15:5D:00:00:99", id="1")
    by_mac = dhcp_interface("Ethernet 2", "00-15-5D-00-00-01", id="2")

    assert map_interface(saved, [by_name, by_mac]).id == "2"
    assert map_interface(saved, [by_name]).id == "1"
    with pytest.raises(RestoreMappingError):
        map_interface(saved, [dhcp_interface("Wi-Fi", "AA:BB:CC:DD:EE:FF")])


def test_name_fallback_never_takes_an_adapter_claimed_by_mac():
    by_mac = static_interface("Ethernet", "00:15:5D:00:00:01", "10.0.0.5")
    by_name = static_interface("Ethernet 2", "00:50:56:AA:BB:CC", "10.0.0.6")
    live = [dhcp_interface("Ethernet 2", "00-15-5D-00-00-01", id="7")]

    mapped, unmatched = map_interfaces([by_mac, by_name], live)

    assert [(saved.name, target.id) for saved, target in mapped] == [("Ethernet", "7")]
    ((saved, exc),) = unmatched
    assert saved.name == "Ethernet 2"
    assert "already the target" in exc.reason


def test_colliding_interfaces_are_applied_once(tmp_path):
    before = clean_host(
        interfaces=[
            static_interface("Ethernet", "00:15:5D:00:00:01", "10.0.0.5"),
            static_interface("Ethernet 2", "00:50:56:AA:BB:CC", "10.0.0.6"),
        ]
    )
    store = BackupStore(tmp_path / "backups")
    handle = backup_of(before, store)
    system = clean_host(interfaces=[dhcp_interface("Ethernet 2", "00-15-5D-00-00-01", id="7")])
    engine, _ = make_engine(system, store, yes=True)

    run = engine.restore(handle, include_network=True)

    assert [c for c in system.calls if c[0] == "apply_interface"] == [("apply_interface", "7")]
    assert system.interfaces[0].addresses[0].address == "10.0.0.5"
    assert len(run.unmapped) == 1
    assert "Ethernet 2" in run.unmapped[0]


def test_removed_ghost_devices_do_not_trigger_a_rescan(tmp_path):
    system = migrated_host()
    store = BackupStore(tmp_path / "backups")
    sequencer = WorkflowSequencer(
        probe=InventoryProbe(system),
        executor=StepExecutor(system),
        gate=ConfirmationGate(assume_yes=True),
        store=store,
    )
    sequencer.run(resolve_tasks(["clean-devices"]))
    engine, _ = make_engine(system, store, yes=True)

    run = engine.restore()

    assert run.status is RunStatus.NOTHING_TO_DO
    assert ("rescan_devices", "*") not in system.calls


def test_restore_summary_names_its_source_backup(tmp_path):
    store = BackupStore(tmp_path / "backups")
    handle = backup_of(clean_host(disks=[system_disk(), data_disk(offline=False, letter="E")]), store)
    system = clean_host(disks=[system_disk(), data_disk(offline=False, letter=None)])
    engine, _ = make_engine(system, store, yes=True)

    run = engine.restore(handle)
    summary = format_summary(run)

    assert run.backup == handle
    assert f"Restored from backup: {handle.id}" in summary
    assert "none taken" not in summary
    assert "Undo with" not in summary
