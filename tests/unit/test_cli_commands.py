from fixtures.systems import VMWARE_TOOLS, migrated_host
from typer.testing import CliRunner

import postmigrate.history as history
import postmigrate.systems as systems
from postmigrate.backup import BackupStore
from postmigrate.cli import app
from postmigrate.contracts import RunStatus, StepOutcome, StepResult, WorkflowRun
from postmigrate.history import InMemoryRunRepository
from postmigrate.inventory import InventoryProbe


def _setup(tmp_path, system=None):
    systems._system_instance = system or migrated_host()
    repo = InMemoryRunRepository()
    history._repository_instance = repo
    args = [
        "--backend",
        "inmemory",
        "--backup-dir",
        str(tmp_path / "backups"),
        "--log-dir",
        str(tmp_path / "logs"),
    ]
    return repo, args


def test_scan_lists_planned_work(tmp_path):
    _, args = _setup(tmp_path, migrated_host(software=[VMWARE_TOOLS]))

    result = CliRunner().invoke(app, args + ["scan"])

    assert result.exit_code == 0, f"Output: {result.output}"
    output = result.stdout
    assert "Devices: 5 (4 non-present)" in output
    assert "Installed: VMware Tools 12.1.5" in output
    assert "clean-devices: 3 step(s)" in output
    assert "clean-drivers: 3 step(s)" in output
    assert "uninstall-tools: 1 step(s)" in output
    assert systems._system_instance.mutation_count == 0


def test_scan_json_output(tmp_path):
    _, args = _setup(tmp_path)

    result = CliRunner().invoke(app, args + ["scan", "--json"])

    assert result.exit_code == 0, f"Output: {result.output}"
    assert '"instance_id"' in result.stdout


def test_scan_does_not_require_elevation(tmp_path):
    _, args = _setup(tmp_path, migrated_host(elevated=False))
    assert CliRunner().invoke(app, args + ["scan"]).exit_code == 0


def test_history_commands_list_and_show(tmp_path):
    repo, args = _setup(tmp_path)
    run = WorkflowRun(workflow="clean-devices")
    run.record(StepResult(step="remove-device:A", outcome=StepOutcome.SUCCESS))
    run.finalize(RunStatus.COMPLETED)
    repo.save_run(run)

    runner = CliRunner()
    listed = runner.invoke(app, args + ["history", "list"])
    assert listed.exit_code == 0, f"Output: {listed.output}"
    assert run.run_id in listed.stdout
    assert "completed" in listed.stdout

    shown = runner.invoke(app, args + ["history", "show", run.run_id])
    assert shown.exit_code == 0, f"Output: {shown.output}"
    assert "remove-device:A: OK" in shown.stdout
    assert "States: init" in shown.stdout

    missing = runner.invoke(app, args + ["history", "show", "missing-id"])
    assert missing.exit_code == 1
    assert "Run not found" in missing.stdout


def test_history_list_empty(tmp_path):
    _, args = _setup(tmp_path)
    result = CliRunner().invoke(app, args + ["history", "list"])
    assert result.exit_code == 0
    assert "No runs found" in result.stdout


def test_backups_list(tmp_path):
    _, args = _setup(tmp_path)
    runner = CliRunner()

    empty = runner.invoke(app, args + ["backups", "list"])
    assert "No backups found" in empty.stdout

    store = BackupStore(tmp_path / "backups")
    handle = store.save(InventoryProbe(migrated_host()).capture())
    listed = runner.invoke(app, args + ["backups", "list"])
    assert listed.exit_code == 0
    assert handle.id in listed.stdout


def test_missing_config_file_is_a_precondition_failure(tmp_path):
    _, args = _setup(tmp_path)
    result = CliRunner().invoke(app, ["--config", str(tmp_path / "nope.yaml")] + args + ["scan"])
    assert result.exit_code == 1
    assert "does not exist" in result.stdout


def test_unsupported_backend_exits_with_precondition_code(tmp_path):
    _, args = _setup(tmp_path)
    result = CliRunner().invoke(app, args + ["--backend", "solaris", "flush-dns"])
    assert result.exit_code == 1
    assert "Unsupported platform" in result.stdout
