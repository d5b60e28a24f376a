"""Command line interface for post-migration cleanup."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from .backup import BackupStore
from .config import PostMigrateConfig, load_config
from .confirm import ConfirmationGate
from .constants import EXIT_OK, EXIT_PRECONDITION
from .contracts import RunStatus, WorkflowRun
from .errors import BackupError, PreconditionError
from .executor import StepExecutor
from .history import RunRepository, get_repository
from .inventory import InventoryProbe
from .logs import configure_logging
from .preconditions import check_elevated, check_platform
from .report import exit_code_for, format_summary
from .restore import RestoreEngine
from .sequencer import WorkflowSequencer
from .systems import SystemManager, get_system_manager, resolve_backend
from .tasks import TASKS, resolve_tasks

app = typer.Typer(help="Clean up virtual machines after migrating off VMware")

# Command groups
backups_app = typer.Typer(help="Commands for inspecting backups")
history_app = typer.Typer(help="Commands for inspecting past runs")

app.add_typer(backups_app, name="backups")
app.add_typer(history_app, name="history")

STATUS_COLORS = {
    RunStatus.COMPLETED: typer.colors.GREEN,
    RunStatus.NOTHING_TO_DO: typer.colors.GREEN,
    RunStatus.DRY_RUN: typer.colors.CYAN,
    RunStatus.COMPLETED_WITH_ERRORS: typer.colors.YELLOW,
    RunStatus.ABORTED_BY_OPERATOR: typer.colors.RED,
    RunStatus.ABORTED_PRECONDITION: typer.colors.RED,
    RunStatus.ABORTED_BACKUP_FAILED: typer.colors.RED,
}


class CliOptions(BaseModel):
    """Global flags, threaded to every command through ``ctx.obj``."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    config: PostMigrateConfig
    dry_run: bool = False
    yes: bool = False


def _fail(message: str, code: int = EXIT_PRECONDITION) -> None:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=code)


def _prompt(question: str) -> str:
    try:
        return typer.prompt(question, default="", show_default=False)
    except typer.Abort:
        raise EOFError from None


def _system(options: CliOptions, elevated: bool = True) -> SystemManager:
    backend = resolve_backend(options.config.backend)
    try:
        check_platform(backend)
        system = get_system_manager(backend, options.config)
        if elevated:
            check_elevated(system)
    except PreconditionError as exc:
        _fail(str(exc))
    return system


def _repository(config: PostMigrateConfig) -> Optional[RunRepository]:
    try:
        return get_repository(config=config)
    except (OSError, sqlite3.Error, ValueError) as exc:
        typer.secho(f"Run history disabled: {exc}", fg=typer.colors.YELLOW)
        return None


def _gate(options: CliOptions) -> ConfirmationGate:
    return ConfirmationGate(prompt=_prompt, assume_yes=options.yes, dry_run=options.dry_run)


def _finish(run: WorkflowRun) -> None:
    typer.secho(format_summary(run), fg=STATUS_COLORS.get(run.status))
    code = exit_code_for(run)
    if code != EXIT_OK:
        raise typer.Exit(code=code)


def _run_tasks(ctx: typer.Context, names: List[str], workflow: Optional[str] = None) -> None:
    options: CliOptions = ctx.obj
    config = options.config
    system = _system(options)
    sequencer = WorkflowSequencer(
        probe=InventoryProbe(system, config.match),
        executor=StepExecutor(system, config),
        gate=_gate(options),
        store=BackupStore(config.backup.directory),
        rules=config.match,
        repository=_repository(config),
        dry_run=options.dry_run,
        export_drivers=config.backup.export_drivers,
        log_dir=config.logging.directory,
    )
    run = sequencer.run(resolve_tasks(names), workflow=workflow or "+".join(names))
    _finish(run)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", help="YAML configuration file (default: postmigrate.yaml)"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Report what would change without changing anything"
    ),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Skip confirmation prompts (unattended run)"
    ),
    backup_dir: Optional[Path] = typer.Option(
        None, "--backup-dir", help="Directory holding snapshot backups"
    ),
    log_dir: Optional[Path] = typer.Option(
        None, "--log-dir", help="Directory for per-run log files and run history"
    ),
    backend: Optional[str] = typer.Option(
        None, "--backend", help="System backend: auto, windows, linux or inmemory"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Postmigrate CLI entry point."""
    if config is not None and not config.exists():
        _fail(f"Configuration file {config} does not exist")
    try:
        settings = load_config(config)
    except (yaml.YAMLError, ValidationError, TypeError) as exc:
        _fail(f"Invalid configuration: {exc}")

    if backup_dir is not None:
        settings.backup.directory = backup_dir
    if log_dir is not None:
        settings.logging.directory = log_dir
    if backend is not None:
        settings.backend = backend
    configure_logging(verbose, settings.logging.level)
    ctx.obj = CliOptions(config=settings, dry_run=dry_run, yes=yes)


@app.command("scan")
def scan(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Print the raw snapshot as JSON"),
) -> None:
    """
    Show the inventory and what each cleanup task would touch.

    Read-only: nothing is changed, confirmed or backed up.

    Example:
        postmigrate scan
        postmigrate scan --json > inventory.json
    """
    options: CliOptions = ctx.obj
    system = _system(options, elevated=False)
    snapshot = InventoryProbe(system, options.config.match).capture()
    if as_json:
        typer.echo(snapshot.model_dump_json(indent=2))
        return

    typer.echo(f"Host: {snapshot.hostname or 'unknown'} ({snapshot.platform})")
    typer.echo(f"Hypervisor: {snapshot.hypervisor or 'unknown'}")
    typer.echo(
        f"Devices: {len(snapshot.devices)} "
        f"({len(snapshot.non_present_devices())} non-present)"
    )
    typer.echo(f"Driver packages: {len(snapshot.drivers)}")
    for iface in snapshot.network:
        addresses = ", ".join(f"{a.address}/{a.prefix_length}" for a in iface.addresses)
        mode = "DHCP" if iface.dhcp else "static"
        typer.echo(f"Interface {iface.name} [{iface.mac}] {mode} {addresses}".rstrip())
    for software in snapshot.software:
        typer.echo(f"Installed: {software.name} {software.version or ''}".rstrip())
    for disk in snapshot.disks:
        flags = [f for f, on in (("offline", disk.offline), ("read-only", disk.read_only)) if on]
        typer.echo(f"Disk {disk.number}: {disk.name} {' '.join(flags)}".rstrip())
    for section, error in sorted(snapshot.errors.items()):
        typer.secho(f"Could not read {section}: {error}", fg=typer.colors.YELLOW)

    typer.echo("Planned work:")
    for task in TASKS.values():
        if task.members:
            continue
        steps = task.plan(snapshot, options.config.match)
        typer.echo(f"  {task.name}: {len(steps)} step(s)")
        for step in steps:
            typer.echo(f"    - {step.description or step.name}")


@app.command("uninstall-tools")
def uninstall_tools(ctx: typer.Context) -> None:
    """Uninstall VMware Tools / open-vm-tools."""
    _run_tasks(ctx, ["uninstall-tools"])


@app.command("clean-devices")
def clean_devices(ctx: typer.Context) -> None:
    """
    Remove non-present devices left behind by VMware.

    Example:
        postmigrate clean-devices
        postmigrate --dry-run clean-devices
    """
    _run_tasks(ctx, ["clean-devices"])


@app.command("clean-drivers")
def clean_drivers(ctx: typer.Context) -> None:
    """Delete VMware driver packages from the driver store."""
    _run_tasks(ctx, ["clean-drivers"])


@app.command("fix-disks")
def fix_disks(ctx: typer.Context) -> None:
    """Bring offline or read-only disks online and writable."""
    _run_tasks(ctx, ["fix-disks"])


@app.command("flush-dns")
def flush_dns(ctx: typer.Context) -> None:
    """Flush the DNS resolver cache."""
    _run_tasks(ctx, ["flush-dns"])


@app.command("reset-network")
def reset_network(ctx: typer.Context) -> None:
    """
    Reset the network stack. Asks twice; a restart is required afterwards.

    Static addressing may be lost; undo with ``restore --with-network``.
    """
    _run_tasks(ctx, ["reset-network"])


@app.command("clean-all")
def clean_all(ctx: typer.Context) -> None:
    """
    Uninstall tools, remove stale devices and drivers, then flush DNS.

    One confirmation and one backup cover the whole sequence.

    Example:
        postmigrate --yes --log-dir C:\\Logs clean-all
    """
    _run_tasks(ctx, ["clean-all"], workflow="clean-all")


@app.command("restore")
def restore(
    ctx: typer.Context,
    backup: Optional[str] = typer.Option(
        None, "--backup", help="Backup id to restore (default: newest readable)"
    ),
    with_network: bool = typer.Option(
        False, "--with-network", help="Also reapply saved network addressing"
    ),
) -> None:
    """
    Reinstall drivers and restore drive letters from a backup.

    Network addressing is only reapplied with --with-network. Interfaces are
    matched by MAC address, then by name; unmatched ones are reported.

    Example:
        postmigrate restore
        postmigrate restore --backup 20240101T120000000000Z --with-network
    """
    options: CliOptions = ctx.obj
    config = options.config
    system = _system(options)
    store = BackupStore(config.backup.directory)
    engine = RestoreEngine(
        system,
        store,
        _gate(options),
        executor=StepExecutor(system, config),
        repository=_repository(config),
        dry_run=options.dry_run,
        log_dir=config.logging.directory,
    )
    try:
        handle = store.get(backup) if backup else None
        run = engine.restore(handle, include_network=with_network)
    except BackupError as exc:
        _fail(str(exc))
    _finish(run)


@backups_app.command("list")
def backups_list(ctx: typer.Context) -> None:
    """List backups, newest first."""
    options: CliOptions = ctx.obj
    handles = BackupStore(options.config.backup.directory).list_backups()
    if not handles:
        typer.echo("No backups found")
        return
    for handle in handles:
        typer.echo(f"{handle.id}\t{handle.created_at.isoformat()}\t{handle.path}")


@history_app.command("list")
def history_list(ctx: typer.Context) -> None:
    """List recorded runs with their final status."""
    options: CliOptions = ctx.obj
    repo = _repository(options.config)
    runs = repo.list_runs() if repo is not None else []
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        status = run.status.value if run.status else "unfinished"
        typer.echo(f"{run.run_id}\t{run.started_at.isoformat()}\t{run.workflow}\t{status}")


@history_app.command("show")
def history_show(ctx: typer.Context, run_id: str) -> None:
    """
    Show the summary of a recorded run.

    Example:
        postmigrate history show 1b4e28ba-2fa1-11d2-883f-0016d3cca427
    """
    options: CliOptions = ctx.obj
    repo = _repository(options.config)
    run = repo.get_run(run_id) if repo is not None else None
    if run is None:
        typer.echo("Run not found")
        raise typer.Exit(code=1)
    typer.echo(format_summary(run))
    typer.echo("States: " + " -> ".join(s.value for s in run.transitions))
    if run.events:
        typer.echo("Events: " + ", ".join(run.events))


if __name__ == "__main__":
    app()
