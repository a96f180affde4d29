"""Typer-powered command line interface for ``updatectl``.

``updatectl install <pid>`` installs the staged update package over the
folder the running application lives in and makes sure the application is
running again afterwards. The remaining commands inspect the inputs and the
snapshots an install leaves behind.
"""
from __future__ import annotations

import json
import textwrap
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .backups import (
    APPDATA_KIND,
    INSTALL_KIND,
    BackupManager,
    SnapshotRegistry,
    SnapshotRegistryError,
)
from .config import AppConfig, ConfigError, load_config
from .errors import UpdateError
from .exit_codes import ExitCode
from .folders import AppFolders
from .locking import LockError, LockManager
from .logging import OperationScope, StructuredLogger
from .orchestrator import InstallOrchestrator, InstallPath, resolve_installation_folder
from .platform import PlatformInfo
from .process_control import ProcessController
from .providers import (
    AppLauncher,
    AppTypeDetector,
    DiskProvider,
    ProcessProvider,
    ServiceProvider,
    create_service_provider,
)
from .restart import select_restart_strategy
from .transfer import InstallTransferExecutor
from .verify import PreconditionVerifier

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to updatectl's YAML config file.",
)
INSTALL_DIR_OPTION = typer.Option(
    None,
    "--install-dir",
    file_okay=False,
    help="Installation folder to update (defaults to the folder of the running executable).",
)
PACKAGE_DIR_OPTION = typer.Option(
    None,
    "--package-dir",
    file_okay=False,
    help="Staged update package folder (defaults to update_package_dir from config).",
)
JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit the result as JSON.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Install a staged application update over a live installation.

        The running process is stopped (or handed to its supervisor), the
        installation folder is backed up and replaced, and the application is
        restarted whether the replace succeeded or was rolled back.
        """
    ).strip(),
)
snapshots_app = typer.Typer(help="Inspect installation and app-data snapshots.")
config_app = typer.Typer(help="Inspect the effective configuration.")

app.add_typer(snapshots_app, name="snapshot")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    platform: PlatformInfo
    logger: StructuredLogger
    locks: LockManager
    processes: ProcessProvider
    disk: DiskProvider
    services: ServiceProvider
    launcher: AppLauncher
    detector: AppTypeDetector
    snapshots: SnapshotRegistry


def _ensure_runtime(
    ctx: typer.Context,
    config_file: Path | None,
    lock_timeout_override: float | None = None,
) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    overrides: dict[str, object] = {}
    if lock_timeout_override is not None:
        overrides["lock_timeout"] = lock_timeout_override

    try:
        config = load_config(config_file=config_file, overrides=overrides)
    except ConfigError as exc:
        console.print(f"[red]Invalid configuration: {exc}[/red]")
        raise typer.Exit(code=ExitCode.VALIDATION) from exc

    platform = PlatformInfo.detect()
    processes = ProcessProvider()
    services = create_service_provider(
        platform,
        config.app.service_name,
        systemctl_bin=config.services.systemctl_bin,
        sc_bin=config.services.sc_bin,
    )
    launcher = AppLauncher(
        services,
        executable=config.app.executable,
        console_executable=config.app.console_executable,
        launch_args=config.app.launch_args,
    )
    runtime = RuntimeContext(
        config=config,
        platform=platform,
        logger=StructuredLogger(config.logs_dir),
        locks=LockManager(config.runtime_dir, config.lock_timeout),
        processes=processes,
        disk=DiskProvider(),
        services=services,
        launcher=launcher,
        detector=AppTypeDetector(processes, services, app_name=config.app.name),
        snapshots=SnapshotRegistry(config.backups.root, config.backups.index),
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None, None)


def _backup_manager(runtime: RuntimeContext, folders: AppFolders) -> BackupManager:
    return BackupManager(
        runtime.snapshots,
        runtime.disk,
        folders,
        data_files=runtime.config.app.data_files,
        retain=runtime.config.backups.retain,
    )


def build_orchestrator(runtime: RuntimeContext, folders: AppFolders) -> InstallOrchestrator:
    """Wire an :class:`InstallOrchestrator` from the runtime context."""
    config = runtime.config
    controller = ProcessController(
        runtime.processes,
        runtime.services,
        timeout=config.restart.terminate_timeout,
    )
    strategy = select_restart_strategy(
        runtime.platform,
        config.restart,
        controller,
        runtime.launcher,
        process_name=config.app.name,
    )
    return InstallOrchestrator(
        verifier=PreconditionVerifier(runtime.processes, folders),
        detector=runtime.detector,
        controller=controller,
        backups=_backup_manager(runtime, folders),
        transfer=InstallTransferExecutor(
            runtime.disk,
            folders,
            runtime.platform,
            executable=config.app.executable,
            executable_mode=config.install.executable_mode,
        ),
        strategy=strategy,
        locks=runtime.locks,
    )


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the updatectl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    lock_timeout: float | None = typer.Option(
        None,
        "--lock-timeout",
        help="Override lock acquisition timeout in seconds.",
    ),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        runtime = _ensure_runtime(ctx, config_file, lock_timeout)
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"updatectl {__version__}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=0)

    _ensure_runtime(ctx, config_file, lock_timeout)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=0)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=int(rc))


def _resolve_target(
    runtime: RuntimeContext,
    op: OperationScope,
    process_id: int,
    install_dir: Path | None,
) -> Path:
    if install_dir is not None:
        return install_dir
    try:
        folder = resolve_installation_folder(runtime.processes, process_id)
    except UpdateError as exc:
        _command_error(op, str(exc), rc=exc.exit_code)
    op.add_step("resolve.install_dir", status="info", detail=str(folder))
    return folder


@app.command()
def install(
    ctx: typer.Context,
    process_id: int = typer.Argument(..., help="Process id of the running application."),
    install_dir: Path | None = INSTALL_DIR_OPTION,
    package_dir: Path | None = PACKAGE_DIR_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Install the staged update package over the running application."""
    runtime = _get_runtime(ctx)
    folders = AppFolders.from_config(runtime.config, package_dir=package_dir)
    args = {
        "process_id": process_id,
        "install_dir": install_dir,
        "package_dir": folders.update_package,
        "json": json_output,
    }
    with runtime.logger.operation(
        "install",
        args=args,
        target={"kind": "installation", "path": install_dir},
    ) as op:
        target = _resolve_target(runtime, op, process_id, install_dir)
        orchestrator = build_orchestrator(runtime, folders)
        try:
            result = orchestrator.install(target, process_id, op=op)
        except UpdateError as exc:
            _command_error(op, str(exc), rc=exc.exit_code, errors=[type(exc).__name__])
        except LockError as exc:
            _command_error(op, str(exc), rc=ExitCode.ENVIRONMENT)

        payload = result.to_dict()
        backup_ids = [snapshot.id for snapshot in result.snapshots]
        if json_output:
            console.print_json(data=payload)
        elif result.path is InstallPath.SUCCEEDED:
            console.print(f"[green]Installed update into {target}.[/green]")
            console.print(f"Restart: {result.restart.value}")
        else:
            console.print(
                f"[yellow]Update failed and {target} was restored from backup.[/yellow]"
            )
            console.print(f"Restart: {result.restart.value}")

        if result.path is InstallPath.SUCCEEDED:
            op.success(
                "Update installed.",
                changed=1,
                backups=backup_ids,
                context=payload,
            )
        else:
            op.warning(
                "Update rolled back.",
                warnings=["rolled-back"],
                errors=[result.error or "replace failed"],
                changed=1,
                backups=backup_ids,
                context=payload,
                rc=int(ExitCode.PROVIDER),
            )
            raise typer.Exit(code=int(ExitCode.PROVIDER))


@app.command()
def verify(
    ctx: typer.Context,
    process_id: int = typer.Argument(..., help="Process id of the running application."),
    install_dir: Path | None = INSTALL_DIR_OPTION,
    package_dir: Path | None = PACKAGE_DIR_OPTION,
) -> None:
    """Check install preconditions without changing anything."""
    runtime = _get_runtime(ctx)
    folders = AppFolders.from_config(runtime.config, package_dir=package_dir)
    with runtime.logger.operation(
        "verify",
        args={"process_id": process_id, "install_dir": install_dir},
        target={"kind": "installation", "path": install_dir},
    ) as op:
        target = _resolve_target(runtime, op, process_id, install_dir)
        try:
            PreconditionVerifier(runtime.processes, folders).verify(target, process_id)
        except UpdateError as exc:
            _command_error(op, str(exc), rc=exc.exit_code, errors=[type(exc).__name__])
        console.print(f"[green]Ready to install {folders.update_package} into {target}.[/green]")
        op.success("Preconditions satisfied.", changed=0)


@snapshots_app.command("list")
def snapshot_list(
    ctx: typer.Context,
    kind: str | None = typer.Option(
        None,
        "--kind",
        help=f"Only list snapshots of this kind ({INSTALL_KIND} | {APPDATA_KIND}).",
    ),
    json_output: bool = JSON_OPTION,
) -> None:
    """List recorded snapshots, oldest first."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "snapshot list",
        args={"kind": kind, "json": json_output},
        target={"kind": "snapshots"},
    ) as op:
        if kind is not None and kind not in {INSTALL_KIND, APPDATA_KIND}:
            _command_error(op, f"Unknown snapshot kind '{kind}'.")
        manager = _backup_manager(runtime, AppFolders.from_config(runtime.config))
        try:
            snapshots = manager.list_snapshots(kind)
        except SnapshotRegistryError as exc:
            _command_error(op, str(exc), rc=ExitCode.ENVIRONMENT)

        if json_output:
            entries = [snapshot.to_entry() for snapshot in snapshots]
            for entry in entries:
                entry.pop("manifest", None)
            console.print_json(data={"snapshots": entries})
            op.success("Reported snapshots as JSON.", changed=0)
            return

        if not snapshots:
            console.print("No snapshots recorded.")
            op.success("Reported snapshots.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("ID", style="bold")
        table.add_column("Kind")
        table.add_column("Created")
        table.add_column("Files", justify="right")
        table.add_column("Status")
        table.add_column("Source")
        for snapshot in snapshots:
            table.add_row(
                snapshot.id,
                snapshot.kind,
                snapshot.created_at,
                str(len(snapshot.manifest)),
                snapshot.status,
                str(snapshot.source),
            )
        console.print(table)
        op.success("Reported snapshots.", changed=0)


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit configuration as JSON instead of a table.",
    ),
) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, dict):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "build_orchestrator", "main"]
