"""
Command-line interface for MacSafe.

This module provides the command-line entry point for the MacSafe backup
application.
"""

import logging
import os
import signal
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Iterator, List, Optional

import keyring
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, TaskID
from rich.table import Table

from macsafe_py import __version__
from macsafe_py.backup import BackupOrchestrator
from macsafe_py.cancellation import CancellationSupervisor
from macsafe_py.config import MacsafeConfig
from macsafe_py.engine.tar import TarCodec
from macsafe_py.exceptions import BackupCancelledError, IntegrityError, MacSafeError
from macsafe_py.manifest.system import SystemInventoryProvider
from macsafe_py.progress import LoggingProgressSink, ProgressSink
from macsafe_py.restore import RestoreResult
from macsafe_py.restore.installer import installer_for_mode
from macsafe_py.restore.orchestrator import RestoreOrchestrator
from macsafe_py.store import BackupStore
from macsafe_py.verify import VerificationOrchestrator

# Set up the console and logger
console = Console()
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(console=console, rich_tracebacks=True)],
)
logger = logging.getLogger("macsafe")

KEYRING_SERVICE = "MACSAFE_TARGET"
KEYRING_ACCOUNT = "macsafe"

# Set by --json; progress then goes to the log instead of a live bar
json_output = False

app = typer.Typer(
    help="Point-in-time backup, verification and restore for macOS.",
    add_completion=False,
)

TargetOption = Annotated[
    Optional[str],
    typer.Option(
        "--target",
        "-t",
        help="Backup volume or directory. Uses MACSAFE_TARGET env var if not set.",
    ),
]
ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to the YAML configuration file."),
]


def get_target(target: Optional[str], config: MacsafeConfig) -> Optional[str]:
    """
    Resolve the backup target.

    The order of precedence is:
    1. Command-line argument
    2. Environment variable
    3. Configuration file
    4. Keyring
    """
    resolved = target or os.environ.get("MACSAFE_TARGET") or config.target
    if not resolved:
        resolved = keyring.get_password(KEYRING_SERVICE, KEYRING_ACCOUNT)
        if resolved:
            logger.debug("Loaded backup target from keyring.")
    return resolved


def log_error(message: str) -> None:
    """Log an error message to both logger and console."""
    logger.error(message)
    console.print(f"[red]{message}[/red]")
    return None


def open_store(target: Optional[str], config: MacsafeConfig) -> BackupStore:
    resolved = get_target(target, config)
    if not resolved:
        log_error(
            "Backup target not specified. "
            "Use --target, set MACSAFE_TARGET env var, or run init first."
        )
        raise typer.Exit(1)
    return BackupStore(Path(resolved))


def resolve_timestamp(store: BackupStore, timestamp: Optional[str]) -> str:
    """Return *timestamp*, or the run ``latest.json`` points at."""
    if timestamp:
        return timestamp
    latest = store.read_latest()
    if not latest or not latest.get("latest"):
        log_error(f"No backups found on {store.target}")
        raise typer.Exit(1)
    return str(latest["latest"])


def format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024:
            return f"{value:.1f} {unit}" if unit != "B" else f"{size} B"
        value /= 1024
    return f"{value:.1f} TB"


class RichProgressSink(ProgressSink):
    """Drives a ``rich`` progress bar."""

    def __init__(self, bar: Progress, task_id: TaskID) -> None:
        self.bar = bar
        self.task_id = task_id

    def log(self, message: str) -> None:
        self.bar.console.print(message)

    def progress(self, fraction: float, message: str) -> None:
        self.bar.update(self.task_id, completed=fraction * 100, description=message)


@contextmanager
def progress_sink() -> Iterator[ProgressSink]:
    if json_output:
        yield LoggingProgressSink(logger)
        return
    with Progress(console=console, transient=True) as bar:
        task_id = bar.add_task("Starting...", total=100)
        yield RichProgressSink(bar, task_id)


@contextmanager
def cancel_on_signals(supervisor: CancellationSupervisor) -> Iterator[None]:
    """Route SIGINT and SIGTERM to ``supervisor.request_cancel``."""

    def _handler(signum: int, frame: object) -> None:
        logger.warning(f"Received signal {signum}, cancelling backup...")
        supervisor.request_cancel()

    previous = {
        sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def print_restore_result(result: RestoreResult) -> None:
    for entry in result.restored:
        console.print(f"[green]Restored[/green] {entry}")
    for entry in result.skipped:
        console.print(f"[yellow]Skipped[/yellow] {entry}")
    for entry in result.errors:
        console.print(f"[red]Error[/red] {entry}")
    console.print(
        f"{result.restored_count} restored, {result.skipped_count} skipped, "
        f"{result.error_count} errors"
    )


@app.callback()
def callback(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose output."
    ),
    json: bool = typer.Option(False, "--json", help="Output logs in JSON format."),
    version: bool = typer.Option(
        False, "--version", help="Show the application version and exit."
    ),
) -> None:
    """
    MacSafe: archive what matters, verify it, rebuild the rest.
    """
    global json_output
    json_output = json

    if version:
        console.print(f"MacSafe version: {__version__}")
        raise typer.Exit()

    if verbose:
        logger.setLevel(logging.DEBUG)
        logger.debug("Verbose logging enabled")

    if json:
        for handler in list(logging.root.handlers):
            logging.root.removeHandler(handler)
        logging.basicConfig(
            level=logging.INFO if not verbose else logging.DEBUG,
            format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
            '"message": "%(message)s"}',
            datefmt="%Y-%m-%dT%H:%M:%S",
            stream=sys.stdout,
        )
        logger.debug("JSON logging enabled")


@app.command()
def init(target: TargetOption = None, config: ConfigOption = None) -> None:
    """
    Remember a backup target in the system keychain and prepare it.
    """
    settings = MacsafeConfig.load(config)
    resolved = target or os.environ.get("MACSAFE_TARGET") or settings.target
    if not resolved:
        log_error("Backup target not specified. Use --target or set MACSAFE_TARGET.")
        raise typer.Exit(1)

    target_path = Path(resolved).expanduser()
    if not target_path.is_dir():
        log_error(f"Backup target {target_path} does not exist or is not a directory")
        raise typer.Exit(1)

    store = BackupStore(target_path)
    try:
        store.data_dir.mkdir(parents=True, exist_ok=True)
        store.inventories_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        log_error(f"Cannot prepare {store.root}: {e}")
        raise typer.Exit(1)

    keyring.set_password(KEYRING_SERVICE, KEYRING_ACCOUNT, str(target_path))
    logger.info("Backup target saved to system keychain.")
    typer.echo(f"Backup target initialized at {store.root}")


@app.command()
def backup(
    paths: Annotated[
        Optional[List[str]],
        typer.Argument(
            help="Paths to back up. Uses the configured directories if not given."
        ),
    ] = None,
    target: TargetOption = None,
    config: ConfigOption = None,
    homebrew_cache: Annotated[
        Optional[bool],
        typer.Option(
            "--homebrew-cache/--no-homebrew-cache",
            help="Archive the Homebrew download cache (up to 2 GB).",
        ),
    ] = None,
    safari: Annotated[
        Optional[bool],
        typer.Option("--safari/--no-safari", help="Archive Safari bookmarks and settings."),
    ] = None,
) -> None:
    """
    Archive the configured paths and the software inventory.
    """
    settings = MacsafeConfig.load(config)
    store = open_store(target, settings)
    directories = paths or settings.directories

    supervisor = CancellationSupervisor()
    logger.info(f"Backing up {len(directories)} paths to {store.target}")

    with cancel_on_signals(supervisor), progress_sink() as sink:
        orchestrator = BackupOrchestrator(
            store,
            codec=TarCodec(supervisor),
            supervisor=supervisor,
            inventory=SystemInventoryProvider(),
            sink=sink,
            include_homebrew_cache=(
                settings.backup_homebrew_cache if homebrew_cache is None else homebrew_cache
            ),
            include_safari_settings=(
                settings.backup_safari_settings if safari is None else safari
            ),
        )
        try:
            manifest = orchestrator.run(directories)
        except BackupCancelledError:
            console.print("[yellow]Backup cancelled. No manifest was written.[/yellow]")
            raise typer.Exit(1)
        except (MacSafeError, OSError) as e:
            log_error(f"Backup failed: {e}")
            raise typer.Exit(1)

    table = Table(title=f"Backup {manifest.timestamp}")
    table.add_column("Item")
    table.add_column("Archive")
    table.add_column("Source size", justify="right")
    table.add_column("Archive size", justify="right")
    for item in manifest.items:
        table.add_row(
            item.path,
            item.archive,
            format_size(item.source_size_bytes),
            format_size(item.archive_size_bytes),
        )
    console.print(table)

    for error in orchestrator.errors:
        console.print(f"[yellow]Skipped {error}[/yellow]")
    typer.echo(
        f"Backup {manifest.timestamp} complete: {len(manifest.items)} items, "
        f"{format_size(manifest.total_source_size_bytes)}"
    )


@app.command()
def verify(
    timestamp: Annotated[
        Optional[str], typer.Argument(help="Run to verify. Defaults to the latest.")
    ] = None,
    target: TargetOption = None,
    config: ConfigOption = None,
    parallel: Annotated[
        Optional[bool],
        typer.Option("--parallel/--sequential", help="Hash archives in batches of four."),
    ] = None,
) -> None:
    """
    Check every archive of a run against its recorded SHA-256 digest.
    """
    settings = MacsafeConfig.load(config)
    store = open_store(target, settings)
    timestamp = resolve_timestamp(store, timestamp)
    use_parallel = settings.parallel_verify if parallel is None else parallel

    with progress_sink() as sink:
        try:
            result = VerificationOrchestrator(store, sink).verify(
                timestamp, parallel=use_parallel
            )
        except MacSafeError as e:
            log_error(str(e))
            raise typer.Exit(1)

    for failure in result.failed_files:
        console.print(f"[red]FAILED[/red] {failure}")
    try:
        result.raise_for_failures()
    except IntegrityError as e:
        log_error(e.message)
        raise typer.Exit(1)
    typer.echo(f"All {result.total_files} archives of {timestamp} verified")


@app.command()
def restore(
    timestamp: Annotated[str, typer.Argument(help="Run to restore from.")],
    items: Annotated[
        Optional[List[str]],
        typer.Argument(help="Item identifiers (paths or reserved names) to restore."),
    ] = None,
    all_items: Annotated[
        bool, typer.Option("--all", help="Restore every item of the run.")
    ] = False,
    overwrite: Annotated[
        bool,
        typer.Option("--overwrite", help="Replace existing files and force reinstalls."),
    ] = False,
    target: TargetOption = None,
    config: ConfigOption = None,
) -> None:
    """
    Restore selected items of a run.
    """
    settings = MacsafeConfig.load(config)
    store = open_store(target, settings)

    try:
        if all_items:
            selection = [item.path for item in store.load_manifest(timestamp).items]
        else:
            selection = items or []
        if not selection:
            log_error("Nothing to restore. Name items or pass --all.")
            raise typer.Exit(1)

        with progress_sink() as sink:
            orchestrator = RestoreOrchestrator(
                store,
                sink=sink,
                mas_installer=installer_for_mode(
                    settings.mas_install_mode, settings.mas_install_timeout
                ),
            )
            result = orchestrator.restore(timestamp, selection, overwrite)
    except MacSafeError as e:
        log_error(str(e))
        raise typer.Exit(1)

    print_restore_result(result)
    if not result.success:
        raise typer.Exit(1)


@app.command(name="quick-restore")
def quick_restore(
    timestamp: Annotated[
        Optional[str], typer.Argument(help="Run to use. Defaults to the latest.")
    ] = None,
    target: TargetOption = None,
    config: ConfigOption = None,
) -> None:
    """
    Install essential formulae and casks found in a run's Brewfile.
    """
    settings = MacsafeConfig.load(config)
    store = open_store(target, settings)
    timestamp = resolve_timestamp(store, timestamp)

    try:
        with progress_sink() as sink:
            result = RestoreOrchestrator(store, sink=sink).quick_restore(timestamp)
    except MacSafeError as e:
        log_error(str(e))
        raise typer.Exit(1)

    print_restore_result(result)
    if not result.success:
        raise typer.Exit(1)


@app.command(name="list")
def list_backups(target: TargetOption = None, config: ConfigOption = None) -> None:
    """
    List the runs stored on the target, newest first.
    """
    settings = MacsafeConfig.load(config)
    store = open_store(target, settings)
    backups = store.list_backups()
    if not backups:
        typer.echo("No backups found")
        return

    latest = (store.read_latest() or {}).get("latest")
    table = Table(title="Available Backups")
    table.add_column("Timestamp")
    table.add_column("Manifest")
    table.add_column("Latest")
    for entry in backups:
        table.add_row(
            entry.timestamp,
            "yes" if entry.has_manifest else "[red]missing[/red]",
            "*" if entry.timestamp == latest else "",
        )
    console.print(table)


@app.command()
def show(
    timestamp: Annotated[
        Optional[str], typer.Argument(help="Run to show. Defaults to the latest.")
    ] = None,
    target: TargetOption = None,
    config: ConfigOption = None,
) -> None:
    """
    Show the items, sizes and timings of a run.
    """
    settings = MacsafeConfig.load(config)
    store = open_store(target, settings)
    timestamp = resolve_timestamp(store, timestamp)
    try:
        details = store.backup_details(timestamp)
    except MacSafeError as e:
        log_error(str(e))
        raise typer.Exit(1)

    table = Table(title=f"Backup {details.timestamp}")
    table.add_column("Item")
    table.add_column("Archive")
    table.add_column("Source size", justify="right")
    table.add_column("Archive size", justify="right")
    for item in details.items:
        table.add_row(
            item.path,
            item.archive,
            format_size(item.source_size_bytes),
            format_size(item.archive_size_bytes),
        )
    console.print(table)
    console.print(
        f"Started {details.start_time}, finished {details.end_time} "
        f"({details.duration_seconds}s). Source {format_size(details.total_source_size_bytes)}, "
        f"archives {format_size(details.total_archive_size_bytes)}."
    )


@app.command()
def delete(
    timestamp: Annotated[str, typer.Argument(help="Run to delete.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")] = False,
    target: TargetOption = None,
    config: ConfigOption = None,
) -> None:
    """
    Delete a run and its inventory files.
    """
    settings = MacsafeConfig.load(config)
    store = open_store(target, settings)
    if not yes and not typer.confirm(f"Delete backup {timestamp}?"):
        raise typer.Exit(1)
    try:
        store.delete(timestamp)
    except MacSafeError as e:
        log_error(str(e))
        raise typer.Exit(1)
    typer.echo(f"Deleted backup {timestamp}")


@app.command(name="manual-apps")
def manual_apps(
    timestamp: Annotated[
        Optional[str], typer.Argument(help="Run to read. Defaults to the latest.")
    ] = None,
    target: TargetOption = None,
    config: ConfigOption = None,
) -> None:
    """
    List apps that were installed outside Homebrew and the App Store.
    """
    settings = MacsafeConfig.load(config)
    store = open_store(target, settings)
    timestamp = resolve_timestamp(store, timestamp)
    try:
        apps = store.manual_apps(timestamp)
    except MacSafeError as e:
        log_error(str(e))
        raise typer.Exit(1)
    if not apps:
        typer.echo("No manually installed apps recorded")
        return
    for name in apps:
        typer.echo(name)


@app.command()
def version() -> None:
    """Show the application version."""
    console.print(f"MacSafe version: {__version__}")


if __name__ == "__main__":
    app()
