"""
Backup orchestration for MacSafe.

One ``BackupOrchestrator.run`` call produces one run directory: inventory
text, one archive per configured path, the three software inventory
snapshots, optional Homebrew cache and Safari settings archives, and finally
the manifest and the ``latest.json`` pointer.

A cancelled run never writes a manifest. Archives completed before the
cancellation stay on disk; the one in flight is removed.
"""

import logging
import shutil
import tempfile
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set

from macsafe_py.cancellation import CancellationSupervisor
from macsafe_py.digest import HASH_ALGORITHM, hash_file
from macsafe_py.engine import (
    HOMEBREW_CACHE,
    HOMEBREW_PACKAGES,
    INVENTORY_PAYLOADS,
    MAS_APPS,
    RESERVED_IDENTIFIERS,
    SAFARI_SETTINGS,
    VSCODE_EXTENSIONS,
    BackupItem,
    BackupManifest,
    BaseCodec,
    archive_stem,
)
from macsafe_py.engine.tar import TarCodec
from macsafe_py.exceptions import ArchiveError, BackupCancelledError
from macsafe_py.manifest import InventoryProvider, StaticInventoryProvider
from macsafe_py.paths import directory_size, expand_home, format_duration, source_size
from macsafe_py.platform import homebrew_cache_candidates
from macsafe_py.progress import (
    NullProgressSink,
    ProgressSink,
    notify_log,
    notify_progress,
)
from macsafe_py.store import MANUAL_APPS_FILENAME, BackupStore, make_timestamp

logger = logging.getLogger("macsafe.backup")

MAX_HOMEBREW_CACHE_BYTES = 2 * 1024 * 1024 * 1024


class BackupState(Enum):
    """Stages of a backup run."""

    INITIALIZING = "initializing"
    COLLECTING_INVENTORY = "collecting_inventory"
    ARCHIVING_DIRECTORIES = "archiving_directories"
    ARCHIVING_INVENTORY_ITEMS = "archiving_inventory_items"
    ARCHIVING_OPTIONAL_ITEMS = "archiving_optional_items"
    WRITING_MANIFEST = "writing_manifest"
    UPDATING_LATEST_POINTER = "updating_latest_pointer"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


def safari_backup_sources(home: Path) -> List[Path]:
    """Safari files and directories worth keeping (history is left out)."""
    return [
        home / "Library/Safari/Bookmarks.plist",
        home / "Library/Safari/ReadingListArchives",
        home / "Library/Safari/Extensions",
        home / "Library/Preferences/com.apple.Safari.plist",
        home / "Library/Containers/com.apple.Safari/Data/Library/Preferences",
        home / "Library/Safari/Favicon Cache",
        home / "Library/Safari/TopSites.plist",
        home / "Library/Safari/LastSession.plist",
    ]


def _now() -> datetime:
    return datetime.now().astimezone()


class BackupOrchestrator:
    """Runs a complete backup against one ``BackupStore``."""

    def __init__(
        self,
        store: BackupStore,
        codec: Optional[BaseCodec] = None,
        supervisor: Optional[CancellationSupervisor] = None,
        inventory: Optional[InventoryProvider] = None,
        sink: Optional[ProgressSink] = None,
        include_homebrew_cache: bool = False,
        include_safari_settings: bool = False,
        home: Optional[Path] = None,
        clock: Callable[[], datetime] = _now,
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Target the run is written to
            codec: Archive codec; defaults to a ``TarCodec`` sharing *supervisor*
            supervisor: Cancellation state shared with the codec
            inventory: Source of software inventory text
            sink: Receiver for progress and log notifications
            include_homebrew_cache: Archive the Homebrew download cache
            include_safari_settings: Archive Safari bookmarks and settings
            home: Home directory used for ``~`` expansion
            clock: Time source
        """
        self.store = store
        self.supervisor = supervisor or CancellationSupervisor()
        self.codec = codec or TarCodec(self.supervisor)
        self.inventory = inventory or StaticInventoryProvider()
        self.sink = sink or NullProgressSink()
        self.include_homebrew_cache = include_homebrew_cache
        self.include_safari_settings = include_safari_settings
        self.home = home or Path.home()
        self.clock = clock

        self.state = BackupState.INITIALIZING
        self.errors: List[str] = []

    def _log(self, message: str) -> None:
        logger.info(message)
        notify_log(self.sink, message)

    def _cancel(self, partial: Optional[Path] = None) -> None:
        """Clean up after a cancel request and abort the run."""
        if partial is not None:
            partial.unlink(missing_ok=True)
        self.supervisor.clear()
        self.state = BackupState.CANCELLED
        self._log("Backup cancelled")
        notify_progress(self.sink, 0.0, "Backup cancelled")
        raise BackupCancelledError("Backup was cancelled")

    def _check_cancelled(self, partial: Optional[Path] = None) -> None:
        if self.supervisor.is_cancelled():
            self._cancel(partial)

    def run(self, directories: Sequence[str]) -> BackupManifest:
        """
        Execute a backup of *directories*.

        Returns:
            The manifest written for the run.

        Raises:
            BackupCancelledError: If cancellation was requested.
            OSError: If the run directory, manifest or pointer cannot be written.
        """
        self.errors = []
        start = self.clock()
        timestamp = make_timestamp(start)
        self.state = BackupState.INITIALIZING

        try:
            run_dir = self.store.prepare_run(timestamp)
        except OSError:
            self.state = BackupState.FAILED
            raise

        self._log(f"=== Backup started: {start:%Y-%m-%d %H:%M:%S} ===")
        notify_progress(self.sink, 0.01, "Initializing backup...")

        self.state = BackupState.COLLECTING_INVENTORY
        self._log("Collecting software inventory...")
        inventory = self._collect_inventory(timestamp)
        notify_progress(self.sink, 0.15, "Inventory complete.")

        items: List[BackupItem] = []
        self.state = BackupState.ARCHIVING_DIRECTORIES
        items.extend(self._archive_directories(run_dir, directories))

        self.state = BackupState.ARCHIVING_INVENTORY_ITEMS
        notify_progress(self.sink, 0.8, "Archiving software inventory...")
        items.extend(self._archive_inventory(run_dir, inventory))

        self.state = BackupState.ARCHIVING_OPTIONAL_ITEMS
        if self.include_homebrew_cache:
            notify_progress(self.sink, 0.85, "Archiving Homebrew cache...")
            cache_item = self._archive_homebrew_cache(run_dir)
            if cache_item:
                items.append(cache_item)
        if self.include_safari_settings:
            notify_progress(self.sink, 0.9, "Archiving Safari settings...")
            safari_item = self._archive_safari_settings(run_dir)
            if safari_item:
                items.append(safari_item)

        self.state = BackupState.WRITING_MANIFEST
        end = self.clock()
        duration = max(0, int((end - start).total_seconds()))
        manifest = BackupManifest(
            timestamp=timestamp,
            items=items,
            hash_algorithm=HASH_ALGORITHM,
            total_source_size_bytes=sum(i.source_size_bytes for i in items),
            start_time=start.isoformat(timespec="seconds"),
            end_time=end.isoformat(timespec="seconds"),
            duration_seconds=duration,
        )
        try:
            self.store.write_manifest(manifest)
            self.state = BackupState.UPDATING_LATEST_POINTER
            self.store.write_latest(timestamp, end)
        except OSError:
            self.state = BackupState.FAILED
            raise

        self.state = BackupState.COMPLETED
        self._log(
            f"=== Backup finished: {end:%Y-%m-%d %H:%M:%S} "
            f"(duration: {format_duration(duration)}) ==="
        )
        notify_progress(self.sink, 1.0, "Backup complete.")
        return manifest

    def _collect(self, label: str, getter: Callable[[], object]) -> object:
        try:
            return getter()
        except Exception as e:
            logger.warning(f"Could not collect {label}: {e}")
            return None

    def _collect_inventory(self, timestamp: str) -> Dict[str, str]:
        """Persist raw inventory text and return the snapshot contents."""
        inventory_dir = self.store.inventory_dir(timestamp)
        brewfile = self._collect("Brewfile", self.inventory.brewfile)
        mas_apps = self._collect("App Store apps", self.inventory.mas_apps)
        manual_apps = self._collect("manual apps", self.inventory.manual_apps)
        extensions = self._collect("VS Code extensions", self.inventory.vscode_extensions)

        def _persist(name: str, content: str) -> None:
            try:
                (inventory_dir / name).write_text(content)
            except OSError as e:
                logger.warning(f"Could not write inventory {name}: {e}")

        if isinstance(brewfile, str):
            _persist("Brewfile", brewfile)
            self._log(f"Brewfile saved: {len(brewfile.splitlines())} entries")
        if isinstance(manual_apps, list):
            _persist(MANUAL_APPS_FILENAME, "\n".join(manual_apps))
            self._log(f"Manually installed apps: {len(manual_apps)}")
        if isinstance(extensions, list):
            _persist("vscode_extensions.txt", "\n".join(extensions))
            self._log(f"VS Code extensions: {len(extensions)}")
        else:
            self._log("VS Code not installed, extensions skipped")

        return {
            HOMEBREW_PACKAGES: brewfile if isinstance(brewfile, str) else "",
            MAS_APPS: mas_apps if isinstance(mas_apps, str) else "",
            VSCODE_EXTENSIONS: (
                "\n".join(extensions) if isinstance(extensions, list) else ""
            ),
        }

    def _record(self, path: str, archive_path: Path, size: int) -> Optional[BackupItem]:
        try:
            digest = hash_file(archive_path)
            archive_size = archive_path.stat().st_size
        except OSError as e:
            self.errors.append(f"{path}: {e}")
            logger.error(f"Could not hash {archive_path}: {e}")
            return None
        return BackupItem(
            path=path,
            archive=archive_path.name,
            hash=digest,
            archive_size_bytes=archive_size,
            source_size_bytes=size,
        )

    def _archive(self, path: str, source: Path, archive_path: Path) -> bool:
        """Run the codec; cancellation aborts the run, failures skip the item."""
        try:
            self.codec.create(source, archive_path)
        except BackupCancelledError:
            self._cancel(archive_path)
        except ArchiveError as e:
            self.errors.append(f"{path}: {e}")
            self._log(f"Failed to archive {path}: {e}")
            return False
        self._check_cancelled(archive_path)
        return True

    def _unique_archive_name(self, name: str, used: Set[str]) -> str:
        """Archive file name for *name*, suffixed with -2, -3, ... when taken."""
        extension = self.codec.extension()
        stem = archive_stem(name)
        candidate = f"{stem}.{extension}"
        counter = 2
        while candidate in used:
            candidate = f"{stem}-{counter}.{extension}"
            counter += 1
        used.add(candidate)
        return candidate

    def _archive_directories(
        self, run_dir: Path, directories: Sequence[str]
    ) -> List[BackupItem]:
        items: List[BackupItem] = []
        extension = self.codec.extension()
        used = {f"{identifier}.{extension}" for identifier in RESERVED_IDENTIFIERS}
        total = len(directories)
        for i, entry in enumerate(directories):
            self._check_cancelled()

            source = expand_home(entry, self.home)
            if not source.exists():
                self._log(f"Skipping {entry} (not found)")
                continue

            name = source.name or "backup"
            archive_path = run_dir / self._unique_archive_name(name, used)
            self._log(f"Archiving {entry} ...")
            notify_progress(
                self.sink, 0.15 + 0.6 * (i + 1) / total, f"Archiving {name}..."
            )

            size = source_size(source)
            if not self._archive(entry, source, archive_path):
                continue
            item = self._record(entry, archive_path, size)
            if item:
                items.append(item)
        return items

    def _archive_inventory(
        self, run_dir: Path, inventory: Dict[str, str]
    ) -> List[BackupItem]:
        items: List[BackupItem] = []
        for identifier in (HOMEBREW_PACKAGES, MAS_APPS, VSCODE_EXTENSIONS):
            self._check_cancelled()
            content = inventory.get(identifier, "")
            staging = Path(tempfile.mkdtemp(prefix="macsafe-inventory-"))
            try:
                payload = staging / INVENTORY_PAYLOADS[identifier]
                payload.write_text(content)
                size = payload.stat().st_size
                archive_path = run_dir / f"{identifier}.{self.codec.extension()}"
                if not self._archive(identifier, payload, archive_path):
                    continue
                item = self._record(identifier, archive_path, size)
            finally:
                shutil.rmtree(staging, ignore_errors=True)
            if item:
                items.append(item)
                self._log(f"{identifier} archived: {size} bytes")
        return items

    def _archive_homebrew_cache(self, run_dir: Path) -> Optional[BackupItem]:
        self._log("Checking Homebrew cache...")
        cache_dir = next((p for p in homebrew_cache_candidates() if p.exists()), None)
        if cache_dir is None:
            self._log("No Homebrew cache found")
            return None

        size = directory_size(cache_dir)
        if size == 0:
            self._log("Homebrew cache is empty, skipped")
            return None
        if size > MAX_HOMEBREW_CACHE_BYTES:
            self._log(
                f"Homebrew cache too large ({size / 1024 ** 3:.1f} GB > 2 GB max), "
                f"skipped"
            )
            return None

        self._check_cancelled()
        archive_path = run_dir / f"{HOMEBREW_CACHE}.{self.codec.extension()}"
        self._log(f"Archiving Homebrew cache ({size / 1024 ** 2:.1f} MB)...")
        if not self._archive(HOMEBREW_CACHE, cache_dir, archive_path):
            return None
        return self._record(HOMEBREW_CACHE, archive_path, size)

    def _archive_safari_settings(self, run_dir: Path) -> Optional[BackupItem]:
        self._log("Saving Safari settings...")
        staging_root = Path(tempfile.mkdtemp(prefix="macsafe-safari-"))
        staging = staging_root / SAFARI_SETTINGS
        try:
            staging.mkdir()
            copied = 0
            for source in safari_backup_sources(self.home):
                if not source.exists():
                    continue
                dest = staging / source.name
                try:
                    if source.is_dir():
                        shutil.copytree(source, dest, symlinks=True)
                    else:
                        shutil.copy2(source, dest)
                    copied += 1
                except (OSError, shutil.Error) as e:
                    logger.warning(f"Could not copy {source}: {e}")

            if copied == 0:
                self._log("No Safari settings found")
                return None

            self._check_cancelled()
            archive_path = run_dir / f"{SAFARI_SETTINGS}.{self.codec.extension()}"
            if not self._archive(SAFARI_SETTINGS, staging, archive_path):
                return None
            item = self._record(SAFARI_SETTINGS, archive_path, directory_size(staging))
            if item:
                self._log(f"Safari settings archived: {copied} files/folders")
            return item
        finally:
            shutil.rmtree(staging_root, ignore_errors=True)
