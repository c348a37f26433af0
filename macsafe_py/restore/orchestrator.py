"""
Restore orchestration.

``RestoreOrchestrator.restore`` works through an explicit selection of item
identifiers from one run's manifest. ``quick_restore`` ignores the selection
and installs a short list of essential formulae and casks that the run's
Brewfile mentions.
"""

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Optional, Sequence

from macsafe_py.engine import (
    HOMEBREW_CACHE,
    HOMEBREW_PACKAGES,
    INVENTORY_PAYLOADS,
    MAS_APPS,
    SAFARI_SETTINGS,
    VSCODE_EXTENSIONS,
    BackupItem,
    BaseCodec,
)
from macsafe_py.engine.tar import TarCodec
from macsafe_py.exceptions import (
    AlreadyExistsError,
    ExternalToolError,
    MacSafeError,
    NotFoundError,
)
from macsafe_py.manifest.brew import parse_brewfile
from macsafe_py.matching import essential_in_backup
from macsafe_py.paths import resolve_destination
from macsafe_py.platform import find_brew, homebrew_cache_restore_dir
from macsafe_py.progress import (
    NullProgressSink,
    ProgressSink,
    notify_log,
    notify_progress,
)
from macsafe_py.restore import RestoreResult
from macsafe_py.restore.cache import restore_homebrew_cache
from macsafe_py.restore.homebrew import install_package, restore_homebrew_packages
from macsafe_py.restore.installer import BatchedMasInstaller, MasInstaller
from macsafe_py.restore.mas import restore_mas_apps
from macsafe_py.restore.safari import restore_safari_settings
from macsafe_py.restore.vscode import restore_vscode_extensions
from macsafe_py.store import BackupStore

logger = logging.getLogger("macsafe.restore")

ESSENTIAL_BREWS = [
    "git",
    "vim",
    "python",
    "node",
    "curl",
    "wget",
    "htop",
    "tree",
    "jq",
    "ripgrep",
    "fd",
    "bat",
    "fzf",
]

ESSENTIAL_CASKS = [
    "visual-studio-code",
    "iterm2",
    "google-chrome",
    "firefox",
    "1password",
    "rectangle",
    "alfred",
]


class RestoreOrchestrator:
    """Restores items of stored runs back onto this machine."""

    def __init__(
        self,
        store: BackupStore,
        codec: Optional[BaseCodec] = None,
        sink: Optional[ProgressSink] = None,
        mas_installer: Optional[MasInstaller] = None,
        home: Optional[Path] = None,
        cache_dir: Optional[Path] = None,
    ):
        self.store = store
        self.codec = codec or TarCodec()
        self.sink = sink or NullProgressSink()
        self.mas_installer = mas_installer or BatchedMasInstaller()
        self.home = home or Path.home()
        self.cache_dir = cache_dir or homebrew_cache_restore_dir()

    def restore(
        self, timestamp: str, items: Sequence[str], overwrite: bool = False
    ) -> RestoreResult:
        """
        Restore the selected *items* of run *timestamp*.

        Args:
            timestamp: Run identifier
            items: Identifiers as recorded in the manifest's ``path`` field
            overwrite: Replace existing destinations and force reinstalls

        Returns:
            A ``RestoreResult``; unknown identifiers and per-item failures are
            listed in ``errors``.

        Raises:
            NotFoundError: If the run has no manifest.
        """
        manifest = self.store.load_manifest(timestamp)
        run_dir = self.store.run_dir(timestamp)
        result = RestoreResult()
        total = len(items)
        notify_log(self.sink, f"Restoring {total} items from {timestamp}")

        for i, identifier in enumerate(items, start=1):
            notify_progress(
                self.sink, (i - 1) / total, f"Restoring {identifier} ({i}/{total})"
            )
            item = manifest.find(identifier)
            if item is None:
                result.errors.append(f"{identifier}: not found in backup")
                continue

            try:
                outcome = self._restore_item(item, run_dir / item.archive, overwrite)
            except AlreadyExistsError:
                result.skipped.append(f"{item.path}: already exists")
                notify_log(self.sink, f"Skipped {item.path} (already exists)")
                continue
            except (MacSafeError, OSError) as e:
                logger.error(f"Failed to restore {item.path}: {e}")
                result.errors.append(f"{item.path}: {e}")
                continue

            result.restored.append(outcome)
            notify_log(self.sink, f"Restored {outcome}")

        notify_progress(self.sink, 1.0, "Restore complete.")
        logger.info(
            f"Restore of {timestamp} finished: {result.restored_count} restored, "
            f"{result.skipped_count} skipped, {result.error_count} errors"
        )
        return result

    def _restore_item(self, item: BackupItem, archive: Path, overwrite: bool) -> str:
        """Restore one item and return its outcome line."""
        if item.path == HOMEBREW_PACKAGES:
            return restore_homebrew_packages(self.codec, archive, overwrite)
        if item.path == MAS_APPS:
            return restore_mas_apps(self.codec, archive, self.mas_installer)
        if item.path == VSCODE_EXTENSIONS:
            return restore_vscode_extensions(self.codec, archive)
        if item.path == SAFARI_SETTINGS:
            return restore_safari_settings(self.codec, archive, self.home)
        if item.path == HOMEBREW_CACHE:
            return restore_homebrew_cache(self.codec, archive, self.cache_dir)

        destination = resolve_destination(item.path, self.home)
        if destination.exists() and not overwrite:
            raise AlreadyExistsError(f"{destination} already exists")
        self.codec.extract(archive, destination, overwrite)
        return item.path

    def _backed_up_brewfile(self, timestamp: str) -> str:
        manifest = self.store.load_manifest(timestamp)
        item = manifest.find(HOMEBREW_PACKAGES)
        if item is None:
            raise NotFoundError(f"{HOMEBREW_PACKAGES} not found in backup {timestamp}")

        scratch = Path(tempfile.mkdtemp(prefix="macsafe-quick-"))
        try:
            self.codec.unpack(self.store.run_dir(timestamp) / item.archive, scratch)
            payload = scratch / INVENTORY_PAYLOADS[HOMEBREW_PACKAGES]
            if not payload.exists():
                raise NotFoundError(f"{payload.name} missing from {item.archive}")
            return payload.read_text()
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

    def quick_restore(self, timestamp: str) -> RestoreResult:
        """
        Install the essential formulae and casks present in the run's Brewfile.

        Formulae are installed before casks. Packages brew reports as already
        installed are recorded as skipped.

        Raises:
            NotFoundError: If the run or its Brewfile snapshot is missing.
            ExternalToolError: If Homebrew is not available.
        """
        brewfile = parse_brewfile(self._backed_up_brewfile(timestamp))
        brews = [name for name in ESSENTIAL_BREWS if essential_in_backup(name, brewfile.brews)]
        casks = [name for name in ESSENTIAL_CASKS if essential_in_backup(name, brewfile.casks)]

        brew = find_brew()
        if not brew:
            raise ExternalToolError("Homebrew not available")

        result = RestoreResult()
        queue = [(name, False) for name in brews] + [(name, True) for name in casks]
        total = len(queue)
        notify_log(
            self.sink,
            f"Quick restore: {len(brews)} essential formulae, {len(casks)} essential casks",
        )

        for i, (name, cask) in enumerate(queue, start=1):
            notify_progress(self.sink, (i - 1) / total, f"Installing {name}...")
            self._quick_install(brew, name, cask, result)

        notify_progress(self.sink, 1.0, "Quick restore complete.")
        return result

    def _quick_install(
        self, brew: str, name: str, cask: bool, result: RestoreResult
    ) -> None:
        label = f"{name} (cask)" if cask else name
        try:
            installed = install_package(name, cask=cask, brew=brew)
        except ExternalToolError as e:
            result.errors.append(f"{label}: {e}")
            return
        if installed:
            result.restored.append(label)
        else:
            result.skipped.append(f"{label}: already installed")
