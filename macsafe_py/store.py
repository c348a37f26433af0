"""
On-disk layout of a MacSafe backup target.

Everything lives below ``<target>/macos-backup-suite``::

    data/<timestamp>/metadata.json     manifest of the run
    data/<timestamp>/*.tar.zst|.tar.gz archives
    inventories/<timestamp>/           raw inventory text
    latest.json                        pointer to the newest run

Runs are append-only; the only read-modify-write step is repointing
``latest.json`` when the newest run is deleted, and callers must not run a
backup and a delete against the same target concurrently.
"""

import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import orjson

from macsafe_py.engine import BackupManifest
from macsafe_py.exceptions import NotFoundError

logger = logging.getLogger("macsafe.store")

SUITE_DIRNAME = "macos-backup-suite"
MANIFEST_FILENAME = "metadata.json"
LATEST_FILENAME = "latest.json"
MANUAL_APPS_FILENAME = "manual_apps.txt"
TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"


def make_timestamp(moment: datetime) -> str:
    """Return the sortable, filesystem-safe run identifier for *moment*."""
    return moment.strftime(TIMESTAMP_FORMAT)


@dataclass
class BackupListItem:
    """A run directory found on the target."""

    timestamp: str
    has_manifest: bool


@dataclass
class BackupFileInfo:
    path: str
    archive: str
    archive_size_bytes: int
    source_size_bytes: int


@dataclass
class BackupDetails:
    """Summary of a run without digests, for display."""

    timestamp: str
    items: List[BackupFileInfo] = field(default_factory=list)
    total_source_size_bytes: int = 0
    total_archive_size_bytes: int = 0
    start_time: str = ""
    end_time: str = ""
    duration_seconds: int = 0


class BackupStore:
    """Access to the runs stored on one backup target."""

    def __init__(self, target: Path):
        self.target = Path(target).expanduser().absolute()
        self.root = self.target / SUITE_DIRNAME

    @property
    def data_dir(self) -> Path:
        return self.root / "data"

    @property
    def inventories_dir(self) -> Path:
        return self.root / "inventories"

    @property
    def latest_path(self) -> Path:
        return self.root / LATEST_FILENAME

    def run_dir(self, timestamp: str) -> Path:
        return self.data_dir / timestamp

    def inventory_dir(self, timestamp: str) -> Path:
        return self.inventories_dir / timestamp

    def manifest_path(self, timestamp: str) -> Path:
        return self.run_dir(timestamp) / MANIFEST_FILENAME

    def prepare_run(self, timestamp: str) -> Path:
        """Create the data and inventory directories for a new run."""
        run_dir = self.run_dir(timestamp)
        run_dir.mkdir(parents=True, exist_ok=True)
        self.inventory_dir(timestamp).mkdir(parents=True, exist_ok=True)
        return run_dir

    def load_manifest(self, timestamp: str) -> BackupManifest:
        """
        Read the manifest of a run.

        Raises:
            NotFoundError: If the run has no manifest.
        """
        path = self.manifest_path(timestamp)
        if not path.exists():
            raise NotFoundError(f"Backup not found: {timestamp}")
        try:
            data = orjson.loads(path.read_bytes())
        except orjson.JSONDecodeError as e:
            raise NotFoundError(
                f"Backup manifest for {timestamp} is unreadable: {e}"
            ) from e
        return BackupManifest.from_dict(data)

    def write_manifest(self, manifest: BackupManifest) -> Path:
        path = self.manifest_path(manifest.timestamp)
        path.write_bytes(orjson.dumps(manifest.to_dict(), option=orjson.OPT_INDENT_2))
        logger.info(f"Wrote manifest {path}")
        return path

    def read_latest(self) -> Optional[Dict[str, Any]]:
        if not self.latest_path.exists():
            return None
        try:
            data = orjson.loads(self.latest_path.read_bytes())
        except orjson.JSONDecodeError as e:
            logger.warning(f"Ignoring unreadable {self.latest_path}: {e}")
            return None
        return data if isinstance(data, dict) else None

    def write_latest(self, timestamp: str, created_at: datetime) -> None:
        payload = {"latest": timestamp, "created_at": created_at.isoformat()}
        self.latest_path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
        logger.debug(f"latest.json now points at {timestamp}")

    def list_backups(self) -> List[BackupListItem]:
        """Return all run directories, newest first."""
        if not self.data_dir.exists():
            return []
        backups = [
            BackupListItem(
                timestamp=entry.name,
                has_manifest=(entry / MANIFEST_FILENAME).exists(),
            )
            for entry in self.data_dir.iterdir()
            if entry.is_dir()
        ]
        backups.sort(key=lambda b: b.timestamp, reverse=True)
        return backups

    def backup_details(self, timestamp: str) -> BackupDetails:
        manifest = self.load_manifest(timestamp)
        items = [
            BackupFileInfo(
                path=item.path,
                archive=item.archive,
                archive_size_bytes=item.archive_size_bytes,
                source_size_bytes=item.source_size_bytes,
            )
            for item in manifest.items
        ]
        return BackupDetails(
            timestamp=manifest.timestamp,
            items=items,
            total_source_size_bytes=manifest.total_source_size_bytes,
            total_archive_size_bytes=sum(i.archive_size_bytes for i in items),
            start_time=manifest.start_time,
            end_time=manifest.end_time,
            duration_seconds=manifest.duration_seconds,
        )

    def manual_apps(self, timestamp: str) -> List[str]:
        """Return the manually installed apps recorded for a run."""
        path = self.inventory_dir(timestamp) / MANUAL_APPS_FILENAME
        if not path.exists():
            raise NotFoundError(f"{MANUAL_APPS_FILENAME} not found for {timestamp}")
        return [line for line in path.read_text().splitlines() if line.strip()]

    def delete(self, timestamp: str) -> None:
        """
        Remove a run and its inventory directory.

        When the removed run was the latest one, ``latest.json`` is repointed at
        the newest remaining run, or removed when no run is left.
        """
        run_dir = self.run_dir(timestamp)
        if not run_dir.exists():
            raise NotFoundError(f"Backup {timestamp} not found")

        shutil.rmtree(run_dir)
        inventory_dir = self.inventory_dir(timestamp)
        if inventory_dir.exists():
            shutil.rmtree(inventory_dir, ignore_errors=True)
        logger.info(f"Deleted backup {timestamp}")

        latest = self.read_latest()
        if not latest or latest.get("latest") != timestamp:
            return

        remaining = self.list_backups()
        if remaining:
            self.write_latest(remaining[0].timestamp, datetime.now().astimezone())
        else:
            self.latest_path.unlink(missing_ok=True)
            logger.info("No backups left, removed latest.json")
