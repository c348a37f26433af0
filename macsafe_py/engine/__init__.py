"""
Engine package for MacSafe.

This module provides the manifest data model written for every backup run and
the base class for archive codecs. Codecs wrap an external archiver; the
engine never compresses data in-process.
"""

import abc
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

HOMEBREW_PACKAGES = "homebrew-packages"
MAS_APPS = "mas-apps"
VSCODE_EXTENSIONS = "vscode-extensions"
HOMEBREW_CACHE = "homebrew-cache"
SAFARI_SETTINGS = "safari-settings"

RESERVED_IDENTIFIERS = (
    HOMEBREW_PACKAGES,
    MAS_APPS,
    VSCODE_EXTENSIONS,
    HOMEBREW_CACHE,
    SAFARI_SETTINGS,
)

# Name of the single file stored inside each inventory snapshot archive.
INVENTORY_PAYLOADS = {
    HOMEBREW_PACKAGES: "homebrew_packages.txt",
    MAS_APPS: "mas_apps.txt",
    VSCODE_EXTENSIONS: "vscode_extensions.txt",
}


@dataclass
class BackupItem:
    """One archived unit inside a backup run."""

    path: str
    archive: str
    hash: str
    archive_size_bytes: int
    source_size_bytes: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupItem":
        return cls(
            path=data["path"],
            archive=data["archive"],
            hash=data["hash"],
            archive_size_bytes=int(data.get("archive_size_bytes", 0)),
            source_size_bytes=int(data.get("source_size_bytes", 0)),
        )


@dataclass
class BackupManifest:
    """Record of a single backup run, stored as ``metadata.json``."""

    timestamp: str
    items: List[BackupItem] = field(default_factory=list)
    hash_algorithm: str = "sha256"
    total_source_size_bytes: int = 0
    start_time: str = ""
    end_time: str = ""
    duration_seconds: int = 0

    def find(self, path: str) -> Optional[BackupItem]:
        """Return the item recorded for *path*, if any."""
        for item in self.items:
            if item.path == path:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupManifest":
        return cls(
            timestamp=data["timestamp"],
            items=[BackupItem.from_dict(i) for i in data.get("items", [])],
            hash_algorithm=data.get("hash_algorithm", "sha256"),
            total_source_size_bytes=int(data.get("total_source_size_bytes", 0)),
            start_time=data.get("start_time", ""),
            end_time=data.get("end_time", ""),
            duration_seconds=int(data.get("duration_seconds", 0)),
        )


def archive_stem(source_name: str) -> str:
    return source_name.lower().replace(" ", "-").replace(".", "_")


def archive_name_for(source_name: str, extension: str) -> str:
    """Build the archive file name for a source, e.g. ``my-docs.tar.zst``."""
    return f"{archive_stem(source_name)}.{extension}"


class BaseCodec(abc.ABC):
    """Base class for archive codecs."""

    @abc.abstractmethod
    def extension(self) -> str:
        """Return the archive extension for the backend chosen right now."""
        pass

    @abc.abstractmethod
    def create(self, source: Path, target: Path) -> None:
        """
        Archive *source* (file or directory) into *target*.

        Raises:
            ArchiveError: If no archive was produced.
            BackupCancelledError: If cancellation was requested meanwhile.
        """
        pass

    @abc.abstractmethod
    def extract(self, archive: Path, target: Path, overwrite: bool) -> None:
        """
        Restore *archive* so that its top-level entry lands at *target*.

        Raises:
            AlreadyExistsError: If *target* exists and *overwrite* is False.
            ExtractionError: If every extractor failed.
        """
        pass

    @abc.abstractmethod
    def unpack(self, archive: Path, directory: Path) -> None:
        """Extract *archive* into the scratch *directory*."""
        pass
