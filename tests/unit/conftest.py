"""
Shared fixtures for the unit tests.

``TarfileCodec`` archives in-process with ``tarfile`` so that orchestrator
tests do not depend on the system ``tar``/``zstd`` binaries.
"""

import tarfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

import pytest

from macsafe_py.cancellation import CancellationSupervisor
from macsafe_py.engine import BaseCodec
from macsafe_py.exceptions import AlreadyExistsError, ArchiveError, NotFoundError
from macsafe_py.store import BackupStore

_EXTRACT_KWARGS: Dict[str, Any] = (
    {"filter": "data"} if hasattr(tarfile, "data_filter") else {}
)


class TarfileCodec(BaseCodec):
    def __init__(
        self,
        supervisor: Optional[CancellationSupervisor] = None,
        fail_on: Iterable[str] = (),
        on_create: Optional[Callable[[Path, Path], None]] = None,
    ):
        self.supervisor = supervisor
        self.fail_on = set(fail_on)
        self.on_create = on_create
        self.created = []

    def extension(self) -> str:
        return "tar.gz"

    def create(self, source: Path, target: Path) -> None:
        if source.name in self.fail_on:
            raise ArchiveError(f"tar failed for {source}")
        with tarfile.open(target, "w:gz") as tar:
            tar.add(source, arcname=source.name)
        self.created.append(target.name)
        if self.on_create:
            self.on_create(source, target)

    def extract(self, archive: Path, target: Path, overwrite: bool) -> None:
        if not archive.exists():
            raise NotFoundError(f"Archive not found: {archive}")
        if target.exists() and not overwrite:
            raise AlreadyExistsError(f"{target} already exists")
        target.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive) as tar:
            tar.extractall(target.parent, **_EXTRACT_KWARGS)

    def unpack(self, archive: Path, directory: Path) -> None:
        if not archive.exists():
            raise NotFoundError(f"Archive not found: {archive}")
        directory.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive) as tar:
            tar.extractall(directory, **_EXTRACT_KWARGS)


class FixedClock:
    """Returns a fixed instant, advancing by *step* seconds per call."""

    def __init__(self, start: Optional[datetime] = None, step: int = 1):
        self.now = start or datetime(2024, 3, 1, 9, 30, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = datetime.fromtimestamp(current.timestamp() + self.step, timezone.utc)
        return current


@pytest.fixture
def home(tmp_path: Path) -> Path:
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def store(tmp_path: Path) -> BackupStore:
    target = tmp_path / "volume"
    target.mkdir()
    return BackupStore(target)


@pytest.fixture
def codec() -> TarfileCodec:
    return TarfileCodec()
