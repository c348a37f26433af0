"""
Tar codec implementation for MacSafe.

This module wraps the system ``tar`` binary. Compression is delegated to
``zstd`` (all cores) when it is installed and to gzip otherwise; the choice is
made on every call so it always reflects the tools currently on the host.
"""

import logging
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional

from macsafe_py.cancellation import CancellationSupervisor
from macsafe_py.engine import BaseCodec
from macsafe_py.exceptions import (
    AlreadyExistsError,
    ArchiveError,
    BackupCancelledError,
    ExtractionError,
    NotFoundError,
)
from macsafe_py.platform import find_command

logger = logging.getLogger("macsafe.engine.tar")

SOCKET_EXCLUDES = ["--exclude", "*.sock", "--exclude", "*/sockets/*"]


class TarCodec(BaseCodec):
    """Archive codec backed by ``tar`` with zstd or gzip compression."""

    def __init__(
        self,
        supervisor: Optional[CancellationSupervisor] = None,
        binary_path: str = "tar",
    ):
        """
        Initialize the tar codec.

        Args:
            supervisor: Receives the pid of each archiving process so that a
                cancel request can terminate it.
            binary_path: Path to the tar binary
        """
        self.supervisor = supervisor or CancellationSupervisor()
        self.binary_path = binary_path

    def _zstd(self) -> Optional[str]:
        return find_command("zstd")

    def extension(self) -> str:
        return "tar.zst" if self._zstd() else "tar.gz"

    def _create_command(self, target: Path, name: str) -> List[str]:
        zstd = self._zstd()
        if zstd:
            return [
                self.binary_path,
                f"--use-compress-program={zstd} -T0",
                "-cf",
                str(target),
                *SOCKET_EXCLUDES,
                name,
            ]
        return [self.binary_path, "-czf", str(target), *SOCKET_EXCLUDES, name]

    def create(self, source: Path, target: Path) -> None:
        """
        Archive *source* into *target*.

        tar runs from the source's parent directory so the archive holds a
        single top-level entry named after the source. It is started as the
        leader of a new process group.
        """
        name = source.name or "backup"
        # tar runs in the source's parent, so relative paths would resolve there
        target = target.absolute()
        cmd = self._create_command(target, name)
        cmd_str = " ".join(shlex.quote(str(arg)) for arg in cmd)
        logger.debug(f"Running command: {cmd_str}")

        try:
            process = subprocess.Popen(
                cmd,
                cwd=str(source.parent),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                start_new_session=True,
            )
        except FileNotFoundError as e:
            raise ArchiveError(f"tar not available: {e}") from e

        self.supervisor.track(process.pid)
        try:
            _, stderr = process.communicate()
        finally:
            self.supervisor.untrack()

        if self.supervisor.is_cancelled():
            target.unlink(missing_ok=True)
            raise BackupCancelledError(f"Archiving {source} was cancelled")

        if process.returncode != 0:
            # Warnings such as "file changed as we read it" still leave a
            # usable archive behind.
            if target.exists():
                logger.warning(
                    f"tar exited with code {process.returncode} for {source}, "
                    f"archive kept"
                )
                if stderr:
                    logger.debug(f"tar stderr:\n{stderr}")
                return
            raise ArchiveError(
                f"tar failed for {source} (code {process.returncode})",
                {"stderr": (stderr or "").strip()[-500:]},
            )

    def _run(self, cmd: List[str], cwd: Path) -> subprocess.CompletedProcess:
        cmd_str = " ".join(shlex.quote(str(arg)) for arg in cmd)
        logger.debug(f"Running command: {cmd_str} (cwd={cwd})")
        try:
            return subprocess.run(
                cmd, cwd=str(cwd), capture_output=True, text=True, check=False
            )
        except FileNotFoundError as e:
            raise ExtractionError(f"{cmd[0]} not available: {e}") from e

    def _tar_extract(
        self, archive: Path, cwd: Path, keep_existing: bool
    ) -> subprocess.CompletedProcess:
        """Try zstd decompression first, then gzip for older archives."""
        keep = ["-k"] if keep_existing else []
        zstd = self._zstd()
        if zstd:
            result = self._run(
                [
                    self.binary_path,
                    *keep,
                    f"--use-compress-program={zstd} -d",
                    "-xf",
                    str(archive),
                ],
                cwd,
            )
            if result.returncode == 0:
                return result
            logger.debug(f"zstd extraction of {archive.name} failed, trying gzip")
        return self._run([self.binary_path, *keep, "-xzf", str(archive)], cwd)

    def extract(self, archive: Path, target: Path, overwrite: bool) -> None:
        archive = archive.absolute()
        if not archive.exists():
            raise NotFoundError(f"Archive not found: {archive}")

        parent = target.parent
        parent.mkdir(parents=True, exist_ok=True)

        if not overwrite and target.exists():
            raise AlreadyExistsError(
                f"{target} already exists and overwriting is disabled"
            )

        ditto = shutil.which("ditto")
        if ditto:
            result = self._run([ditto, "-x", "-k", str(archive), str(parent)], parent)
            if result.returncode == 0:
                logger.info(f"Extracted {archive.name} with ditto")
                return
            logger.debug(f"ditto could not extract {archive.name}, falling back to tar")

        result = self._tar_extract(archive, parent, keep_existing=not overwrite)
        if result.returncode != 0:
            stderr = result.stderr or ""
            # -k reports members it refused to replace; that is expected here.
            if not overwrite and "exist" in stderr:
                logger.info(f"Kept existing files while extracting {archive.name}")
                return
            raise ExtractionError(
                f"Extraction of {archive.name} failed", {"stderr": stderr.strip()}
            )
        logger.info(f"Extracted {archive.name} into {parent}")

    def unpack(self, archive: Path, directory: Path) -> None:
        archive = archive.absolute()
        if not archive.exists():
            raise NotFoundError(f"Archive not found: {archive}")
        directory.mkdir(parents=True, exist_ok=True)
        result = self._tar_extract(archive, directory, keep_existing=False)
        if result.returncode != 0:
            raise ExtractionError(
                f"Unpacking {archive.name} failed",
                {"stderr": (result.stderr or "").strip()},
            )
