import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional

from macsafe_py.batching import run_bounded
from macsafe_py.engine import INVENTORY_PAYLOADS, VSCODE_EXTENSIONS, BaseCodec
from macsafe_py.exceptions import ExternalToolError, NotFoundError
from macsafe_py.platform import find_vscode

logger = logging.getLogger("macsafe.restore.vscode")

VSCODE_BATCH_SIZE = 6


def install_extensions(extensions: List[str], code: str) -> int:
    """Install *extensions* six at a time; returns how many exited cleanly."""

    def _install_one(extension: str) -> bool:
        try:
            result = subprocess.run(
                [code, "--install-extension", extension],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            logger.error(f"Failed to run code for {extension}: {e}")
            return False
        if result.returncode != 0:
            logger.warning(f"Failed to install extension {extension}: {result.stderr}")
            return False
        return True

    return sum(run_bounded(extensions, VSCODE_BATCH_SIZE, _install_one))


def restore_vscode_extensions(
    codec: BaseCodec, archive: Path, code: Optional[str] = None
) -> str:
    scratch = Path(tempfile.mkdtemp(prefix="macsafe-vscode-"))
    try:
        codec.unpack(archive, scratch)
        payload = scratch / INVENTORY_PAYLOADS[VSCODE_EXTENSIONS]
        if not payload.exists():
            raise NotFoundError(f"{payload.name} missing from {archive.name}")
        extensions = [
            line.strip() for line in payload.read_text().splitlines() if line.strip()
        ]
    finally:
        shutil.rmtree(scratch, ignore_errors=True)

    if not extensions:
        return f"{VSCODE_EXTENSIONS} (0 extensions)"

    code = code or find_vscode()
    if not code:
        raise ExternalToolError("VS Code (code) not available")

    installed = install_extensions(extensions, code)
    if installed == 0:
        raise ExternalToolError(f"0 of {len(extensions)} extensions installed")
    return f"{VSCODE_EXTENSIONS} ({installed} extensions)"
