import logging
import shlex
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional

from macsafe_py.engine import HOMEBREW_PACKAGES, INVENTORY_PAYLOADS, BaseCodec
from macsafe_py.exceptions import ExternalToolError, NotFoundError
from macsafe_py.manifest.brew import count_declarations
from macsafe_py.platform import find_brew

logger = logging.getLogger("macsafe.restore.homebrew")


def count_installed(output: str) -> int:
    """Count the packages ``brew bundle install`` reports acting on."""
    return sum(
        1
        for line in output.splitlines()
        if line.strip().startswith(("Installing ", "Upgrading "))
    )


def _run(command: List[str]) -> subprocess.CompletedProcess:
    cmd_str = " ".join(shlex.quote(str(arg)) for arg in command)
    logger.info(f"Running command: {cmd_str}")
    try:
        return subprocess.run(command, capture_output=True, text=True, check=False)
    except FileNotFoundError as e:
        raise ExternalToolError(f"Homebrew not available: {e}") from e


def install_brewfile(brewfile: Path, overwrite: bool, brew: Optional[str] = None) -> int:
    """
    Install everything declared in *brewfile* with ``brew bundle install``.

    Returns:
        Number of packages newly installed or upgraded.

    Raises:
        ExternalToolError: If brew is missing, or it failed without installing
            anything.
    """
    brew = brew or find_brew()
    if not brew:
        raise ExternalToolError("Homebrew not available")

    command = [brew, "bundle", "install", f"--file={brewfile}"]
    if overwrite:
        command.append("--force")
    result = _run(command)
    output = (result.stdout or "") + (result.stderr or "")
    installed = count_installed(output)

    if result.returncode != 0:
        if "error" in output.lower() and installed == 0:
            raise ExternalToolError(
                f"brew bundle install failed (code {result.returncode})",
                {"output": output.strip()[-500:]},
            )
        logger.warning(
            f"brew bundle install exited with code {result.returncode} "
            f"after installing {installed} packages"
        )
    return installed


def restore_homebrew_packages(codec: BaseCodec, archive: Path, overwrite: bool) -> str:
    """Reinstall the formulae, casks and taps of a backed-up Brewfile."""
    scratch = Path(tempfile.mkdtemp(prefix="macsafe-brew-"))
    try:
        codec.unpack(archive, scratch)
        payload = scratch / INVENTORY_PAYLOADS[HOMEBREW_PACKAGES]
        if not payload.exists():
            raise NotFoundError(f"{payload.name} missing from {archive.name}")
        brewfile = scratch / "Brewfile"
        payload.rename(brewfile)

        declared = count_declarations(brewfile.read_text())
        if declared == 0:
            logger.info("Brewfile declares no packages, nothing to install")
            return f"{HOMEBREW_PACKAGES} (0 newly installed)"

        logger.info(f"Installing {declared} Brewfile entries")
        installed = install_brewfile(brewfile, overwrite)
    finally:
        shutil.rmtree(scratch, ignore_errors=True)

    if installed:
        return f"{HOMEBREW_PACKAGES} ({installed} newly installed)"
    return f"{HOMEBREW_PACKAGES} (all already present)"


def install_package(name: str, cask: bool = False, brew: Optional[str] = None) -> bool:
    """
    ``brew install`` a single formula or cask.

    Returns:
        True if it was installed now, False if brew reported it as already
        installed.

    Raises:
        ExternalToolError: If the install failed.
    """
    brew = brew or find_brew()
    if not brew:
        raise ExternalToolError("Homebrew not available")

    command = [brew, "install", *(["--cask"] if cask else []), name]
    result = _run(command)
    output = (result.stdout or "") + (result.stderr or "")
    if "already installed" in output.lower():
        return False
    if result.returncode != 0:
        raise ExternalToolError(
            f"brew install {name} failed (code {result.returncode})",
            {"output": output.strip()[-500:]},
        )
    return True
