"""
Mac App Store installers.

``BatchedMasInstaller`` drives ``mas install`` directly, four apps at a time.
``TerminalInstaller`` writes a shell script, opens it in a visible Terminal
window (``mas`` may prompt for an Apple ID there) and waits for the script to
touch a marker file. The wait is bounded; when it runs out an
``InstallTimeoutError`` is raised.
"""

import logging
import shlex
import shutil
import subprocess
import tempfile
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from macsafe_py.batching import run_bounded
from macsafe_py.config import DEFAULT_MAS_INSTALL_TIMEOUT
from macsafe_py.exceptions import (
    ConfigurationError,
    ExternalToolError,
    InstallTimeoutError,
)
from macsafe_py.platform import find_mas

logger = logging.getLogger("macsafe.restore.installer")

MAS_BATCH_SIZE = 4
MARKER_FILENAME = "mas-install.done"

MasApp = Tuple[str, str]


class MasInstaller(ABC):
    """Installs App Store apps given as (name, id) pairs."""

    @abstractmethod
    def install(self, apps: Sequence[MasApp]) -> None:
        """
        Install *apps* and return once every install has finished.

        Individual install failures are logged; the caller counts what is
        installed afterwards.
        """
        pass


class BatchedMasInstaller(MasInstaller):
    def __init__(self, mas_path: Optional[str] = None, batch_size: int = MAS_BATCH_SIZE):
        self.mas_path = mas_path
        self.batch_size = batch_size

    def install(self, apps: Sequence[MasApp]) -> None:
        mas = self.mas_path or find_mas()
        if not mas:
            raise ExternalToolError("mas not available")

        def _install_one(app: MasApp) -> bool:
            name, app_id = app
            logger.info(f"Installing {name} ({app_id}) from Mac App Store...")
            try:
                result = subprocess.run(
                    [mas, "install", app_id], capture_output=True, text=True, check=False
                )
            except OSError as e:
                logger.error(f"Failed to run mas for {name} ({app_id}): {e}")
                return False
            if result.returncode != 0:
                logger.error(f"Failed to install {name} ({app_id}): {result.stderr}")
                return False
            return True

        outcomes = run_bounded(list(apps), self.batch_size, _install_one)
        logger.info(f"mas install succeeded for {sum(outcomes)} of {len(apps)} apps")


class TerminalInstaller(MasInstaller):
    def __init__(
        self,
        mas_path: Optional[str] = None,
        timeout: float = DEFAULT_MAS_INSTALL_TIMEOUT,
        poll_interval: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.mas_path = mas_path
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.sleep = sleep
        self.clock = clock

    def render_script(self, mas: str, apps: Sequence[MasApp], marker: Path) -> str:
        """Build a bash script installing *apps* in parallel groups of four."""
        lines: List[str] = [
            "#!/bin/bash",
            f'echo "Installing {len(apps)} Mac App Store apps..."',
        ]
        for i, (name, app_id) in enumerate(apps, start=1):
            lines.append(f"echo {shlex.quote(f'Installing {name} ({app_id})')}")
            lines.append(f"{shlex.quote(mas)} install {shlex.quote(app_id)} &")
            if i % MAS_BATCH_SIZE == 0:
                lines.append("wait")
        lines.append("wait")
        lines.append(f"touch {shlex.quote(str(marker))}")
        lines.append('echo "Done. You can close this window."')
        return "\n".join(lines) + "\n"

    def wait_for_completion(self, marker: Path) -> None:
        """Block until *marker* exists or the timeout elapses."""
        deadline = self.clock() + self.timeout
        while not marker.exists():
            if self.clock() >= deadline:
                raise InstallTimeoutError(
                    f"App Store installation did not finish within {self.timeout:.0f}s"
                )
            self.sleep(self.poll_interval)

    def install(self, apps: Sequence[MasApp]) -> None:
        mas = self.mas_path or find_mas()
        if not mas:
            raise ExternalToolError("mas not available")

        workdir = Path(tempfile.mkdtemp(prefix="macsafe-mas-"))
        try:
            marker = workdir / MARKER_FILENAME
            script = workdir / "install-mas-apps.sh"
            script.write_text(self.render_script(mas, apps, marker))
            script.chmod(0o755)

            command = ["open", "-a", "Terminal", str(script)]
            logger.info(f"Opening Terminal to install {len(apps)} App Store apps")
            try:
                subprocess.run(command, check=True, capture_output=True, text=True)
            except subprocess.CalledProcessError as e:
                raise ExternalToolError(
                    "Could not open Terminal", {"stderr": (e.stderr or "").strip()}
                ) from e
            except FileNotFoundError as e:
                raise ExternalToolError(f"open not available: {e}") from e

            self.wait_for_completion(marker)
            logger.info("Terminal App Store installation finished")
        finally:
            shutil.rmtree(workdir, ignore_errors=True)


def installer_for_mode(mode: str, timeout: float = DEFAULT_MAS_INSTALL_TIMEOUT) -> MasInstaller:
    """Return the installer configured by ``mas_install_mode``."""
    if mode == "terminal":
        return TerminalInstaller(timeout=timeout)
    if mode == "batched":
        return BatchedMasInstaller()
    raise ConfigurationError(f"Unknown mas_install_mode: {mode}")
