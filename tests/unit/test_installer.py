"""
Tests for the Mac App Store installers.
"""

import subprocess
from pathlib import Path
from typing import List
from unittest.mock import MagicMock, patch

import pytest

from macsafe_py.exceptions import (
    ConfigurationError,
    ExternalToolError,
    InstallTimeoutError,
)
from macsafe_py.restore.installer import (
    MARKER_FILENAME,
    BatchedMasInstaller,
    TerminalInstaller,
    installer_for_mode,
)

APPS = [
    ("Xcode", "497799835"),
    ("Keynote", "409183694"),
    ("Pages", "409201541"),
    ("Numbers", "409203825"),
    ("Things 3", "904280696"),
]


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


class TestBatchedMasInstaller:
    def test_installs_each_app(self) -> None:
        with patch("macsafe_py.restore.installer.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stderr="")
            BatchedMasInstaller(mas_path="/usr/local/bin/mas").install(APPS)

        commands = sorted(c[0][0][2] for c in mock_run.call_args_list)
        assert commands == sorted(app_id for _, app_id in APPS)
        assert all(
            c[0][0][:2] == ["/usr/local/bin/mas", "install"]
            for c in mock_run.call_args_list
        )

    def test_failures_do_not_raise(self) -> None:
        with patch("macsafe_py.restore.installer.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=1, stderr="not signed in")
            BatchedMasInstaller(mas_path="mas").install(APPS[:2])
        assert mock_run.call_count == 2

    def test_requires_mas(self) -> None:
        with patch("macsafe_py.restore.installer.find_mas", return_value=None):
            with pytest.raises(ExternalToolError):
                BatchedMasInstaller().install(APPS)


class TestTerminalInstaller:
    def test_render_script(self, tmp_path: Path) -> None:
        marker = tmp_path / MARKER_FILENAME
        script = TerminalInstaller().render_script("/opt/homebrew/bin/mas", APPS, marker)
        lines = script.splitlines()

        assert lines[0] == "#!/bin/bash"
        installs = [line for line in lines if line.endswith(" &")]
        assert installs[0] == "/opt/homebrew/bin/mas install 497799835 &"
        assert len(installs) == 5
        # one wait after the first four apps, one at the end
        assert lines.count("wait") == 2
        assert lines.index("wait") == lines.index(installs[3]) + 1
        assert f"touch {marker}" in lines
        assert "echo 'Installing Things 3 (904280696)'" in lines

    def test_wait_returns_once_marker_exists(self, tmp_path: Path) -> None:
        marker = tmp_path / MARKER_FILENAME
        clock = FakeClock()

        def _sleep(seconds: float) -> None:
            clock.sleep(seconds)
            if clock.now >= 6:
                marker.touch()

        installer = TerminalInstaller(timeout=60, sleep=_sleep, clock=clock)
        installer.wait_for_completion(marker)
        assert clock.now == 6

    def test_wait_times_out(self, tmp_path: Path) -> None:
        clock = FakeClock()
        installer = TerminalInstaller(timeout=30, sleep=clock.sleep, clock=clock)
        with pytest.raises(InstallTimeoutError):
            installer.wait_for_completion(tmp_path / MARKER_FILENAME)
        assert clock.now == 30

    def test_install_opens_terminal_and_cleans_up(self) -> None:
        scripts: List[Path] = []

        def _open(command: List[str], **kwargs: object) -> MagicMock:
            script = Path(command[-1])
            scripts.append(script)
            assert script.read_text().startswith("#!/bin/bash")
            (script.parent / MARKER_FILENAME).touch()
            return MagicMock(returncode=0)

        clock = FakeClock()
        installer = TerminalInstaller(
            mas_path="mas", timeout=10, sleep=clock.sleep, clock=clock
        )
        with patch(
            "macsafe_py.restore.installer.subprocess.run", side_effect=_open
        ) as mock_run:
            installer.install(APPS)

        assert mock_run.call_args[0][0][:3] == ["open", "-a", "Terminal"]
        assert not scripts[0].parent.exists()

    def test_install_times_out_and_cleans_up(self) -> None:
        scripts: List[Path] = []

        def _open(command: List[str], **kwargs: object) -> MagicMock:
            scripts.append(Path(command[-1]))
            return MagicMock(returncode=0)

        clock = FakeClock()
        installer = TerminalInstaller(
            mas_path="mas", timeout=10, sleep=clock.sleep, clock=clock
        )
        with patch("macsafe_py.restore.installer.subprocess.run", side_effect=_open):
            with pytest.raises(InstallTimeoutError):
                installer.install(APPS)
        assert not scripts[0].parent.exists()

    def test_terminal_failure(self) -> None:
        error = subprocess.CalledProcessError(1, ["open"], stderr="no Terminal")
        with patch("macsafe_py.restore.installer.subprocess.run", side_effect=error):
            with pytest.raises(ExternalToolError):
                TerminalInstaller(mas_path="mas").install(APPS)


@pytest.mark.parametrize(
    "mode,expected",
    [("batched", BatchedMasInstaller), ("terminal", TerminalInstaller)],
)
def test_installer_for_mode(mode: str, expected: type) -> None:
    assert isinstance(installer_for_mode(mode), expected)


def test_installer_for_mode_timeout() -> None:
    installer = installer_for_mode("terminal", timeout=120)
    assert isinstance(installer, TerminalInstaller)
    assert installer.timeout == 120


def test_installer_for_unknown_mode() -> None:
    with pytest.raises(ConfigurationError):
        installer_for_mode("parallel")
