"""
Tests for the CLI module.
"""

import os
from pathlib import Path
from typing import Generator
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from macsafe_py.cli import (
    RichProgressSink,
    app,
    format_size,
    get_target,
    progress_sink,
)
from macsafe_py.config import MacsafeConfig
from macsafe_py.manifest import StaticInventoryProvider
from macsafe_py.progress import LoggingProgressSink
from macsafe_py.store import BackupStore

from conftest import TarfileCodec


@pytest.fixture
def runner() -> CliRunner:
    """Fixture to create a CLI runner."""
    return CliRunner()


@pytest.fixture
def mock_keyring() -> Generator[MagicMock, None, None]:
    with patch("macsafe_py.cli.keyring") as mock:
        mock.get_password.return_value = None
        yield mock


@pytest.fixture
def volume(tmp_path: Path, mock_keyring: MagicMock) -> Generator[Path, None, None]:
    """A backup target exposed through MACSAFE_TARGET, with no user config."""
    target = tmp_path / "volume"
    target.mkdir()
    with patch.dict(
        os.environ,
        {"MACSAFE_TARGET": str(target), "XDG_CONFIG_HOME": str(tmp_path / "xdg")},
    ):
        yield target


@pytest.fixture
def offline_backup() -> Generator[None, None, None]:
    """Swap the system tar and the live inventory for in-process stand-ins."""
    inventory = StaticInventoryProvider(
        brewfile='brew "git"\ncask "firefox"\n',
        mas_apps='mas "Xcode", id: 497799835',
        manual_apps=["Affinity Photo", "Zoom"],
        vscode_extensions=["ms-python.python"],
    )
    with patch("macsafe_py.cli.TarCodec", side_effect=TarfileCodec), patch(
        "macsafe_py.cli.SystemInventoryProvider", return_value=inventory
    ):
        yield


def _source(tmp_path: Path) -> Path:
    docs = tmp_path / "Documents"
    docs.mkdir()
    (docs / "notes.txt").write_text("hello")
    return docs


def _run_backup(runner: CliRunner, tmp_path: Path) -> str:
    result = runner.invoke(
        app, ["backup", str(_source(tmp_path)), "--no-homebrew-cache", "--no-safari"]
    )
    assert result.exit_code == 0, result.output
    latest = BackupStore(tmp_path / "volume").read_latest()
    assert latest is not None
    return str(latest["latest"])


def test_version(runner: CliRunner) -> None:
    """Test the version command."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "MacSafe version" in result.stdout


def test_missing_target(runner: CliRunner, tmp_path: Path, mock_keyring: MagicMock) -> None:
    env = {"XDG_CONFIG_HOME": str(tmp_path / "xdg")}
    with patch.dict(os.environ, env):
        os.environ.pop("MACSAFE_TARGET", None)
        result = runner.invoke(app, ["list"])
    assert result.exit_code == 1


def test_get_target_precedence(mock_keyring: MagicMock) -> None:
    config = MacsafeConfig(target="/Volumes/FromConfig")
    mock_keyring.get_password.return_value = "/Volumes/FromKeyring"
    with patch.dict(os.environ, {"MACSAFE_TARGET": "/Volumes/FromEnv"}):
        assert get_target("/Volumes/FromArg", config) == "/Volumes/FromArg"
        assert get_target(None, config) == "/Volumes/FromEnv"
    with patch.dict(os.environ, {}, clear=True):
        assert get_target(None, config) == "/Volumes/FromConfig"
        assert get_target(None, MacsafeConfig()) == "/Volumes/FromKeyring"


def test_init(runner: CliRunner, tmp_path: Path, mock_keyring: MagicMock) -> None:
    target = tmp_path / "drive"
    target.mkdir()
    with patch.dict(os.environ, {"XDG_CONFIG_HOME": str(tmp_path / "xdg")}):
        result = runner.invoke(app, ["init", "--target", str(target)])
    assert result.exit_code == 0, result.output
    assert "Backup target initialized" in result.stdout
    assert (target / "macos-backup-suite" / "data").is_dir()
    assert (target / "macos-backup-suite" / "inventories").is_dir()
    mock_keyring.set_password.assert_called_once_with(
        "MACSAFE_TARGET", "macsafe", str(target)
    )


def test_init_rejects_missing_directory(
    runner: CliRunner, tmp_path: Path, mock_keyring: MagicMock
) -> None:
    result = runner.invoke(app, ["init", "--target", str(tmp_path / "nope")])
    assert result.exit_code == 1
    mock_keyring.set_password.assert_not_called()


def test_list_empty(runner: CliRunner, volume: Path) -> None:
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "No backups found" in result.stdout


def test_backup_then_inspect(
    runner: CliRunner, volume: Path, tmp_path: Path, offline_backup: None
) -> None:
    timestamp = _run_backup(runner, tmp_path)
    store = BackupStore(volume)
    manifest = store.load_manifest(timestamp)
    assert [i.path for i in manifest.items][-3:] == [
        "homebrew-packages",
        "mas-apps",
        "vscode-extensions",
    ]

    listed = runner.invoke(app, ["list"])
    assert listed.exit_code == 0
    assert timestamp in listed.stdout

    shown = runner.invoke(app, ["show"])
    assert shown.exit_code == 0
    assert "Started" in shown.stdout

    apps = runner.invoke(app, ["manual-apps", timestamp])
    assert apps.exit_code == 0
    assert "Affinity Photo" in apps.stdout
    assert "Zoom" in apps.stdout


def test_backup_reports_completion(
    runner: CliRunner, volume: Path, tmp_path: Path, offline_backup: None
) -> None:
    result = runner.invoke(
        app, ["backup", str(_source(tmp_path)), "--no-homebrew-cache", "--no-safari"]
    )
    assert result.exit_code == 0, result.output
    assert "complete: 4 items" in result.stdout


def test_verify(
    runner: CliRunner, volume: Path, tmp_path: Path, offline_backup: None
) -> None:
    timestamp = _run_backup(runner, tmp_path)

    result = runner.invoke(app, ["verify", "--sequential"])
    assert result.exit_code == 0, result.output
    assert f"All 4 archives of {timestamp} verified" in result.stdout

    archive = BackupStore(volume).run_dir(timestamp) / "mas-apps.tar.gz"
    archive.write_bytes(archive.read_bytes() + b"tampered")
    result = runner.invoke(app, ["verify", timestamp, "--parallel"])
    assert result.exit_code == 1
    assert "mas-apps.tar.gz" in result.stdout


def test_verify_without_backups(runner: CliRunner, volume: Path) -> None:
    result = runner.invoke(app, ["verify"])
    assert result.exit_code == 1


def test_restore_missing_run(runner: CliRunner, volume: Path) -> None:
    result = runner.invoke(app, ["restore", "19990101-000000", "~/Documents"])
    assert result.exit_code == 1


def test_restore_requires_selection(runner: CliRunner, volume: Path) -> None:
    result = runner.invoke(app, ["restore", "19990101-000000"])
    assert result.exit_code == 1


def test_restore_skips_existing(
    runner: CliRunner, volume: Path, tmp_path: Path, offline_backup: None
) -> None:
    timestamp = _run_backup(runner, tmp_path)
    source = str(tmp_path / "Documents")
    with patch("macsafe_py.restore.orchestrator.TarCodec", side_effect=TarfileCodec):
        result = runner.invoke(app, ["restore", timestamp, source])
    assert result.exit_code == 0, result.output
    assert "1 skipped" in result.stdout


def test_delete(
    runner: CliRunner, volume: Path, tmp_path: Path, offline_backup: None
) -> None:
    timestamp = _run_backup(runner, tmp_path)

    declined = runner.invoke(app, ["delete", timestamp], input="n\n")
    assert declined.exit_code == 1
    assert BackupStore(volume).run_dir(timestamp).exists()

    result = runner.invoke(app, ["delete", timestamp, "--yes"])
    assert result.exit_code == 0
    assert f"Deleted backup {timestamp}" in result.stdout
    assert BackupStore(volume).list_backups() == []

    again = runner.invoke(app, ["delete", timestamp, "--yes"])
    assert again.exit_code == 1


@pytest.mark.parametrize(
    "size,expected",
    [(0, "0 B"), (512, "512 B"), (2048, "2.0 KB"), (5 * 1024 ** 3, "5.0 GB")],
)
def test_format_size(size: int, expected: str) -> None:
    assert format_size(size) == expected


def test_manual_apps_missing_file(
    runner: CliRunner, volume: Path, tmp_path: Path
) -> None:
    store = BackupStore(volume)
    store.prepare_run("20240301-093000")
    result = runner.invoke(app, ["manual-apps", "20240301-093000"])
    assert result.exit_code == 1


def test_backup_skips_unreadable_entries(
    runner: CliRunner, volume: Path, tmp_path: Path, offline_backup: None
) -> None:
    missing = str(tmp_path / "does-not-exist")
    result = runner.invoke(app, ["backup", missing, "--no-homebrew-cache", "--no-safari"])
    assert result.exit_code == 0, result.output
    assert "complete: 3 items" in result.stdout


def test_progress_sink_follows_json_mode() -> None:
    with patch("macsafe_py.cli.json_output", True):
        with progress_sink() as sink:
            assert isinstance(sink, LoggingProgressSink)
    with patch("macsafe_py.cli.json_output", False):
        with progress_sink() as sink:
            assert isinstance(sink, RichProgressSink)
