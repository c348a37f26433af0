import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List, Tuple

from macsafe_py.engine import SAFARI_SETTINGS, BaseCodec

logger = logging.getLogger("macsafe.restore.safari")


def safari_destinations(home: Path) -> List[Tuple[str, Path]]:
    """Entries restored from the Safari archive and where each one goes."""
    return [
        ("Bookmarks.plist", home / "Library/Safari/Bookmarks.plist"),
        ("ReadingListArchives", home / "Library/Safari/ReadingListArchives"),
        ("Extensions", home / "Library/Safari/Extensions"),
        ("TopSites.plist", home / "Library/Safari/TopSites.plist"),
        ("LastSession.plist", home / "Library/Safari/LastSession.plist"),
        (
            "Preferences",
            home / "Library/Containers/com.apple.Safari/Data/Library/Preferences",
        ),
    ]


def copy_preserving(source: Path, destination: Path) -> None:
    """Copy keeping attributes, with ``ditto`` when available."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    ditto = shutil.which("ditto")
    if ditto:
        subprocess.run(
            [ditto, str(source), str(destination)],
            check=True,
            capture_output=True,
            text=True,
        )
    elif source.is_dir():
        shutil.copytree(source, destination, symlinks=True, dirs_exist_ok=True)
    else:
        shutil.copy2(source, destination)


def restore_safari_settings(codec: BaseCodec, archive: Path, home: Path) -> str:
    scratch = Path(tempfile.mkdtemp(prefix="macsafe-safari-"))
    try:
        codec.unpack(archive, scratch)
        base = scratch / SAFARI_SETTINGS
        if not base.is_dir():
            base = scratch

        copied = 0
        for name, destination in safari_destinations(home):
            source = base / name
            if not source.exists():
                continue
            try:
                copy_preserving(source, destination)
                copied += 1
            except (OSError, shutil.Error, subprocess.CalledProcessError) as e:
                logger.warning(f"Could not restore {name} to {destination}: {e}")
    finally:
        shutil.rmtree(scratch, ignore_errors=True)

    return f"{SAFARI_SETTINGS} ({copied} files)"
