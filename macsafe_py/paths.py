"""
Path and size helpers shared by the orchestrators.
"""

import os
import stat
from pathlib import Path
from typing import Optional


def expand_home(entry: str, home: Optional[Path] = None) -> Path:
    """Expand a leading ``~`` in a configured backup path."""
    home = home or Path.home()
    if entry == "~":
        return home
    if entry.startswith("~/"):
        return home / entry[2:]
    return Path(entry)


def resolve_destination(entry: str, home: Optional[Path] = None) -> Path:
    """Map a backed-up path back to where it should be restored.

    Relative paths are taken relative to the home directory.
    """
    home = home or Path.home()
    if entry == "~" or entry.startswith("~/"):
        return expand_home(entry, home)
    if entry.startswith("/"):
        return Path(entry)
    return home / entry


def directory_size(path: Path) -> int:
    """Sum the sizes of regular files below *path*; symlinks are skipped."""
    total = 0
    for dirpath, _, filenames in os.walk(path):
        for filename in filenames:
            try:
                st = os.lstat(os.path.join(dirpath, filename))
            except OSError:
                continue
            if stat.S_ISREG(st.st_mode):
                total += st.st_size
    return total


def source_size(path: Path) -> int:
    """Uncompressed size of a backup source, file or directory."""
    if path.is_file():
        try:
            return path.stat().st_size
        except OSError:
            return 0
    return directory_size(path)


def format_duration(seconds: int) -> str:
    if seconds >= 3600:
        return f"{seconds // 3600}h {(seconds % 3600) // 60}m {seconds % 60}s"
    if seconds >= 60:
        return f"{seconds // 60}m {seconds % 60}s"
    return f"{seconds}s"
