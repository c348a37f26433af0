"""
Platform detection and tool discovery for MacSafe.

Centralizes where Homebrew-installed binaries live so the rest of the
codebase can ask for ``brew`` or ``mas`` without scattering path lists.
"""

import shutil
import sys
from pathlib import Path
from typing import List, Optional

HOMEBREW_BIN_DIRS = ["/opt/homebrew/bin", "/usr/local/bin"]

VSCODE_CANDIDATES = [
    "/Applications/Visual Studio Code.app/Contents/Resources/app/bin/code",
    "/usr/local/bin/code",
    "/opt/homebrew/bin/code",
]


def is_macos() -> bool:
    """Return True when running on macOS."""
    return sys.platform == "darwin"


def find_command(name: str, candidates: Optional[List[str]] = None) -> Optional[str]:
    """Locate *name*, checking Homebrew prefixes before ``$PATH``.

    Args:
        name: Executable name, e.g. ``"mas"``.
        candidates: Explicit full paths to try first.

    Returns:
        The path to the executable, or None if it cannot be found.
    """
    paths = list(candidates or []) + [f"{d}/{name}" for d in HOMEBREW_BIN_DIRS]
    for candidate in paths:
        if Path(candidate).exists():
            return candidate
    return shutil.which(name)


def find_brew() -> Optional[str]:
    """Return the path to ``brew`` (Apple Silicon prefix first)."""
    return find_command("brew")


def find_mas() -> Optional[str]:
    """Return the path to the Mac App Store CLI."""
    return find_command("mas")


def find_vscode() -> Optional[str]:
    """Return the path to the VS Code ``code`` launcher."""
    return find_command("code", VSCODE_CANDIDATES)


def homebrew_cache_candidates() -> List[Path]:
    """Return the directories where Homebrew may keep its download cache."""
    return [
        Path("/opt/homebrew/var/homebrew/cache"),
        Path("/usr/local/var/homebrew/cache"),
        Path.home() / "Library" / "Caches" / "Homebrew",
    ]


def homebrew_cache_restore_dir() -> Path:
    """Return the cache directory that restores are written into."""
    return Path.home() / "Library" / "Caches" / "Homebrew"
