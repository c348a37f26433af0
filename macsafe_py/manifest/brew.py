import logging
import re
import shlex
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional

from macsafe_py.platform import find_brew

logger = logging.getLogger(__name__)

_QUOTED = re.compile(r'^(tap|brew|cask)\s+"([^"]+)"')


@dataclass
class Brewfile:
    """Declarations parsed from a Brewfile."""

    taps: List[str] = field(default_factory=list)
    brews: List[str] = field(default_factory=list)
    casks: List[str] = field(default_factory=list)
    mas: List[str] = field(default_factory=list)


def parse_brewfile(content: str) -> Brewfile:
    """Split a Brewfile into taps, formulae, casks and ``mas`` lines."""
    parsed = Brewfile()
    for raw in content.splitlines():
        line = raw.strip()
        if line.startswith("mas "):
            parsed.mas.append(line)
            continue
        match = _QUOTED.match(line)
        if not match:
            continue
        kind, name = match.groups()
        if kind == "tap":
            parsed.taps.append(name)
        elif kind == "brew":
            parsed.brews.append(name)
        else:
            parsed.casks.append(name)
    return parsed


def count_declarations(content: str) -> int:
    """Count the ``brew``, ``cask`` and ``tap`` lines ``brew bundle`` acts on."""
    return sum(
        1
        for line in content.splitlines()
        if line.startswith(("brew ", "cask ", "tap "))
    )


def mas_lines(content: str) -> str:
    """Return the ``mas`` lines of a Brewfile, newline-joined."""
    return "\n".join(parse_brewfile(content).mas)


def dump_brewfile() -> Optional[str]:
    """
    Returns the current Brewfile using `brew bundle dump`.

    Returns:
        The Brewfile text, or None if Homebrew is missing or the dump fails.
    """
    brew = find_brew()
    if not brew:
        logger.warning("Homebrew (`brew`) is not installed. Skipping Brewfile.")
        return None

    command = [brew, "bundle", "dump", "--file=-"]
    cmd_str = " ".join(shlex.quote(str(arg)) for arg in command)
    logger.info(f"Generating Brewfile with command: {cmd_str}")

    try:
        result = subprocess.run(command, check=True, capture_output=True, text=True)
        return result.stdout
    except subprocess.CalledProcessError as e:
        logger.error(f"Failed to generate Brewfile: {e.stderr}")
        return None
    except FileNotFoundError:
        logger.error("`brew` command not found. Is Homebrew installed?")
        return None


def list_casks() -> List[str]:
    """Return installed cask tokens, lower-cased; empty if brew is missing."""
    brew = find_brew()
    if not brew:
        return []
    try:
        result = subprocess.run(
            [brew, "list", "--cask"], check=False, capture_output=True, text=True
        )
    except FileNotFoundError:
        return []
    return [line.strip().lower() for line in result.stdout.splitlines() if line.strip()]
