import logging
import re
import subprocess
from typing import List, Optional, Tuple

from macsafe_py.platform import find_mas

logger = logging.getLogger(__name__)

_BREWFILE_MAS = re.compile(r'^mas\s+"(?P<name>[^"]*)",\s*id:\s*(?P<id>\d+)')


def list_installed() -> Optional[str]:
    """
    Return the raw output of `mas list`.

    Returns:
        The listing, or None if `mas` is not installed or fails.
    """
    mas = find_mas()
    if not mas:
        logger.warning(
            "Mac App Store CLI (`mas`) is not installed. Skipping App Store listing."
        )
        return None

    try:
        result = subprocess.run(
            [mas, "list"], check=True, capture_output=True, text=True
        )
        return result.stdout
    except subprocess.CalledProcessError as e:
        logger.error(f"Failed to list Mac App Store apps: {e.stderr}")
        return None
    except FileNotFoundError:
        logger.error("`mas` command not found. Is it installed and in your PATH?")
        return None


def parse_brewfile_mas(content: str) -> List[Tuple[str, str]]:
    """Parse ``mas "<name>", id: <id>`` lines into (name, id) pairs."""
    apps = []
    for line in content.splitlines():
        match = _BREWFILE_MAS.match(line.strip())
        if match:
            apps.append((match.group("name"), match.group("id")))
    return apps


def parse_list_titles(listing: str) -> List[str]:
    """Extract lower-cased app titles from `mas list` output.

    Lines look like ``497799835  Xcode  (15.0)``.
    """
    titles = []
    for line in listing.splitlines():
        parts = line.strip().split(None, 1)
        if len(parts) < 2 or not parts[0].isdigit():
            continue
        title = parts[1].split("(")[0].strip().lower()
        if title:
            titles.append(title)
    return titles
