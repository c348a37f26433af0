import logging
import subprocess
from typing import List, Optional

from macsafe_py.platform import find_vscode

logger = logging.getLogger(__name__)


def list_extensions() -> Optional[List[str]]:
    """
    Lists installed VS Code extensions using `code --list-extensions`.

    Returns:
        Extension ids, or None if VS Code is not installed or the call fails.
    """
    code = find_vscode()
    if not code:
        logger.info("VS Code is not installed. Skipping extensions.")
        return None

    try:
        result = subprocess.run(
            [code, "--list-extensions"], check=True, capture_output=True, text=True
        )
    except subprocess.CalledProcessError as e:
        logger.error(f"Failed to list VS Code extensions: {e.stderr}")
        return None
    except FileNotFoundError:
        logger.error("`code` command not found.")
        return None

    return [line.strip() for line in result.stdout.splitlines() if line.strip()]
