import logging
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)

APPLICATIONS_DIR = Path("/Applications")


def list_applications(applications_dir: Path = APPLICATIONS_DIR) -> List[str]:
    """
    Lists the ``.app`` bundles in *applications_dir*.

    Args:
        applications_dir: Directory to scan.

    Returns:
        Bundle names without the ``.app`` suffix, sorted.
    """
    if not applications_dir.is_dir():
        logger.warning(f"{applications_dir} does not exist. No applications listed.")
        return []

    try:
        return sorted(
            entry.stem
            for entry in applications_dir.iterdir()
            if entry.suffix == ".app"
        )
    except OSError as e:
        logger.error(f"Failed to read {applications_dir}: {e}")
        return []
