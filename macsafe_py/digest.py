"""
SHA-256 digests over archive files.

Digests are always computed over the compressed archive bytes as stored on
the backup volume, never over the original source tree.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from macsafe_py.batching import run_bounded

logger = logging.getLogger("macsafe.digest")

CHUNK_SIZE = 8192
HASH_ALGORITHM = "sha256"
DEFAULT_BATCH_SIZE = 4


def hash_file(path: Path) -> str:
    """
    Return the lowercase hex SHA-256 of *path*.

    Raises:
        OSError: If the file cannot be opened or a read fails.
    """
    sha256 = hashlib.sha256()
    with open(path, "rb") as f:
        while chunk := f.read(CHUNK_SIZE):
            sha256.update(chunk)
    return sha256.hexdigest()


def check_file(path: Path, expected: str, label: Optional[str] = None) -> Optional[str]:
    """
    Compare the digest of *path* with *expected*.

    Returns:
        None when the file matches, otherwise a human-readable failure naming
        *label* (defaults to the file name).
    """
    name = label or path.name
    if not path.exists():
        return f"{name}: file not found"
    try:
        computed = hash_file(path)
    except OSError as e:
        return f"{name}: read error: {e}"
    if computed != expected:
        return (
            f"{name}: hash mismatch "
            f"(expected: {expected[:16]}, computed: {computed[:16]})"
        )
    return None


@dataclass
class DigestReport:
    """Outcome of checking a set of files."""

    verified: int = 0
    failures: List[str] = field(default_factory=list)


def verify_files(
    entries: Sequence[Tuple[Path, str]],
    batch_size: int = DEFAULT_BATCH_SIZE,
    on_batch_done: Optional[Callable[[int, int], None]] = None,
) -> DigestReport:
    """
    Check (path, expected digest) pairs in parallel batches.

    Failure order inside a batch follows completion order, not input order.
    """

    def _check(entry: Tuple[Path, str]) -> Optional[str]:
        path, expected = entry
        return check_file(path, expected)

    outcomes = run_bounded(entries, batch_size, _check, on_batch_done)
    report = DigestReport()
    for outcome in outcomes:
        if outcome is None:
            report.verified += 1
        else:
            report.failures.append(outcome)
    logger.debug(
        f"Checked {len(entries)} files: {report.verified} ok, "
        f"{len(report.failures)} failed"
    )
    return report
