"""
Restoring items from a stored run.

Every restored item lands in exactly one of three buckets: restored, skipped
or errors. The reserved software-inventory identifiers are handled by the
modules in this package; everything else is an ordinary filesystem path.
"""

from dataclasses import dataclass, field
from typing import List


@dataclass
class RestoreResult:
    """Per-item outcomes of a restore."""

    restored: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def restored_count(self) -> int:
        return len(self.restored)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def success(self) -> bool:
        return not self.errors
