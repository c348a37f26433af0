"""
Integrity verification of a stored run.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from macsafe_py.digest import DEFAULT_BATCH_SIZE, check_file, verify_files
from macsafe_py.exceptions import IntegrityError
from macsafe_py.progress import (
    NullProgressSink,
    ProgressSink,
    notify_log,
    notify_progress,
)
from macsafe_py.store import BackupStore

logger = logging.getLogger("macsafe.verify")


@dataclass
class VerifyResult:
    """Outcome of verifying every archive of a run."""

    total_files: int = 0
    verified_files: int = 0
    failed_files: List[str] = field(default_factory=list)
    message: str = ""

    @property
    def success(self) -> bool:
        return not self.failed_files

    def raise_for_failures(self) -> None:
        """Raise ``IntegrityError`` listing the failures, if there are any."""
        if self.failed_files:
            raise IntegrityError(
                self.message
                or f"{len(self.failed_files)} of {self.total_files} archives "
                f"failed verification",
                {"failures": list(self.failed_files)},
            )


class VerificationOrchestrator:
    """Recomputes archive digests and compares them with the manifest."""

    def __init__(self, store: BackupStore, sink: Optional[ProgressSink] = None):
        self.store = store
        self.sink = sink or NullProgressSink()

    def verify(self, timestamp: str, parallel: bool = False) -> VerifyResult:
        """
        Verify the run *timestamp*.

        Args:
            timestamp: Run identifier
            parallel: Hash in batches of four threads instead of one by one

        Returns:
            A ``VerifyResult``; per-archive problems are listed in
            ``failed_files`` and never raise.

        Raises:
            NotFoundError: If the run has no manifest.
        """
        manifest = self.store.load_manifest(timestamp)
        run_dir = self.store.run_dir(timestamp)
        total = len(manifest.items)
        result = VerifyResult(total_files=total)

        mode = "parallel" if parallel else "sequential"
        notify_log(self.sink, f"Verifying {total} archives of {timestamp} ({mode})")
        logger.info(f"Verifying backup {timestamp}: {total} archives, {mode}")

        if parallel:
            entries = [(run_dir / item.archive, item.hash) for item in manifest.items]

            def _on_batch_done(done: int, count: int) -> None:
                notify_progress(
                    self.sink,
                    done / count if count else 1.0,
                    f"Verified {done}/{count} archives",
                )

            report = verify_files(entries, DEFAULT_BATCH_SIZE, _on_batch_done)
            result.verified_files = report.verified
            result.failed_files = report.failures
        else:
            for i, item in enumerate(manifest.items, start=1):
                failure = check_file(run_dir / item.archive, item.hash, item.archive)
                if failure is None:
                    result.verified_files += 1
                else:
                    result.failed_files.append(failure)
                notify_progress(
                    self.sink, i / total, f"Verifying {item.archive} ({i}/{total})"
                )

        for failure in result.failed_files:
            logger.warning(f"Verification failure: {failure}")
        if result.success:
            result.message = f"All {total} archives verified"
        else:
            result.message = (
                f"{len(result.failed_files)} of {total} archives failed verification"
            )
        notify_log(self.sink, result.message)
        notify_progress(self.sink, 1.0, "Verification complete.")
        return result
