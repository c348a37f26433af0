"""
Cancellation support for running backups.

A single ``CancellationSupervisor`` is shared between the backup orchestrator
and the tar codec. The codec registers the pid of every archiving process it
spawns; a cancel request flips the flag and terminates that process's group,
which also takes down the compressor tar started as its child.
"""

import logging
import os
import signal
import threading

logger = logging.getLogger("macsafe.cancellation")


class CancellationSupervisor:
    """Cancellation flag plus the pid of the archiver currently in flight."""

    def __init__(self) -> None:
        # request_cancel may run in a signal handler while this thread holds it
        self._lock = threading.RLock()
        self._cancelled = False
        self._pid = 0

    def request_cancel(self) -> None:
        """Set the flag and terminate the tracked process group, if any."""
        with self._lock:
            self._cancelled = True
            pid = self._pid
            self._pid = 0

        if pid > 0:
            logger.info(f"Terminating archiver process group {pid}")
            try:
                os.killpg(pid, signal.SIGTERM)
            except ProcessLookupError:
                logger.debug(f"Process group {pid} already exited")
            except PermissionError as e:
                logger.warning(f"Could not signal process group {pid}: {e}")

    def is_cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def clear(self) -> None:
        """Reset the flag once a cancellation has been handled."""
        with self._lock:
            self._cancelled = False

    def track(self, pid: int) -> None:
        with self._lock:
            self._pid = pid

    def untrack(self) -> None:
        with self._lock:
            self._pid = 0

    @property
    def tracked_pid(self) -> int:
        with self._lock:
            return self._pid
