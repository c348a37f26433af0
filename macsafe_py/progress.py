"""
Progress and log notifications emitted by the orchestrators.

Notifications are fire-and-forget: a sink that raises must never change the
outcome of a backup, verify or restore run, so orchestrators go through
``notify_log`` / ``notify_progress`` instead of calling the sink directly.
"""

import abc
import logging

logger = logging.getLogger("macsafe.progress")


class ProgressSink(abc.ABC):
    """Receiver for user-visible progress."""

    @abc.abstractmethod
    def log(self, message: str) -> None:
        """Record a free-text log line."""
        pass

    @abc.abstractmethod
    def progress(self, fraction: float, message: str) -> None:
        """Report overall completion as a fraction between 0.0 and 1.0."""
        pass


class NullProgressSink(ProgressSink):
    """Discards every notification."""

    def log(self, message: str) -> None:
        pass

    def progress(self, fraction: float, message: str) -> None:
        pass


class LoggingProgressSink(ProgressSink):
    """Forwards notifications to a logger."""

    def __init__(self, target: logging.Logger = logger) -> None:
        self.target = target

    def log(self, message: str) -> None:
        self.target.info(message)

    def progress(self, fraction: float, message: str) -> None:
        self.target.info(f"[{fraction * 100:5.1f}%] {message}")


def notify_log(sink: ProgressSink, message: str) -> None:
    try:
        sink.log(message)
    except Exception as e:
        logger.debug(f"Progress sink rejected log message: {e}")


def notify_progress(sink: ProgressSink, fraction: float, message: str) -> None:
    try:
        sink.progress(max(0.0, min(1.0, fraction)), message)
    except Exception as e:
        logger.debug(f"Progress sink rejected progress update: {e}")
