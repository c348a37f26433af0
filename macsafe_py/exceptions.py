"""
Exceptions raised by the MacSafe backup engine.

Per-item problems are collected into result objects; the exceptions below are
reserved for outcomes that end a whole operation or a single restorer.
"""

from typing import Any, Dict, Optional


class MacSafeError(Exception):
    """Base exception for all MacSafe errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(MacSafeError):
    """Raised when no usable backup target or configuration is available."""

    pass


class NotFoundError(MacSafeError):
    """Raised when a manifest, archive or inventory file is missing."""

    pass


class IntegrityError(MacSafeError):
    """Raised when an archive digest does not match its recorded value."""

    pass


class ExternalToolError(MacSafeError):
    """Raised when a spawned process fails or a required tool is missing."""

    pass


class ArchiveError(ExternalToolError):
    """Raised when tar produced no archive."""

    pass


class ExtractionError(ExternalToolError):
    """Raised when every extractor in the fallback chain failed."""

    pass


class InstallTimeoutError(ExternalToolError):
    """Raised when a long-running installer does not signal completion in time."""

    pass


class AlreadyExistsError(MacSafeError):
    """Raised when a restore destination exists and overwriting is disabled."""

    pass


class BackupCancelledError(MacSafeError):
    """Raised when the user cancelled the running backup."""

    pass
