"""Error hierarchy for backup operations."""
from __future__ import annotations


class BackupError(RuntimeError):
    """Base exception for backup related failures."""


class BackupConfigurationError(BackupError):
    """Raised when required configuration is missing or invalid."""


class BackupIOError(BackupError):
    """Raised when reading live state or writing an archive fails."""


class BackupExtractionError(BackupError):
    """Raised when an archive is corrupt or contains unsafe entries."""


class BackupValidationError(BackupError):
    """Raised when caller supplied input is rejected."""


class BackupNotFoundError(BackupError):
    """Raised when a referenced archive does not exist."""


class BackupRestoreError(BackupError):
    """Raised when merging an extracted archive into live state fails."""


class BackupBusyError(BackupError):
    """Raised when another backup or restore holds the operation lock."""


__all__ = [
    "BackupBusyError",
    "BackupConfigurationError",
    "BackupError",
    "BackupExtractionError",
    "BackupIOError",
    "BackupNotFoundError",
    "BackupRestoreError",
    "BackupValidationError",
]
