"""Snapshot, restore and catalog orchestration for agent state."""
from __future__ import annotations

from .api import BackupService
from .config import build_config
from .errors import (
    BackupBusyError,
    BackupConfigurationError,
    BackupError,
    BackupExtractionError,
    BackupIOError,
    BackupNotFoundError,
    BackupRestoreError,
    BackupValidationError,
)
from .rules import InclusionFilter
from .types import BackupConfig, BackupRecord, BackupResult, RestoreResult

__all__ = [
    "BackupBusyError",
    "BackupConfig",
    "BackupConfigurationError",
    "BackupError",
    "BackupExtractionError",
    "BackupIOError",
    "BackupNotFoundError",
    "BackupRecord",
    "BackupRestoreError",
    "BackupResult",
    "BackupService",
    "BackupValidationError",
    "InclusionFilter",
    "RestoreResult",
    "build_config",
]
