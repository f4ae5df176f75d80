"""Public API for backup operations."""
from __future__ import annotations

import contextlib
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from core.paths import resolve_working_dir
from core.settings import DEFAULT_SETTINGS

from .catalog import delete_backup, list_backups, resolve_backup
from .config import build_config
from .create import create_backup
from .errors import BackupBusyError, BackupError
from .logs import BackupLogger
from .restore import restore_archive
from .types import BackupConfig, BackupRecord, BackupResult, RestoreResult

_DEFAULT_LOCK_TIMEOUT = float(DEFAULT_SETTINGS["backup"]["lock_timeout_s"])


class _OperationGuard(contextlib.AbstractContextManager):
    """Hold the service lock for one backup, restore or delete."""

    def __init__(self, lock: threading.Lock, logger: BackupLogger, phase: str, timeout: float) -> None:
        self._lock = lock
        self._logger = logger
        self._phase = phase
        self._timeout = timeout

    def __enter__(self) -> None:
        if not self._lock.acquire(timeout=self._timeout):
            self._logger.event(event="operation_busy", phase=self._phase, ok=False)
            raise BackupBusyError(f"Another backup or restore is still running (phase={self._phase})")
        return None

    def __exit__(self, exc_type, exc, tb) -> None:
        self._lock.release()
        return False


class BackupService:
    """Coordinate backup, restore and catalog operations for one configuration."""

    def __init__(
        self,
        *,
        working_dir: Optional[Path] = None,
        settings: Optional[Mapping[str, Any]] = None,
        config: Optional[BackupConfig] = None,
    ) -> None:
        self._working_dir = Path(working_dir or resolve_working_dir())
        self._settings: Dict[str, Any] = dict(settings or DEFAULT_SETTINGS)
        self._config = config or build_config(self._working_dir, self._settings)
        self._logger = BackupLogger(self._working_dir)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    @property
    def working_dir(self) -> Path:
        return self._working_dir

    @property
    def config(self) -> BackupConfig:
        return self._config

    def _lock_timeout(self) -> float:
        raw = self._settings.get("backup")
        if isinstance(raw, dict) and raw.get("lock_timeout_s") is not None:
            try:
                return float(raw["lock_timeout_s"])
            except (TypeError, ValueError):
                return _DEFAULT_LOCK_TIMEOUT
        return _DEFAULT_LOCK_TIMEOUT

    def _exclusive(self, phase: str) -> _OperationGuard:
        return _OperationGuard(self._lock, self._logger, phase, self._lock_timeout())

    # ------------------------------------------------------------------
    def create_snapshot(self) -> BackupResult:
        with self._exclusive("create"):
            return create_backup(self._config, logger=self._logger)

    # ------------------------------------------------------------------
    def restore_snapshot(self, archive_path: Path) -> RestoreResult:
        with self._exclusive("restore"):
            return restore_archive(self._config, Path(archive_path), logger=self._logger)

    # ------------------------------------------------------------------
    def list_backups(self) -> List[BackupRecord]:
        return list_backups(self._config.backup_dir, safety_prefix=self._config.safety_prefix)

    # ------------------------------------------------------------------
    def delete_backup(self, name: str) -> bool:
        with self._exclusive("delete"):
            deleted = delete_backup(self._config.backup_dir, name)
        if deleted:
            self._logger.warning("backup_removed", name=str(name), reason="user")
        else:
            self._logger.info("backup_delete_ignored", name=str(name))
        return deleted

    # ------------------------------------------------------------------
    def backup_path(self, name: str) -> Path:
        return resolve_backup(self._config.backup_dir, name)


__all__ = [
    "BackupError",
    "BackupService",
]
