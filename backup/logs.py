"""Structured logging helpers for backup operations."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict

from core.paths import get_logs_dir

LOGGER = logging.getLogger("statebackup.backup")

BACKUP_LOG_NAME = "backup.jsonl"


class BackupLogger:
    """Append one JSON line per backup, restore or catalog event.

    Every line is mirrored to the ``statebackup.backup`` logger so console and
    JSONL handlers see the same stream.
    """

    def __init__(self, working_dir: Path) -> None:
        self._log_path = get_logs_dir(Path(working_dir)) / BACKUP_LOG_NAME
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()

    @property
    def log_path(self) -> Path:
        return self._log_path

    # ------------------------------------------------------------------
    def _append(self, level: int, record: Dict[str, Any]) -> None:
        record = {"ts": datetime.now(timezone.utc).isoformat(), **record}
        line = json.dumps(record, sort_keys=True, default=str)
        with self._lock, self._log_path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")
        LOGGER.log(level, "%s", line)

    def event(self, *, event: str, phase: str, ok: bool, **extra: Any) -> None:
        self._append(
            logging.INFO if ok else logging.ERROR,
            {**extra, "event": event, "phase": phase, "ok": bool(ok)},
        )

    def info(self, event: str, **extra: Any) -> None:
        self._append(logging.INFO, {**extra, "event": event, "ok": True})

    def warning(self, event: str, **extra: Any) -> None:
        self._append(logging.WARNING, {**extra, "event": event, "ok": False})

    def error(self, event: str, **extra: Any) -> None:
        self._append(logging.ERROR, {**extra, "event": event, "ok": False})


__all__ = ["BACKUP_LOG_NAME", "BackupLogger"]
