"""List and delete archives held in the backup directory."""
from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import BackupNotFoundError
from .types import ARCHIVE_SUFFIX, BackupRecord

SAFETY_KIND = "pre-restore"
BACKUP_KIND = "backup"


def _strip_directories(name: str) -> str:
    return str(name).replace("\\", "/").rsplit("/", 1)[-1]


def _kind_for(name: str, safety_prefix: str) -> str:
    return SAFETY_KIND if name.startswith(f"{safety_prefix}-") else BACKUP_KIND


# <prefix>-YYYY-MM-DDTHH-MM-SS-mmmZ[-N].zip
_STAMP = re.compile(r"-(\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z)(?:-(\d+))?\.zip$")


def _chronological_key(record: BackupRecord) -> Tuple[str, int, str]:
    match = _STAMP.search(record.name)
    if match is None:
        return ("", 0, record.name)
    return (match.group(1), int(match.group(2) or 0), record.name)


def list_backups(backup_dir: Path, *, safety_prefix: str = "pre-restore") -> List[BackupRecord]:
    """Return archives in ``backup_dir``, newest first.

    Ordering uses the timestamp embedded in the filename so operator backups
    and safety snapshots interleave chronologically. Names without a
    timestamp sort after all timestamped archives.
    """

    backup_dir = Path(backup_dir)
    if not backup_dir.is_dir():
        return []
    records: List[BackupRecord] = []
    for child in backup_dir.iterdir():
        if not child.name.endswith(ARCHIVE_SUFFIX) or not child.is_file():
            continue
        try:
            stat = child.stat()
        except FileNotFoundError:
            continue
        records.append(
            BackupRecord(
                name=child.name,
                size_bytes=int(stat.st_size),
                modified_utc=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
                kind=_kind_for(child.name, safety_prefix),
                path=child,
            )
        )
    records.sort(key=_chronological_key, reverse=True)
    return records


def _candidate(backup_dir: Path, name: str) -> Optional[Path]:
    if not name or name in {".", ".."} or not name.endswith(ARCHIVE_SUFFIX):
        return None
    path = Path(backup_dir) / name
    if path.is_symlink() or not path.is_file():
        return None
    return path


def delete_backup(backup_dir: Path, name: str) -> bool:
    """Delete ``name`` from ``backup_dir``.

    Directory components are stripped from ``name`` first. Only existing
    ``.zip`` files directly inside the backup directory are removed; anything
    else returns ``False``.
    """

    path = _candidate(backup_dir, _strip_directories(name))
    if path is None:
        return False
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def resolve_backup(backup_dir: Path, name: str) -> Path:
    """Return the path of archive ``name`` for download.

    ``name`` must already be a bare filename.
    """

    text = str(name)
    if _strip_directories(text) != text:
        raise BackupNotFoundError("Backup not found")
    path = _candidate(backup_dir, text)
    if path is None:
        raise BackupNotFoundError("Backup not found")
    return path


__all__ = ["BACKUP_KIND", "SAFETY_KIND", "delete_backup", "list_backups", "resolve_backup"]
