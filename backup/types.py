"""Common dataclasses shared across backup modules."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

ARCHIVE_FORMAT = "state-backup-v1"
ARCHIVE_SUFFIX = ".zip"
MANIFEST_NAME = "manifest.json"
STATE_SECTION = "state"
WORKSPACE_SECTION = "workspace"


@dataclass(frozen=True, slots=True)
class BackupConfig:
    """Immutable description of what is backed up and where archives live."""

    app_name: str
    state_dir: Path
    workspace_dir: Path
    workspace_entries: Tuple[str, ...]
    exclude: Tuple[str, ...]
    backup_dir: Path
    scratch_dir: Path
    backup_prefix: str = "state-backup"
    safety_prefix: str = "pre-restore"
    compress_level: int = 9


@dataclass(slots=True)
class BackupManifest:
    created_at: str
    app: str
    format: str
    state_root: str
    exclude: List[str]
    workspace: List[str]

    def to_dict(self) -> Dict[str, object]:
        return {
            "createdAt": self.created_at,
            "app": self.app,
            "format": self.format,
            "includes": {
                "state": self.state_root,
                "exclude": list(self.exclude),
                "workspace": list(self.workspace),
            },
        }


@dataclass(slots=True)
class BackupResult:
    path: Path
    manifest: BackupManifest
    size_bytes: int
    state_files: int
    workspace_entries: List[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(slots=True)
class BackupRecord:
    """Archive resident in the backup directory."""

    name: str
    size_bytes: int
    modified_utc: str
    kind: str
    path: Path


@dataclass(slots=True)
class ExtractedArchive:
    root: Path
    state_dir: Optional[Path]
    workspace_dir: Optional[Path]
    manifest: Optional[Dict[str, object]]
    entry_count: int


@dataclass(slots=True)
class RestoreResult:
    safety_path: Path
    restored_state: bool
    restored_workspace: List[str] = field(default_factory=list)


__all__ = [
    "ARCHIVE_FORMAT",
    "ARCHIVE_SUFFIX",
    "MANIFEST_NAME",
    "STATE_SECTION",
    "WORKSPACE_SECTION",
    "BackupConfig",
    "BackupManifest",
    "BackupRecord",
    "BackupResult",
    "ExtractedArchive",
    "RestoreResult",
]
