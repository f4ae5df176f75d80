"""Pydantic schemas for the State Backup Wizard local API."""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health response summarising server readiness."""

    ok: bool = Field(True, description="Indicates the API server is reachable.")
    version: str = Field(..., description="Application version string.")
    time_utc: str = Field(..., description="Current UTC timestamp in ISO8601 format.")
    state_dir_present: bool = Field(..., description="True when the configured state directory exists.")
    backup_count: int = Field(..., ge=0, description="Number of archives in the backup directory.")


class BackupRecordModel(BaseModel):
    """Archive resident in the backup directory."""

    name: str = Field(..., description="Archive file name inside the backup directory.")
    size_bytes: int = Field(..., ge=0, description="Archive size in bytes.")
    modified_utc: str = Field(..., description="Last modification time (UTC, ISO8601).")
    kind: str = Field(..., description="'backup' for operator backups, 'pre-restore' for safety snapshots.")


class BackupListResponse(BaseModel):
    results: List[BackupRecordModel] = Field(default_factory=list)


class BackupCreateResponse(BaseModel):
    ok: bool = True
    name: str = Field(..., description="File name of the new archive.")
    size_bytes: int = Field(..., ge=0)
    created_at: str = Field(..., description="Manifest creation timestamp.")
    state_files: int = Field(..., ge=0, description="Number of state files captured.")
    workspace_entries: List[str] = Field(default_factory=list, description="Workspace entries captured.")


class RestoreResponse(BaseModel):
    ok: bool = True
    safety_backup: str = Field(..., description="File name of the pre-restore safety snapshot.")
    restored_state: bool = Field(..., description="True when the archive carried a state section.")
    restored_workspace: List[str] = Field(default_factory=list)
    message: Optional[str] = None


class DeleteResponse(BaseModel):
    deleted: bool
    name: str


class ErrorResponse(BaseModel):
    detail: str
    error: str = Field(..., description="Error class name.")


__all__ = [
    "BackupCreateResponse",
    "BackupListResponse",
    "BackupRecordModel",
    "DeleteResponse",
    "ErrorResponse",
    "HealthResponse",
    "RestoreResponse",
]
