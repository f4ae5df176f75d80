"""FastAPI application exposing backup, restore and catalog operations."""
from __future__ import annotations

import contextlib
import ipaddress
import logging
import shutil
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, Response, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from backup.api import BackupService
from backup.errors import (
    BackupBusyError,
    BackupError,
    BackupExtractionError,
    BackupNotFoundError,
    BackupValidationError,
)
from core.paths import get_uploads_dir

from .auth import APIKeyAuth
from .models import (
    BackupCreateResponse,
    BackupListResponse,
    BackupRecordModel,
    DeleteResponse,
    ErrorResponse,
    HealthResponse,
    RestoreResponse,
)

LOGGER = logging.getLogger("statebackup.api")


@dataclass(slots=True)
class APIServerConfig:
    """Runtime configuration for the FastAPI application."""

    service: BackupService
    api_key: Optional[str]
    cors_origins: Sequence[str]
    app_version: str = "dev"
    lan_only: bool = True


# Starlette's TestClient reports this pseudo host.
_LOCAL_CLIENT_NAMES = frozenset({"localhost", "testclient"})

_STATUS_BY_ERROR = (
    (BackupValidationError, status.HTTP_400_BAD_REQUEST),
    (BackupExtractionError, status.HTTP_400_BAD_REQUEST),
    (BackupNotFoundError, status.HTTP_404_NOT_FOUND),
    (BackupBusyError, status.HTTP_409_CONFLICT),
)


def is_local_client(host: Optional[str]) -> bool:
    """True for loopback peers, including IPv4-mapped and scoped IPv6 forms."""

    if not host:
        return True
    value = host.strip().lower().strip("[]").split("%", 1)[0]
    if value in _LOCAL_CLIENT_NAMES:
        return True
    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        return False
    mapped = getattr(address, "ipv4_mapped", None)
    return (mapped or address).is_loopback


def _status_for(exc: BackupError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app(config: APIServerConfig) -> FastAPI:
    """Create a FastAPI application bound to the given configuration.

    Raises :class:`backup.errors.BackupConfigurationError` when no API key is
    configured, before any route is registered.
    """

    auth_dependency = APIKeyAuth(config.api_key)
    service = config.service
    lan_only = bool(config.lan_only)

    app = FastAPI(
        title="State Backup Wizard API",
        version=config.app_version,
        docs_url="/docs",
        openapi_url="/openapi.json",
    )

    allowed_origins: List[str] = [origin for origin in config.cors_origins if origin]
    if allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_methods=["GET", "POST", "DELETE"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):  # type: ignore[override]
        start = time.perf_counter()
        client_host = request.client.host if request.client else None
        if lan_only and not is_local_client(client_host):
            LOGGER.warning("Rejected non-loopback client %s", client_host)
            return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": "loopback clients only"})
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000.0
        LOGGER.info(
            "%s %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response

    @app.exception_handler(BackupError)
    async def backup_error_handler(request: Request, exc: BackupError) -> JSONResponse:
        code = _status_for(exc)
        if code >= 500:
            LOGGER.error("Backup operation failed: %s", exc)
        return JSONResponse(status_code=code, content={"detail": str(exc), "error": exc.__class__.__name__})

    @app.get("/v1/health", response_model=HealthResponse)
    def health_check(_: str = Depends(auth_dependency)) -> HealthResponse:
        return HealthResponse(
            ok=True,
            version=config.app_version,
            time_utc=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            state_dir_present=service.config.state_dir.is_dir(),
            backup_count=len(service.list_backups()),
        )

    @app.get("/v1/backups", response_model=BackupListResponse)
    def backups(_: str = Depends(auth_dependency)) -> BackupListResponse:
        results = [
            BackupRecordModel(
                name=record.name,
                size_bytes=record.size_bytes,
                modified_utc=record.modified_utc,
                kind=record.kind,
            )
            for record in service.list_backups()
        ]
        return BackupListResponse(results=results)

    @app.post("/v1/backups", response_model=BackupCreateResponse)
    def create_backup(_: str = Depends(auth_dependency)) -> BackupCreateResponse:
        result = service.create_snapshot()
        return BackupCreateResponse(
            ok=True,
            name=result.name,
            size_bytes=result.size_bytes,
            created_at=result.manifest.created_at,
            state_files=result.state_files,
            workspace_entries=list(result.workspace_entries),
        )

    @app.post(
        "/v1/restore",
        response_model=RestoreResponse,
        responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    )
    def restore(
        backup: Optional[UploadFile] = File(None),
        confirm: str = Form(""),
        _: str = Depends(auth_dependency),
    ) -> RestoreResponse:
        if backup is None or not backup.filename:
            raise BackupValidationError("No backup uploaded")
        if confirm.strip().lower() != "yes":
            raise BackupValidationError("Confirmation required")
        uploads_dir = get_uploads_dir(service.working_dir)
        uploads_dir.mkdir(parents=True, exist_ok=True)
        staged = uploads_dir / f"{uuid.uuid4().hex}.zip"
        try:
            with staged.open("wb") as handle:
                shutil.copyfileobj(backup.file, handle)
            result = service.restore_snapshot(staged)
        finally:
            with contextlib.suppress(OSError):
                staged.unlink(missing_ok=True)
        return RestoreResponse(
            ok=True,
            safety_backup=result.safety_path.name,
            restored_state=result.restored_state,
            restored_workspace=list(result.restored_workspace),
            message="Restore completed. A pre-restore backup was created automatically.",
        )

    @app.get("/v1/backups/{name}/download")
    def download_backup(name: str, _: str = Depends(auth_dependency)) -> FileResponse:
        path = service.backup_path(name)
        return FileResponse(path, media_type="application/zip", filename=path.name)

    @app.delete("/v1/backups/{name}", response_model=DeleteResponse)
    def delete_backup(name: str, _: str = Depends(auth_dependency)) -> DeleteResponse:
        if not service.delete_backup(name):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Backup not found.")
        return DeleteResponse(deleted=True, name=name)

    return app


__all__ = [
    "APIServerConfig",
    "create_app",
]
