"""Unpack archives into a scratch directory."""
from __future__ import annotations

import json
import shutil
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Tuple

from .errors import BackupExtractionError, BackupNotFoundError
from .logs import BackupLogger
from .types import MANIFEST_NAME, STATE_SECTION, WORKSPACE_SECTION, ExtractedArchive

_CHUNK = 1024 * 1024


def _member_target(scratch_root: Path, name: str) -> Path:
    """Return where ``name`` lands under ``scratch_root`` or raise if unsafe."""

    text = name.replace("\\", "/")
    pure = PurePosixPath(text)
    if not text or pure.is_absolute() or text.startswith("/"):
        raise BackupExtractionError(f"Archive entry {name!r} uses an absolute path")
    if ".." in pure.parts:
        raise BackupExtractionError(f"Archive entry {name!r} escapes the extraction directory")
    if pure.parts and ":" in pure.parts[0]:
        raise BackupExtractionError(f"Archive entry {name!r} uses a drive qualified path")
    target = (scratch_root / pure).resolve()
    if target != scratch_root and scratch_root not in target.parents:
        raise BackupExtractionError(f"Archive entry {name!r} escapes the extraction directory")
    return target


def _plan(archive: zipfile.ZipFile, scratch_root: Path) -> List[Tuple[zipfile.ZipInfo, Path]]:
    plan: List[Tuple[zipfile.ZipInfo, Path]] = []
    for info in archive.infolist():
        plan.append((info, _member_target(scratch_root, info.filename)))
    return plan


def _read_manifest(root: Path, *, logger: BackupLogger) -> Optional[Dict[str, object]]:
    path = root / MANIFEST_NAME
    if not path.is_file():
        logger.warning("manifest_missing")
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("manifest_unreadable", error=str(exc))
        return None
    if not isinstance(data, dict):
        logger.warning("manifest_unreadable", error="manifest is not an object")
        return None
    return data


def extract_archive(archive_path: Path, scratch_dir: Path, *, logger: BackupLogger) -> ExtractedArchive:
    """Extract ``archive_path`` into ``scratch_dir``.

    Every entry name is validated before anything is written; an entry that
    would land outside ``scratch_dir`` aborts the extraction. On failure the
    scratch directory may hold partial content and must be removed by the
    caller.
    """

    archive_path = Path(archive_path)
    if not archive_path.is_file():
        raise BackupNotFoundError(f"Archive {archive_path.name} not found")
    scratch_dir = Path(scratch_dir)
    scratch_dir.mkdir(parents=True, exist_ok=True)
    scratch_root = scratch_dir.resolve()

    logger.event(event="extract_start", phase="restore", ok=True, name=archive_path.name)
    count = 0
    try:
        with zipfile.ZipFile(archive_path, "r") as archive:
            for info, target in _plan(archive, scratch_root):
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(info, "r") as source, target.open("wb") as sink:
                    shutil.copyfileobj(source, sink, _CHUNK)
                count += 1
    except BackupExtractionError as exc:
        logger.event(event="extract_failed", phase="restore", ok=False, name=archive_path.name, error=str(exc))
        raise
    except zipfile.BadZipFile as exc:
        logger.event(event="extract_failed", phase="restore", ok=False, name=archive_path.name, error=str(exc))
        raise BackupExtractionError(f"{archive_path.name} is not a valid archive: {exc}") from exc
    except (zlib.error, EOFError, NotImplementedError, RuntimeError) as exc:
        # RuntimeError covers encrypted members
        logger.event(event="extract_failed", phase="restore", ok=False, name=archive_path.name, error=str(exc))
        raise BackupExtractionError(f"{archive_path.name} could not be read: {exc}") from exc
    except OSError as exc:
        logger.event(event="extract_failed", phase="restore", ok=False, name=archive_path.name, error=str(exc))
        raise BackupExtractionError(f"Failed to extract {archive_path.name}: {exc.strerror or exc}") from exc

    state_dir = scratch_root / STATE_SECTION
    workspace_dir = scratch_root / WORKSPACE_SECTION
    manifest = _read_manifest(scratch_root, logger=logger)
    logger.event(event="extract_complete", phase="restore", ok=True, name=archive_path.name, files=count)
    return ExtractedArchive(
        root=scratch_root,
        state_dir=state_dir if state_dir.is_dir() else None,
        workspace_dir=workspace_dir if workspace_dir.is_dir() else None,
        manifest=manifest,
        entry_count=count,
    )


__all__ = ["extract_archive"]
