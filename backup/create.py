"""Create state snapshots as a single zip archive."""
from __future__ import annotations

import contextlib
import json
import os
import stat
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Collection, Iterator, List, Optional, Tuple

from .errors import BackupError, BackupIOError
from .logs import BackupLogger
from .rules import InclusionFilter
from .types import (
    ARCHIVE_FORMAT,
    ARCHIVE_SUFFIX,
    MANIFEST_NAME,
    STATE_SECTION,
    WORKSPACE_SECTION,
    BackupConfig,
    BackupManifest,
    BackupResult,
)

_DIR_ATTR = (0o40755 << 16) | 0x10
_PARTIAL_SUFFIX = ".partial"


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def archive_filename(prefix: str, created_at: Optional[str] = None) -> str:
    """Return ``<prefix>-<timestamp>.zip`` with ``:`` and ``.`` replaced by ``-``."""

    stamp = (created_at or _utcnow()).replace(":", "-").replace(".", "-")
    return f"{prefix}-{stamp}{ARCHIVE_SUFFIX}"


def _unique_destination(directory: Path, prefix: str) -> Path:
    name = archive_filename(prefix)
    stem = name[: -len(ARCHIVE_SUFFIX)]
    candidate = directory / name
    counter = 1
    while candidate.exists():
        candidate = directory / f"{stem}-{counter}{ARCHIVE_SUFFIX}"
        counter += 1
    return candidate


def _describe(exc: BaseException) -> str:
    if isinstance(exc, OSError) and exc.strerror:
        name = Path(exc.filename).name if exc.filename else ""
        return f"{exc.strerror}: {name}" if name else exc.strerror
    return str(exc) or exc.__class__.__name__


def build_manifest(config: BackupConfig) -> BackupManifest:
    return BackupManifest(
        created_at=_utcnow(),
        app=config.app_name,
        format=ARCHIVE_FORMAT,
        state_root=str(config.state_dir),
        exclude=list(config.exclude),
        workspace=list(config.workspace_entries),
    )


def _raise_walk_error(exc: OSError) -> None:
    raise exc


def _walk_tree(
    root: Path,
    *,
    rule_filter: Optional[InclusionFilter] = None,
    skip: Collection[Path] = (),
) -> Iterator[Tuple[Path, str, bool]]:
    """Yield ``(path, relative, is_dir)`` for ``root`` in a stable order.

    Symlinked directories are reported as directories but never descended.
    Directories and files listed in ``skip`` are left out entirely.
    """

    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise_walk_error, followlinks=False):
        current = Path(dirpath)
        rel_dir = current.relative_to(root).as_posix()
        prefix = "" if rel_dir == "." else f"{rel_dir}/"
        dirnames.sort()
        kept: List[str] = []
        for name in dirnames:
            relative = prefix + name
            if rule_filter is not None and not rule_filter.should_include(relative, True):
                continue
            if current / name in skip:
                continue
            kept.append(name)
            yield current / name, relative, True
        dirnames[:] = kept
        for name in sorted(filenames):
            relative = prefix + name
            if rule_filter is not None and not rule_filter.should_include(relative, False):
                continue
            path = current / name
            if path in skip:
                continue
            yield path, relative, False


def _write_directory(archive: zipfile.ZipFile, arcname: str) -> None:
    info = zipfile.ZipInfo(arcname.rstrip("/") + "/")
    info.external_attr = _DIR_ATTR
    archive.writestr(info, b"")


def _write_file(archive: zipfile.ZipFile, path: Path, arcname: str, *, logger: BackupLogger) -> bool:
    try:
        mode = path.stat().st_mode
    except FileNotFoundError:
        logger.warning("dangling_symlink_skipped", path=str(path))
        return False
    if not stat.S_ISREG(mode):
        # FIFOs, sockets and device nodes would block or stream forever
        logger.warning("special_file_skipped", path=str(path))
        return False
    archive.write(path, arcname)
    return True


def _write_tree(
    archive: zipfile.ZipFile,
    root: Path,
    arc_root: str,
    *,
    logger: BackupLogger,
    rule_filter: Optional[InclusionFilter] = None,
    skip: Collection[Path] = (),
) -> int:
    files = 0
    for path, relative, is_dir in _walk_tree(root, rule_filter=rule_filter, skip=skip):
        arcname = f"{arc_root}/{relative}"
        if is_dir:
            _write_directory(archive, arcname)
        elif _write_file(archive, path, arcname, logger=logger):
            files += 1
    return files


def _write_state(
    archive: zipfile.ZipFile,
    config: BackupConfig,
    *,
    skip: Collection[Path],
    logger: BackupLogger,
) -> int:
    state_dir = config.state_dir
    if not state_dir.is_dir():
        logger.warning("state_dir_missing", path=str(state_dir))
        return 0
    root = state_dir.resolve()
    rule_filter = InclusionFilter(config.exclude)
    _write_directory(archive, STATE_SECTION)
    files = _write_tree(archive, root, STATE_SECTION, logger=logger, rule_filter=rule_filter, skip=skip)
    logger.info("state_written", files=files)
    return files


def _write_workspace(archive: zipfile.ZipFile, config: BackupConfig, *, logger: BackupLogger) -> List[str]:
    written: List[str] = []
    for entry in config.workspace_entries:
        source = config.workspace_dir / entry
        if not source.exists():
            logger.info("workspace_entry_missing", entry=entry)
            continue
        arcname = f"{WORKSPACE_SECTION}/{entry}"
        if source.is_dir():
            _write_directory(archive, arcname)
            _write_tree(archive, source, arcname, logger=logger)
        elif not _write_file(archive, source, arcname, logger=logger):
            continue
        written.append(entry)
    logger.info("workspace_written", entries=written)
    return written


def _write_manifest(archive: zipfile.ZipFile, manifest: BackupManifest) -> None:
    payload = json.dumps(manifest.to_dict(), indent=2, ensure_ascii=False)
    archive.writestr(MANIFEST_NAME, payload.encode("utf-8"))


def _verify_bundle(bundle: Path) -> None:
    with zipfile.ZipFile(bundle, "r") as archive:
        broken = archive.testzip()
        if broken is not None:
            raise BackupIOError(f"archive entry {broken} failed its CRC check after writing")
        if MANIFEST_NAME not in archive.namelist():
            raise BackupIOError("archive is missing its manifest after writing")


def write_archive(config: BackupConfig, destination: Path, *, logger: BackupLogger) -> BackupResult:
    """Write a complete archive of the configured state to ``destination``.

    The archive is assembled next to the destination and renamed into place
    only once it has been closed and re-read, so a failure never leaves a
    file at ``destination``.
    """

    destination = Path(destination)
    partial = destination.with_name(destination.name + _PARTIAL_SUFFIX)
    manifest = build_manifest(config)
    logger.event(event="backup_start", phase="create", ok=True, name=destination.name)
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        # earlier archives and restore scratch space may live under the state dir
        skip = {
            destination.resolve(),
            partial.resolve(),
            config.backup_dir.resolve(),
            config.scratch_dir.resolve(),
        }
        with zipfile.ZipFile(
            partial,
            "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=config.compress_level,
            strict_timestamps=False,
        ) as archive:
            state_files = _write_state(archive, config, skip=skip, logger=logger)
            workspace = _write_workspace(archive, config, logger=logger)
            _write_manifest(archive, manifest)
        _verify_bundle(partial)
        os.replace(partial, destination)
        size = destination.stat().st_size
    except (OSError, ValueError, zipfile.BadZipFile, zipfile.LargeZipFile, BackupError) as exc:
        with contextlib.suppress(OSError):
            partial.unlink(missing_ok=True)
        logger.event(event="backup_failed", phase="create", ok=False, name=destination.name, error=_describe(exc))
        if isinstance(exc, BackupError):
            raise
        raise BackupIOError(f"Failed to write archive {destination.name}: {_describe(exc)}") from exc

    logger.event(
        event="backup_complete",
        phase="create",
        ok=True,
        name=destination.name,
        size=size,
        state_files=state_files,
        workspace=len(workspace),
    )
    return BackupResult(
        path=destination,
        manifest=manifest,
        size_bytes=size,
        state_files=state_files,
        workspace_entries=workspace,
    )


def create_backup(config: BackupConfig, *, logger: BackupLogger, prefix: Optional[str] = None) -> BackupResult:
    """Write a new archive into the backup directory and return its details."""

    try:
        config.backup_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise BackupIOError(f"Cannot create backup directory: {_describe(exc)}") from exc
    destination = _unique_destination(config.backup_dir, prefix or config.backup_prefix)
    return write_archive(config, destination, logger=logger)


__all__ = ["archive_filename", "build_manifest", "create_backup", "write_archive"]
