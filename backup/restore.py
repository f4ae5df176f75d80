"""Restore archives over live state behind a pre-restore safety snapshot."""
from __future__ import annotations

import shutil
from pathlib import Path
from typing import List

from .create import create_backup
from .errors import BackupError, BackupNotFoundError, BackupRestoreError
from .extract import extract_archive
from .logs import BackupLogger
from .types import BackupConfig, RestoreResult


def _merge_path(source: Path, target: Path, *, logger: BackupLogger) -> None:
    """Copy ``source`` onto ``target``, leaving live paths the archive lacks alone."""

    if source.is_dir():
        if target.is_symlink() and target.is_dir():
            # the live link stays; archive content lands in the directory it points to
            logger.info("symlink_followed", path=str(target))
        elif target.is_symlink() or (target.exists() and not target.is_dir()):
            target.unlink()
        target.mkdir(parents=True, exist_ok=True)
        for child in sorted(source.iterdir()):
            _merge_path(child, target / child.name, logger=logger)
        return

    if target.is_symlink():
        target.unlink()
    elif target.is_dir():
        shutil.rmtree(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, target)


def _reset_scratch(scratch_dir: Path) -> None:
    if scratch_dir.exists():
        shutil.rmtree(scratch_dir)
    scratch_dir.mkdir(parents=True, exist_ok=True)


def _remove_scratch(scratch_dir: Path, *, logger: BackupLogger) -> None:
    shutil.rmtree(scratch_dir, ignore_errors=True)
    if scratch_dir.exists():
        logger.warning("scratch_cleanup_failed", path=str(scratch_dir))


def restore_archive(config: BackupConfig, archive_path: Path, *, logger: BackupLogger) -> RestoreResult:
    """Restore ``archive_path`` over the live state and workspace entries.

    A pre-restore snapshot is written before anything live is touched and is
    kept on every outcome. Files present in the archive overwrite live files
    at the same relative path; live files missing from the archive are left in
    place. The scratch extraction directory is removed before returning.
    """

    archive_path = Path(archive_path)
    if not archive_path.is_file():
        raise BackupNotFoundError(f"Archive {archive_path.name} not found")

    logger.event(event="restore_start", phase="restore", ok=True, name=archive_path.name)
    safety = create_backup(config, logger=logger, prefix=config.safety_prefix)
    logger.info("safety_snapshot", name=safety.name)

    scratch_dir = config.scratch_dir
    restored_state = False
    restored_workspace: List[str] = []
    try:
        _reset_scratch(scratch_dir)
        extracted = extract_archive(archive_path, scratch_dir, logger=logger)

        if extracted.state_dir is not None:
            logger.info("restore_state", target=str(config.state_dir))
            _merge_path(extracted.state_dir, config.state_dir, logger=logger)
            restored_state = True

        if extracted.workspace_dir is not None:
            for entry in config.workspace_entries:
                source = extracted.workspace_dir / entry
                if not source.exists():
                    continue
                logger.info("restore_workspace_entry", entry=entry)
                _merge_path(source, config.workspace_dir / entry, logger=logger)
                restored_workspace.append(entry)
    except BackupError as exc:
        logger.error("restore_failed", name=archive_path.name, safety=safety.name, error=str(exc))
        raise
    except OSError as exc:
        logger.error("restore_failed", name=archive_path.name, safety=safety.name, error=str(exc))
        raise BackupRestoreError(
            f"Restore of {archive_path.name} failed ({exc.strerror or exc}); "
            f"pre-restore snapshot kept as {safety.name}"
        ) from exc
    finally:
        _remove_scratch(scratch_dir, logger=logger)

    logger.event(
        event="backup_restored",
        phase="restore",
        ok=True,
        name=archive_path.name,
        safety=safety.name,
        state=restored_state,
        workspace=restored_workspace,
    )
    return RestoreResult(
        safety_path=safety.path,
        restored_state=restored_state,
        restored_workspace=restored_workspace,
    )


__all__ = ["restore_archive"]
