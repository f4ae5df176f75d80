"""Resolve settings into an immutable :class:`BackupConfig`."""
from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Any, Mapping, Optional, Tuple

from core.paths import get_backups_dir, get_restore_scratch_dir, resolve_state_dir, resolve_workspace_dir
from core.settings import DEFAULT_SETTINGS

from .errors import BackupConfigurationError
from .types import BackupConfig


def _section(settings: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = settings.get(name)
    return value if isinstance(value, Mapping) else {}


def _normalise_entry(raw: object) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise BackupConfigurationError(f"Invalid workspace entry: {raw!r}")
    text = raw.strip().replace("\\", "/").rstrip("/")
    pure = PurePosixPath(text)
    if not pure.parts or pure.is_absolute() or ":" in pure.parts[0] or ".." in pure.parts:
        raise BackupConfigurationError(f"Workspace entry must be a relative path inside the workspace: {raw!r}")
    return pure.as_posix()


def _string_tuple(values: object, *, field_name: str) -> Tuple[str, ...]:
    if not isinstance(values, (list, tuple)):
        raise BackupConfigurationError(f"{field_name} must be a list of strings")
    items = []
    for value in values:
        if not isinstance(value, str) or not value.strip():
            raise BackupConfigurationError(f"{field_name} contains an invalid value: {value!r}")
        items.append(value.strip())
    return tuple(items)


def build_config(working_dir: Path, settings: Optional[Mapping[str, Any]] = None) -> BackupConfig:
    """Build the backup configuration for ``working_dir``.

    Raises :class:`BackupConfigurationError` before any filesystem access when
    the workspace entry list or rule list is malformed.
    """

    payload: Mapping[str, Any] = settings if settings is not None else DEFAULT_SETTINGS
    state = _section(payload, "state")
    backup = _section(payload, "backup")
    defaults_state = DEFAULT_SETTINGS["state"]
    defaults_backup = DEFAULT_SETTINGS["backup"]

    entries = tuple(
        _normalise_entry(entry)
        for entry in _string_tuple(
            state.get("workspace_entries", defaults_state["workspace_entries"]),
            field_name="state.workspace_entries",
        )
    )
    exclude = _string_tuple(state.get("exclude", defaults_state["exclude"]), field_name="state.exclude")

    try:
        compress_level = int(backup.get("compress_level", defaults_backup["compress_level"]))
    except (TypeError, ValueError) as exc:
        raise BackupConfigurationError("backup.compress_level must be an integer") from exc
    if not 0 <= compress_level <= 9:
        raise BackupConfigurationError("backup.compress_level must be between 0 and 9")

    prefix = str(backup.get("prefix") or defaults_backup["prefix"])
    safety_prefix = str(backup.get("safety_prefix") or defaults_backup["safety_prefix"])
    for value in (prefix, safety_prefix):
        if "/" in value or "\\" in value:
            raise BackupConfigurationError(f"Backup prefix must not contain path separators: {value!r}")

    state_dir = resolve_state_dir(payload)
    working = Path(working_dir)
    return BackupConfig(
        app_name=str(payload.get("app_name") or DEFAULT_SETTINGS["app_name"]),
        state_dir=state_dir,
        workspace_dir=resolve_workspace_dir(payload, state_dir),
        workspace_entries=entries,
        exclude=exclude,
        backup_dir=get_backups_dir(working, payload),
        scratch_dir=get_restore_scratch_dir(working),
        backup_prefix=prefix,
        safety_prefix=safety_prefix,
        compress_level=compress_level,
    )


__all__ = ["build_config"]
