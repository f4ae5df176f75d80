from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping, Optional

__all__ = [
    "ensure_working_dir_structure",
    "get_backups_dir",
    "get_default_settings_paths",
    "get_logs_dir",
    "get_restore_scratch_dir",
    "get_runtime_dir",
    "get_uploads_dir",
    "resolve_state_dir",
    "resolve_workspace_dir",
    "resolve_working_dir",
]

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DEFAULT_STATE_DIRNAME = ".openclaw"
_DEFAULT_WORKSPACE_DIRNAME = "workspace"


def _expand_path(value: str) -> Path:
    expanded = os.path.expandvars(os.path.expanduser(value))
    return Path(expanded).resolve()


def _ensure_writable_dir(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False
    test_file = path / f".write_test_{os.getpid()}"
    try:
        with open(test_file, "w", encoding="utf-8") as handle:
            handle.write("ok")
        test_file.unlink(missing_ok=True)
        return True
    except OSError:
        try:
            if test_file.exists():
                test_file.unlink()
        except OSError:  # pragma: no cover - best effort cleanup
            pass
        return False


def _home_dir() -> Path:
    home = os.environ.get("HOME")
    if home:
        return _expand_path(home)
    return Path.home()


def resolve_working_dir() -> Path:
    """Resolve the directory holding settings, logs, backups and scratch space."""

    env_home = os.environ.get("STATEBACKUP_HOME")
    if env_home:
        candidate = _expand_path(env_home)
        if _ensure_writable_dir(candidate):
            return candidate

    candidate = _home_dir() / ".statebackup"
    if _ensure_writable_dir(candidate):
        return candidate

    fallback = _PROJECT_ROOT / ".statebackup"
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback


def _section(settings: Optional[Mapping[str, Any]], name: str) -> Mapping[str, Any]:
    if not settings:
        return {}
    value = settings.get(name)
    return value if isinstance(value, Mapping) else {}


def resolve_state_dir(settings: Optional[Mapping[str, Any]] = None) -> Path:
    """Return the absolute state directory.

    ``state.dir`` from settings wins, then ``STATEBACKUP_STATE_DIR``, then
    ``$HOME/.openclaw``.
    """

    configured = _section(settings, "state").get("dir")
    if isinstance(configured, str) and configured.strip():
        return _expand_path(configured.strip())
    env_state = os.environ.get("STATEBACKUP_STATE_DIR")
    if env_state and env_state.strip():
        return _expand_path(env_state.strip())
    return _home_dir() / _DEFAULT_STATE_DIRNAME


def resolve_workspace_dir(settings: Optional[Mapping[str, Any]], state_dir: Path) -> Path:
    configured = _section(settings, "state").get("workspace_dir")
    if isinstance(configured, str) and configured.strip():
        return _expand_path(configured.strip())
    return state_dir / _DEFAULT_WORKSPACE_DIRNAME


def get_backups_dir(working_dir: Path, settings: Optional[Mapping[str, Any]] = None) -> Path:
    configured = _section(settings, "backup").get("dir")
    if isinstance(configured, str) and configured.strip():
        return _expand_path(configured.strip())
    return working_dir / "backups"


def get_logs_dir(working_dir: Path) -> Path:
    return working_dir / "logs"


def get_runtime_dir(working_dir: Path) -> Path:
    return working_dir / ".runtime"


def get_uploads_dir(working_dir: Path) -> Path:
    return get_runtime_dir(working_dir) / "uploads"


def get_restore_scratch_dir(working_dir: Path) -> Path:
    return get_runtime_dir(working_dir) / "restore"


def ensure_working_dir_structure(working_dir: Path, settings: Optional[Mapping[str, Any]] = None) -> None:
    for directory in (
        working_dir,
        get_backups_dir(working_dir, settings),
        get_logs_dir(working_dir),
        get_runtime_dir(working_dir),
        get_uploads_dir(working_dir),
    ):
        directory.mkdir(parents=True, exist_ok=True)


def get_default_settings_paths(working_dir: Path) -> list[Path]:
    """Return the search order for settings.json files."""

    return [working_dir / "settings.json", _PROJECT_ROOT / "settings.json"]
