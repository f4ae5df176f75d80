from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional

from .settings_schema import SETTINGS_VALIDATOR

from .paths import get_default_settings_paths, get_logs_dir

__all__ = [
    "DEFAULT_SETTINGS",
    "SETTINGS_VERSION",
    "load_settings",
    "merge_defaults",
    "save_settings",
    "update_settings",
]

LOGGER = logging.getLogger("statebackup.settings")

SETTINGS_VERSION = 1


DEFAULT_SETTINGS: Dict[str, Any] = {
    "version": SETTINGS_VERSION,
    "app_name": "State Backup Wizard",
    "state": {
        "dir": None,
        "workspace_dir": None,
        "workspace_entries": [
            "AGENTS.md",
            "SOUL.md",
            "USER.md",
            "TOOLS.md",
            "IDENTITY.md",
            "HEARTBEAT.md",
            "MEMORY.md",
            "memory",
        ],
        "exclude": [
            # Large or transient runtime data
            "browser/**",
            "logs/**",
            "media/**",
            "delivery-queue/**",
            "subagents/**",
            "agents/**",
            "cron/runs/**",
            "backups/**",
            # Workspace clones are captured through workspace_entries
            "workspace/**",
            "workspace-gateway-*/**",
        ],
    },
    "backup": {
        "dir": None,
        "prefix": "state-backup",
        "safety_prefix": "pre-restore",
        "compress_level": 9,
        "lock_timeout_s": 300,
    },
    "api": {
        "host": "127.0.0.1",
        "port": 4280,
        "api_key": None,
        "cors_origins": ["http://localhost", "http://127.0.0.1"],
        "lan_only": True,
    },
}


def _merge_section(default: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    for key, fallback in default.items():
        supplied = payload.get(key)
        if isinstance(fallback, dict):
            merged[key] = _merge_section(fallback, supplied if isinstance(supplied, dict) else {})
        elif isinstance(fallback, list):
            # a scalar where a list belongs keeps the default list
            merged[key] = list(supplied) if isinstance(supplied, list) else list(fallback)
        else:
            merged[key] = payload.get(key, fallback)
    # keys without a default survive so they can be reported as unknown
    merged.update({key: value for key, value in payload.items() if key not in merged})
    return merged


def merge_defaults(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Overlay ``data`` on :data:`DEFAULT_SETTINGS` section by section."""

    return _merge_section(DEFAULT_SETTINGS, data or {})


def _apply_migrations(settings: Dict[str, Any]) -> Dict[str, Any]:
    try:
        version = int(settings.get("version"))
    except (TypeError, ValueError):
        version = 0
    if version < SETTINGS_VERSION:
        settings["version"] = SETTINGS_VERSION
    return settings


def _finalise(data: Dict[str, Any], working_dir: Path) -> Dict[str, Any]:
    settings = _apply_migrations(merge_defaults(data))
    settings.setdefault("working_dir", str(working_dir))
    return settings


def _log_unknown_keys(settings: Dict[str, Any], working_dir: Path) -> None:
    unknown = list(SETTINGS_VALIDATOR.unknown_keys(settings))
    if not unknown:
        return
    LOGGER.warning("Ignoring unknown settings keys: %s", ", ".join(unknown))
    target = get_logs_dir(working_dir) / "settings_unknown.json"
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(
            json.dumps({"ts": time.time(), "unknown": unknown}, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
    except OSError as exc:
        LOGGER.debug("Could not write %s: %s", target, exc)


def _read_candidate(path: Path) -> Optional[Dict[str, Any]]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as exc:
        LOGGER.warning("Cannot read settings file %s: %s", path, exc)
        return None
    try:
        loaded = json.loads(text)
    except json.JSONDecodeError as exc:
        LOGGER.warning("Ignoring malformed settings file %s: %s", path, exc)
        return None
    if not isinstance(loaded, dict):
        LOGGER.warning("Ignoring settings file %s: top level is not an object", path)
        return None
    return loaded


def load_settings(working_dir: Path) -> Dict[str, Any]:
    """Load the first readable ``settings.json`` and fill in defaults."""

    data: Dict[str, Any] = {}
    for candidate in get_default_settings_paths(working_dir):
        loaded = _read_candidate(candidate)
        if loaded is not None:
            data = loaded
            break
    settings = _finalise(data, working_dir)
    _log_unknown_keys(settings, working_dir)
    return settings


def save_settings(settings: Dict[str, Any], working_dir: Path) -> None:
    path = working_dir / "settings.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = _finalise(dict(settings), working_dir)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


def update_settings(working_dir: Path, **sections: Any) -> Dict[str, Any]:
    """Merge ``sections`` into the stored settings and persist the result.

    Mapping values update the matching section key by key; anything else
    replaces the top-level value.
    """

    current = load_settings(working_dir)
    for key, value in sections.items():
        existing = current.get(key)
        if isinstance(value, dict) and isinstance(existing, dict):
            existing.update(value)
        else:
            current[key] = value
    save_settings(current, working_dir)
    return current
