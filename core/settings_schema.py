from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

# Section name -> allowed keys. ``None`` marks a scalar top-level entry.
_ALLOWED_STRUCTURE: Dict[str, Optional[FrozenSet[str]]] = {
    "state": frozenset({"dir", "workspace_dir", "workspace_entries", "exclude"}),
    "backup": frozenset({"dir", "prefix", "safety_prefix", "compress_level", "lock_timeout_s"}),
    "api": frozenset({"host", "port", "api_key", "cors_origins", "lan_only"}),
    "app_name": None,
    "working_dir": None,
    "version": None,
}


@dataclass(frozen=True, slots=True)
class SettingsValidator:
    """Report settings keys that no component reads."""

    schema: Mapping[str, Optional[FrozenSet[str]]]

    def unknown_keys(self, payload: Mapping[str, Any]) -> List[str]:
        unknown: List[str] = []
        for key, value in payload.items():
            if key not in self.schema:
                unknown.append(key)
                continue
            allowed = self.schema[key]
            if allowed is None or not isinstance(value, Mapping):
                continue
            unknown.extend(f"{key}.{sub}" for sub in value if sub not in allowed)
        return sorted(unknown)


SETTINGS_VALIDATOR = SettingsValidator(_ALLOWED_STRUCTURE)

__all__ = ["SETTINGS_VALIDATOR", "SettingsValidator"]
