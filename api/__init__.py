"""Local HTTP API for the State Backup Wizard."""
from __future__ import annotations

__version__ = "1.0.0"

__all__ = ["__version__"]
