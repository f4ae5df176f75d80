"""Command line entry-point: one-shot backup commands or the local HTTP API."""
from __future__ import annotations

import argparse
import ipaddress
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import uvicorn

from api import __version__ as API_VERSION
from api.server import APIServerConfig, create_app
from backup.api import BackupService
from backup.errors import BackupError
from core.logging_utils import configure_json_logging, redact_secret
from core.paths import ensure_working_dir_structure, resolve_working_dir
from core.settings import DEFAULT_SETTINGS, load_settings

LOGGER = logging.getLogger("statebackup.cli")

_API_DEFAULTS: Dict[str, Any] = DEFAULT_SETTINGS["api"]


@dataclass(slots=True)
class ServeOptions:
    host: str
    port: int
    api_key: Optional[str]
    cors_origins: List[str]
    lan_only: bool


def loopback_bind_host(candidate: Optional[str]) -> str:
    """Return a loopback address to bind, refusing anything reachable off-host."""

    value = (candidate or "").strip().lower() or _API_DEFAULTS["host"]
    if value == "localhost":
        return "127.0.0.1"
    try:
        address = ipaddress.ip_address(value.strip("[]"))
    except ValueError:
        address = None
    if address is not None:
        mapped = getattr(address, "ipv4_mapped", None)
        if mapped is not None:
            address = mapped
        if address.is_loopback:
            return str(address) if address.version == 4 else "127.0.0.1"
    raise ValueError(f"Refusing to bind to non-loopback host {candidate!r}; the API only serves localhost.")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Back up and restore agent state, or serve the local API.")
    serve = parser.add_argument_group("API server")
    serve.add_argument("--host", help="Loopback address to bind (settings: api.host)")
    serve.add_argument("--port", type=int, help="Port to bind (settings: api.port)")
    serve.add_argument("--api-key", dest="api_key", help="API key for this run (env: STATEBACKUP_API_KEY)")
    serve.add_argument("--cors", action="append", metavar="ORIGIN", help="Allowed CORS origin, repeatable.")
    action = parser.add_mutually_exclusive_group()
    action.add_argument("--create-backup", action="store_true", help="Write a new backup archive and exit.")
    action.add_argument("--list-backups", action="store_true", help="List archives in the backup directory and exit.")
    action.add_argument("--restore", metavar="ARCHIVE", help="Restore ARCHIVE over the live state and exit.")
    parser.add_argument("--yes", action="store_true", help="Confirm a --restore.")
    return parser.parse_args(argv)


def resolve_serve_options(args: argparse.Namespace, settings: Dict[str, Any]) -> ServeOptions:
    """Combine command line flags, environment and ``settings["api"]``."""

    section = settings.get("api")
    api_settings: Dict[str, Any] = section if isinstance(section, dict) else {}
    try:
        port = int(args.port or api_settings.get("port") or _API_DEFAULTS["port"])
    except (TypeError, ValueError):
        port = int(_API_DEFAULTS["port"])
    cors = args.cors or api_settings.get("cors_origins") or _API_DEFAULTS["cors_origins"]
    return ServeOptions(
        host=loopback_bind_host(args.host or api_settings.get("host")),
        port=port,
        api_key=args.api_key or os.environ.get("STATEBACKUP_API_KEY") or api_settings.get("api_key"),
        cors_origins=[str(origin) for origin in cors],
        lan_only=bool(api_settings.get("lan_only", True)),
    )


def run_command(args: argparse.Namespace, service: BackupService) -> int:
    if args.list_backups:
        for record in service.list_backups():
            print(f"{record.name}\t{record.size_bytes}\t{record.modified_utc}\t{record.kind}")
        return 0
    if args.create_backup:
        result = service.create_snapshot()
        print(f"Backup created: {result.name} ({result.size_bytes} bytes)", flush=True)
        return 0
    if not args.yes:
        LOGGER.error("Restore overwrites live state; re-run with --yes to confirm.")
        return 2
    result = service.restore_snapshot(Path(args.restore))
    print(f"Restore completed. Pre-restore backup: {result.safety_path.name}", flush=True)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(name)s: %(message)s")
    args = parse_args(argv)
    working_dir = resolve_working_dir()
    settings = load_settings(working_dir)
    ensure_working_dir_structure(working_dir, settings)
    configure_json_logging(working_dir=working_dir)

    try:
        service = BackupService(working_dir=working_dir, settings=settings)
        if args.create_backup or args.list_backups or args.restore:
            return run_command(args, service)
        options = resolve_serve_options(args, settings)
        app = create_app(
            APIServerConfig(
                service=service,
                api_key=options.api_key,
                cors_origins=options.cors_origins,
                app_version=API_VERSION,
                lan_only=options.lan_only,
            )
        )
    except (BackupError, ValueError) as exc:
        LOGGER.error("%s", exc)
        return 2

    LOGGER.info("Serving on http://%s:%s (API key %s)", options.host, options.port, redact_secret(options.api_key))
    uvicorn.Server(uvicorn.Config(app, host=options.host, port=options.port, log_level="info", access_log=False)).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
