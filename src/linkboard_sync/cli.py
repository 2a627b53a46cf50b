"""Command line entry point: ``linkboard-sync``.

Subcommands map onto the engine entry points:

- ``smart``   -- ``init_smart_sync`` (first load after sign-in)
- ``sync``    -- ``sync_data`` (direction chosen from timestamps)
- ``force``   -- ``force_sync`` (local -> remote, then remote -> local)
- ``status``  -- engine and local cache status
- ``migrate`` -- adopt remote ids into an older local cache

Reports go to stdout; logs and errors go to stderr.
"""

import argparse
import asyncio
import json
import logging
import sys

from . import __version__
from .auth import require_identity
from .errors import ConfigError, IdentityError, LinkboardSyncError
from .logger import setup_logging
from .runtime import engine_lifespan, load_settings
from .sync.engine import SyncEngine
from .sync.migration import is_migration_needed, migrate_ids
from .sync.reporter import format_status, format_sync_report, report_to_json

logger = logging.getLogger(__name__)


def _emit(payload: dict, text: str, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, indent=2, default=str))
    else:
        print(text)


async def _run_command(engine: SyncEngine, args: argparse.Namespace) -> int:
    if args.command == "status":
        status = engine.status()
        _emit(status, format_status(status), args.json)
        return 0

    if args.command == "migrate":
        identity = (await require_identity(engine.sessions)).id
        if not args.always and not is_migration_needed(engine.local, identity):
            _emit({"migrated": False}, "Migration not needed.", args.json)
            return 0
        ok = await migrate_ids(engine.local, engine.remote, identity)
        _emit(
            {"migrated": ok},
            "Migration completed." if ok else "Migration failed.",
            args.json,
        )
        return 0 if ok else 1

    if args.command == "smart":
        report = await engine.init_smart_sync()
    elif args.command == "sync":
        report = await engine.sync_data(skip_render=True)
    else:
        report = await engine.force_sync(
            skip_apply_remote_to_local=args.push_only
        )

    if report is None:
        _emit({"skipped": True}, "Sync already in progress.", args.json)
        return 0
    _emit(report_to_json(report), format_sync_report(report), args.json)
    return 1 if report.errors else 0


async def main(args: argparse.Namespace) -> int:
    overrides = {
        "url": args.url,
        "key": args.key,
        "access_token": args.access_token,
        "refresh_token": args.refresh_token,
        "cache_dir": args.cache_dir,
        "debug": args.debug,
    }
    config, unified = load_settings(
        {k: v for k, v in overrides.items() if v}
    )
    setup_logging(
        debug=config.debug,
        log_file=args.log_file or unified.logging.file,
        log_format=args.log_format or unified.logging.format,
        level=unified.logging.level,
    )
    async with engine_lifespan(config) as engine:
        return await _run_command(engine, args)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="linkboard-sync",
        description="Synchronize the local Linkboard cache with Supabase",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # First sync after signing in
  linkboard-sync smart

  # Regular sync, direction chosen from timestamps
  linkboard-sync sync

  # Push local edits only
  linkboard-sync force --push-only

  # Machine-readable report
  linkboard-sync --json force
        """,
    )
    parser.add_argument("--url", help="Supabase project URL (overrides LINKBOARD_SUPABASE_URL)")
    parser.add_argument("--key", help="Supabase anon API key (overrides LINKBOARD_SUPABASE_KEY)")
    parser.add_argument(
        "--access-token",
        help="Session access token (prefer LINKBOARD_ACCESS_TOKEN; visible in process list)",
    )
    parser.add_argument("--refresh-token", help="Session refresh token")
    parser.add_argument("--cache-dir", help="Local cache directory")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Also append logs to this file")
    parser.add_argument(
        "--log-format", choices=["text", "json"], help="Log record format"
    )
    parser.add_argument(
        "--json", action="store_true", help="Print the report as JSON"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"linkboard-sync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("smart", help="Initial sync, remote data wins when present")
    sub.add_parser("sync", help="Sync in the direction of the newest data")
    force = sub.add_parser("force", help="Full bidirectional sync")
    force.add_argument(
        "--push-only",
        action="store_true",
        help="Skip applying remote data to the local cache",
    )
    sub.add_parser("status", help="Show sync status")
    migrate = sub.add_parser("migrate", help="Adopt remote ids into the local cache")
    migrate.add_argument(
        "--always", action="store_true", help="Run even if already completed"
    )
    return parser


def run() -> None:
    """Entry point that parses arguments and maps failures to exit codes."""
    args = build_parser().parse_args()
    try:
        sys.exit(asyncio.run(main(args)))
    except ConfigError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        sys.exit(2)
    except IdentityError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(3)
    except LinkboardSyncError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
