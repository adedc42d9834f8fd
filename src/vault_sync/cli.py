"""Command-line interface for vault sync.

Subcommands:

- ``sync``   -- sync one mapping or all enabled mappings (``--dry-run``
  previews, ``--json`` prints structured output).
- ``status`` -- snapshot summary per mapping.
- ``watch``  -- sync on file changes until interrupted.
- ``init``   -- write a starter ``.vault_sync/config.yml``.

Conflict and deletion prompts are written to stderr and answered on
stdin; when stdin is not a terminal, conflicts are skipped and deletions
declined.
"""

import argparse
import asyncio
import json
import logging
import sys

from . import __version__
from .config import load_runtime_config
from .config_loader import ensure_config
from .core.async_utils import run_sync
from .logger import (
    apply_configured_file,
    apply_configured_level,
    setup_logging,
)
from .mcp.tools.errors import format_timestamp
from .service import SyncService
from .sync.models import ConflictInfo, DetectedDeletion, Resolution
from .sync.reporter import (
    dry_run_to_json,
    format_conflict,
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SYNC_ERRORS = 1
EXIT_CONFIG_ERROR = 2

_CONFLICT_ANSWERS = {
    "p": Resolution.USE_PROJECT,
    "project": Resolution.USE_PROJECT,
    "v": Resolution.USE_VAULT,
    "vault": Resolution.USE_VAULT,
    "s": Resolution.SKIP,
    "skip": Resolution.SKIP,
    "": Resolution.SKIP,
}


def _stderr_print(msg: str = "") -> None:
    print(msg, file=sys.stderr, flush=True)


# ---------------------------------------------------------------------------
# Interactive prompts
# ---------------------------------------------------------------------------


async def _ask(prompt: str) -> str:
    sys.stderr.write(prompt)
    sys.stderr.flush()
    try:
        return (await run_sync(input)).strip().lower()
    except EOFError:
        return ""


async def prompt_conflict(conflict: ConflictInfo) -> Resolution:
    """Ask which copy of a conflicting file to keep."""
    if not sys.stdin.isatty():
        logger.warning(
            "Cannot ask about %s without a terminal; skipping",
            conflict.relative_path,
        )
        return Resolution.SKIP

    _stderr_print(f"Conflict: {format_conflict(conflict)}")
    _stderr_print(f"  project: {conflict.project_path}")
    _stderr_print(f"  vault:   {conflict.vault_path}")
    while True:
        answer = await _ask("Keep [p]roject, [v]ault or [s]kip? ")
        if answer in _CONFLICT_ANSWERS:
            return _CONFLICT_ANSWERS[answer]
        _stderr_print("Please answer p, v or s.")


async def prompt_deletions(deletions: list[DetectedDeletion]) -> bool:
    """Ask whether to apply the detected deletions."""
    if not sys.stdin.isatty():
        logger.warning(
            "Cannot confirm %d deletion(s) without a terminal; skipping",
            len(deletions),
        )
        return False

    _stderr_print(f"{len(deletions)} file(s) were deleted since the last sync:")
    for deletion in deletions:
        _stderr_print(
            f"  {deletion.relative_path} (deleted from "
            f"{deletion.deleted_from.value}, will be removed from "
            f"{deletion.exists_in.value})"
        )
    answer = await _ask("Apply these deletions? [y/N] ")
    return answer in ("y", "yes")


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


async def _cmd_sync(service: SyncService, args: argparse.Namespace) -> int:
    if args.dry_run:
        if args.mapping:
            previews = [await service.dry_run_mapping(args.mapping)]
        else:
            previews = await service.dry_run_all()
        if args.json:
            print(json.dumps([dry_run_to_json(p) for p in previews], indent=2))
        else:
            print("\n\n".join(format_dry_run_preview(p) for p in previews))
        return EXIT_SYNC_ERRORS if any(p.error for p in previews) else EXIT_OK

    if args.mapping:
        results = [await service.run_mapping(args.mapping)]
    else:
        results = await service.run_all()

    if args.json:
        print(json.dumps([report_to_json(r) for r in results], indent=2))
    else:
        print("\n\n".join(format_sync_report(r) for r in results))
    return EXIT_OK if all(r.success for r in results) else EXIT_SYNC_ERRORS


async def _cmd_status(service: SyncService, args: argparse.Namespace) -> int:
    entries = service.status()
    if args.json:
        print(json.dumps(entries, indent=2))
        return EXIT_OK

    print(f"Vault: {service.vault_store.base_path}")
    print(f"State file: {service.snapshots.path}")
    for entry in entries:
        suffix = "" if entry["enabled"] else " (disabled)"
        print(f"  {entry['name']} ({entry['id']}){suffix}")
        print(f"    Direction:     {entry['direction']}")
        print(f"    Last sync:     {format_timestamp(entry['last_sync_time'])}")
        print(
            f"    Tracked files: {entry['project_files']} project, "
            f"{entry['vault_files']} vault"
        )
    if not entries:
        print("  No mappings configured.")
    return EXIT_OK


async def _cmd_watch(service: SyncService, args: argparse.Namespace) -> int:
    await service.start("on-change")
    _stderr_print("Watching for changes. Press Ctrl+C to stop.")
    try:
        await asyncio.Event().wait()
    finally:
        await service.stop()
    return EXIT_OK


async def _run(args: argparse.Namespace) -> int:
    overrides: dict = {}
    if args.config:
        overrides["config"] = args.config
    if args.vault:
        overrides["vault"] = args.vault
    if args.state_file:
        overrides["state_file"] = args.state_file
    if args.sync_deletions:
        overrides["sync_deletions"] = True

    try:
        config, _sources = load_runtime_config(overrides)
    except ValueError as e:
        _stderr_print(f"ERROR: Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    if not args.debug:
        apply_configured_level("cli", config.logging.level)
    if not args.log_file:
        apply_configured_file("cli", config.logging.file)

    service = SyncService(
        config,
        conflict_handler=prompt_conflict,
        deletion_confirmer=prompt_deletions,
    )
    try:
        match args.command:
            case "sync":
                return await _cmd_sync(service, args)
            case "status":
                return await _cmd_status(service, args)
            case "watch":
                return await _cmd_watch(service, args)
            case _:
                raise ValueError(f"Unknown command: {args.command}")
    except KeyError as e:
        _stderr_print(f"ERROR: Unknown mapping: {e.args[0]}")
        return EXIT_CONFIG_ERROR


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vault-sync",
        description="Sync project documentation folders with an Obsidian-style vault",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create a starter config in .vault_sync/config.yml
  vault-sync init

  # Preview what a sync would do
  vault-sync sync --dry-run

  # Sync a single mapping and print JSON
  vault-sync sync --mapping docs --json

  # Keep syncing as files change
  vault-sync watch
        """,
    )
    parser.add_argument("--config", help="Config file to use instead of discovery")
    parser.add_argument("--vault", help="Override vault path")
    parser.add_argument("--state-file", help="Override snapshot file location")
    parser.add_argument(
        "--sync-deletions",
        action="store_true",
        help="Propagate deletions detected since the last sync",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        default="text",
        help="Log line format (default: text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"vault-sync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sync_parser = sub.add_parser("sync", help="Sync mappings now")
    sync_parser.add_argument("--mapping", help="Only sync this mapping id")
    sync_parser.add_argument(
        "--dry-run", action="store_true", help="Preview without changing files"
    )
    sync_parser.add_argument(
        "--json", action="store_true", help="Print structured JSON output"
    )

    status_parser = sub.add_parser("status", help="Show snapshot state")
    status_parser.add_argument(
        "--json", action="store_true", help="Print structured JSON output"
    )

    sub.add_parser("watch", help="Sync on file changes until interrupted")
    sub.add_parser("init", help="Write a starter config file")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Console script entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(
        mode="cli",
        debug=args.debug,
        log_file=args.log_file,
        debug_format=args.log_format,
    )

    if args.command == "init":
        path = ensure_config()
        print(f"Config file: {path}")
        sys.exit(EXIT_OK)

    try:
        code = asyncio.run(_run(args))
    except KeyboardInterrupt:
        _stderr_print("\nInterrupted.")
        code = EXIT_OK
    sys.exit(code)


if __name__ == "__main__":
    main()
