#!/usr/bin/env python3
"""
Main entry point for the finance tracker backup engine.

Provides a command-line interface for export, import, upload and wipes.
"""
from typing import Callable, List, Optional
import argparse
import sys
import logging
from pathlib import Path

from finance_tracker.backup.migration import MigrationClient
from finance_tracker.backup.pipeline import run_export, run_import, run_upload
from finance_tracker.backup.wipe import WipeConfirmation, wipe_local, wipe_remote
from finance_tracker.config import Config, get_config
from finance_tracker.database import LocalStore
from finance_tracker.logger_config import setup_logging
from finance_tracker.snapshot import cleanup_old_backups, get_latest_backup, list_backups
from finance_tracker.utils import Colors, format_count

logger = logging.getLogger(__name__)


def print_section(title: str) -> None:
    """Print a formatted section title."""
    print(f"\n{Colors.BOLD}{Colors.HEADER}{'=' * 60}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.HEADER}{title}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.HEADER}{'=' * 60}{Colors.ENDC}\n")


def _parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Back up, restore and migrate finance tracker data."
    )
    parser.add_argument(
        "--db-path",
        default=None,
        help="Path to the local store (defaults to ~/.finance_tracker/finance.db).",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    commands = parser.add_subparsers(dest="command", required=True)

    export = commands.add_parser("export", help="Export the local store to a backup file.")
    export.add_argument(
        "--backups-dir",
        default=None,
        help="Directory to write the backup into (default: ~/.finance_tracker/backups).",
    )

    restore = commands.add_parser("import", help="Replace local data with a backup file.")
    restore.add_argument(
        "file",
        nargs="?",
        default=None,
        help="Backup file to import (default: the latest backup).",
    )
    restore.add_argument(
        "--store-ids",
        action="store_true",
        help="Let the store assign new ids instead of keeping the backup's ids.",
    )

    commands.add_parser("upload", help="Upload the local store to the remote service.")

    for name, target in (("wipe-local", "local"), ("wipe-remote", "remote")):
        wipe = commands.add_parser(name, help=f"Delete all {target} data.")
        wipe.add_argument(
            "--yes",
            "-y",
            action="count",
            default=0,
            help="Confirm without prompting; give it twice to skip both prompts.",
        )

    backups = commands.add_parser("backups", help="List backup files.")
    backups.add_argument(
        "--cleanup",
        type=int,
        default=None,
        metavar="KEEP",
        help="Delete all but the newest KEEP backups.",
    )
    return parser.parse_args(argv)


def _confirm(
    target: str, preconfirmed: int, ask: Optional[Callable[[str], str]] = None
) -> WipeConfirmation:
    """Collect the two confirmations a wipe needs, prompting for missing ones."""
    ask = ask or input
    confirmation = WipeConfirmation(target)
    prompts = (
        f"This deletes ALL {target} data. Continue? [y/N] ",
        "Are you absolutely sure? This cannot be undone. [y/N] ",
    )
    for i, prompt in enumerate(prompts):
        if i < preconfirmed or ask(prompt).strip().lower() in ("y", "yes"):
            confirmation.confirm()
        else:
            break
    return confirmation


def _cmd_export(config: Config, args: argparse.Namespace) -> int:
    backups_dir = Path(args.backups_dir) if args.backups_dir else config.backups_dir
    with LocalStore(config.local_db_path) as store:
        result = run_export(store, backups_dir)
    print(result)
    return 0 if result.success else 1


def _cmd_import(config: Config, args: argparse.Namespace) -> int:
    if args.file:
        source = Path(args.file)
    else:
        latest = get_latest_backup(config.backups_dir)
        if latest is None:
            print(f"{Colors.FAIL}No backups found in {config.backups_dir_str}{Colors.ENDC}")
            return 1
        source = latest.path
    print(f"{Colors.OKGREEN}Importing: {source}{Colors.ENDC}")

    with LocalStore(config.local_db_path) as store:
        report = run_import(store, source, honor_ids=not args.store_ids)
    print(report)
    return 0 if report.success else 1


def _cmd_upload(config: Config, args: argparse.Namespace) -> int:
    with MigrationClient.from_config(config) as client, LocalStore(config.local_db_path) as store:
        report = run_upload(store, client)
    print(report)
    return 0 if report.success else 1


def _cmd_wipe_local(config: Config, args: argparse.Namespace) -> int:
    confirmation = _confirm("local", args.yes)
    if not confirmation.is_confirmed:
        print(f"{Colors.WARNING}Aborted.{Colors.ENDC}")
        return 1
    with LocalStore(config.local_db_path) as store:
        result = wipe_local(store, confirmation, retry_delay=config.wipe_retry_delay)
    print(result)
    return 0 if result.success else 1


def _cmd_wipe_remote(config: Config, args: argparse.Namespace) -> int:
    confirmation = _confirm("remote", args.yes)
    if not confirmation.is_confirmed:
        print(f"{Colors.WARNING}Aborted.{Colors.ENDC}")
        return 1
    with MigrationClient.from_config(config) as client:
        result = wipe_remote(client, confirmation)
    print(result)
    return 0 if result.success else 1


def _cmd_backups(config: Config, args: argparse.Namespace) -> int:
    if args.cleanup is not None:
        deleted = cleanup_old_backups(config.backups_dir, keep_count=args.cleanup)
        print(f"Deleted {len(deleted)} old backups")

    print_section(f"Backups in {config.backups_dir_str}")
    backups = list_backups(config.backups_dir)
    for i, backup in enumerate(backups, 1):
        size = backup.path.stat().st_size
        print(f"{i:2d}. {backup.path.name}  ({format_count(size)} bytes, {backup.age_days:.1f} days old)")
    if not backups:
        print("No backups yet.")
    return 0


COMMANDS = {
    "export": _cmd_export,
    "import": _cmd_import,
    "upload": _cmd_upload,
    "wipe-local": _cmd_wipe_local,
    "wipe-remote": _cmd_wipe_remote,
    "backups": _cmd_backups,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main function."""
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)

    setup_logging(level=logging.DEBUG if args.verbose else None)

    config = get_config(local_db_path=args.db_path)
    print(f"{Colors.OKGREEN}Using local store: {config.local_db_path_str}{Colors.ENDC}")

    try:
        return COMMANDS[args.command](config, args)
    except ValueError as e:
        print(f"{Colors.FAIL}Error: {e}{Colors.ENDC}")
        return 1
    except Exception as e:
        print(f"{Colors.FAIL}Error: {e}{Colors.ENDC}")
        logger.exception("Error during execution")
        return 1


if __name__ == '__main__':
    sys.exit(main())
