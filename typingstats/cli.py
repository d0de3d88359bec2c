#!/usr/bin/env python3
"""Show, sync and reset typingstats history from the command line.

Usage:
    typingstats-stats
    typingstats-stats history --days 14
    typingstats-stats sync --verbose
    typingstats-stats history --compact
    typingstats-stats reset --remote --yes
    typingstats-stats reset --settings
"""

import argparse
import logging
import sys
from pathlib import Path

from typingstats.core.local_store import LocalStore
from typingstats.core.repository import StatsRepository
from typingstats.main import SETTINGS_FILENAME, create_remote_store
from typingstats.utils.config import Config
from typingstats.utils.device_id import resolve_device_id
from typingstats.utils.formatting import bar, compact_count, format_number
from typingstats.utils.paths import get_data_dir


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def positive_int(value: str) -> int:
    """argparse type for counts that must be at least 1."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def open_repository(data_dir: Path, with_remote: bool = False) -> StatsRepository:
    config = Config(data_dir / SETTINGS_FILENAME)
    device_id = resolve_device_id(config)
    remote_store = create_remote_store(config, device_id) if with_remote else None
    return StatsRepository(device_id, LocalStore(data_dir), remote_store)


def show_stats(repository: StatsRepository) -> None:
    summary = repository.summary()
    print(f"Today:       {format_number(summary.today_keystrokes)} ({compact_count(summary.today_keystrokes)})")
    print(f"Words today: {format_number(summary.today_words)}")
    print(f"Yesterday:   {format_number(summary.yesterday_keystrokes)}")
    print(f"7-day avg:   {format_number(summary.seven_day_avg)}")
    print(f"30-day avg:  {format_number(summary.thirty_day_avg)}")
    if summary.record_keystrokes > 0:
        print(f"Record:      {format_number(summary.record_keystrokes)} ({summary.record_date})")


def show_history(repository: StatsRepository, days: int | None, compact: bool = False) -> None:
    entries = repository.history(days)
    if not entries:
        print("No history yet")
        return

    maximum = max(entry.keystrokes for entry in entries)
    for entry in entries:
        if compact:
            print(f"{entry.short_date:<6} {compact_count(entry.keystrokes):>6}")
            continue
        print(
            f"{entry.display_date:<8} {format_number(entry.keystrokes):>12}  "
            f"{bar(entry.keystrokes, maximum)}"
        )


def run_sync(repository: StatsRepository) -> int:
    if repository.remote_store is None:
        print("Remote sync is not enabled or not reachable")
        return 1

    pulled = repository.pull_remote()
    pushed = repository.push_all()
    repository.remote_store.backend.close()
    print(f"Merged {pulled} remote record(s), pushed {pushed} local record(s)")
    return 0


def run_reset(
    repository: StatsRepository,
    include_remote: bool,
    assume_yes: bool,
    config: Config | None = None,
) -> int:
    scope = "local and remote" if include_remote else "local"
    if not assume_yes:
        answer = input(f"Delete all {scope} typing history? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted")
            return 1

    repository.reset(include_remote=include_remote)
    if repository.remote_store is not None:
        repository.remote_store.backend.close()
    print(f"Deleted {scope} history")
    if config is not None:
        config.reset_to_defaults()
        print("Restored default settings")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Typing statistics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s
  %(prog)s history --days 14
  %(prog)s sync
  %(prog)s history --compact
  %(prog)s reset --remote
        """,
    )
    parser.add_argument("--data-dir", type=Path, default=None, help="Data directory")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("stats", help="Show today's totals and averages (default)")

    history_parser = subparsers.add_parser("history", help="Show per-day history")
    history_parser.add_argument(
        "--days", type=positive_int, default=None, help="Limit to the newest N days"
    )
    history_parser.add_argument(
        "--compact", action="store_true", help="Short dates and abbreviated counts"
    )

    subparsers.add_parser("sync", help="Merge remote records and push local ones")

    reset_parser = subparsers.add_parser("reset", help="Delete all history")
    reset_parser.add_argument("--remote", action="store_true", help="Also delete remote records")
    reset_parser.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
    reset_parser.add_argument(
        "--settings", action="store_true", help="Also restore default settings"
    )

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    data_dir = args.data_dir or get_data_dir()
    command = args.command or "stats"
    with_remote = command == "sync" or (command == "reset" and args.remote)
    repository = open_repository(data_dir, with_remote=with_remote)

    if command == "history":
        show_history(repository, args.days, args.compact)
        return 0
    if command == "sync":
        return run_sync(repository)
    if command == "reset":
        config = Config(data_dir / SETTINGS_FILENAME) if args.settings else None
        return run_reset(repository, args.remote, args.yes, config)

    show_stats(repository)
    return 0


if __name__ == "__main__":
    sys.exit(main())
