"""CLI entry-point: ``python -m eventwatch run`` / ``monitor FILE`` / ``purge``."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

from eventwatch import config
from eventwatch.monitor import load_monitor_file
from eventwatch.pipeline import build_context, run_batch
from eventwatch.store import SQLiteEventStore

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _run() -> int:
    try:
        batch = run_batch(build_context())
    except Exception:
        logger.exception("Batch job failed")
        return 1
    logger.info("Batch job completed with status %s", batch.status)
    return 0


def _activate_monitor(path: Path) -> int:
    try:
        monitor = load_monitor_file(path)
    except Exception:
        logger.exception("Could not load monitor file %s", path)
        return 1
    store = SQLiteEventStore(db_path=config.DB_PATH)
    monitor_id = store.save_monitor(monitor, now=datetime.now(UTC))
    logger.info("Activated monitor '%s' (id=%d): %s", monitor.name, monitor_id, monitor.query)
    return 0


def _purge() -> int:
    store = SQLiteEventStore(db_path=config.DB_PATH)
    removed = store.purge_expired(datetime.now(UTC))
    logger.info("Removed %d expired events", removed)
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="eventwatch",
        description="Detect and track real-world events from social posts.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Run one detection batch for the active monitor.")

    monitor_parser = sub.add_parser("monitor", help="Load a monitor YAML file and make it active.")
    monitor_parser.add_argument("file", type=Path, help="Path to the monitor definition.")

    sub.add_parser("purge", help="Delete events past their retention window.")

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    if args.command == "run":
        sys.exit(_run())
    elif args.command == "monitor":
        sys.exit(_activate_monitor(args.file))
    elif args.command == "purge":
        sys.exit(_purge())
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
