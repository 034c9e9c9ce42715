"""Command-line entry point: interactive menu by default, ``report`` for scripting."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Iterable, Optional

from . import __version__
from .config import Settings, get_settings
from .diskreport import SORT_KEYS, NoDataError, disk_report
from .tui import interactive_main

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(settings: Settings, level: Optional[str] = None, interactive: bool = False) -> None:
    handlers: list[logging.Handler]
    if settings.log_file:
        handlers = [logging.FileHandler(settings.log_file, encoding="utf-8")]
    elif interactive:
        # curses owns the terminal
        handlers = [logging.NullHandler()]
    else:
        handlers = [logging.StreamHandler(sys.stderr)]
    name = (level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="systoolkit",
        description="Linux user management and disk-space reports (interactive menu by default).",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override SYSTOOLKIT_LOG_LEVEL (DEBUG, INFO, WARNING, ...).",
    )
    subparsers = parser.add_subparsers(dest="command")

    report = subparsers.add_parser("report", help="Print a disk usage report and exit.")
    report.add_argument("--path", default=".", help="Target directory (default: current directory).")
    report.add_argument("--max-depth", default="0", help="Maximum depth, 0 for unlimited (default: 0).")
    report.add_argument("--unit", default="M", help="K, M or G (default: M).")
    report.add_argument("--format", default="text", help="text, csv, html or json (default: text).")
    report.add_argument("--sort", default="name", help=f"One of {', '.join(SORT_KEYS)} (default: name).")
    report.add_argument("--threshold", default="0", help="Only show entries at least this size (default: 0).")
    report.add_argument(
        "--modified-within",
        default=None,
        help="Only files modified within this many days (1 or more).",
    )
    return parser


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()

    if args.command == "report":
        setup_logging(settings, args.log_level)
        try:
            disk_report(args)
        except NoDataError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        except ValueError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 2
        return 0

    setup_logging(settings, args.log_level, interactive=True)
    logger.info("systoolkit %s started", __version__)
    interactive_main()
    return 0


def run() -> None:
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        sys.exit(130)
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run()
