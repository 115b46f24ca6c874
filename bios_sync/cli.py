"""
Command-line entrypoint for Dell BIOS catalog sync.

Usage:
    bios-sync --target-dir D:\\BIOS
    bios-sync --target-dir D:\\BIOS --dry-run
    bios-sync --target-dir D:\\BIOS --interactive --archive-dir D:\\BIOS\\Archive
    bios-sync --target-dir D:\\BIOS --include "Latitude*" --exclude "*_Rugged*"

Every option can also be set through BIOS_SYNC_* environment variables
(e.g. BIOS_SYNC_TARGET_DIR, BIOS_SYNC_ARCHIVE_DIR). List values such as
BIOS_SYNC_INCLUDE are JSON arrays.

Scheduling:
    Windows (Task Scheduler):
        bios-sync.exe --target-dir D:\\BIOS --log-file D:\\BIOS\\sync.log
"""

import argparse
import sys
from typing import List, Optional

from .config import settings
from .selection import build_selector, wait_for_keypress
from .sync import BiosSync
from .utils import get_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bios-sync",
        description="Synchronize a directory of Dell BIOS packages with the Dell PC catalog.",
    )
    parser.add_argument("--target-dir", default=settings.target_dir,
                        help="Directory holding <model>_<version>.exe files")
    parser.add_argument("--catalog-url", default=settings.catalog_url,
                        help="Catalog container URL (default: %(default)s)")
    parser.add_argument("--catalog-path", default=settings.catalog_path,
                        help="Use a local .cab/.zip/.xml catalog instead of downloading")
    parser.add_argument("--download-base-url", default=settings.download_base_url,
                        help="Base URL for package downloads (default: catalog baseLocation)")
    parser.add_argument("--cache-dir", default=settings.cache_dir,
                        help="Where the catalog is downloaded and extracted (default: %(default)s)")
    parser.add_argument("--archive-dir", default=settings.archive_dir,
                        help="Move superseded files here instead of deleting them")
    parser.add_argument("--log-file", default=settings.log_file,
                        help="Append actions to this text log")
    parser.add_argument("--log-level", default=settings.log_level,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], type=str.upper)
    parser.add_argument("--include", action="append", default=None, metavar="PATTERN",
                        help="Only process models matching this wildcard (repeatable)")
    parser.add_argument("--exclude", action="append", default=None, metavar="PATTERN",
                        help="Skip models matching this wildcard (repeatable)")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--interactive", action="store_true",
                      help="List every model and choose what to update")
    mode.add_argument("--select-file", metavar="PATH",
                      help="Update the models listed in this file, one per line")
    parser.add_argument("--dry-run", "--what-if", dest="dry_run", action="store_true",
                        help="Report planned actions without changing anything")
    parser.add_argument("--prompt-timeout", type=int, default=settings.prompt_timeout,
                        help="Seconds to wait for Enter to switch to interactive mode (0 disables)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.target_dir:
        parser.error("--target-dir is required (or set BIOS_SYNC_TARGET_DIR)")

    logger = get_logger(args.log_level)

    interactive = args.interactive
    if not interactive and not args.select_file:
        interactive = wait_for_keypress(args.prompt_timeout)

    try:
        selector = build_selector(interactive=interactive, select_file=args.select_file)
    except OSError as e:
        logger.error(f"Cannot read selection file {args.select_file}: {e}")
        return 1

    sync = BiosSync.from_settings(
        settings,
        target_dir=args.target_dir,
        catalog_url=args.catalog_url,
        catalog_path=args.catalog_path,
        download_base_url=args.download_base_url,
        cache_dir=args.cache_dir,
        archive_dir=args.archive_dir,
        log_file=args.log_file,
        include=args.include,
        exclude=args.exclude,
        selector=selector,
        dry_run=args.dry_run,
        logger=logger,
    )

    try:
        summary = sync.run()
    except KeyboardInterrupt:
        logger.warning("Sync interrupted by user")
        return 130

    return 0 if summary.success else 1


if __name__ == "__main__":
    sys.exit(main())
