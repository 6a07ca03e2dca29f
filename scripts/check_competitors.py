"""Standalone competitor change check for scheduled execution.

Runs one full pipeline pass (discover pages → fetch → detect changes →
record history) against the configured catalog, prints a summary line, and
exits. Exits 1 only when the database cannot be opened.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from changewatch.config import load_settings, PAGINATION_MODES
from changewatch.errors import StoreConnectionError
from changewatch.pipeline.report import summary_line
from changewatch.pipeline.runner import execute_run

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("check_competitors")


def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="check_competitors",
        description="Detect competitor listing changes across the product catalog.",
    )
    parser.add_argument(
        "--db",
        dest="db_dir",
        metavar="CONNECTION",
        help="Directory holding the database files, or :memory: (default: CHANGEWATCH_DB_DIR or .)",
    )
    parser.add_argument(
        "--dbname",
        dest="db_name",
        help="Database name (default: CHANGEWATCH_DB_NAME or fashion)",
    )
    parser.add_argument(
        "--log",
        dest="log_file",
        metavar="FILE",
        help="Append log output to this file instead of stderr",
    )
    parser.add_argument("--fetch-workers", type=int, help="Number of concurrent page fetchers")
    parser.add_argument("--detect-workers", type=int, help="Number of concurrent change detectors")
    parser.add_argument(
        "--mode",
        dest="pagination",
        choices=PAGINATION_MODES,
        help="count: size the run from number_of_pages; probe: fetch until the first non-200 page",
    )
    return parser.parse_args(args)


def configure_logging(log_file: Optional[str] = None):
    if log_file:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, filename=log_file, filemode="a", force=True)
    else:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, force=True)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_file)

    settings = load_settings(
        db_dir=args.db_dir,
        db_name=args.db_name,
        fetch_workers=args.fetch_workers,
        detect_workers=args.detect_workers,
        pagination=args.pagination,
    )
    logger.info("Starting competitor check against %s", settings.api_url)

    try:
        summary = asyncio.run(execute_run(settings))
    except StoreConnectionError as e:
        logger.critical("Cannot connect to the database: %s", e)
        return 1

    report = summary.report
    print(
        f"{summary_line(report)} "
        f"(checked {report.checked}, +{report.added}/-{report.removed} competitors, "
        f"{report.duration_seconds:.1f}s)"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
