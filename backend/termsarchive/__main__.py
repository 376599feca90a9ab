"""
Track changes of the declared terms.

Usage:
    python -m termsarchive [--services ID ...] [--terms-types TYPE ...] [--extract-only]

Exit codes: 0 on success, 1 when tracking was aborted, 2 when cleaning up
after an abort timed out.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from termsarchive.archivist import Archivist
from termsarchive.errors import FatalTrackingError
from termsarchive.reporting import TrackingLogger
from termsarchive.settings import Settings

logger = logging.getLogger("termsarchive")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="termsarchive", description="Track changes of the declared terms")
    parser.add_argument("--services", nargs="+", metavar="SERVICE_ID", help="Service IDs to track (default: all)")
    parser.add_argument("--terms-types", nargs="+", metavar="TERMS_TYPE", help="Terms types to track (default: all)")
    parser.add_argument(
        "--extract-only",
        action="store_true",
        help="Only extract versions from the latest recorded snapshots, without fetching",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug messages")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace, settings: Settings) -> None:
    archivist = Archivist.from_settings(settings)
    archivist.attach(TrackingLogger())
    await archivist.track_all_terms_changes(
        service_ids=args.services,
        terms_types=args.terms_types,
        extract_only=args.extract_only,
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(run(args, Settings()))
    except FatalTrackingError as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
