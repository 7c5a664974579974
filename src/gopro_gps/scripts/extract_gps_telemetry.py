#!/usr/bin/env python3
"""
Extract GPS Telemetry Script

Extracts GPS time and position telemetry from GoPro MP4/MOV files (GPS5 or
GPS9 GPMF streams) and prints it as one delimited table on stdout.

Usage:
    gopro-gps-telemetry [options] <mp4file> [mp4file_2] ... [mp4file_n]

Examples:
    gopro-gps-telemetry GX010001.MP4 GX020001.MP4 > track.csv
    gopro-gps-telemetry --print_filename --min_fix=3 --max_precision=500 *.MP4
"""

import argparse
import logging
import sys

import rich.console
import rich.logging

from gopro_gps.config import config
from gopro_gps.errors import TelemetryError
from gopro_gps.processing.file_runner import FileRunner
from gopro_gps.processing.filter_policy import FilterPolicy
from gopro_gps.processing.payload_source import open_payload_source
from gopro_gps.processing.record_emitter import IdentityColumn, RecordEmitter
from gopro_gps.telemetry_data import FilterThresholds

logger = logging.getLogger(__name__)

EXIT_FAILURE = -1


def setup_logging(verbose: bool = False):
    log_format = r"\[[bold]%(name)s[/bold]] %(message)s"
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=log_format,
        datefmt="[%X]",
        handlers=[
            rich.logging.RichHandler(
                console=rich.console.Console(stderr=True, color_system="auto"),
                show_level=True,
                show_path=False,
                enable_link_path=False,
                rich_tracebacks=True,
                tracebacks_show_locals=False,
                markup=True,
            )
        ],
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Extract GPS time and position telemetry from GoPro videos",
        usage="%(prog)s [options] <mp4file> [mp4file_2] ... [mp4file_n]",
    )
    parser.add_argument("files", nargs="*", help="MP4/MOV files, in recording order")
    parser.add_argument(
        "--print_filename", action="store_true", help="print the filename in output"
    )
    parser.add_argument(
        "--print_filepath",
        action="store_true",
        help="print the full file path in output",
    )
    parser.add_argument(
        "--min_fix",
        type=int,
        default=config.MIN_FIX,
        metavar="N",
        help="only output entries with fix >= N",
    )
    parser.add_argument(
        "--max_precision",
        type=int,
        default=config.MAX_PRECISION,
        metavar="N",
        help="only output entries with precision <= N",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_intermixed_args(argv)
    except SystemExit as exc:
        # --help exits cleanly; anything else is a usage error
        if not exc.code:
            raise
        return EXIT_FAILURE

    if not args.files:
        parser.print_usage(sys.stderr)
        return EXIT_FAILURE

    setup_logging(args.verbose)

    thresholds = FilterThresholds(
        min_fix=args.min_fix, max_precision=args.max_precision
    )
    emitter = RecordEmitter(
        sys.stdout,
        IdentityColumn.from_flags(args.print_filename, args.print_filepath),
    )
    runner = FileRunner(
        emitter,
        FilterPolicy(thresholds),
        source_factory=open_payload_source,
    )

    logger.info(f"Found {len(args.files)} files to process.")
    try:
        summaries = runner.run(args.files)
    except TelemetryError as e:
        logger.error(f"ERROR: {e}")
        return EXIT_FAILURE
    finally:
        sys.stdout.flush()

    logger.info(
        f"Summary: {sum(s.rows_emitted for s in summaries)} rows written, "
        f"{sum(s.rows_dropped for s in summaries)} filtered, "
        f"{runner.file_time_base:.1f} s of telemetry."
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
