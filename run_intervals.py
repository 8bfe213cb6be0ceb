"""
Run power interval screenshots against a running LightTools session from the
command line, without the HTTP worker.

Run on Windows where LightTools is open and the forward simulation has run.

Usage:
    python run_intervals.py --pid 31912
    python run_intervals.py --pid 31912 --receiver PlaneReceiver \
        --intervals "[[100,70],[70,30],[30,0]]" --source LED_1
    python run_intervals.py --pid 31912 --interactive

Every ray path is made visible again when the run ends, including on Ctrl+C.
"""

import argparse
import logging
import sys
from typing import Callable, Optional

from config import (
    DEFAULT_RECEIVER, DEFAULT_INTERVALS, DEFAULT_OUTPUT_DIR, DEFAULT_IMAGE_FORMAT,
    LIGHTTOOLS_PID, LIGHTTOOLS_VERSION, SUPPORTED_IMAGE_FORMATS, WILDCARD,
)
from lighttools_handler import LightToolsError, LightToolsHandler, RunCancelled
from lighttools_handler.power_bands import parse_intervals

logger = logging.getLogger("run_intervals")


def choose_from_list(title: str, options: list[str], read: Callable[[str], str] = input) -> str:
    """
    Console list selection. Entry 0 is always "*" (all).

    Raises:
        RunCancelled: blank input or end of input.
    """
    choices = [WILDCARD] + list(options)
    print(f"\n{title}")
    for n, option in enumerate(choices):
        label = "All" if option == WILDCARD else option
        print(f"  [{n}] {label}")

    while True:
        try:
            answer = read("Selection (blank to cancel): ").strip()
        except EOFError:
            raise RunCancelled(f"{title} cancelled") from None
        if not answer:
            raise RunCancelled(f"{title} cancelled")
        if answer.isdigit() and int(answer) < len(choices):
            return choices[int(answer)]
        if answer in choices:
            return answer
        print(f"  '{answer}' is not one of the listed entries")


def interactive_filters(sources: list[str], surfaces: list[str]) -> tuple[str, str]:
    source = choose_from_list("Select Source Filter", sources)
    surface = choose_from_list("Select Final Surface Filter", surfaces)
    return source, surface


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Screenshot the ray paths of each power interval of a LightTools receiver",
    )
    parser.add_argument(
        "--pid", type=int, default=LIGHTTOOLS_PID,
        help="PID of the running LightTools session (default: LIGHTTOOLS_PID)",
    )
    parser.add_argument("--receiver", default=DEFAULT_RECEIVER, help="Surface receiver name")
    parser.add_argument(
        "--intervals", default=DEFAULT_INTERVALS,
        help=f"Power intervals, e.g. {DEFAULT_INTERVALS}",
    )
    parser.add_argument("--source", default=WILDCARD, help="Source name filter ('*' for all)")
    parser.add_argument("--surface", default=WILDCARD, help="Final surface filter ('*' for all)")
    parser.add_argument(
        "--interactive", action="store_true",
        help="Pick the source and surface filters from the ray paths found",
    )
    parser.add_argument("--no-capture", action="store_true", help="Export data only, no screenshots")
    parser.add_argument("--save-dir", default=DEFAULT_OUTPUT_DIR, help="Output directory")
    parser.add_argument(
        "--format", default=DEFAULT_IMAGE_FORMAT, choices=SUPPORTED_IMAGE_FORMATS,
        help="Screenshot format",
    )
    parser.add_argument("--version", default=LIGHTTOOLS_VERSION, help="LightTools version")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args(argv)

    try:
        intervals = parse_intervals(args.intervals)
    except ValueError as e:
        print(f"Invalid --intervals: {e}", file=sys.stderr)
        return 2
    if not intervals:
        print("No intervals given", file=sys.stderr)
        return 2

    handler = None
    try:
        handler = LightToolsHandler(pid=args.pid, version=args.version)
        result = handler.visualize_power_intervals(
            receiver=args.receiver,
            intervals=intervals,
            source_filter=args.source,
            surface_filter=args.surface,
            save_directory=args.save_dir,
            capture=not args.no_capture,
            image_format=args.format,
            select_filters=interactive_filters if args.interactive else None,
        )
    except RunCancelled as e:
        print(f"Cancelled: {e}")
        return 1
    except LightToolsError as e:
        logger.error(f"Run failed: {e}")
        return 1
    finally:
        if handler is not None:
            handler.close()

    print(f"\nRun {result['run_id']}: {result['num_filtered']} of {result['num_ray_paths']} ray paths, "
          f"total power {result['total_power']:g}")
    for band in result["bands"]:
        iv = band["interval"]
        print(f"  {iv['upper_percent']:g}%-{iv['lower_percent']:g}%: {band['ray_count']} rays, "
              f"power {band['band_power']:g}, image {band['image_path'] or '-'}")
        for warning in band["warnings"]:
            print(f"    warning: {warning}")
    if result["summary_path"]:
        print(f"Summary: {result['summary_path']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
