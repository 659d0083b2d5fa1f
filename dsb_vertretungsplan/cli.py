"""
Command-line interface: fetch the DSBmobile substitution plan and export it as JSON.
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

import pytz

from . import __version__
from .export import dumps_result, export
from .plan_merge import (
    FRAME_PROBE_TIMEOUT,
    MAX_PAGES,
    HtmlPagesDriver,
    build_result,
    collect_all_days,
    extract_single_frame,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dsb-vertretungsplan",
        description=(
            "Export the DSBmobile substitution plan (Vertretungsplan) to JSON.\n"
            "- Live mode: log in with the school account and walk all plan pages.\n"
            "- Offline mode (--html): parse saved plan pages, no login needed."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-o",
        "--output",
        default="vertretungsplan.json",
        help="Output file, '-' for stdout. Default: vertretungsplan.json",
    )
    parser.add_argument(
        "--user",
        default=os.getenv("DSB_USERNAME"),
        help="DSBmobile user name. Default: $DSB_USERNAME",
    )
    parser.add_argument(
        "--password",
        default=os.getenv("DSB_PASSWORD"),
        help="DSBmobile password. Default: $DSB_PASSWORD",
    )
    parser.add_argument(
        "--html",
        metavar="HTML_PATH",
        nargs="+",
        help="Saved plan page(s), one file per page; iframe documents saved alongside are read too.",
    )
    parser.add_argument(
        "--ui",
        action="store_true",
        help="Show the browser window instead of running headless.",
    )
    parser.add_argument(
        "--max-pages",
        type=int,
        default=MAX_PAGES,
        help=f"Stop after this many plan pages. Default: {MAX_PAGES}",
    )
    parser.add_argument(
        "--frame-timeout",
        type=float,
        default=FRAME_PROBE_TIMEOUT,
        help=f"Seconds to wait for a table in each frame. Default: {FRAME_PROBE_TIMEOUT}",
    )
    parser.add_argument(
        "--timezone",
        metavar="TZ",
        help="IANA zone for timestamps, e.g. Europe/Berlin. Default: this machine's current offset.",
    )
    parser.add_argument(
        "--first-frame",
        action="store_true",
        help="Only read the first frame that has a table; fail if it is not the schedule.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return parser


def _extract(driver, args) -> dict:
    if args.first_frame:
        day = extract_single_frame(driver, timeout=args.frame_timeout, tz=args.timezone)
        return build_result(
            [{"date": day["date"], "messages": day["messages"]}],
            day["last_update"],
            tz=args.timezone,
        )
    return collect_all_days(
        driver,
        max_pages=args.max_pages,
        timeout=args.frame_timeout,
        tz=args.timezone,
    )


def _run_live(args) -> dict | None:
    from .plan_fetch import DSBMobileDriver

    with DSBMobileDriver(headless=not args.ui) as driver:
        driver.open()
        if not driver.login(args.user, args.password):
            return None
        driver.open_student_plan()
        return _extract(driver, args)


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.max_pages < 1:
        parser.error("--max-pages must be at least 1")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.timezone:
        try:
            pytz.timezone(args.timezone)
        except pytz.UnknownTimeZoneError:
            print(f"Error: unknown time zone: {args.timezone}", file=sys.stderr)
            return 1

    if args.html:
        missing = [p for p in args.html if not Path(p).is_file()]
        if missing:
            print(f"Error: HTML file not found: {missing[0]}", file=sys.stderr)
            return 1
        try:
            result = _extract(HtmlPagesDriver.from_files(args.html), args)
        except Exception as e:
            print(f"Error parsing saved plan HTML: {e}", file=sys.stderr)
            return 1
    else:
        if not args.user or not args.password:
            print(
                "Error: credentials required. Use --user/--password or set DSB_USERNAME/DSB_PASSWORD, "
                "or pass --html for saved pages.",
                file=sys.stderr,
            )
            return 1
        try:
            result = _run_live(args)
        except Exception as e:
            print(f"Error fetching plan: {e}", file=sys.stderr)
            return 1
        if result is None:
            print("Error: login failed.", file=sys.stderr)
            return 2

    if args.output == "-":
        print(dumps_result(result))
    else:
        export(result, args.output, "json")
        print(f"Exported {len(result['days'])} day(s) to {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
