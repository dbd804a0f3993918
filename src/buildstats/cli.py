"""Command-line argument parsing for the Buildkite build stats tool."""

from __future__ import annotations

import argparse
from datetime import timedelta
from typing import Optional, Sequence

from .config import parse_duration
from .errors import ConfigurationError

_REPORT_HELP = (
    "Report definition as JSON, repeatable. Example: "
    '{"name": "Slow main builds", "from": "started", "to": "finished", '
    '"pipelines": ".*", "branches": "^main$", "group": "{{.Pipeline.Name}}"} where '
    "'from'/'to' are created, scheduled, started or finished, 'pipelines'/'branches' "
    "are regular expressions, and 'group' is a template over build fields."
)


def _duration(value: str) -> timedelta:
    """Parse and validate a duration CLI value such as ``672h`` or ``1h30m``.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive duration.
    """
    try:
        return parse_duration(value)
    except ConfigurationError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed CLI arguments. ``command`` is ``"report"`` or ``"refresh"``.
    """
    parser = argparse.ArgumentParser(
        prog="buildkite-build-stats",
        description="Aggregate timing statistics over Buildkite build history.",
    )

    parser.add_argument(
        "--buildkite-org",
        required=True,
        help="Buildkite organization slug to scrape.",
    )
    parser.add_argument(
        "--buildkite-token",
        default=None,
        help=(
            "Buildkite API token with 'read_builds' scope, or '@path' to a file "
            "holding it (default: $BUILDKITE_API_TOKEN)."
        ),
    )
    parser.add_argument(
        "--redis-url",
        default=None,
        help="Redis URL for the shared build cache (default: in-process cache).",
    )
    parser.add_argument(
        "--cache-ttl",
        type=_duration,
        default=None,
        help="Lifetime of cached build buckets (default: the scrape history).",
    )
    parser.add_argument(
        "--bucket-size",
        type=_duration,
        default=timedelta(hours=1),
        help="Width of one cached time bucket (default: 1h).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    report_parser = subparsers.add_parser("report", help="Evaluate reports and print them.")
    report_parser.add_argument(
        "--report",
        dest="reports",
        action="append",
        required=True,
        help=_REPORT_HELP,
    )
    report_parser.add_argument(
        "--scrape-history",
        type=_duration,
        default=timedelta(hours=672),
        help="How far back in time reports look (default: 672h).",
    )

    refresh_parser = subparsers.add_parser(
        "refresh",
        help="Rewrite recent builds to the cache; run regularly in the background.",
    )
    refresh_parser.add_argument(
        "--refresh-history",
        type=_duration,
        default=timedelta(hours=3),
        help="How far back in time the cache is rewritten (default: 3h).",
    )

    return parser.parse_args(argv)
