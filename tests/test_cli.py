"""Tests for command-line argument parsing."""

import sys
from datetime import timedelta
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from buildstats.cli import parse_args

REPORT = '{"name": "X", "from": "started", "to": "finished", "pipelines": ".*", "branches": "main", "group": "{{.Pipeline.Name}}"}'


def test_parse_args_report_with_defaults():
    """Verify report parsing collects repeated reports and default durations."""
    args = parse_args(
        [
            "--buildkite-org",
            "acme",
            "report",
            "--report",
            REPORT,
            "--report",
            REPORT,
        ]
    )

    assert args.command == "report"
    assert args.buildkite_org == "acme"
    assert args.buildkite_token is None
    assert args.redis_url is None
    assert args.reports == [REPORT, REPORT]
    assert args.scrape_history == timedelta(hours=672)
    assert args.bucket_size == timedelta(hours=1)
    assert args.cache_ttl is None


def test_parse_args_refresh_with_custom_history():
    """Verify refresh parsing accepts compound durations and global flags."""
    args = parse_args(
        [
            "--buildkite-org",
            "acme",
            "--buildkite-token",
            "@/run/secrets/token",
            "--redis-url",
            "redis://localhost:6379/0",
            "refresh",
            "--refresh-history",
            "1h30m",
        ]
    )

    assert args.command == "refresh"
    assert args.buildkite_token == "@/run/secrets/token"
    assert args.redis_url == "redis://localhost:6379/0"
    assert args.refresh_history == timedelta(hours=1, minutes=30)


def test_parse_args_report_requires_a_report():
    """Verify the report command exits when no report definition is supplied."""
    with pytest.raises(SystemExit):
        parse_args(["--buildkite-org", "acme", "report"])


def test_parse_args_requires_a_command():
    """Verify a missing subcommand is rejected."""
    with pytest.raises(SystemExit):
        parse_args(["--buildkite-org", "acme"])


@pytest.mark.parametrize("value", ["0h", "-1h", "3 hours", "h"])
def test_parse_args_with_invalid_duration_fails_validation(value):
    """Verify CLI parsing exits with an error for invalid durations."""
    with pytest.raises(SystemExit):
        parse_args(["--buildkite-org", "acme", "refresh", "--refresh-history", value])
