"""Configuration parsing and validation for the Buildkite build stats tool."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional, Sequence, Tuple

from .errors import AuthenticationError, ConfigurationError

_DURATION_RE = re.compile(r"(\d+)([dhms])")
_DURATION_UNITS = {"d": "days", "h": "hours", "m": "minutes", "s": "seconds"}

DEFAULT_SCRAPE_HISTORY = timedelta(hours=672)
DEFAULT_REFRESH_HISTORY = timedelta(hours=3)
DEFAULT_BUCKET_SIZE = timedelta(hours=1)


@dataclass(frozen=True)
class Config:
    """Validated runtime settings, built once at process start."""

    organization: str
    token: str
    scrape_history: timedelta = DEFAULT_SCRAPE_HISTORY
    refresh_history: timedelta = DEFAULT_REFRESH_HISTORY
    cache_ttl: timedelta = DEFAULT_SCRAPE_HISTORY
    bucket_size: timedelta = DEFAULT_BUCKET_SIZE
    redis_url: Optional[str] = None
    reports: Tuple[str, ...] = ()


def parse_duration(value: str) -> timedelta:
    """Parse durations such as ``672h``, ``28d`` or ``1h30m``.

    Raises:
        ConfigurationError: If ``value`` is empty, malformed or not positive.
    """
    text = value.strip()
    if not text or _DURATION_RE.sub("", text):
        raise ConfigurationError(
            f"Invalid duration '{value}': expected a combination of <n>d, <n>h, <n>m and <n>s."
        )

    duration = timedelta()
    for amount, unit in _DURATION_RE.findall(text):
        duration += timedelta(**{_DURATION_UNITS[unit]: int(amount)})

    if duration <= timedelta():
        raise ConfigurationError(f"Invalid duration '{value}': expected a value greater than 0.")

    return duration


def expand_token(value: str) -> str:
    """Resolve ``@path`` token values by reading the file, trailing newlines removed.

    Raises:
        ConfigurationError: If the referenced file cannot be read.
    """
    if not value.startswith("@"):
        return value

    path = Path(value[1:])
    try:
        return path.read_text(encoding="utf-8").rstrip("\n")
    except OSError as exc:
        raise ConfigurationError(f"Unable to read Buildkite token file '{path}': {exc}") from exc


def load_config(
    organization: str,
    token: Optional[str] = None,
    scrape_history: timedelta = DEFAULT_SCRAPE_HISTORY,
    refresh_history: timedelta = DEFAULT_REFRESH_HISTORY,
    cache_ttl: Optional[timedelta] = None,
    bucket_size: timedelta = DEFAULT_BUCKET_SIZE,
    redis_url: Optional[str] = None,
    reports: Sequence[str] = (),
) -> Config:
    """Build and validate application configuration.

    Args:
        organization: Buildkite organization slug.
        token: API token or ``@path`` to a file holding it; falls back to the
            ``BUILDKITE_API_TOKEN`` environment variable.
        scrape_history: How far back reports look.
        refresh_history: How far back a refresh rewrites the cache.
        cache_ttl: Lifetime of cached buckets; defaults to ``scrape_history``.
        bucket_size: Width of one cached time bucket.
        redis_url: Redis URL; ``None`` selects the in-process cache.
        reports: Raw JSON report definitions.

    Returns:
        A validated ``Config`` instance.

    Raises:
        ConfigurationError: If a value is missing or invalid.
        AuthenticationError: If no Buildkite API token is configured.
    """
    organization = organization.strip()
    if not organization:
        raise ConfigurationError("Missing required Buildkite organization slug.")

    for label, value in (
        ("scrape_history", scrape_history),
        ("refresh_history", refresh_history),
        ("bucket_size", bucket_size),
    ):
        if value <= timedelta():
            raise ConfigurationError(f"Invalid value for '{label}': expected a duration greater than 0.")

    ttl = cache_ttl if cache_ttl is not None else scrape_history
    if ttl < refresh_history:
        raise ConfigurationError(
            "Invalid value for 'cache_ttl': it must be at least the refresh history "
            "so refreshed buckets outlive the next refresh."
        )

    raw_token = token if token else os.getenv("BUILDKITE_API_TOKEN", "")
    resolved_token = expand_token(raw_token.strip()).strip()
    if not resolved_token:
        raise AuthenticationError(
            "Missing required Buildkite API token. "
            "Pass --buildkite-token or set the 'BUILDKITE_API_TOKEN' environment variable."
        )

    return Config(
        organization=organization,
        token=resolved_token,
        scrape_history=scrape_history,
        refresh_history=refresh_history,
        cache_ttl=ttl,
        bucket_size=bucket_size,
        redis_url=redis_url or None,
        reports=tuple(reports),
    )
