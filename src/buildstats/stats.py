"""Statistics and formatting helpers for build timing reports.

This module provides utilities for:
- Computing linear-interpolation percentiles from pre-sorted samples.
- Summarising a group of build durations (count, P50/P75/P90, mean, min, max).
- Formatting second-based durations as ``HH:MM:SS``.
- Building a human-readable report from evaluated queries.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence

from .models import GroupStats, ReportResult


def calculate_percentile(sorted_values: Sequence[float], p: float) -> Optional[float]:
    """Calculate a percentile using linear interpolation.

    The input sequence is expected to already be sorted in ascending order.
    - Empty input returns ``None``.
    - ``p <= 0`` returns the first value.
    - ``p >= 100`` returns the last value.
    - Otherwise, percentile is linearly interpolated between adjacent ranks.

    Args:
        sorted_values: Sorted numeric samples.
        p: Percentile in the inclusive range ``[0, 100]``.

    Returns:
        Percentile value as ``float`` or ``None`` when input is empty.

    Raises:
        ValueError: If ``p`` is outside ``[0, 100]``.
    """
    if not 0 <= p <= 100:
        raise ValueError("Percentile 'p' must be in the range [0, 100].")

    if not sorted_values:
        return None

    if p <= 0:
        return sorted_values[0]

    if p >= 100:
        return sorted_values[-1]

    position = (len(sorted_values) - 1) * (p / 100.0)
    lower_index = math.floor(position)
    upper_index = math.ceil(position)

    if lower_index == upper_index:
        return sorted_values[int(position)]

    lower_value = sorted_values[lower_index]
    upper_value = sorted_values[upper_index]
    return lower_value + (upper_value - lower_value) * (position - lower_index)


def summarize_durations(samples: Iterable[float]) -> GroupStats:
    """Summarise duration samples in seconds.

    Samples are sorted before any calculation and the mean uses ``math.fsum``,
    so the summary does not depend on the order samples were collected in.
    """
    ordered: List[float] = sorted(samples)
    if not ordered:
        return GroupStats(count=0, p50=None, p75=None, p90=None, mean=None, min=None, max=None)

    return GroupStats(
        count=len(ordered),
        p50=calculate_percentile(ordered, 50),
        p75=calculate_percentile(ordered, 75),
        p90=calculate_percentile(ordered, 90),
        mean=math.fsum(ordered) / len(ordered),
        min=ordered[0],
        max=ordered[-1],
    )


def format_duration(seconds: Optional[float]) -> str:
    """Format seconds as ``HH:MM:SS``.

    Returns:
        ``"n/a"`` when ``seconds`` is ``None``; otherwise a rounded
        ``HH:MM:SS`` string.
    """
    if seconds is None:
        return "n/a"

    total_seconds = int(round(seconds))
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    remaining_seconds = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{remaining_seconds:02d}"


def generate_report(organization: str, results: Sequence[ReportResult]) -> str:
    """Generate a human-readable report for every evaluated query.

    Groups are listed in key order. Failed queries show their error instead of
    groups; skipped builds are listed so they are never silently dropped.
    """
    lines = [f"Organization: {organization}", "Build Timing Report"]

    for index, result in enumerate(results, start=1):
        lines.extend(["", f"{index}) {result.name}"])

        if result.failed:
            lines.append(f"   ERROR: {result.error}")
            continue

        lines.append(f"   Matched builds: {result.matched}")
        if result.missing_timestamps:
            lines.append(f"   Skipped (missing timestamps): {result.missing_timestamps}")
        if result.negative_durations:
            lines.append(f"   Flagged (negative duration): {result.negative_durations}")

        if not result.groups:
            lines.append("   No builds with a measurable duration.")
            continue

        for key in sorted(result.groups):
            stats = result.groups[key]
            lines.append(
                f"   {key} | count={stats.count}"
                f" | P50={format_duration(stats.p50)}"
                f" | P75={format_duration(stats.p75)}"
                f" | P90={format_duration(stats.p90)}"
                f" | mean={format_duration(stats.mean)}"
            )

    return "\n".join(lines)
