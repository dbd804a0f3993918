"""Report evaluation over cached build history.

The evaluator loads every build created within the configured history window,
reading cached buckets first and fetching only the missing ranges from
upstream. Each compiled query is then folded independently into a
``ReportResult`` so a broken query never hides the others.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import CacheError, TemplateRenderError
from .models import Build, ReportResult, format_datetime
from .query import Query
from .source import BuildSource
from .stats import summarize_durations
from .store import BuildStore

logger = logging.getLogger(__name__)


def evaluate_query(query: Query, builds: Iterable[Build]) -> ReportResult:
    """Filter, measure and group ``builds`` for one query.

    - Builds failing ``query.predicate`` are ignored.
    - Builds missing either endpoint timestamp are counted in
      ``missing_timestamps`` and excluded.
    - Negative durations (``to`` before ``from``) are counted in
      ``negative_durations``, logged, and excluded.

    Raises:
        TemplateRenderError: If a matching build cannot be rendered into a group key.
    """
    result = ReportResult(name=query.name)
    durations: Dict[str, List[float]] = {}

    for build in builds:
        if not query.predicate(build):
            continue
        result.matched += 1

        duration = query.duration(build)
        if duration is None:
            result.missing_timestamps += 1
            continue

        if duration < timedelta():
            result.negative_durations += 1
            logger.warning(
                "Negative build duration flagged",
                extra={
                    "query": query.name,
                    "build_id": build.id,
                    "duration_seconds": duration.total_seconds(),
                },
            )
            continue

        durations.setdefault(query.group(build), []).append(duration.total_seconds())

    result.groups = {key: summarize_durations(samples) for key, samples in durations.items()}
    return result


def _missing_ranges(missing: Sequence[datetime], bucket_size: timedelta) -> List[Tuple[datetime, datetime]]:
    """Collapse sorted missing bucket starts into contiguous ``[start, end)`` ranges."""
    ranges: List[Tuple[datetime, datetime]] = []
    for bucket in missing:
        if ranges and ranges[-1][1] == bucket:
            ranges[-1] = (ranges[-1][0], bucket + bucket_size)
        else:
            ranges.append((bucket, bucket + bucket_size))
    return ranges


class ReportEvaluator:
    """Evaluates compiled queries over a trailing window of build history."""

    def __init__(
        self,
        queries: Sequence[Query],
        store: BuildStore,
        source: BuildSource,
        history: timedelta,
        write_back_horizon: timedelta = timedelta(),
    ) -> None:
        self._queries = list(queries)
        self._store = store
        self._source = source
        self._history = history
        self._write_back_horizon = write_back_horizon

    def load_builds(self, now: Optional[datetime] = None) -> List[Build]:
        """Return the builds created in ``[now - history, now)``.

        Cached buckets are used where present; missing ranges are fetched from
        upstream. A fetched bucket is written back to the cache only when it
        ends before ``now - write_back_horizon`` and holds no unfinished
        builds, because the refresh job rewrites nothing older than that.

        Raises:
            ApiError: If an upstream fetch fails.
        """
        end = now or datetime.now(timezone.utc)
        start = end - self._history
        write_back_end = self._store.bucket_start(end - self._write_back_horizon)

        collected: Dict[str, Build] = {}
        missing: List[datetime] = []
        buckets = self._store.buckets(start, end)
        for bucket in buckets:
            cached = self._store.read_bucket(bucket)
            if cached is None:
                missing.append(bucket)
                continue
            for build in cached:
                collected[build.id] = build

        ranges = _missing_ranges(missing, self._store.bucket_size)
        for range_start, range_end in ranges:
            fetch_end = min(range_end, end)
            fetched = self._source.list_builds(created_from=range_start, created_to=fetch_end)
            for build in fetched:
                collected[build.id] = build
            self._write_back(fetched, range_start, min(range_end, write_back_end))

        logger.info(
            "Loaded build history",
            extra={
                "window_start": format_datetime(start),
                "window_end": format_datetime(end),
                "cached_buckets": len(buckets) - len(missing),
                "fetched_ranges": len(ranges),
            },
        )

        return [
            build
            for build in collected.values()
            if build.created_at is not None and start <= build.created_at < end
        ]

    def _write_back(self, builds: List[Build], start: datetime, end: datetime) -> None:
        partitions = self._store.partition(builds)
        for bucket in self._store.buckets(start, end):
            bucket_builds = partitions.get(bucket, [])
            if any(build.finished_at is None for build in bucket_builds):
                logger.debug(
                    "Not caching bucket with unfinished builds",
                    extra={"bucket": format_datetime(bucket)},
                )
                continue
            try:
                self._store.write_bucket(bucket, bucket_builds)
            except CacheError as exc:
                logger.warning(
                    "Unable to cache fetched builds",
                    extra={"bucket": format_datetime(bucket), "error": str(exc)},
                )
                return

    def evaluate(self, now: Optional[datetime] = None) -> List[ReportResult]:
        """Evaluate every query over the current history window.

        A query whose group template fails to render is reported with its
        ``error`` set; the remaining queries are still evaluated.

        Raises:
            ApiError: If the build population cannot be loaded.
        """
        builds = self.load_builds(now)
        results: List[ReportResult] = []

        for query in self._queries:
            try:
                results.append(evaluate_query(query, builds))
            except TemplateRenderError as exc:
                logger.error(
                    "Group template failed to render",
                    extra={"query": query.name, "error": str(exc)},
                )
                results.append(ReportResult(name=query.name, error=f"group template failed: {exc}"))

        return results
