"""Background population of the build cache."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from .models import format_datetime
from .source import BuildSource
from .store import BuildStore

logger = logging.getLogger(__name__)


class RefreshEngine:
    """Rewrites cached build buckets for a trailing time window.

    Each call keeps its own working state, so concurrent refreshes never share
    partially built buckets. Refreshing an overlapping window rewrites the same
    buckets with equivalent content.
    """

    def __init__(self, source: BuildSource, store: BuildStore) -> None:
        self._source = source
        self._store = store

    def refresh_cache(self, from_time: datetime, now: Optional[datetime] = None) -> int:
        """Fetch builds created in ``[from_time, now)`` and rewrite their buckets.

        ``from_time`` is aligned down to its bucket so every written bucket is
        complete.

        Returns:
            The number of buckets written.

        Raises:
            ApiError: If the upstream fetch fails; nothing is written then.
            CacheError: If a bucket cannot be written.
        """
        end = now or datetime.now(timezone.utc)
        start = self._store.bucket_start(from_time)
        if start >= end:
            logger.info("Nothing to refresh", extra={"window_start": format_datetime(start)})
            return 0

        builds = self._source.list_builds(created_from=start, created_to=end)
        window_builds = [
            build
            for build in builds
            if build.created_at is not None and start <= build.created_at < end
        ]
        written = self._store.write_buckets(window_builds, start, end)

        logger.info(
            "Refreshed build cache",
            extra={
                "window_start": format_datetime(start),
                "window_end": format_datetime(end),
                "builds": len(window_builds),
                "buckets": len(written),
            },
        )
        return len(written)
