"""Bucketed build storage on top of a byte cache.

Builds are partitioned by ``created_at`` into fixed-size, epoch-aligned time
buckets. Each bucket is stored as one cache entry holding deterministic JSON,
so rewriting a bucket with the same builds yields byte-identical content.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from .cache import Cache
from .errors import CacheError, DataValidationError
from .models import Build

logger = logging.getLogger(__name__)

_KEY_PREFIX = "buildkite-stats:builds:v1"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def encode_builds(bucket: datetime, builds: Iterable[Build]) -> bytes:
    """Serialize a bucket of builds into deterministic UTF-8 JSON."""
    ordered = sorted(builds, key=lambda build: (build.created_at or _EPOCH, build.id))
    document = {
        "bucket": int(bucket.timestamp()),
        "builds": [build.to_payload() for build in ordered],
    }
    return json.dumps(document, sort_keys=True, separators=(",", ":")).encode("utf-8")


def decode_builds(value: bytes) -> List[Build]:
    """Deserialize a bucket written by :func:`encode_builds`.

    Raises:
        DataValidationError: If the value is not a valid serialized bucket.
    """
    try:
        document = json.loads(value.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise DataValidationError("Cached bucket is not valid JSON") from exc

    if not isinstance(document, dict) or not isinstance(document.get("builds"), list):
        raise DataValidationError("Cached bucket has unexpected shape")

    return [Build.from_payload(item) for item in document["builds"]]


class BuildStore:
    """Reads and writes time buckets of builds for one organization."""

    def __init__(
        self,
        cache: Cache,
        organization: str,
        ttl: timedelta,
        bucket_size: timedelta = timedelta(hours=1),
    ) -> None:
        if bucket_size.total_seconds() < 1:
            raise ValueError("bucket_size must be at least one second")

        self._cache = cache
        self._organization = organization
        self._ttl = ttl
        self._bucket_seconds = int(bucket_size.total_seconds())

    @property
    def bucket_size(self) -> timedelta:
        return timedelta(seconds=self._bucket_seconds)

    def key(self, bucket: datetime) -> str:
        return (
            f"{_KEY_PREFIX}:{self._organization}:"
            f"{int(bucket.timestamp())}:{self._bucket_seconds}"
        )

    def bucket_start(self, moment: datetime) -> datetime:
        """Floor ``moment`` to the start of its bucket."""
        seconds = int((moment - _EPOCH).total_seconds() // self._bucket_seconds)
        return _EPOCH + timedelta(seconds=seconds * self._bucket_seconds)

    def buckets(self, start: datetime, end: datetime) -> List[datetime]:
        """List the starts of all buckets overlapping ``[start, end)``."""
        result: List[datetime] = []
        bucket = self.bucket_start(start)
        while bucket < end:
            result.append(bucket)
            bucket += self.bucket_size
        return result

    def read_bucket(self, bucket: datetime) -> Optional[List[Build]]:
        """Return the cached builds of ``bucket``, or ``None`` on any kind of miss.

        Cache failures and undecodable entries are logged and reported as misses.
        """
        key = self.key(bucket)
        try:
            value = self._cache.get(key)
        except CacheError as exc:
            logger.warning("Cache read failed, treating as miss", extra={"cache_key": key, "error": str(exc)})
            return None

        if value is None:
            return None

        try:
            return decode_builds(value)
        except DataValidationError as exc:
            logger.warning("Discarding undecodable cache entry", extra={"cache_key": key, "error": str(exc)})
            return None

    def write_bucket(self, bucket: datetime, builds: Iterable[Build]) -> None:
        """Write one bucket.

        Raises:
            CacheError: If the cache backend rejects the write.
        """
        self._cache.put(self.key(bucket), encode_builds(bucket, builds), self._ttl)

    def partition(self, builds: Iterable[Build]) -> Dict[datetime, List[Build]]:
        """Group builds by the bucket of their ``created_at``, deduplicating by id."""
        unique: Dict[str, Tuple[datetime, Build]] = {}
        for build in builds:
            if build.created_at is None:
                logger.debug("Skipping build without created_at", extra={"build_id": build.id})
                continue
            unique[build.id] = (self.bucket_start(build.created_at), build)

        partitions: Dict[datetime, List[Build]] = {}
        for bucket, build in unique.values():
            partitions.setdefault(bucket, []).append(build)
        return partitions

    def write_buckets(
        self,
        builds: Iterable[Build],
        start: datetime,
        end: datetime,
    ) -> List[datetime]:
        """Write every bucket overlapping ``[start, end)``, including empty ones.

        Returns:
            The bucket starts that were written.
        """
        partitions = self.partition(builds)
        written = self.buckets(start, end)
        for bucket in written:
            self.write_bucket(bucket, partitions.get(bucket, []))
        return written
