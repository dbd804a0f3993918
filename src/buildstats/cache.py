"""Key/value byte caches with per-entry TTL."""

from __future__ import annotations

import logging
import math
import threading
import time
from datetime import timedelta
from typing import Callable, Dict, Optional, Protocol, Tuple

import redis

from .errors import CacheError

logger = logging.getLogger(__name__)


class Cache(Protocol):
    """Opaque byte cache shared between report evaluation and refresh."""

    def put(self, key: str, value: bytes, ttl: timedelta) -> None:
        ...

    def get(self, key: str) -> Optional[bytes]:
        ...


def _ttl_seconds(ttl: timedelta) -> int:
    seconds = math.ceil(ttl.total_seconds())
    if seconds <= 0:
        raise CacheError(f"Cache TTL must be positive, got {ttl}")
    return seconds


class RedisCache:
    """Cache backed by a Redis server, using ``SET key value EX ttl``."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, timeout_seconds: float = 5.0) -> "RedisCache":
        """Create a cache for ``url`` with bounded connect and socket timeouts."""
        client = redis.from_url(
            url,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )
        return cls(client)

    def put(self, key: str, value: bytes, ttl: timedelta) -> None:
        try:
            self._client.set(key, value, ex=_ttl_seconds(ttl))
        except redis.RedisError as exc:
            raise CacheError(f"Unable to write cache key '{key}'") from exc

    def get(self, key: str) -> Optional[bytes]:
        try:
            value = self._client.get(key)
        except redis.RedisError as exc:
            raise CacheError(f"Unable to read cache key '{key}'") from exc

        if value is None:
            return None
        if isinstance(value, str):
            return value.encode("utf-8")
        return bytes(value)


class MemoryCache:
    """Thread-safe in-process cache for single-process runs and tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[bytes, float]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def put(self, key: str, value: bytes, ttl: timedelta) -> None:
        now = self._clock()
        expires_at = now + _ttl_seconds(ttl)
        with self._lock:
            self._purge_expired(now)
            self._entries[key] = (bytes(value), expires_at)

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                logger.debug("Cache entry expired", extra={"cache_key": key})
                return None

            return value
