"""
Query cache and request batching.

Supports an in-memory cache for tests/local runs and a Redis-backed
implementation for multi-process deployments. Both are built per application
in ``create_app`` and reached through dependencies.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


class QueryCache(Protocol):
    """Key/value cache for JSON-compatible query results."""

    def cache_query(self, key: str, data: Any, ttl: Optional[int] = None) -> None:
        ...

    def get_cached_query(self, key: str) -> Optional[Any]:
        ...

    def sweep(self) -> int:
        ...

    def invalidate(self, fragment: str) -> int:
        ...

    def clear(self) -> None:
        ...


@dataclass
class InMemoryQueryCache:
    """Process-local cache with per-entry expiry."""

    default_ttl: int = DEFAULT_TTL_SECONDS
    clock: Callable[[], float] = time.monotonic
    entries: dict[str, tuple[Any, float]] = field(default_factory=dict)

    def __post_init__(self):
        # Sync route handlers touch the cache from worker threads.
        self._lock = threading.Lock()

    def cache_query(self, key: str, data: Any, ttl: Optional[int] = None) -> None:
        expires_at = self.clock() + (ttl if ttl is not None else self.default_ttl)
        with self._lock:
            self.entries[key] = (data, expires_at)

    def get_cached_query(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self.entries.get(key)
            if entry is None:
                return None
            data, expires_at = entry
            if self.clock() >= expires_at:
                del self.entries[key]
                return None
            return data

    def sweep(self) -> int:
        """Evict expired entries; returns how many were removed."""
        now = self.clock()
        with self._lock:
            expired = [key for key, (_, expires_at) in self.entries.items() if now >= expires_at]
            for key in expired:
                del self.entries[key]
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    def invalidate(self, fragment: str) -> int:
        with self._lock:
            matches = [key for key in self.entries if fragment in key]
            for key in matches:
                del self.entries[key]
        return len(matches)

    def clear(self) -> None:
        with self._lock:
            self.entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self.entries)


@dataclass
class RedisQueryCache:
    """Redis-backed cache; expiry is delegated to Redis."""

    url: str
    key_prefix: str = "conecta:"
    default_ttl: int = DEFAULT_TTL_SECONDS

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}cache:{key}"

    def cache_query(self, key: str, data: Any, ttl: Optional[int] = None) -> None:
        try:
            self.client.setex(
                self._key(key),
                ttl if ttl is not None else self.default_ttl,
                json.dumps(data),
            )
        except redis_exceptions.ConnectionError:
            # A cache write failure only costs a future miss.
            logger.warning("Redis unavailable; skipped caching %s", key)
            self.client = redis.Redis.from_url(self.url)

    def get_cached_query(self, key: str) -> Optional[Any]:
        try:
            raw = self.client.get(self._key(key))
        except redis_exceptions.ConnectionError:
            logger.warning("Redis unavailable; treating %s as a miss", key)
            self.client = redis.Redis.from_url(self.url)
            return None
        if raw is None:
            return None
        return json.loads(raw)

    def sweep(self) -> int:
        return 0

    def invalidate(self, fragment: str) -> int:
        try:
            keys = list(self.client.scan_iter(match=f"{self.key_prefix}cache:*{fragment}*"))
            if keys:
                self.client.delete(*keys)
        except redis_exceptions.ConnectionError:
            # Entries left behind still expire through their TTL.
            logger.warning("Redis unavailable; could not invalidate %r", fragment)
            self.client = redis.Redis.from_url(self.url)
            return 0
        return len(keys)

    def clear(self) -> None:
        self.invalidate("")


class RequestBatcher:
    """
    Coalesce concurrent requests that share a key.

    The first caller for a key opens a batch window; everyone arriving before
    the window closes awaits the same future. When the window closes the
    resolver runs once and its result (or exception) is delivered to every
    waiter. Must be used from a single event loop.
    """

    def __init__(self, window_ms: int = 50):
        self.window = window_ms / 1000.0
        self._pending: dict[str, tuple[asyncio.Future, list[Callable[[], Awaitable[Any]]]]] = {}
        # Flush tasks are referenced here until done so they are not collected.
        self._flushes: set[asyncio.Task] = set()

    @property
    def pending_keys(self) -> list[str]:
        return list(self._pending)

    async def batch(self, key: str, resolver: Callable[[], Awaitable[Any]]) -> Any:
        pending = self._pending.get(key)
        if pending is not None:
            future, resolvers = pending
            resolvers.append(resolver)
            return await future

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending[key] = (future, [resolver])
        loop.call_later(self.window, self._schedule_flush, loop, key)
        return await future

    def _schedule_flush(self, loop: asyncio.AbstractEventLoop, key: str) -> None:
        task = loop.create_task(self._flush(key))
        self._flushes.add(task)
        task.add_done_callback(self._flushes.discard)

    async def _flush(self, key: str) -> None:
        future, resolvers = self._pending.pop(key)
        logger.debug("Flushing batch %s with %d waiters", key, len(resolvers))
        try:
            result = await resolvers[0]()
        except Exception as exc:  # delivered to every waiter
            if not future.done():
                future.set_exception(exc)
            return
        if not future.done():
            future.set_result(result)


async def run_sweeper(cache: QueryCache, interval: float) -> None:
    """Sweep expired cache entries forever; cancelled at shutdown."""
    while True:
        await asyncio.sleep(interval)
        try:
            cache.sweep()
        except redis_exceptions.RedisError:
            logger.exception("Cache sweep failed")
