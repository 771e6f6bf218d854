"""
CacheManager - Async-compatible in-process TTL cache with stale-on-error fallback.

Features:
- Memory-based cache with oldest-first eviction when full
- TTL (Time To Live) per entry, re-checked on every read
- Stale fallback: an expired entry is served when a refresh fails
- Optional single-flight collapsing of concurrent misses
- Prefix/substring invalidation for write paths
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Generic, TypeVar

from loguru import logger

from justhigher.services.deduplicator import SingleFlight
from justhigher.services.errors import LoadError, OperationCancelledError

T = TypeVar("T")

Clock = Callable[[], datetime]


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with metadata."""

    data: T
    stored_at: datetime
    ttl: timedelta

    def is_live(self, now: datetime) -> bool:
        """An entry is live while ``now - stored_at <= ttl``."""
        return now - self.stored_at <= self.ttl


class CacheManager:
    """
    Async-compatible TTL cache.

    Usage:
        cache = CacheManager(max_size=500, default_ttl=timedelta(minutes=5))

        posts = await cache.get_or_load(
            "posts:published:all:0",
            lambda: repo.list_published(),
            ttl=timedelta(minutes=5),
        )

    ``get_or_load`` only raises ``LoadError`` when the loader fails and no
    entry at all (live or expired) exists for the key.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: timedelta = timedelta(minutes=5),
        single_flight: bool = True,
        clock: Clock = datetime.now,
        debug: bool = False,
    ):
        self._memory: dict[str, CacheEntry[Any]] = {}
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._clock = clock
        self._debug = debug
        self._lock = asyncio.Lock()
        self._stats = CacheStats()
        self._flight = SingleFlight(debug=debug) if single_flight else None
        # Bumped by every removal; loads started under an older generation
        # must not write back.
        self._generation = 0

    async def get(self, key: str) -> Any | None:
        """Return the live value for ``key`` or None. Dead entries are evicted."""
        entry = await self._lookup(key)
        return entry.data if entry is not None else None

    async def _lookup(self, key: str, evict: bool = True) -> CacheEntry[Any] | None:
        async with self._lock:
            entry = self._memory.get(key)
            if entry is None:
                self._stats.misses += 1
                self._log(f"MISS: {key[:50]}")
                return None

            if not entry.is_live(self._clock()):
                if evict:
                    del self._memory[key]
                self._stats.misses += 1
                self._log(f"EXPIRED: {key[:50]}")
                return None

            self._stats.hits += 1
            self._log(f"HIT: {key[:50]}")
            return entry

    async def set(self, key: str, data: Any, ttl: timedelta | None = None) -> None:
        """Store ``data`` under ``key``, resetting its store time and TTL."""
        async with self._lock:
            self._put(key, data, ttl)

    async def _set_if_current(
        self, key: str, data: Any, ttl: timedelta | None, generation: int
    ) -> None:
        async with self._lock:
            if self._generation == generation:
                self._put(key, data, ttl)

    def _put(self, key: str, data: Any, ttl: timedelta | None) -> None:
        ttl = ttl if ttl is not None else self._default_ttl
        if len(self._memory) >= self._max_size and key not in self._memory:
            self._evict_oldest()
        self._memory[key] = CacheEntry(data=data, stored_at=self._clock(), ttl=ttl)
        self._log(f"SET: {key[:50]} (TTL: {ttl.total_seconds()}s)")

    async def delete(self, key: str) -> bool:
        """Delete a specific key from cache."""
        async with self._lock:
            self._generation += 1
            if key in self._memory:
                del self._memory[key]
                self._log(f"DELETE: {key[:50]}")
                return True
            return False

    async def invalidate(self, pattern: str) -> int:
        """
        Invalidate all keys containing ``pattern``.

        Returns:
            Number of entries invalidated
        """
        async with self._lock:
            self._generation += 1
            keys_to_delete = [k for k in self._memory if pattern in k]
            for key in keys_to_delete:
                del self._memory[key]

        if keys_to_delete:
            self._log(f"INVALIDATE: {len(keys_to_delete)} entries matching '{pattern}'")
        return len(keys_to_delete)

    async def clear(self) -> None:
        """Clear all cache entries."""
        async with self._lock:
            self._generation += 1
            count = len(self._memory)
            self._memory.clear()
        self._log(f"CLEAR: {count} entries removed")

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        ttl: timedelta | None = None,
        cancel: asyncio.Event | None = None,
    ) -> T:
        """
        Return the live value for ``key``, loading and storing it on a miss.

        Args:
            key: Cache key; must encode every argument that affects the value
            loader: Zero-argument coroutine factory producing the fresh value
            ttl: Entry TTL (uses default if not specified)
            cancel: Optional token; when set, stop waiting and raise
                OperationCancelledError

        Raises:
            LoadError: Loader failed and no entry exists to fall back to
            OperationCancelledError: ``cancel`` fired before the load finished
        """
        # Expired entries stay in place as the stale fallback.
        cached = await self._lookup(key, evict=False)
        if cached is not None:
            return cached.data

        if cancel is not None and cancel.is_set():
            raise OperationCancelledError(key)

        generation = self._generation

        async def load_and_store() -> T:
            data = await loader()
            await self._set_if_current(key, data, ttl, generation)
            return data

        if self._flight is not None:
            pending = self._flight.run(f"{key}#{generation}", load_and_store)
        else:
            pending = load_and_store()

        try:
            return await self._await_with_cancel(pending, key, cancel)
        except OperationCancelledError:
            raise
        except Exception as e:
            stale = await self._peek(key)
            if stale is not None:
                self._stats.stale_hits += 1
                logger.warning(f"Using stale cache for key '{key}': {e}")
                return stale.data
            raise LoadError(key, e) from e

    async def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        now = self._clock()
        async with self._lock:
            expired_keys = [k for k, v in self._memory.items() if not v.is_live(now)]
            for key in expired_keys:
                del self._memory[key]

        if expired_keys:
            self._log(f"CLEANUP: {len(expired_keys)} expired entries removed")
        return len(expired_keys)

    async def close(self) -> None:
        """Cancel in-flight loads."""
        if self._flight is not None:
            await self._flight.cancel_all()

    async def _peek(self, key: str) -> CacheEntry[Any] | None:
        """Return the entry for ``key`` regardless of liveness."""
        async with self._lock:
            return self._memory.get(key)

    async def _await_with_cancel(
        self,
        pending: Awaitable[T],
        key: str,
        cancel: asyncio.Event | None,
    ) -> T:
        if cancel is None:
            return await pending

        load = asyncio.ensure_future(pending)
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait(
                {load, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()

        if load in done:
            return load.result()

        load.cancel()
        self._log(f"CANCELLED: {key[:50]}")
        raise OperationCancelledError(key)

    def _evict_oldest(self) -> None:
        """Evict the entry stored longest ago. Caller holds the lock."""
        if not self._memory:
            return

        oldest_key = min(
            self._memory.keys(),
            key=lambda k: self._memory[k].stored_at,
        )
        del self._memory[oldest_key]
        self._stats.evictions += 1
        self._log(f"EVICT: {oldest_key[:50]}")

    def get_stats(self) -> "CacheStats":
        """Get cache statistics."""
        self._stats.size = len(self._memory)
        self._stats.max_size = self._max_size
        if self._flight is not None:
            self._stats.shared_loads = self._flight.get_stats().shared
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[CacheManager] {message}")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    stale_hits: int = 0
    evictions: int = 0
    shared_loads: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    @property
    def fill_ratio(self) -> float:
        if self.max_size == 0:
            return 0.0
        return self.size / self.max_size

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "stale_hits": self.stale_hits,
            "evictions": self.evictions,
            "shared_loads": self.shared_loads,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
            "fill_ratio": f"{self.fill_ratio:.2%}",
        }
