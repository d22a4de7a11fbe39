"""Cache consistency monitoring and refresh-ahead.

The monitor keeps hit/miss/staleness counters for the cache, infers
freshness from the TTL Redis reports for each key, and keeps hot entries
fresh without blocking callers:

    FRESH -> NEAR_EXPIRY -> STALE -> (refreshed) -> FRESH
                            STALE -> ABSENT (natural expiry)

States are never stored per key; they are read off the remaining TTL.

A periodic sweep samples product keys and logs how many are stale. The
sweep is observability only and never writes to the cache.

Example:
    monitor = ConsistencyMonitor(store)
    await monitor.start()

    product = await monitor.refresh_ahead(
        CacheKeys.product("123"),
        lambda: repository.find_by_id("123"),
        ttl=3600,
    )

    await monitor.stop()
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar

from cachesync.cache.keys import CacheKeys
from cachesync.config import Settings, settings as default_settings
from cachesync.observability.metrics import (
    record_cache_hit,
    record_cache_miss,
    record_consistency_error,
    record_stale_read,
)

if TYPE_CHECKING:
    from cachesync.cache.store import CacheStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_REFRESH_THRESHOLD = 300  # seconds before expiry that trigger a refresh
LOW_HIT_RATE_PERCENT = 50.0
LOW_HIT_RATE_MIN_OPERATIONS = 100


@dataclass
class CacheMetrics:
    """Process-lifetime cache health counters."""

    cache_hits: int = 0
    cache_misses: int = 0
    stale_reads: int = 0
    consistency_errors: int = 0
    total_operations: int = 0
    hit_rate: float = 0.0
    consistency_score: float = 100.0
    last_check_time: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Wire/JSON view with camelCase field names."""
        return {
            "cacheHits": self.cache_hits,
            "cacheMisses": self.cache_misses,
            "staleReads": self.stale_reads,
            "consistencyErrors": self.consistency_errors,
            "totalOperations": self.total_operations,
            "hitRate": self.hit_rate,
            "consistencyScore": self.consistency_score,
            "lastCheckTime": self.last_check_time.isoformat() if self.last_check_time else None,
        }


@dataclass(frozen=True, slots=True)
class StaleDataCheckResult:
    """Freshness of a single key, computed from its remaining TTL."""

    is_stale: bool
    ttl: int
    age: int
    threshold: int  # milliseconds


def compute_consistency_score(
    total_operations: int, consistency_errors: int, stale_reads: int
) -> float:
    """Score in [0, 100]; 100 means no stale reads or errors."""
    total_errors = consistency_errors + stale_reads
    if total_operations == 0:
        return 100.0 if total_errors == 0 else 0.0
    error_rate = total_errors / total_operations
    return max(0.0, min(100.0, 100.0 - error_rate * 100.0))


class ConsistencyMonitor:
    """Tracks cache health and refreshes entries ahead of expiry.

    Counter updates never await, so each one is atomic with respect to
    other tasks on the event loop.
    """

    def __init__(self, store: CacheStore, config: Settings | None = None):
        self.store = store
        self.config = config or default_settings
        self._metrics = CacheMetrics()
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._refresh_tasks: set[asyncio.Task[None]] = set()

    @property
    def stale_threshold_ms(self) -> int:
        return self.config.consistency_stale_threshold

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def track_cache_hit(self) -> None:
        self._metrics.cache_hits += 1
        self._update_metrics()
        record_cache_hit("refresh_ahead")
        logger.debug("Cache hit tracked")

    def track_cache_miss(self) -> None:
        self._metrics.cache_misses += 1
        self._update_metrics()
        record_cache_miss("refresh_ahead")
        logger.debug("Cache miss tracked")

    def track_stale_read(self) -> None:
        self._metrics.stale_reads += 1
        self._update_metrics()
        record_stale_read()
        logger.warning("Stale read detected")

    def track_consistency_error(self) -> None:
        self._metrics.consistency_errors += 1
        self._update_metrics()
        record_consistency_error()
        logger.warning("Consistency error detected")

    def _update_metrics(self) -> None:
        m = self._metrics
        m.total_operations = m.cache_hits + m.cache_misses
        if m.total_operations > 0:
            m.hit_rate = m.cache_hits / m.total_operations * 100
        m.consistency_score = compute_consistency_score(
            m.total_operations, m.consistency_errors, m.stale_reads
        )
        m.last_check_time = datetime.now(UTC)

    def get_metrics(self) -> CacheMetrics:
        """Snapshot copy of the current metrics."""
        return replace(self._metrics)

    def get_performance_stats(self) -> dict[str, float]:
        return {
            "hit_rate": self._metrics.hit_rate,
            "consistency_score": self._metrics.consistency_score,
            "total_operations": self._metrics.total_operations,
        }

    def reset_metrics(self) -> None:
        self._metrics = CacheMetrics()
        logger.info("Cache consistency metrics reset")

    # -------------------------------------------------------------------------
    # Staleness and refresh
    # -------------------------------------------------------------------------

    async def check_stale_data(self, key: str) -> StaleDataCheckResult:
        """Infer freshness from the key's remaining TTL.

        If the TTL cannot be read the key is reported stale, so callers
        re-fetch rather than serve data of unknown age.
        """
        threshold = self.stale_threshold_ms
        try:
            ttl = await self.store.ttl(key)
        except Exception as e:
            logger.warning(f"Error checking stale data for key {key}: {e}", extra={"key": key})
            return StaleDataCheckResult(is_stale=True, ttl=0, age=0, threshold=threshold)

        is_stale = ttl <= 0 or ttl < threshold / 1000
        result = StaleDataCheckResult(
            is_stale=is_stale,
            ttl=ttl,
            age=abs(ttl) if ttl < 0 else 0,
            threshold=threshold,
        )
        if is_stale:
            logger.debug(
                f"Stale data detected for key {key}, TTL {ttl}s, threshold {threshold}ms",
                extra={"key": key, "ttl": ttl},
            )
        return result

    async def refresh_ahead(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[T]],
        ttl: int,
        refresh_threshold: int = DEFAULT_REFRESH_THRESHOLD,
    ) -> T:
        """Cache-aside read that refreshes entries close to expiry.

        - Fresh hit: return the cached value.
        - Near expiry or stale: return the cached value immediately and
          refresh the entry in a background task.
        - Miss: fetch, cache and return.

        Any failure on the cached path falls back to calling ``fetch_fn``
        directly, bypassing the cache.
        """
        try:
            cached = await self.store.get(key)

            if cached is not None:
                stale_check = await self.check_stale_data(key)
                if not stale_check.is_stale and stale_check.ttl > refresh_threshold:
                    self.track_cache_hit()
                    return cached  # type: ignore[no-any-return]

                logger.debug(f"Background refresh started for {key}", extra={"key": key})
                self._spawn_refresh(key, fetch_fn, ttl)
                self.track_stale_read()
                return cached  # type: ignore[no-any-return]

            self.track_cache_miss()
            logger.debug(f"Cache miss for {key}, fetching from source", extra={"key": key})
            result = await fetch_fn()
            if result is not None:
                await self.store.set(key, result, ttl)
            return result

        except Exception as e:
            logger.error(
                f"Refresh-ahead failed for key {key}: {e}",
                extra={"key": key, "error": str(e)},
            )
            return await fetch_fn()

    def _spawn_refresh(
        self, key: str, fetch_fn: Callable[[], Awaitable[T]], ttl: int
    ) -> None:
        task = asyncio.create_task(self._refresh_in_background(key, fetch_fn, ttl))
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    async def _refresh_in_background(
        self, key: str, fetch_fn: Callable[[], Awaitable[T]], ttl: int
    ) -> None:
        try:
            result = await fetch_fn()
            if result is None:
                # Source record is gone
                await self.store.delete(key)
            else:
                await self.store.set(key, result, ttl)
            logger.debug(f"Background refresh completed for {key}", extra={"key": key})
        except Exception as e:
            logger.error(
                f"Background refresh failed for key {key}: {e}",
                extra={"operation": "background_refresh", "key": key, "error": str(e)},
            )

    async def force_refresh(
        self, key: str, fetch_fn: Callable[[], Awaitable[T]], ttl: int
    ) -> T:
        """Fetch, overwrite the cache entry and return fresh data.

        Errors propagate to the caller.
        """
        logger.info(f"Force refreshing cache entry {key}", extra={"key": key})
        try:
            result = await fetch_fn()
            await self.store.set(key, result, ttl)
        except Exception as e:
            logger.error(
                f"Force refresh failed for key {key}: {e}",
                extra={"key": key, "error": str(e)},
            )
            raise
        logger.info(f"Cache entry refreshed: {key}", extra={"key": key})
        return result

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete all keys matching ``pattern``.

        Returns:
            Number of keys actually removed (failed deletes are not counted)
        """
        try:
            deleted = await self.store.delete_by_pattern(pattern)
        except Exception as e:
            logger.error(
                f"Pattern invalidation failed for pattern {pattern}: {e}",
                extra={"pattern": pattern, "error": str(e)},
            )
            raise

        logger.info(
            f"Pattern invalidation completed for {pattern}, invalidated {deleted} keys",
            extra={"pattern": pattern, "invalidated": deleted},
        )
        return deleted

    async def wait_for_refreshes(self) -> None:
        """Wait for in-flight background refreshes to finish."""
        if self._refresh_tasks:
            await asyncio.gather(*self._refresh_tasks, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Periodic sweep
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start the periodic consistency sweep."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(
            "Cache consistency monitoring started",
            extra={
                "interval": self.config.consistency_check_interval,
                "sample_size": self.config.consistency_sample_size,
                "stale_threshold_ms": self.stale_threshold_ms,
            },
        )

    async def stop(self) -> None:
        """Stop the sweep timer.

        In-flight background refreshes are not awaited.
        """
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Cache consistency monitoring stopped")

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.config.consistency_check_interval)
                await self.perform_consistency_check()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Cache consistency check failed: {e}")
                self.track_consistency_error()

    async def perform_consistency_check(self) -> dict[str, Any]:
        """Sample product keys and report how many are stale.

        Returns:
            Summary with total, checked and stale key counts and the stale ratio
        """
        logger.debug("Cache consistency check started")

        all_keys = await self.store.keys(CacheKeys.PRODUCT_PATTERN)
        if not all_keys:
            logger.debug("No cache entries found for consistency check")
            return {"total_keys": 0, "checked_keys": 0, "stale_keys": 0, "stale_ratio": 0.0}

        sample_size = min(self.config.consistency_sample_size, len(all_keys))
        sample = random.sample(all_keys, sample_size)

        stale_count = 0
        checked_count = 0
        for key in sample:
            try:
                if not await self.store.exists(key):
                    continue
                checked_count += 1
                stale_check = await self.check_stale_data(key)
                if stale_check.is_stale:
                    stale_count += 1
                    logger.warning(
                        f"Stale cache entry {key}, TTL {stale_check.ttl}s",
                        extra={"key": key, "ttl": stale_check.ttl, "age": stale_check.age},
                    )
            except Exception as e:
                logger.warning(
                    f"Error checking key {key} during consistency check: {e}",
                    extra={"key": key},
                )

        stale_ratio = stale_count / checked_count if checked_count else 0.0
        summary = {
            "total_keys": len(all_keys),
            "checked_keys": checked_count,
            "stale_keys": stale_count,
            "stale_ratio": stale_ratio,
        }
        logger.info(
            f"Cache consistency check completed: {checked_count} checked, "
            f"{stale_count} stale ({stale_ratio * 100:.2f}%), "
            f"consistency score {self._metrics.consistency_score:.2f}",
            extra=summary,
        )

        if (
            self._metrics.hit_rate < LOW_HIT_RATE_PERCENT
            and self._metrics.total_operations > LOW_HIT_RATE_MIN_OPERATIONS
        ):
            logger.warning(
                f"Low cache hit rate {self._metrics.hit_rate:.2f}% "
                f"over {self._metrics.total_operations} operations",
                extra={
                    "hit_rate": self._metrics.hit_rate,
                    "total_operations": self._metrics.total_operations,
                },
            )

        return summary
