"""Cache-aside store over Redis.

Values are stored as JSON text. Redis is treated as an optimization only:
when the store is unreachable, reads return empty results and writes are
skipped with a warning. When the store is reachable but a command fails,
the failure is logged with its operation and key, then re-raised.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

import orjson
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from cachesync.cache.keys import CacheKeys
from cachesync.observability.metrics import (
    record_cache_degraded,
    record_cache_hit,
    record_cache_miss,
    record_cache_operation_error,
)

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from cachesync.cache.redis import RedisConnection

logger = logging.getLogger(__name__)

T = TypeVar("T")

# TTL returned by Redis for a key that does not exist
TTL_MISSING = -2


class CacheStore:
    """Typed cache operations with JSON (de)serialization.

    Stateless facade over a shared ``RedisConnection``.
    """

    def __init__(self, connection: RedisConnection, default_ttl: int | None = None):
        self.connection = connection
        self.default_ttl = (
            default_ttl if default_ttl is not None else connection.config.ttl_default
        )

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    async def _run(
        self,
        operation: str,
        key: str,
        command: Callable[[Redis], Awaitable[Any]],
        default: Any = None,
    ) -> Any:
        """Run a command with connectivity check and error logging.

        Returns ``default`` when the store is unavailable.
        """
        if not self.connection.is_connected:
            logger.warning(
                f"Redis unavailable, skipping {operation}",
                extra={"operation": operation, "key": key},
            )
            record_cache_degraded(operation)
            return default

        try:
            result = await command(self.connection.client)
        except (RedisConnectionError, RedisTimeoutError) as e:
            self.connection.mark_disconnected()
            logger.warning(
                f"Redis unreachable during {operation}: {e}",
                extra={"operation": operation, "key": key},
            )
            record_cache_degraded(operation)
            return default
        except RedisError as e:
            logger.error(
                f"Cache operation {operation} failed for key {key}: {e}",
                extra={"operation": operation, "key": key, "error": str(e)},
            )
            record_cache_operation_error(operation)
            raise

        self.connection.mark_connected()
        return result

    # -------------------------------------------------------------------------
    # Typed values
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Get a cached value, or None on miss or when Redis is unavailable."""
        raw = await self._run("get", key, lambda client: client.get(key))
        if raw is None:
            logger.debug(f"Cache miss: {key}")
            return None

        try:
            value = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.error(
                f"Cache operation get failed for key {key}: invalid JSON ({e})",
                extra={"operation": "get", "key": key, "error": str(e)},
            )
            record_cache_operation_error("get")
            raise

        logger.debug(f"Cache hit: {key}")
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Serialize and store a value.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Expiry in seconds; None uses the default TTL, 0 stores without expiry
        """
        try:
            payload = orjson.dumps(value)
        except TypeError as e:
            logger.error(
                f"Cache operation set failed for key {key}: {e}",
                extra={"operation": "set", "key": key, "error": str(e)},
            )
            record_cache_operation_error("set")
            raise

        expiry = self.default_ttl if ttl is None else ttl
        if expiry > 0:
            await self._run("set", key, lambda client: client.set(key, payload, ex=expiry))
        else:
            await self._run("set", key, lambda client: client.set(key, payload))
        logger.debug(f"Cached {key}", extra={"key": key, "ttl": expiry})

    async def delete(self, key: str) -> None:
        """Delete a cached value."""
        await self._run("delete", key, lambda client: client.delete(key))
        logger.debug(f"Cache delete: {key}")

    async def keys(self, pattern: str) -> list[str]:
        """Resolve keys matching a glob pattern."""
        return list(await self._run("keys", pattern, lambda client: client.keys(pattern), []))

    async def exists(self, key: str) -> bool:
        return bool(await self._run("exists", key, lambda client: client.exists(key), 0))

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds (-1 without expiry, -2 when missing)."""
        return int(await self._run("ttl", key, lambda client: client.ttl(key), TTL_MISSING))

    async def delete_by_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern.

        Keys are deleted one at a time; a failed delete is logged and skipped
        so the rest of the batch still goes through.

        Returns:
            Number of keys actually deleted
        """
        matched = await self.keys(pattern)
        if not matched:
            return 0

        deleted = 0
        for key in matched:
            try:
                await self.connection.client.delete(key)
            except RedisError as e:
                logger.warning(
                    f"Failed to delete {key} while deleting pattern {pattern}: {e}",
                    extra={"operation": "delete", "key": key, "pattern": pattern},
                )
                continue
            deleted += 1

        logger.debug(
            f"Deleted {deleted}/{len(matched)} keys for pattern {pattern}",
            extra={"pattern": pattern, "matched": len(matched), "deleted": deleted},
        )
        return deleted

    async def get_or_set(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[T]],
        ttl: int | None = None,
    ) -> T:
        """Return the cached value, or fetch, cache and return it.

        Errors raised by ``fetch_fn`` propagate and nothing is cached. Cache
        read/write failures are logged and treated as a miss.
        """
        try:
            cached = await self.get(key)
        except (RedisError, orjson.JSONDecodeError):
            cached = None

        if cached is not None:
            record_cache_hit("get_or_set")
            return cached  # type: ignore[no-any-return]

        record_cache_miss("get_or_set")
        try:
            data = await fetch_fn()
        except Exception as e:
            logger.error(
                f"Fetch function failed for key {key}: {e}",
                extra={"key": key, "error": str(e)},
            )
            raise

        if data is None:
            return data

        try:
            await self.set(key, data, ttl)
        except (RedisError, TypeError) as e:
            logger.warning(f"Could not cache {key}: {e}", extra={"key": key})

        return data

    # -------------------------------------------------------------------------
    # Counters and locks
    # -------------------------------------------------------------------------

    async def increment(self, key: str) -> int:
        """Increment a counter; returns 0 when Redis is unavailable."""
        return int(await self._run("incr", key, lambda client: client.incr(key), 0))

    async def set_with_expiration(self, key: str, ttl: int) -> None:
        """Create a marker key with a TTL if it does not already exist."""
        await self._run(
            "set_with_expiration",
            key,
            lambda client: client.set(key, "1", ex=ttl, nx=True),
        )

    async def acquire_lock(self, key: str, ttl: int) -> bool:
        """Try to take the advisory lock for ``key``.

        The lock is a conditional SET with expiry. It is not fenced: a holder
        that stalls past ``ttl`` loses the lock without being told.
        """
        lock_key = CacheKeys.lock(key)
        result = await self._run(
            "acquire_lock",
            lock_key,
            lambda client: client.set(lock_key, "1", ex=ttl, nx=True),
            False,
        )
        return bool(result)

    async def release_lock(self, key: str) -> None:
        lock_key = CacheKeys.lock(key)
        await self._run("release_lock", lock_key, lambda client: client.delete(lock_key))

    async def flush(self) -> None:
        """Remove every key in the current database."""
        await self._run("flush", "*", lambda client: client.flushdb())
        logger.info("Cache flushed")


def with_cache(
    store: CacheStore,
    key: str | Callable[..., str],
    ttl: int | None,
    fn: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T]]:
    """Wrap an async function with cache-aside reads.

    Args:
        store: Cache store to read from and populate
        key: Fixed key, or a callable building the key from the call arguments
        ttl: Expiry in seconds (None uses the store default)
        fn: Async function producing the value on a miss

    Example:
        get_product = with_cache(store, CacheKeys.product, 3600, repository.find_by_id)
        product = await get_product("p1")
    """

    async def cached(*args: Any, **kwargs: Any) -> T:
        cache_key = key(*args, **kwargs) if callable(key) else key
        return await store.get_or_set(cache_key, lambda: fn(*args, **kwargs), ttl)

    return cached
