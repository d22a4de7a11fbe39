"""Redis connection handle for cachesync.

A single ``RedisConnection`` is created at startup and passed to every
component that talks to Redis. It owns the pooled client used for cache
commands and PUBLISH, tracks whether Redis is reachable, and builds the
dedicated clients needed for subscribe mode.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable
from typing import TYPE_CHECKING, cast

import redis.asyncio as redis

from cachesync.config import Settings, settings as default_settings

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Seconds to wait after a connection failure before letting commands through again
RECONNECT_RETRY_INTERVAL = 5.0


class RedisConnection:
    """Owns the shared Redis client and its connectivity state.

    Connectivity is tracked explicitly so callers can degrade without
    issuing commands against a store that is known to be down. After a
    failure, ``is_connected`` reports False for ``retry_interval`` seconds,
    then lets the next command through to try the store again.
    """

    def __init__(
        self,
        config: Settings | None = None,
        retry_interval: float = RECONNECT_RETRY_INTERVAL,
    ):
        self.config = config or default_settings
        self.retry_interval = retry_interval
        self._client: Redis | None = None
        self._connected = False
        self._down_since: float | None = None

    @classmethod
    def from_client(cls, client: Redis, config: Settings | None = None) -> RedisConnection:
        """Wrap an existing client, treating it as connected."""
        connection = cls(config)
        connection._client = client
        connection._connected = True
        return connection

    @property
    def disabled(self) -> bool:
        return self.config.redis_disabled

    @property
    def client(self) -> Redis:
        """The shared client. Raises if ``connect()`` was never called."""
        if self._client is None:
            raise RuntimeError("Redis client not created. Call connect() first.")
        return self._client

    @property
    def is_connected(self) -> bool:
        if self._client is None or self.disabled:
            return False
        if self._connected:
            return True
        if self._down_since is None:
            return False
        return time.monotonic() - self._down_since >= self.retry_interval

    def _build_client(self) -> Redis:
        return redis.from_url(  # type: ignore[no-untyped-call]
            self.config.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=self.config.redis_socket_timeout,
            socket_connect_timeout=self.config.redis_socket_timeout,
        )

    async def connect(self) -> None:
        """Create the client and verify the store answers PING."""
        if self.disabled:
            logger.warning("Redis is disabled, cache and events will be bypassed")
            return

        if self._connected:
            return

        if self._client is None:
            self._client = self._build_client()

        try:
            await cast(Awaitable[bool], self._client.ping())
        except Exception as e:
            self.mark_disconnected()
            logger.error(
                f"Redis connection failed: {e}",
                extra={"redis_host": self.config.redis_host},
            )
            raise

        self.mark_connected()
        logger.info(
            "Connected to Redis",
            extra={"redis_host": self.config.redis_host, "redis_tls": self.config.redis_tls},
        )

    async def disconnect(self) -> None:
        """Close the shared client."""
        if self._client is None:
            return
        try:
            await self._client.aclose()
        finally:
            self._client = None
            self._connected = False
            self._down_since = None
            logger.info("Disconnected from Redis")

    def mark_connected(self) -> None:
        if not self._connected and self._down_since is not None:
            logger.info("Redis connection restored")
        self._connected = True
        self._down_since = None

    def mark_disconnected(self) -> None:
        if self._connected:
            logger.warning("Redis connection lost")
        self._connected = False
        self._down_since = time.monotonic()

    def create_subscriber_client(self) -> Redis:
        """Create a dedicated client for subscribe mode.

        A connection in subscribe mode can only issue subscription commands,
        so it must not come from the shared command pool.
        """
        return self._build_client()

    async def health_check(self) -> bool:
        """Check Redis connectivity."""
        if self._client is None or self.disabled:
            return False
        try:
            await cast(Awaitable[bool], self._client.ping())
        except Exception:
            self.mark_disconnected()
            return False
        self.mark_connected()
        return True
