"""Tests for the Redis connection handle."""

from __future__ import annotations

import pytest
import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError

from cachesync.cache.redis import RedisConnection
from cachesync.config import Settings
from tests.fakes import FakeRedis


@pytest.fixture
def unconnected(test_settings: Settings, fake_redis: FakeRedis) -> RedisConnection:
    connection = RedisConnection(test_settings, retry_interval=60)
    connection._build_client = lambda: fake_redis  # type: ignore[method-assign]
    return connection


class TestRedisConnection:
    """Tests for RedisConnection."""

    def test_client_before_connect_raises(self, test_settings: Settings) -> None:
        with pytest.raises(RuntimeError, match="Call connect"):
            RedisConnection(test_settings).client

    @pytest.mark.asyncio
    async def test_connect(self, unconnected: RedisConnection, fake_redis: FakeRedis) -> None:
        await unconnected.connect()

        assert unconnected.is_connected
        assert unconnected.client is fake_redis

    @pytest.mark.asyncio
    async def test_connect_disabled(self, test_settings: Settings) -> None:
        connection = RedisConnection(test_settings.model_copy(update={"redis_disabled": True}))

        await connection.connect()

        assert connection.is_connected is False
        assert connection._client is None

    @pytest.mark.asyncio
    async def test_connect_failure_raises(
        self, unconnected: RedisConnection, fake_redis: FakeRedis
    ) -> None:
        fake_redis.broker.ping_error = RedisConnectionError("refused")

        with pytest.raises(RedisConnectionError):
            await unconnected.connect()

        assert unconnected.is_connected is False

    @pytest.mark.asyncio
    async def test_retry_window(self, test_settings: Settings, fake_redis: FakeRedis) -> None:
        """After a failure commands are let through again once the window passes."""
        connection = RedisConnection.from_client(
            fake_redis, test_settings  # type: ignore[arg-type]
        )
        connection.retry_interval = 60
        connection.mark_disconnected()
        assert connection.is_connected is False

        connection.retry_interval = 0
        assert connection.is_connected is True

    @pytest.mark.asyncio
    async def test_health_check(self, unconnected: RedisConnection, fake_redis: FakeRedis) -> None:
        await unconnected.connect()
        assert await unconnected.health_check() is True

        fake_redis.broker.ping_error = RedisConnectionError("gone")
        assert await unconnected.health_check() is False
        assert unconnected.is_connected is False

        fake_redis.broker.ping_error = None
        assert await unconnected.health_check() is True
        assert unconnected.is_connected is True

    @pytest.mark.asyncio
    async def test_disconnect(self, unconnected: RedisConnection, fake_redis: FakeRedis) -> None:
        await unconnected.connect()

        await unconnected.disconnect()

        assert fake_redis.closed
        assert unconnected.is_connected is False

    @pytest.mark.asyncio
    async def test_subscriber_client_is_dedicated(self, test_settings: Settings) -> None:
        connection = RedisConnection(test_settings)

        first = connection.create_subscriber_client()
        second = connection.create_subscriber_client()

        assert isinstance(first, redis.Redis)
        assert first is not second
        await first.aclose()
        await second.aclose()
