"""Global pytest configuration and fixtures."""

from __future__ import annotations

import pytest

from cachesync.cache.redis import RedisConnection
from cachesync.cache.store import CacheStore
from cachesync.config import Settings, settings
from tests.fakes import FakeRedis


@pytest.fixture
def test_settings() -> Settings:
    """Settings with short delays so retry and reconnect paths run quickly."""
    return settings.model_copy(
        update={
            "redis_disabled": False,
            "event_retry_delay": 0.001,
            "subscriber_max_reconnect_attempts": 3,
            "subscriber_reconnect_delay_initial": 0.01,
            "subscriber_reconnect_delay_max": 0.05,
        }
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def connection(fake_redis: FakeRedis, test_settings: Settings) -> RedisConnection:
    conn = RedisConnection.from_client(fake_redis, test_settings)  # type: ignore[arg-type]
    conn.create_subscriber_client = fake_redis.spawn  # type: ignore[method-assign]
    return conn


@pytest.fixture
def store(connection: RedisConnection) -> CacheStore:
    return CacheStore(connection, default_ttl=3600)

