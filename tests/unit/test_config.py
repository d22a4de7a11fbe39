"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest

from cachesync.config import Settings


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("REDIS_HOST", "REDIS_PORT", "EVENT_MAX_RETRIES", "REDIS_DISABLED"):
            monkeypatch.delenv(name, raising=False)

        config = Settings(_env_file=None)

        assert config.redis_url == "redis://localhost:6379/0"
        assert config.event_max_retries == 3
        assert config.redis_disabled is False
        assert config.event_channel_prefix == "cachesync:events:"

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_HOST", "cache.internal")
        monkeypatch.setenv("REDIS_PORT", "6380")
        monkeypatch.setenv("REDIS_PASSWORD", "s3cret")
        monkeypatch.setenv("REDIS_TLS", "true")
        monkeypatch.setenv("EVENT_MAX_RETRIES", "5")

        config = Settings(_env_file=None)

        assert config.redis_url == "rediss://:s3cret@cache.internal:6380/0"
        assert config.event_max_retries == 5
