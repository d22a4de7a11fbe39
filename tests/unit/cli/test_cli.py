"""Tests for the cachesync command line."""

from __future__ import annotations

from typing import Any

import pytest
from typer.testing import CliRunner

from cachesync.cli import app
from cachesync.cli import invalidate_cmd, publish_cmd, stats_cmd
from cachesync.events.schemas import BaseEvent

runner = CliRunner()


class TestPublishCommand:
    """Tests for `cachesync publish`."""

    def test_publishes_event(self, monkeypatch: pytest.MonkeyPatch) -> None:
        published: list[tuple[str, BaseEvent]] = []

        async def fake_publish(channel: str, event: BaseEvent) -> int:
            published.append((channel, event))
            return 2

        monkeypatch.setattr(publish_cmd, "_publish", fake_publish)

        result = runner.invoke(
            app,
            ["publish", "shop:product", "PRODUCT_DELETED", "-p", '{"productId": "p1"}', "-c", "r1"],
        )

        assert result.exit_code == 0, result.output
        channel, event = published[0]
        assert channel == "shop:product"
        assert event.event_type == "PRODUCT_DELETED"
        assert event.payload == {"productId": "p1"}
        assert event.correlation_id == "r1"
        assert f"Published {event.event_id} to shop:product (2 receivers)" in result.output

    @pytest.mark.parametrize(
        ("payload", "message"),
        [
            ("{not json", "invalid payload JSON"),
            ("[1, 2]", "payload must be a JSON object"),
        ],
    )
    def test_rejects_bad_payload(self, payload: str, message: str) -> None:
        result = runner.invoke(
            app, ["publish", "shop:product", "PRODUCT_DELETED", "--payload", payload]
        )

        assert result.exit_code == 2
        assert message in result.output


class TestInvalidateCommand:
    """Tests for `cachesync invalidate`."""

    def test_deletes_matching_keys(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def fake_invalidate(pattern: str) -> int:
            return 4

        monkeypatch.setattr(invalidate_cmd, "_invalidate", fake_invalidate)

        result = runner.invoke(app, ["invalidate", "product:*"])

        assert result.exit_code == 0, result.output
        assert "Deleted 4 keys matching product:*" in result.output

    def test_wildcard_requires_confirmation(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls: list[str] = []

        async def fake_invalidate(pattern: str) -> int:
            calls.append(pattern)
            return 0

        monkeypatch.setattr(invalidate_cmd, "_invalidate", fake_invalidate)

        result = runner.invoke(app, ["invalidate", "*"], input="n\n")

        assert result.exit_code == 1
        assert calls == []

    def test_yes_skips_confirmation(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def fake_invalidate(pattern: str) -> int:
            return 7

        monkeypatch.setattr(invalidate_cmd, "_invalidate", fake_invalidate)

        result = runner.invoke(app, ["invalidate", "*", "--yes"])

        assert result.exit_code == 0, result.output
        assert "Deleted 7 keys matching *" in result.output


class TestStatsCommand:
    """Tests for `cachesync stats`."""

    def test_prints_prometheus_counters(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def fake_stats() -> dict[str, Any]:
            return {"sweep": {"total_keys": 0}, "metrics": {}, "performance": {}}

        monkeypatch.setattr(stats_cmd, "_stats", fake_stats)

        result = runner.invoke(app, ["stats", "--prometheus"])

        assert result.exit_code == 0, result.output
        assert '"total_keys": 0' in result.output
        assert "cachesync_cache_hits_total" in result.output
