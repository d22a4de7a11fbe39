"""CLI command for inspecting cache consistency.

Usage:
    cachesync stats
    cachesync stats --prometheus
"""

from __future__ import annotations

import asyncio
from typing import Any

import typer

app = typer.Typer(help="Run one consistency sweep and print cache metrics")


@app.callback(invoke_without_command=True)
def stats(
    prometheus: bool = typer.Option(
        False,
        "--prometheus",
        help="Also print the Prometheus counters in exposition format",
    ),
) -> None:
    """Sample cached products and print the sweep summary and metrics as JSON."""
    from rich.console import Console

    from cachesync.observability.metrics import get_metrics

    console = Console()
    result = asyncio.run(_stats())
    console.print_json(data=result)
    if prometheus:
        typer.echo(get_metrics().generate_latest().decode(), nl=False)


async def _stats() -> dict[str, Any]:
    from cachesync.cache.consistency import ConsistencyMonitor
    from cachesync.cache.redis import RedisConnection
    from cachesync.cache.store import CacheStore
    from cachesync.config import settings

    connection = RedisConnection(settings)
    try:
        await connection.connect()
    except Exception as e:
        typer.echo(f"Error: could not connect to Redis: {e}", err=True)
        raise typer.Exit(code=1) from e

    try:
        monitor = ConsistencyMonitor(CacheStore(connection), settings)
        summary = await monitor.perform_consistency_check()
        return {
            "sweep": summary,
            "metrics": monitor.get_metrics().to_dict(),
            "performance": monitor.get_performance_stats(),
        }
    finally:
        await connection.disconnect()
