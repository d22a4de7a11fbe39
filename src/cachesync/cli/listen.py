"""CLI command for running event handlers and the consistency sweep.

Usage:
    cachesync listen
    cachesync listen --log-level debug --no-json
    cachesync listen --metrics-port 9108
"""

from __future__ import annotations

import asyncio
import signal

import typer

app = typer.Typer(help="Run event handlers and the cache consistency sweep")


@app.callback(invoke_without_command=True)
def listen(
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level: debug, info, warning, error (default from LOG_LEVEL)",
    ),
    json_logs: bool | None = typer.Option(
        None,
        "--json/--no-json",
        help="Emit JSON logs (default from LOG_JSON)",
    ),
    sweep: bool = typer.Option(
        True,
        "--sweep/--no-sweep",
        help="Run the periodic consistency sweep",
    ),
    metrics_port: int | None = typer.Option(
        None,
        "--metrics-port",
        help="Serve Prometheus metrics over HTTP on this port",
    ),
) -> None:
    """Subscribe to the product and audit channels until interrupted."""
    from cachesync.config import settings
    from cachesync.observability.logging import configure_logging
    from cachesync.observability.metrics import get_metrics

    configure_logging(
        json_format=settings.log_json if json_logs is None else json_logs,
        level=log_level or settings.log_level,
    )
    if metrics_port is not None:
        get_metrics().serve(metrics_port)
    asyncio.run(_run(sweep))


async def _run(sweep: bool) -> None:
    from cachesync.cache.consistency import ConsistencyMonitor
    from cachesync.cache.redis import RedisConnection
    from cachesync.cache.store import CacheStore
    from cachesync.config import settings
    from cachesync.events.runtime import PubSubRuntime

    connection = RedisConnection(settings)
    try:
        await connection.connect()
    except Exception as e:
        typer.echo(f"Error: could not connect to Redis: {e}", err=True)
        raise typer.Exit(code=1) from e

    monitor = ConsistencyMonitor(CacheStore(connection), settings)
    runtime = PubSubRuntime(connection, settings)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        if sweep:
            await monitor.start()
        if not await runtime.start():
            typer.echo("Warning: event handling is not running", err=True)
        await stop_event.wait()
    finally:
        await runtime.stop()
        await monitor.stop()
        await connection.disconnect()
