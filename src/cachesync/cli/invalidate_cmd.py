"""CLI command for deleting cache keys by pattern.

Usage:
    cachesync invalidate "product:*"
    cachesync invalidate "products:*" --yes
"""

from __future__ import annotations

import asyncio

import typer


def invalidate(
    pattern: str = typer.Argument(
        ...,
        help="Glob-style key pattern, e.g. 'product:*'",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Do not ask for confirmation",
    ),
) -> None:
    """Delete every key matching PATTERN and print how many were removed."""
    if not yes and pattern in {"*", "**"}:
        typer.confirm(f"Delete ALL keys matching {pattern!r}?", abort=True)

    deleted = asyncio.run(_invalidate(pattern))
    typer.echo(f"Deleted {deleted} keys matching {pattern}")


async def _invalidate(pattern: str) -> int:
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
        return await monitor.invalidate_pattern(pattern)
    finally:
        await connection.disconnect()
