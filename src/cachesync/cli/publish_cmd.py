"""CLI command for publishing an event by hand.

Usage:
    cachesync publish cachesync:events:product PRODUCT_DELETED --payload '{"productId": "p1"}'
    cachesync publish cachesync:events:audit USER_ACTIVITY -p '{"userId": "u1", "action": "LOGIN"}'
"""

from __future__ import annotations

import asyncio

import orjson
import typer

from cachesync.events.schemas import BaseEvent


def publish(
    channel: str = typer.Argument(..., help="Channel to publish to"),
    event_type: str = typer.Argument(..., help="Event type, e.g. PRODUCT_CREATED"),
    payload: str = typer.Option(
        "{}",
        "--payload",
        "-p",
        help="Event payload as a JSON object",
    ),
    correlation_id: str | None = typer.Option(
        None,
        "--correlation-id",
        "-c",
        help="Correlation ID to attach to the event",
    ),
) -> None:
    """Publish an EVENT_TYPE event with the given payload to CHANNEL."""
    try:
        data = orjson.loads(payload)
    except orjson.JSONDecodeError as e:
        typer.echo(f"Error: invalid payload JSON: {e}", err=True)
        raise typer.Exit(code=2) from e
    if not isinstance(data, dict):
        typer.echo("Error: payload must be a JSON object", err=True)
        raise typer.Exit(code=2)

    event = BaseEvent(event_type=event_type, correlation_id=correlation_id, payload=data)
    receivers = asyncio.run(_publish(channel, event))
    typer.echo(f"Published {event.event_id} to {channel} ({receivers} receivers)")


async def _publish(channel: str, event: BaseEvent) -> int:
    from cachesync.cache.redis import RedisConnection
    from cachesync.config import settings
    from cachesync.events.publisher import EventPublisher

    connection = RedisConnection(settings)
    try:
        await connection.connect()
    except Exception as e:
        typer.echo(f"Error: could not connect to Redis: {e}", err=True)
        raise typer.Exit(code=1) from e

    try:
        return await EventPublisher(connection).publish(channel, event)
    finally:
        await connection.disconnect()
