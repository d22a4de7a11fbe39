"""Event publishing over Redis Pub/Sub.

Publishing is fire-and-forget: the publisher serializes the event, hands it
to Redis and keeps no copy. Failures are logged with the channel and
re-raised; mutation call sites treat publishing as best-effort and swallow
the error after logging.

Example:
    publisher = EventPublisher(connection)
    await publisher.publish(CHANNELS.product, ProductDeletedEvent.create("p1"))
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

from cachesync.events.schemas import BaseEvent, DLQEnvelope, encode_message
from cachesync.observability.metrics import record_event_published

if TYPE_CHECKING:
    from cachesync.cache.redis import RedisConnection

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    """Anything that can publish a message to a channel."""

    async def publish(
        self, channel: str, message: BaseEvent | DLQEnvelope | dict[str, Any]
    ) -> int: ...


class EventPublisher:
    """Publishes events to Redis channels over the shared connection."""

    def __init__(self, connection: RedisConnection):
        self.connection = connection

    async def publish(
        self, channel: str, message: BaseEvent | DLQEnvelope | dict[str, Any]
    ) -> int:
        """Serialize ``message`` and publish it to ``channel``.

        Returns:
            Number of subscribers that received the message

        Raises:
            Any serialization or transport error, after logging it
        """
        try:
            data = encode_message(message)
            receivers = int(await self.connection.client.publish(channel, data))
        except Exception as e:
            logger.error(
                f"Failed to publish message to channel {channel}: {e}",
                extra={"channel": channel, "error": str(e)},
            )
            record_event_published(channel, "failure")
            raise

        record_event_published(channel, "success")
        logger.info(
            f"Published message to channel {channel}",
            extra={"channel": channel, "message_size": len(data), "receivers": receivers},
        )
        return receivers
