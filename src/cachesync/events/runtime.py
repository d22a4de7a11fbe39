"""Runtime wiring for cachesync pub/sub.

Builds the subscriber and handlers at process start and registers them on
the product and audit channels. Event handling is not critical for serving
requests: a failed start is logged and the process carries on without it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cachesync.config import Settings, settings
from cachesync.events.handler import EventHandler
from cachesync.events.handlers import (
    AuditEventHandler,
    ProductCreatedHandler,
    ProductDeletedHandler,
    ProductUpdatedHandler,
)
from cachesync.events.publisher import EventPublisher, Publisher
from cachesync.events.schemas import BaseEvent, Channels, EventType
from cachesync.events.subscriber import EventSubscriber

if TYPE_CHECKING:
    from cachesync.cache.redis import RedisConnection

logger = logging.getLogger(__name__)


class ProductEventRouter:
    """Dispatches product-channel events to a handler by ``eventType``."""

    def __init__(self, handlers: dict[str, EventHandler]):
        self.handlers = handlers

    async def __call__(self, event: BaseEvent) -> None:
        handler = self.handlers.get(event.event_type)
        if handler is None:
            logger.warning(
                f"Unknown event type on product channel: {event.event_type}",
                extra={"event_type": event.event_type, "event_id": event.event_id},
            )
            return
        await handler.handle(event)


class PubSubRuntime:
    """Owns the subscriber and the handlers registered on it.

    Example:
        runtime = PubSubRuntime(connection)
        await runtime.start()
        ...
        await runtime.stop()
    """

    def __init__(
        self,
        connection: RedisConnection,
        config: Settings | None = None,
        publisher: Publisher | None = None,
        subscriber: EventSubscriber | None = None,
    ):
        self.config = config or settings
        self.channels = Channels(prefix=self.config.event_channel_prefix)
        self.publisher = publisher or EventPublisher(connection)
        self.subscriber = subscriber or EventSubscriber(connection, self.config)

        dlq = self.channels.dlq
        publisher = self.publisher
        self.product_router = ProductEventRouter(
            {
                EventType.PRODUCT_CREATED.value: ProductCreatedHandler(publisher, dlq_channel=dlq),
                EventType.PRODUCT_UPDATED.value: ProductUpdatedHandler(publisher, dlq_channel=dlq),
                EventType.PRODUCT_DELETED.value: ProductDeletedHandler(publisher, dlq_channel=dlq),
            }
        )
        self.audit_handler = AuditEventHandler(publisher, dlq_channel=dlq)
        self._started = False

    @property
    def is_ready(self) -> bool:
        return self._started

    async def start(self) -> bool:
        """Connect the subscriber and register handlers.

        Returns:
            True if event handling is running
        """
        if self._started:
            logger.warning("Pub/Sub runtime already started")
            return True

        try:
            await self.subscriber.initialize()
            if not self.subscriber.is_connected:
                logger.warning("Pub/Sub runtime not started, subscriber is not connected")
                return False

            await self.subscriber.subscribe(self.channels.product, self.product_router)
            await self.subscriber.subscribe(self.channels.audit, self._handle_audit_event)
        except Exception as e:
            logger.error(f"Failed to start Pub/Sub runtime: {e}")
            try:
                await self.subscriber.disconnect()
            except Exception as close_error:
                logger.debug(f"Error closing subscriber after failed start: {close_error}")
            return False

        self._started = True
        logger.info(
            "Pub/Sub runtime started",
            extra={"channels": self.subscriber.subscribed_channels},
        )
        return True

    async def stop(self) -> None:
        if not self._started:
            return
        try:
            await self.subscriber.disconnect()
        except Exception as e:
            logger.error(f"Error stopping Pub/Sub runtime: {e}")
        self._started = False
        logger.info("Pub/Sub runtime stopped")

    async def _handle_audit_event(self, event: BaseEvent) -> None:
        if event.event_type != EventType.USER_ACTIVITY.value:
            logger.warning(
                f"Unexpected event type on audit channel: {event.event_type}",
                extra={"event_type": event.event_type, "event_id": event.event_id},
            )
            return
        await self.audit_handler.handle(event)
