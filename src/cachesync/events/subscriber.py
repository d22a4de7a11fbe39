"""Event subscription over Redis Pub/Sub.

The subscriber owns a dedicated Redis client: once a connection enters
subscribe mode it can only issue subscription commands, so it cannot share
the pool used for cache operations and PUBLISH.

Each channel maps to one handler. Inbound messages are decoded into events
and dispatched in their own task, so a slow or retrying handler never holds
up the receive loop or other channels. Malformed messages are logged and
dropped. Handler failures are logged at the dispatch boundary.

On connection loss the loop reconnects with exponential backoff and
re-subscribes every registered channel. When reconnection attempts are
exhausted, delivery is disabled and logged as critical; the host process
keeps running.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from cachesync.config import Settings
from cachesync.errors import EventDecodeError, SubscriberNotInitializedError
from cachesync.events.schemas import BaseEvent, decode_event
from cachesync.observability.metrics import record_event_received

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from redis.asyncio.client import PubSub

    from cachesync.cache.redis import RedisConnection

logger = logging.getLogger(__name__)

MessageHandler = Callable[[BaseEvent], Awaitable[None] | None]

# How long a single get_message call waits before the loop re-checks state
POLL_TIMEOUT = 1.0


class EventSubscriber:
    """Routes messages from Redis channels to registered handlers.

    Example:
        subscriber = EventSubscriber(connection)
        await subscriber.initialize()
        await subscriber.subscribe(CHANNELS.product, handle_product_event)

        # On shutdown
        await subscriber.disconnect()
    """

    def __init__(
        self,
        connection: RedisConnection,
        config: Settings | None = None,
        poll_timeout: float = POLL_TIMEOUT,
    ):
        self.connection = connection
        self.config = config or connection.config
        self.poll_timeout = poll_timeout
        self._client: Redis | None = None
        self._pubsub: PubSub | None = None
        self._handlers: dict[str, MessageHandler] = {}
        self._connected = False
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._dispatch_tasks: set[asyncio.Task[None]] = set()

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def subscribed_channels(self) -> list[str]:
        return list(self._handlers)

    async def initialize(self) -> None:
        """Open the dedicated connection and start the receive loop."""
        if self.connection.disabled:
            logger.warning("Redis is disabled, subscriber will not be initialized")
            return

        if self._connected:
            logger.warning("Subscriber already initialized")
            return

        try:
            await self._connect()
        except Exception as e:
            logger.error(f"Failed to initialize subscriber: {e}")
            raise

        self._running = True
        self._task = asyncio.create_task(self._listen_loop())
        logger.info("Subscriber client connected")

    async def _connect(self) -> None:
        client = self.connection.create_subscriber_client()
        try:
            await client.ping()
        except Exception:
            await client.aclose()
            raise
        self._client = client
        self._pubsub = client.pubsub(ignore_subscribe_messages=True)
        self._connected = True

    async def _close_client(self) -> None:
        pubsub, client = self._pubsub, self._client
        self._pubsub = None
        self._client = None
        self._connected = False
        if pubsub is not None:
            try:
                await pubsub.aclose()
            except Exception as e:
                logger.debug(f"Error closing pubsub: {e}")
        if client is not None:
            try:
                await client.aclose()
            except Exception as e:
                logger.debug(f"Error closing subscriber client: {e}")

    async def subscribe(self, channel: str, handler: MessageHandler) -> None:
        """Register ``handler`` for ``channel``.

        Subscribing again to a channel replaces its handler and keeps the
        existing Redis subscription.

        Raises:
            SubscriberNotInitializedError: If ``initialize()`` has not succeeded
        """
        if not self._connected or self._pubsub is None:
            logger.error(f"Cannot subscribe to {channel}, subscriber not initialized")
            raise SubscriberNotInitializedError(channel)

        if channel in self._handlers:
            self._handlers[channel] = handler
            logger.info(f"Replaced handler for channel {channel}")
            return

        self._handlers[channel] = handler
        try:
            await self._pubsub.subscribe(channel)
        except Exception as e:
            self._handlers.pop(channel, None)
            logger.error(f"Failed to subscribe to channel {channel}: {e}")
            raise

        handler_name = getattr(handler, "__name__", handler.__class__.__name__)
        logger.info(
            f"Subscribed to channel {channel}",
            extra={"channel": channel, "handler": handler_name},
        )

    async def unsubscribe(self, channel: str) -> None:
        """Remove the handler for ``channel`` and drop the Redis subscription."""
        if not self._connected or self._pubsub is None:
            logger.warning(f"Cannot unsubscribe from {channel}, subscriber not initialized")
            return

        self._handlers.pop(channel, None)
        try:
            await self._pubsub.unsubscribe(channel)
        except Exception as e:
            logger.error(f"Failed to unsubscribe from channel {channel}: {e}")
            return
        logger.info(f"Unsubscribed from channel {channel}")

    async def disconnect(self, drain_timeout: float = 5.0) -> None:
        """Stop receiving, give in-flight handlers ``drain_timeout`` seconds, then close."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._dispatch_tasks:
            _done, pending = await asyncio.wait(self._dispatch_tasks, timeout=drain_timeout)
            for task in pending:
                task.cancel()

        self._handlers.clear()
        await self._close_client()
        logger.info("Subscriber disconnected")

    async def drain(self) -> None:
        """Wait until every dispatched message has been handled."""
        while self._dispatch_tasks:
            await asyncio.gather(*self._dispatch_tasks, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Receive loop
    # -------------------------------------------------------------------------

    async def _listen_loop(self) -> None:
        while self._running:
            try:
                pubsub = self._pubsub
                if pubsub is None or not pubsub.subscribed:
                    await asyncio.sleep(self.poll_timeout)
                    continue

                message = await pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=self.poll_timeout,
                )
                if message is None:
                    continue

                if message["type"] == "message":
                    self._dispatch(message["channel"], message["data"])

            except asyncio.CancelledError:
                break
            except (RedisConnectionError, RedisTimeoutError, OSError) as e:
                logger.warning(f"Subscriber connection lost: {e}")
                self._connected = False
                if not await self._reconnect():
                    break
            except Exception as e:
                logger.error(f"Error in subscriber loop: {e}")
                await asyncio.sleep(self.poll_timeout)

    async def _reconnect(self) -> bool:
        """Reconnect with exponential backoff and restore subscriptions."""
        max_attempts = self.config.subscriber_max_reconnect_attempts
        await self._close_client()

        for attempt in range(1, max_attempts + 1):
            delay = min(
                self.config.subscriber_reconnect_delay_initial * 2 ** (attempt - 1),
                self.config.subscriber_reconnect_delay_max,
            )
            logger.info(
                f"Reconnecting subscriber (attempt {attempt}/{max_attempts}) in {delay:.1f}s"
            )
            await asyncio.sleep(delay)

            try:
                await self._connect()
                channels = list(self._handlers)
                if channels and self._pubsub is not None:
                    await self._pubsub.subscribe(*channels)
            except Exception as e:
                logger.warning(f"Subscriber reconnect attempt {attempt} failed: {e}")
                await self._close_client()
                continue

            logger.info(
                "Subscriber reconnected",
                extra={"attempt": attempt, "channels": list(self._handlers)},
            )
            return True

        logger.critical(
            f"Subscriber reconnection failed after {max_attempts} attempts, "
            "event delivery disabled"
        )
        self._running = False
        return False

    def _dispatch(self, channel: str, data: bytes | str) -> None:
        task = asyncio.create_task(self._handle_message(channel, data))
        self._dispatch_tasks.add(task)
        task.add_done_callback(self._dispatch_tasks.discard)

    async def _handle_message(self, channel: str, data: bytes | str) -> None:
        logger.debug(f"Message received on channel {channel}")

        try:
            event = decode_event(data)
        except ValueError as e:
            logger.error(
                str(EventDecodeError(channel, str(e))),
                extra={"channel": channel},
            )
            record_event_received(channel, "malformed")
            return

        handler = self._handlers.get(channel)
        if handler is None:
            logger.warning(f"No handler registered for channel {channel}")
            record_event_received(channel, "unhandled")
            return

        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                f"Handler for channel {channel} failed: {e}",
                extra={"channel": channel, "event_id": event.event_id},
            )
            record_event_received(channel, "handler_error")
            return

        record_event_received(channel, "dispatched")
