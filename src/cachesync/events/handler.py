"""Base class for event handlers.

Handlers run their business operation through ``execute_with_retry``:
failures are retried with exponential backoff, and once retries are
exhausted the last error is re-raised. Callers that own a publisher then
dead-letter the event with ``send_to_dlq``.

Handlers may see the same event more than once, so operations must be
idempotent.

Example:
    class ProductCreatedHandler(EventHandler[ProductCreatedEvent]):
        max_retries = 3

        async def handle(self, event: ProductCreatedEvent) -> None:
            await self.run(event, self._index_product)
"""

from __future__ import annotations

import asyncio
import logging
import traceback
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime
from typing import Any, ClassVar, Generic, TypeVar

from cachesync.config import settings
from cachesync.events.publisher import Publisher
from cachesync.events.schemas import CHANNELS, BaseEvent, DLQEnvelope, DLQError
from cachesync.observability.logging import LogContext
from cachesync.observability.metrics import record_dead_lettered, record_handler_retry

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=BaseEvent)


class EventHandler(ABC, Generic[E]):
    """Retry, logging and dead-letter support shared by all handlers."""

    max_retries: ClassVar[int] = settings.event_max_retries
    retry_delay: ClassVar[float] = settings.event_retry_delay

    def __init__(self, publisher: Publisher | None = None, dlq_channel: str | None = None):
        self.publisher = publisher
        self.dlq_channel = dlq_channel or CHANNELS.dlq

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    async def handle(self, event: E) -> None:
        """Process one event. Implementations call ``execute_with_retry``."""

    async def __call__(self, event: E) -> None:
        await self.handle(event)

    async def run(self, event: E, operation: Callable[[E], Awaitable[None]]) -> None:
        """Run ``operation`` for ``event`` with retries, dead-lettering on exhaustion.

        Re-raises the final error after it has been dead-lettered.
        """
        with LogContext(correlation_id=event.correlation_id, event_id=event.event_id):
            self.log_event_received(event)
            try:
                await self.execute_with_retry(lambda: operation(event), event.event_id)
            except Exception as e:
                self.log_event_error(event, e)
                await self.send_to_dlq(event, e, self.publisher)
                raise
            self.log_event_success(event)

    async def execute_with_retry(
        self, operation: Callable[[], Awaitable[Any]], event_id: str
    ) -> None:
        """Invoke ``operation``, retrying up to ``max_retries`` times.

        The delay before retry ``n`` (starting at 1) is
        ``retry_delay * 2 ** (n - 1)`` seconds.

        Raises:
            The last error once ``max_retries + 1`` attempts have failed
        """
        attempts = max(self.max_retries, 0) + 1

        for attempt in range(1, attempts):
            try:
                await operation()
                return
            except Exception as e:
                logger.warning(
                    f"Event handling failed (attempt {attempt}/{attempts}), retrying",
                    extra={
                        "event_id": event_id,
                        "attempt": attempt,
                        "max_retries": self.max_retries,
                        "error": str(e),
                    },
                )
            record_handler_retry(self.name)
            await asyncio.sleep(self.retry_delay * 2 ** (attempt - 1))

        try:
            await operation()
        except Exception as e:
            logger.error(
                "Event handling failed after all retries",
                extra={
                    "event_id": event_id,
                    "attempts": attempts,
                    "error": str(e),
                    "stack": _format_stack(e),
                },
            )
            raise

    def log_event_received(self, event: E) -> None:
        logger.info(
            f"Received {event.event_type} event",
            extra={
                "event_id": event.event_id,
                "event_type": event.event_type,
                "correlation_id": event.correlation_id,
                "timestamp": event.timestamp.isoformat(),
            },
        )

    def log_event_success(self, event: E) -> None:
        logger.info(
            f"Successfully processed {event.event_type} event",
            extra={
                "event_id": event.event_id,
                "event_type": event.event_type,
                "correlation_id": event.correlation_id,
            },
        )

    def log_event_error(self, event: E, error: BaseException) -> None:
        logger.error(
            f"Error processing {event.event_type} event",
            extra={
                "event_id": event.event_id,
                "event_type": event.event_type,
                "correlation_id": event.correlation_id,
                "error": str(error),
                "stack": _format_stack(error),
            },
        )

    async def send_to_dlq(
        self,
        event: E,
        error: BaseException,
        publisher: Publisher | None = None,
    ) -> None:
        """Publish ``event`` and ``error`` to the dead-letter channel.

        Without a publisher the failure is only logged. A failed DLQ publish
        is logged and swallowed.
        """
        envelope = DLQEnvelope(
            original_event=event,
            error=DLQError(message=str(error), stack=_format_stack(error)),
        )

        logger.error(
            f"Event {event.event_id} ({event.event_type}) moved to dead-letter queue",
            extra={
                "event_id": event.event_id,
                "event_type": event.event_type,
                "error": str(error),
            },
        )
        record_dead_lettered(event.event_type)

        if publisher is None:
            return

        try:
            await publisher.publish(self.dlq_channel, envelope)
        except Exception as e:
            logger.error(
                f"Failed to publish event to DLQ: {e}",
                extra={"event_id": event.event_id, "channel": self.dlq_channel},
            )

    @staticmethod
    def validate_event(candidate: Any) -> bool:
        """Check that ``candidate`` has the structure of an event.

        Accepts event instances and wire-style mappings with string
        ``eventId``/``eventType`` and a ``datetime`` ``timestamp``.
        """
        if isinstance(candidate, BaseEvent):
            return (
                isinstance(candidate.event_id, str)
                and isinstance(candidate.event_type, str)
                and isinstance(candidate.timestamp, datetime)
            )
        if isinstance(candidate, Mapping):
            return (
                isinstance(candidate.get("eventId"), str)
                and isinstance(candidate.get("eventType"), str)
                and isinstance(candidate.get("timestamp"), datetime)
            )
        return False


def _format_stack(error: BaseException) -> str | None:
    if error.__traceback__ is None:
        return None
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))
