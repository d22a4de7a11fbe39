"""Event propagation over Redis Pub/Sub.

- Schemas: typed events and the JSON wire format
- EventPublisher / EventSubscriber: fire-and-forget delivery
- EventHandler: retry with backoff and dead-lettering
- PubSubRuntime: registers handlers at process start
"""

from cachesync.events.handler import EventHandler
from cachesync.events.handlers import (
    AuditEventHandler,
    ProductCreatedHandler,
    ProductDeletedHandler,
    ProductUpdatedHandler,
)
from cachesync.events.publisher import EventPublisher, Publisher
from cachesync.events.runtime import ProductEventRouter, PubSubRuntime
from cachesync.events.schemas import (
    CHANNELS,
    BaseEvent,
    Channels,
    DLQEnvelope,
    DLQError,
    EventType,
    ProductCreatedEvent,
    ProductDeletedEvent,
    ProductUpdatedEvent,
    UserActivityEvent,
    decode_event,
    encode_message,
    generate_event_id,
)
from cachesync.events.subscriber import EventSubscriber

__all__ = [
    # Schemas
    "CHANNELS",
    "BaseEvent",
    "Channels",
    "DLQEnvelope",
    "DLQError",
    "EventType",
    "ProductCreatedEvent",
    "ProductDeletedEvent",
    "ProductUpdatedEvent",
    "UserActivityEvent",
    "decode_event",
    "encode_message",
    "generate_event_id",
    # Delivery
    "EventPublisher",
    "EventSubscriber",
    "Publisher",
    # Handlers
    "AuditEventHandler",
    "EventHandler",
    "ProductCreatedHandler",
    "ProductDeletedHandler",
    "ProductUpdatedHandler",
    # Runtime
    "ProductEventRouter",
    "PubSubRuntime",
]
