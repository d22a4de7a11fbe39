"""Event schemas for cachesync.

Events are immutable value objects created at the call site that performed
a mutation, published once, and never retained by the publisher.

Wire format (JSON, camelCase):
    {
        "eventId": "evt_1700000000000_k3j9x0a1b2c",
        "eventType": "PRODUCT_CREATED",
        "timestamp": "2026-01-10T12:34:56.789000+00:00",
        "correlationId": "req-123",          # optional
        "payload": {"productId": "p1", ...}
    }
"""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import orjson

from cachesync.config import settings

_BASE36 = string.digits + string.ascii_lowercase


def generate_event_id() -> str:
    """Create an event ID of the form ``evt_<unix-ms>_<base36>``.

    IDs sort by creation time. Uniqueness relies on the random suffix.
    """
    suffix = "".join(random.choices(_BASE36, k=11))
    return f"evt_{int(time.time() * 1000)}_{suffix}"


def _now() -> datetime:
    return datetime.now(UTC)


class EventType(str, Enum):
    """Discriminator carried in ``eventType``."""

    PRODUCT_CREATED = "PRODUCT_CREATED"
    PRODUCT_UPDATED = "PRODUCT_UPDATED"
    PRODUCT_DELETED = "PRODUCT_DELETED"
    USER_ACTIVITY = "USER_ACTIVITY"
    BATCH = "BATCH"


@dataclass(frozen=True)
class Channels:
    """Static channel names, built from a shared prefix."""

    prefix: str = settings.event_channel_prefix

    @property
    def product(self) -> str:
        return f"{self.prefix}product"

    @property
    def audit(self) -> str:
        return f"{self.prefix}audit"

    @property
    def notifications(self) -> str:
        return f"{self.prefix}notifications"

    @property
    def dlq(self) -> str:
        return f"{self.prefix}dlq"

    @property
    def health(self) -> str:
        return f"{self.prefix}health"

    def for_environment(self, channel: str, env: str | None = None) -> str:
        """Scope a channel to a deployment environment, e.g. ``prod:<channel>``."""
        return f"{env or settings.env}:{channel}"


CHANNELS = Channels()


@dataclass(frozen=True, slots=True, kw_only=True)
class BaseEvent:
    """Common fields of every event.

    ``payload`` holds the mutation-specific data exactly as it travels on
    the wire, so unknown event types still round-trip.
    """

    event_type: str
    event_id: str = field(default_factory=generate_event_id)
    timestamp: datetime = field(default_factory=_now)
    correlation_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "eventId": self.event_id,
            "eventType": str(self.event_type),
            "timestamp": self.timestamp.isoformat(),
        }
        if self.correlation_id is not None:
            data["correlationId"] = self.correlation_id
        data["payload"] = self.payload
        return data


@dataclass(frozen=True, slots=True, kw_only=True)
class ProductCreatedEvent(BaseEvent):
    """Payload: productId, name, price, category."""

    event_type: str = EventType.PRODUCT_CREATED.value

    @classmethod
    def create(
        cls,
        product_id: str,
        name: str,
        price: float,
        category: str,
        correlation_id: str | None = None,
    ) -> ProductCreatedEvent:
        return cls(
            correlation_id=correlation_id,
            payload={"productId": product_id, "name": name, "price": price, "category": category},
        )

    @property
    def product_id(self) -> str:
        return str(self.payload["productId"])


@dataclass(frozen=True, slots=True, kw_only=True)
class ProductUpdatedEvent(BaseEvent):
    """Payload: productId, changes (field -> new value)."""

    event_type: str = EventType.PRODUCT_UPDATED.value

    @classmethod
    def create(
        cls,
        product_id: str,
        changes: dict[str, Any],
        correlation_id: str | None = None,
    ) -> ProductUpdatedEvent:
        return cls(
            correlation_id=correlation_id,
            payload={"productId": product_id, "changes": changes},
        )

    @property
    def product_id(self) -> str:
        return str(self.payload["productId"])

    @property
    def changes(self) -> dict[str, Any]:
        return dict(self.payload.get("changes") or {})


@dataclass(frozen=True, slots=True, kw_only=True)
class ProductDeletedEvent(BaseEvent):
    """Payload: productId."""

    event_type: str = EventType.PRODUCT_DELETED.value

    @classmethod
    def create(cls, product_id: str, correlation_id: str | None = None) -> ProductDeletedEvent:
        return cls(correlation_id=correlation_id, payload={"productId": product_id})

    @property
    def product_id(self) -> str:
        return str(self.payload["productId"])


@dataclass(frozen=True, slots=True, kw_only=True)
class UserActivityEvent(BaseEvent):
    """Payload: userId, action, metadata (ip, userAgent, method, path, ...)."""

    event_type: str = EventType.USER_ACTIVITY.value

    @classmethod
    def create(
        cls,
        user_id: str,
        action: str,
        metadata: dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> UserActivityEvent:
        return cls(
            correlation_id=correlation_id,
            payload={"userId": user_id, "action": action, "metadata": metadata or {}},
        )

    @property
    def user_id(self) -> str:
        return str(self.payload["userId"])

    @property
    def action(self) -> str:
        return str(self.payload["action"])

    @property
    def metadata(self) -> dict[str, Any]:
        return dict(self.payload.get("metadata") or {})


AnyEvent = ProductCreatedEvent | ProductUpdatedEvent | ProductDeletedEvent | UserActivityEvent

EVENT_CLASSES: dict[str, type[BaseEvent]] = {
    EventType.PRODUCT_CREATED.value: ProductCreatedEvent,
    EventType.PRODUCT_UPDATED.value: ProductUpdatedEvent,
    EventType.PRODUCT_DELETED.value: ProductDeletedEvent,
    EventType.USER_ACTIVITY.value: UserActivityEvent,
}


@dataclass(frozen=True, slots=True)
class DLQError:
    """Failure recorded alongside a dead-lettered event."""

    message: str
    stack: str | None
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "stack": self.stack,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class DLQEnvelope:
    """An event whose handler exhausted its retries."""

    original_event: BaseEvent
    error: DLQError
    failed_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "originalEvent": self.original_event.to_dict(),
            "error": self.error.to_dict(),
            "failedAt": self.failed_at.isoformat(),
        }


def event_from_dict(data: dict[str, Any]) -> BaseEvent:
    """Build an event from its wire dict.

    Unknown event types decode to a plain ``BaseEvent``.

    Raises:
        ValueError: If required fields are missing or mistyped
    """
    if not isinstance(data, dict):
        raise ValueError("event must be a JSON object")

    event_id = data.get("eventId")
    event_type = data.get("eventType")
    raw_timestamp = data.get("timestamp")
    if not isinstance(event_id, str) or not isinstance(event_type, str):
        raise ValueError("eventId and eventType must be strings")
    if not isinstance(raw_timestamp, str):
        raise ValueError("timestamp must be an ISO-8601 string")

    payload = data.get("payload")
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValueError("payload must be a JSON object")

    correlation_id = data.get("correlationId")
    event_cls = EVENT_CLASSES.get(event_type, BaseEvent)
    return event_cls(
        event_type=event_type,
        event_id=event_id,
        timestamp=datetime.fromisoformat(raw_timestamp),
        correlation_id=correlation_id if isinstance(correlation_id, str) else None,
        payload=payload,
    )


def encode_message(message: BaseEvent | DLQEnvelope | dict[str, Any]) -> bytes:
    """Serialize an event, DLQ envelope or plain mapping to JSON bytes."""
    if isinstance(message, (BaseEvent, DLQEnvelope)):
        return orjson.dumps(message.to_dict())
    return orjson.dumps(message)


def decode_event(data: bytes | str) -> BaseEvent:
    """Deserialize JSON bytes into an event.

    Raises:
        ValueError: On invalid JSON or a malformed event
    """
    return event_from_dict(orjson.loads(data))
