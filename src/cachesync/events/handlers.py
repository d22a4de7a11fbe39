"""Concrete event handlers.

Product handlers log the business context of each mutation. Downstream side
effects (search indexing, wishlist cleanup, notifications) are external
collaborators: pass them in as ``side_effects`` callables and they run
inside the retry loop.

The audit handler writes a structured audit record for each user activity
and classifies security-sensitive and critical actions.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, ClassVar

from cachesync.events.handler import EventHandler
from cachesync.events.publisher import Publisher
from cachesync.events.schemas import (
    BaseEvent,
    ProductCreatedEvent,
    ProductDeletedEvent,
    ProductUpdatedEvent,
    UserActivityEvent,
)

logger = logging.getLogger(__name__)

SideEffect = Callable[[Any], Awaitable[None]]

SECURITY_SENSITIVE_ACTIONS = frozenset(
    {
        "LOGIN_FAILED",
        "PASSWORD_CHANGED",
        "PERMISSION_CHANGED",
        "ADMIN_ACTION",
        "DATA_EXPORT",
        "SETTINGS_CHANGED",
    }
)

CRITICAL_ACTIONS = frozenset(
    {
        "LOGIN_FAILED_MULTIPLE",
        "UNAUTHORIZED_ACCESS_ATTEMPT",
        "PRIVILEGE_ESCALATION",
        "DATA_BREACH_POTENTIAL",
    }
)


class _ProductHandler(EventHandler[Any]):
    max_retries: ClassVar[int] = 3

    def __init__(
        self,
        publisher: Publisher | None = None,
        side_effects: Sequence[SideEffect] = (),
        dlq_channel: str | None = None,
    ):
        super().__init__(publisher=publisher, dlq_channel=dlq_channel)
        self.side_effects = tuple(side_effects)

    async def _run_side_effects(self, event: BaseEvent) -> None:
        for effect in self.side_effects:
            await effect(event)


class ProductCreatedHandler(_ProductHandler):
    """Handles PRODUCT_CREATED events."""

    async def handle(self, event: ProductCreatedEvent) -> None:
        await self.run(event, self._process)

    async def _process(self, event: ProductCreatedEvent) -> None:
        logger.info(
            "Product created - processing event",
            extra={
                "event_id": event.event_id,
                "product_id": event.product_id,
                "product_name": event.payload.get("name"),
                "price": event.payload.get("price"),
                "category": event.payload.get("category"),
                "correlation_id": event.correlation_id,
            },
        )
        await self._run_side_effects(event)


class ProductUpdatedHandler(_ProductHandler):
    """Handles PRODUCT_UPDATED events."""

    async def handle(self, event: ProductUpdatedEvent) -> None:
        await self.run(event, self._process)

    async def _process(self, event: ProductUpdatedEvent) -> None:
        changes = event.changes
        logger.info(
            "Product updated - processing event",
            extra={
                "event_id": event.event_id,
                "product_id": event.product_id,
                "changes": changes,
                "changed_fields": sorted(changes),
                "correlation_id": event.correlation_id,
            },
        )
        await self._run_side_effects(event)


class ProductDeletedHandler(_ProductHandler):
    """Handles PRODUCT_DELETED events."""

    async def handle(self, event: ProductDeletedEvent) -> None:
        await self.run(event, self._process)

    async def _process(self, event: ProductDeletedEvent) -> None:
        logger.info(
            "Product deleted - processing event",
            extra={
                "event_id": event.event_id,
                "product_id": event.product_id,
                "correlation_id": event.correlation_id,
            },
        )
        await self._run_side_effects(event)


def is_security_sensitive_action(action: str) -> bool:
    return action in SECURITY_SENSITIVE_ACTIONS


def requires_immediate_alert(action: str) -> bool:
    return action in CRITICAL_ACTIONS


class AuditEventHandler(EventHandler[UserActivityEvent]):
    """Writes an audit record for each USER_ACTIVITY event.

    Audit records are logged on the ``cachesync.audit`` logger with
    ``audit=True`` so they can be routed to dedicated storage. Critical
    actions are logged at WARNING.
    """

    max_retries: ClassVar[int] = 5

    def __init__(
        self,
        publisher: Publisher | None = None,
        sink: SideEffect | None = None,
        dlq_channel: str | None = None,
    ):
        super().__init__(publisher=publisher, dlq_channel=dlq_channel)
        self.sink = sink
        self.audit_logger = logging.getLogger("cachesync.audit")

    async def handle(self, event: UserActivityEvent) -> None:
        await self.run(event, self._process)

    def build_audit_entry(self, event: UserActivityEvent) -> dict[str, Any]:
        action = event.action
        metadata = event.metadata
        return {
            "audit": True,
            "event_id": event.event_id,
            "event_type": event.event_type,
            "user_id": event.user_id,
            "action": action,
            "timestamp": event.timestamp.isoformat(),
            "correlation_id": event.correlation_id,
            "metadata": {
                "ip": metadata.get("ip"),
                "userAgent": metadata.get("userAgent"),
                "method": metadata.get("method"),
                "path": metadata.get("path"),
                **metadata,
            },
            "security_sensitive": is_security_sensitive_action(action),
            "requires_alert": requires_immediate_alert(action),
        }

    async def _process(self, event: UserActivityEvent) -> None:
        entry = self.build_audit_entry(event)
        level = logging.WARNING if entry["requires_alert"] else logging.INFO
        self.audit_logger.log(level, f"Audit: {entry['action']}", extra=entry)
        if self.sink is not None:
            await self.sink(entry)
