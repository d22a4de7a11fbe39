"""Exception types raised by cachesync.

Store operation failures are not wrapped: they surface as
``redis.exceptions.RedisError`` (or a JSON decode error) to the immediate
caller, which decides whether to degrade or propagate.
"""

from __future__ import annotations


class CacheSyncError(Exception):
    """Base exception for cachesync errors."""


class SubscriberNotInitializedError(CacheSyncError):
    """Raised when subscribing before the subscriber connection exists."""

    def __init__(self, channel: str):
        self.channel = channel
        super().__init__(
            f"Subscriber not initialized, cannot subscribe to {channel}. Call initialize() first."
        )


class EventDecodeError(CacheSyncError):
    """Raised when an inbound message cannot be turned into an event."""

    def __init__(self, channel: str, reason: str):
        self.channel = channel
        self.reason = reason
        super().__init__(f"Malformed message on channel {channel}: {reason}")


class ProductNotFoundError(CacheSyncError):
    """Raised when a product does not exist in the record store."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class InvalidProductError(CacheSyncError):
    """Raised when a product request is malformed (e.g. empty identifier)."""

    def __init__(self, text: str):
        self.text = text
        super().__init__(text)
