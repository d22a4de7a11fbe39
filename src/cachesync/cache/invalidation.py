"""Cache invalidation specs for record mutations.

Each mutation declares which cache entries it makes obsolete with an
``InvalidationSpec``: exact keys (single records) plus glob patterns (lists
and counts whose contents may have changed). ``apply_invalidation`` deletes
them all, logging and continuing past individual failures.

Example:
    spec = InvalidationSpec.for_product("p1")
    await apply_invalidation(store, spec)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from cachesync.cache.keys import CacheKeys

if TYPE_CHECKING:
    from cachesync.cache.store import CacheStore

logger = logging.getLogger(__name__)


class InvalidationEntity(str, Enum):
    """Logical entity whose cache entries are being invalidated."""

    PRODUCT = "product"
    SESSION = "session"


@dataclass(frozen=True, slots=True)
class InvalidationSpec:
    """Cache keys and patterns affected by a mutation."""

    entity: InvalidationEntity
    keys: tuple[str, ...] = ()
    patterns: tuple[str, ...] = ()

    @classmethod
    def for_product(cls, product_id: str | None = None) -> InvalidationSpec:
        """Entries affected by creating, updating or deleting a product.

        Creation has no single-record entry yet, so ``product_id`` is optional.
        """
        keys = (CacheKeys.product(product_id),) if product_id else ()
        return cls(
            entity=InvalidationEntity.PRODUCT,
            keys=keys,
            patterns=(CacheKeys.PRODUCT_LIST_PATTERN, CacheKeys.PRODUCT_COUNT_PATTERN),
        )

    @classmethod
    def for_session(cls, user_id: str) -> InvalidationSpec:
        return cls(entity=InvalidationEntity.SESSION, keys=(CacheKeys.session(user_id),))


@dataclass(frozen=True, slots=True)
class InvalidationResult:
    """Outcome of applying an invalidation spec."""

    keys_deleted: int
    pattern_keys_deleted: int
    failures: int

    @property
    def ok(self) -> bool:
        return self.failures == 0


async def apply_invalidation(store: CacheStore, spec: InvalidationSpec) -> InvalidationResult:
    """Delete every key and pattern named by ``spec``.

    Never raises: each failure is logged and counted.
    """
    keys_deleted = 0
    pattern_keys_deleted = 0
    failures = 0

    for key in spec.keys:
        try:
            await store.delete(key)
            keys_deleted += 1
        except Exception as e:
            failures += 1
            logger.warning(
                f"Failed to invalidate {key}: {e}",
                extra={"entity": spec.entity.value, "key": key},
            )

    for pattern in spec.patterns:
        try:
            pattern_keys_deleted += await store.delete_by_pattern(pattern)
        except Exception as e:
            failures += 1
            logger.warning(
                f"Failed to invalidate pattern {pattern}: {e}",
                extra={"entity": spec.entity.value, "pattern": pattern},
            )

    logger.info(
        f"Invalidated {spec.entity.value} cache entries",
        extra={
            "entity": spec.entity.value,
            "keys_deleted": keys_deleted,
            "pattern_keys_deleted": pattern_keys_deleted,
            "failures": failures,
        },
    )
    return InvalidationResult(
        keys_deleted=keys_deleted,
        pattern_keys_deleted=pattern_keys_deleted,
        failures=failures,
    )
