"""Product use cases with cache-aside reads and post-commit propagation.

Reads go through the cache and fall back to the repository. Mutations
always hit the repository first; once it succeeds, ``PostCommitHook``
invalidates the affected cache entries and publishes the matching event.
Neither step can fail the mutation: the repository is the source of truth
and the cache converges on the next read.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import TYPE_CHECKING, Any, Protocol

from cachesync.cache.invalidation import InvalidationResult, InvalidationSpec, apply_invalidation
from cachesync.cache.keys import CacheKeys
from cachesync.errors import InvalidProductError, ProductNotFoundError
from cachesync.events.schemas import (
    CHANNELS,
    BaseEvent,
    ProductCreatedEvent,
    ProductDeletedEvent,
    ProductUpdatedEvent,
)
from cachesync.observability.logging import correlation_id_var
from cachesync.usecases.models import (
    Product,
    ProductFilter,
    ProductInput,
    ProductPage,
    ProductUpdate,
)

if TYPE_CHECKING:
    from cachesync.cache.consistency import ConsistencyMonitor
    from cachesync.cache.store import CacheStore
    from cachesync.events.publisher import Publisher

logger = logging.getLogger(__name__)

# Cache lifetimes (seconds)
PRODUCT_TTL = 60 * 60
LIST_TTL = 30 * 60

MAX_PAGE_SIZE = 100


class ProductRepository(Protocol):
    """Authoritative record store for products."""

    async def find_by_id(self, product_id: str) -> Product | None: ...

    async def find_all(self, query: dict[str, Any], page: int, limit: int) -> list[Product]: ...

    async def count(self, query: dict[str, Any]) -> int: ...

    async def create(self, data: ProductInput) -> Product: ...

    async def update(self, product_id: str, changes: dict[str, Any]) -> Product: ...

    async def delete(self, product_id: str) -> bool: ...


def _require_id(product_id: str | None, action: str) -> str:
    if product_id is None or not product_id.strip():
        raise InvalidProductError(f"Product ID is required to {action} a product")
    return product_id.strip()


def _current_correlation_id() -> str | None:
    return correlation_id_var.get() or None


class PostCommitHook:
    """Invalidate, then publish, after a successful mutation."""

    def __init__(
        self,
        store: CacheStore,
        publisher: Publisher | None = None,
        channel: str | None = None,
    ):
        self.store = store
        self.publisher = publisher
        self.channel = channel or CHANNELS.product

    async def run(
        self, spec: InvalidationSpec, event: BaseEvent | None = None
    ) -> InvalidationResult:
        """Apply ``spec`` and publish ``event``. Never raises."""
        result = await apply_invalidation(self.store, spec)

        if event is None or self.publisher is None:
            return result

        try:
            await self.publisher.publish(self.channel, event)
        except Exception as e:
            logger.warning(
                f"Failed to publish {event.event_type} after commit: {e}",
                extra={"event_id": event.event_id, "channel": self.channel},
            )
        return result


# -----------------------------------------------------------------------------
# Reads
# -----------------------------------------------------------------------------


class GetProduct:
    """Fetch one product, cache-aside.

    With a ``ConsistencyMonitor`` entries close to expiry are refreshed in
    the background while the cached copy is served.
    """

    def __init__(
        self,
        repository: ProductRepository,
        store: CacheStore,
        monitor: ConsistencyMonitor | None = None,
        ttl: int = PRODUCT_TTL,
    ):
        self.repository = repository
        self.store = store
        self.monitor = monitor
        self.ttl = ttl

    async def execute(self, product_id: str) -> Product | None:
        product_id = _require_id(product_id, "retrieve")
        key = CacheKeys.product(product_id)

        async def fetch() -> dict[str, Any] | None:
            product = await self.repository.find_by_id(product_id)
            return product.to_cache() if product is not None else None

        if self.monitor is not None:
            data = await self.monitor.refresh_ahead(key, fetch, self.ttl)
        else:
            data = await self.store.get_or_set(key, fetch, self.ttl)

        return Product.model_validate(data) if data is not None else None


class ListProducts:
    """Paginated product listing, cached per filter and page."""

    def __init__(self, repository: ProductRepository, store: CacheStore, ttl: int = LIST_TTL):
        self.repository = repository
        self.store = store
        self.ttl = ttl

    async def execute(
        self, product_filter: ProductFilter | None = None, page: int = 1, limit: int = 10
    ) -> ProductPage:
        page = max(1, page)
        limit = max(1, min(MAX_PAGE_SIZE, limit))
        query = (product_filter or ProductFilter()).to_query()
        key = CacheKeys.product_list({"filter": query, "page": page, "limit": limit})

        async def fetch() -> dict[str, Any]:
            products, total = await asyncio.gather(
                self.repository.find_all(query, page, limit),
                self.repository.count(query),
            )
            return ProductPage(
                products=products,
                total=total,
                page=page,
                limit=limit,
                total_pages=math.ceil(total / limit),
            ).to_cache()

        return ProductPage.model_validate(await self.store.get_or_set(key, fetch, self.ttl))


class CountProducts:
    """Product count for a filter, cached per filter."""

    def __init__(self, repository: ProductRepository, store: CacheStore, ttl: int = LIST_TTL):
        self.repository = repository
        self.store = store
        self.ttl = ttl

    async def execute(self, product_filter: ProductFilter | None = None) -> int:
        query = (product_filter or ProductFilter()).to_query()
        key = CacheKeys.product_count(query)
        count = await self.store.get_or_set(key, lambda: self.repository.count(query), self.ttl)
        return int(count)


# -----------------------------------------------------------------------------
# Mutations
# -----------------------------------------------------------------------------


class CreateProduct:
    def __init__(self, repository: ProductRepository, hook: PostCommitHook):
        self.repository = repository
        self.hook = hook

    async def execute(self, data: ProductInput) -> Product:
        product = await self.repository.create(data)
        logger.info("Product created", extra={"product_id": product.id})

        await self.hook.run(
            InvalidationSpec.for_product(),
            ProductCreatedEvent.create(
                product_id=product.id,
                name=product.name,
                price=product.price,
                category=product.category,
                correlation_id=_current_correlation_id(),
            ),
        )
        return product


class UpdateProduct:
    def __init__(self, repository: ProductRepository, hook: PostCommitHook):
        self.repository = repository
        self.hook = hook

    async def execute(self, product_id: str, update: ProductUpdate) -> Product:
        """Apply ``update`` to an existing product.

        Raises:
            InvalidProductError: If ``product_id`` is blank
            ProductNotFoundError: If the product does not exist
        """
        product_id = _require_id(product_id, "update")
        existing = await self.repository.find_by_id(product_id)
        if existing is None:
            raise ProductNotFoundError(product_id)

        changes = update.changes()
        if not changes:
            return existing

        product = await self.repository.update(product_id, changes)
        await self.hook.run(
            InvalidationSpec.for_product(product_id),
            ProductUpdatedEvent.create(
                product_id, changes, correlation_id=_current_correlation_id()
            ),
        )
        return product


class DeleteProduct:
    def __init__(self, repository: ProductRepository, hook: PostCommitHook):
        self.repository = repository
        self.hook = hook

    async def execute(self, product_id: str) -> bool:
        """Delete a product. Returns False if it did not exist."""
        product_id = _require_id(product_id, "delete")
        if await self.repository.find_by_id(product_id) is None:
            return False

        deleted = await self.repository.delete(product_id)
        if deleted:
            await self.hook.run(
                InvalidationSpec.for_product(product_id),
                ProductDeletedEvent.create(product_id, correlation_id=_current_correlation_id()),
            )
        return deleted


class ToggleWishlist:
    def __init__(self, repository: ProductRepository, hook: PostCommitHook):
        self.repository = repository
        self.hook = hook

    async def execute(self, product_id: str, is_wishlist_status: bool) -> Product:
        product_id = _require_id(product_id, "update the wishlist status of")
        if await self.repository.find_by_id(product_id) is None:
            raise ProductNotFoundError(product_id)

        changes = {"isWishlistStatus": is_wishlist_status}
        product = await self.repository.update(product_id, changes)
        await self.hook.run(
            InvalidationSpec.for_product(product_id),
            ProductUpdatedEvent.create(
                product_id, changes, correlation_id=_current_correlation_id()
            ),
        )
        return product
