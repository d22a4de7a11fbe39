"""Tests for the product use cases."""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from cachesync.cache.consistency import ConsistencyMonitor
from cachesync.cache.invalidation import InvalidationSpec
from cachesync.cache.keys import CacheKeys
from cachesync.cache.store import CacheStore
from cachesync.config import Settings
from cachesync.errors import InvalidProductError, ProductNotFoundError
from cachesync.events.schemas import (
    ProductCreatedEvent,
    ProductDeletedEvent,
    ProductUpdatedEvent,
)
from cachesync.observability.logging import LogContext
from cachesync.usecases import (
    CountProducts,
    CreateProduct,
    DeleteProduct,
    GetProduct,
    ListProducts,
    PostCommitHook,
    PriceRange,
    Product,
    ProductFilter,
    ProductInput,
    ProductUpdate,
    ToggleWishlist,
    UpdateProduct,
)
from tests.fakes import FakeRedis


class InMemoryProductRepository:
    """Dict-backed repository that counts reads."""

    def __init__(self, *products: Product):
        self.products = {p.id: p for p in products}
        self.reads = 0
        self._next_id = 100

    async def find_by_id(self, product_id: str) -> Product | None:
        self.reads += 1
        return self.products.get(product_id)

    async def find_all(self, query: dict[str, Any], page: int, limit: int) -> list[Product]:
        self.reads += 1
        matches = [p for p in self.products.values() if self._matches(p, query)]
        return matches[(page - 1) * limit : page * limit]

    async def count(self, query: dict[str, Any]) -> int:
        self.reads += 1
        return sum(1 for p in self.products.values() if self._matches(p, query))

    async def create(self, data: ProductInput) -> Product:
        self._next_id += 1
        product = Product(id=f"p{self._next_id}", **data.model_dump())
        self.products[product.id] = product
        return product

    async def update(self, product_id: str, changes: dict[str, Any]) -> Product:
        current = self.products[product_id].model_dump(by_alias=True)
        product = Product.model_validate({**current, **changes})
        self.products[product_id] = product
        return product

    async def delete(self, product_id: str) -> bool:
        return self.products.pop(product_id, None) is not None

    @staticmethod
    def _matches(product: Product, query: dict[str, Any]) -> bool:
        category = query.get("category")
        return category is None or product.category == category


def make_product(product_id: str = "p1", **overrides: Any) -> Product:
    fields: dict[str, Any] = {"id": product_id, "name": "Lamp", "price": 20.0, "category": "home"}
    fields.update(overrides)
    return Product(**fields)


@pytest.fixture
def repository() -> InMemoryProductRepository:
    return InMemoryProductRepository(
        make_product("p1"),
        make_product("p2", name="Chair", price=45.0),
        make_product("p3", name="Pen", price=2.5, category="office"),
    )


@pytest.fixture
def publisher() -> AsyncMock:
    publisher = AsyncMock()
    publisher.publish.return_value = 1
    return publisher


@pytest.fixture
def hook(store: CacheStore, publisher: AsyncMock) -> PostCommitHook:
    return PostCommitHook(store, publisher, channel="test:product")


class TestModels:
    """Tests for product model helpers."""

    def test_cache_form_uses_json_names(self) -> None:
        data = make_product(is_wishlist_status=True).to_cache()

        assert data["isWishlistStatus"] is True
        assert data["isActive"] is True
        assert Product.model_validate(data) == make_product(is_wishlist_status=True)

    def test_update_changes_only_set_fields(self) -> None:
        assert ProductUpdate(price=10.0, is_active=False).changes() == {
            "price": 10.0,
            "isActive": False,
        }

    def test_inverted_price_range_is_dropped(self) -> None:
        product_filter = ProductFilter(category="home", price_range=PriceRange(min=50, max=10))

        assert product_filter.to_query() == {"category": "home"}

    def test_input_rejects_negative_price(self) -> None:
        with pytest.raises(ValueError):
            ProductInput(name="Lamp", price=-1, category="home")


class TestGetProduct:
    """Tests for GetProduct."""

    @pytest.mark.asyncio
    async def test_miss_then_hit(
        self, repository: InMemoryProductRepository, store: CacheStore
    ) -> None:
        use_case = GetProduct(repository, store)

        first = await use_case.execute("p1")
        second = await use_case.execute("p1")

        assert first == second == repository.products["p1"]
        assert repository.reads == 1
        assert await store.get(CacheKeys.product("p1")) == first.to_cache()

    @pytest.mark.asyncio
    async def test_missing_product(
        self, repository: InMemoryProductRepository, store: CacheStore, fake_redis: FakeRedis
    ) -> None:
        """Misses for unknown ids are not cached."""
        use_case = GetProduct(repository, store)

        assert await use_case.execute("nope") is None
        assert await use_case.execute("nope") is None

        assert CacheKeys.product("nope") not in fake_redis.data
        assert repository.reads == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("product_id", ["", "   "])
    async def test_blank_id(
        self, repository: InMemoryProductRepository, store: CacheStore, product_id: str
    ) -> None:
        with pytest.raises(InvalidProductError, match="Product ID is required"):
            await GetProduct(repository, store).execute(product_id)

    @pytest.mark.asyncio
    async def test_refresh_ahead_with_monitor(
        self,
        repository: InMemoryProductRepository,
        store: CacheStore,
        fake_redis: FakeRedis,
        test_settings: Settings,
    ) -> None:
        monitor = ConsistencyMonitor(store, test_settings)
        use_case = GetProduct(repository, store, monitor=monitor, ttl=3600)
        await use_case.execute("p1")

        repository.products["p1"] = make_product("p1", name="Lamp v2")
        fake_redis.expire_in(CacheKeys.product("p1"), 10)

        served = await use_case.execute("p1")
        await monitor.wait_for_refreshes()

        assert served.name == "Lamp"
        assert (await store.get(CacheKeys.product("p1")))["name"] == "Lamp v2"
        assert monitor.get_metrics().stale_reads == 1


class TestListProducts:
    """Tests for ListProducts and CountProducts."""

    @pytest.mark.asyncio
    async def test_page_is_cached_per_filter(
        self, repository: InMemoryProductRepository, store: CacheStore
    ) -> None:
        use_case = ListProducts(repository, store)

        page = await use_case.execute(ProductFilter(category="home"), page=1, limit=1)
        again = await use_case.execute(ProductFilter(category="home"), page=1, limit=1)
        office = await use_case.execute(ProductFilter(category="office"), page=1, limit=1)

        assert page == again
        assert page.total == 2
        assert page.total_pages == 2
        assert [p.id for p in page.products] == ["p1"]
        assert office.total == 1
        # find_all + count per distinct filter
        assert repository.reads == 4

    @pytest.mark.asyncio
    async def test_page_and_limit_are_clamped(
        self, repository: InMemoryProductRepository, store: CacheStore
    ) -> None:
        page = await ListProducts(repository, store).execute(page=0, limit=500)

        assert page.page == 1
        assert page.limit == 100
        assert page.total == 3

    @pytest.mark.asyncio
    async def test_count_is_cached(
        self, repository: InMemoryProductRepository, store: CacheStore
    ) -> None:
        use_case = CountProducts(repository, store)

        assert await use_case.execute(ProductFilter(category="home")) == 2
        assert await use_case.execute(ProductFilter(category="home")) == 2
        assert repository.reads == 1


class TestMutations:
    """Tests for mutations and their post-commit invalidation and publish."""

    @pytest.mark.asyncio
    async def test_create_invalidates_lists_and_publishes(
        self,
        repository: InMemoryProductRepository,
        store: CacheStore,
        hook: PostCommitHook,
        publisher: AsyncMock,
    ) -> None:
        await ListProducts(repository, store).execute()
        await CountProducts(repository, store).execute()

        with LogContext(correlation_id="req-42"):
            product = await CreateProduct(repository, hook).execute(
                ProductInput(name="Desk", price=120.0, category="office")
            )

        assert await store.keys("products:*") == []
        channel, event = publisher.publish.await_args.args
        assert channel == "test:product"
        assert isinstance(event, ProductCreatedEvent)
        assert event.product_id == product.id
        assert event.payload["price"] == 120.0
        assert event.correlation_id == "req-42"

    @pytest.mark.asyncio
    async def test_update_invalidates_product_and_publishes_changes(
        self,
        repository: InMemoryProductRepository,
        store: CacheStore,
        hook: PostCommitHook,
        publisher: AsyncMock,
    ) -> None:
        await GetProduct(repository, store).execute("p1")

        updated = await UpdateProduct(repository, hook).execute("p1", ProductUpdate(price=25.0))

        assert updated.price == 25.0
        assert not await store.exists(CacheKeys.product("p1"))
        _, event = publisher.publish.await_args.args
        assert isinstance(event, ProductUpdatedEvent)
        assert event.changes == {"price": 25.0}
        assert (await GetProduct(repository, store).execute("p1")).price == 25.0

    @pytest.mark.asyncio
    async def test_update_without_changes_is_noop(
        self, repository: InMemoryProductRepository, hook: PostCommitHook, publisher: AsyncMock
    ) -> None:
        product = await UpdateProduct(repository, hook).execute("p1", ProductUpdate())

        assert product == repository.products["p1"]
        publisher.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_missing_product(
        self, repository: InMemoryProductRepository, hook: PostCommitHook
    ) -> None:
        with pytest.raises(ProductNotFoundError):
            await UpdateProduct(repository, hook).execute("nope", ProductUpdate(price=1.0))

    @pytest.mark.asyncio
    async def test_delete(
        self,
        repository: InMemoryProductRepository,
        store: CacheStore,
        hook: PostCommitHook,
        publisher: AsyncMock,
    ) -> None:
        await GetProduct(repository, store).execute("p1")

        assert await DeleteProduct(repository, hook).execute("p1") is True

        assert "p1" not in repository.products
        assert not await store.exists(CacheKeys.product("p1"))
        _, event = publisher.publish.await_args.args
        assert isinstance(event, ProductDeletedEvent)
        assert await GetProduct(repository, store).execute("p1") is None

    @pytest.mark.asyncio
    async def test_delete_missing_product(
        self, repository: InMemoryProductRepository, hook: PostCommitHook, publisher: AsyncMock
    ) -> None:
        assert await DeleteProduct(repository, hook).execute("nope") is False
        publisher.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_toggle_wishlist(
        self, repository: InMemoryProductRepository, hook: PostCommitHook, publisher: AsyncMock
    ) -> None:
        product = await ToggleWishlist(repository, hook).execute("p2", True)

        assert product.is_wishlist_status is True
        _, event = publisher.publish.await_args.args
        assert event.changes == {"isWishlistStatus": True}

    @pytest.mark.asyncio
    async def test_toggle_wishlist_missing_product(
        self, repository: InMemoryProductRepository, hook: PostCommitHook
    ) -> None:
        with pytest.raises(ProductNotFoundError):
            await ToggleWishlist(repository, hook).execute("nope", True)


class TestPostCommitHook:
    """Failures after commit never fail the mutation."""

    @pytest.mark.asyncio
    async def test_publish_failure_is_logged(
        self,
        repository: InMemoryProductRepository,
        store: CacheStore,
        publisher: AsyncMock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        publisher.publish.side_effect = ConnectionError("redis down")
        hook = PostCommitHook(store, publisher)

        with caplog.at_level(logging.WARNING):
            assert await DeleteProduct(repository, hook).execute("p1") is True

        assert "Failed to publish PRODUCT_DELETED after commit" in caplog.text

    @pytest.mark.asyncio
    async def test_invalidation_failure_is_counted(
        self, repository: InMemoryProductRepository, publisher: AsyncMock
    ) -> None:
        store = MagicMock(spec=CacheStore)
        store.delete = AsyncMock(side_effect=RuntimeError("delete failed"))
        store.delete_by_pattern = AsyncMock(return_value=0)
        hook = PostCommitHook(store, publisher)

        product = await UpdateProduct(repository, hook).execute("p1", ProductUpdate(stock=3))

        assert product.stock == 3
        publisher.publish.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_without_publisher(self, store: CacheStore) -> None:
        result = await PostCommitHook(store).run(
            InvalidationSpec.for_product("p1"), ProductDeletedEvent.create("p1")
        )

        assert result.ok
