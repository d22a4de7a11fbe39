"""Tests for invalidation specs."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ResponseError

from cachesync.cache.invalidation import (
    InvalidationEntity,
    InvalidationSpec,
    apply_invalidation,
)
from cachesync.cache.keys import CacheKeys
from cachesync.cache.store import CacheStore


class TestInvalidationSpec:
    """Tests for InvalidationSpec construction."""

    def test_for_product_with_id(self) -> None:
        spec = InvalidationSpec.for_product("p1")

        assert spec.entity is InvalidationEntity.PRODUCT
        assert spec.keys == ("product:p1",)
        assert spec.patterns == (CacheKeys.PRODUCT_LIST_PATTERN, CacheKeys.PRODUCT_COUNT_PATTERN)

    def test_for_product_without_id_only_has_patterns(self) -> None:
        spec = InvalidationSpec.for_product()

        assert spec.keys == ()
        assert len(spec.patterns) == 2

    def test_for_session(self) -> None:
        spec = InvalidationSpec.for_session("u1")

        assert spec.entity is InvalidationEntity.SESSION
        assert spec.keys == ("session:u1",)
        assert spec.patterns == ()


class TestApplyInvalidation:
    """Tests for apply_invalidation."""

    @pytest.mark.asyncio
    async def test_removes_single_and_list_entries(self, store: CacheStore) -> None:
        await store.set("product:p1", {"id": "p1"})
        await store.set("product:p2", {"id": "p2"})
        await store.set(CacheKeys.product_list({"page": 1}), [])
        await store.set(CacheKeys.product_count({}), 3)

        result = await apply_invalidation(store, InvalidationSpec.for_product("p1"))

        assert result.ok
        assert result.keys_deleted == 1
        assert await store.get("product:p1") is None
        assert await store.get("product:p2") == {"id": "p2"}
        assert await store.keys("products:*") == []

    @pytest.mark.asyncio
    async def test_never_raises(self) -> None:
        """Failures are counted, not raised."""
        store = AsyncMock()
        store.delete.side_effect = ResponseError("boom")
        store.delete_by_pattern.side_effect = [ResponseError("boom"), 2]

        result = await apply_invalidation(store, InvalidationSpec.for_product("p1"))

        assert result.failures == 2
        assert result.pattern_keys_deleted == 2
        assert not result.ok
