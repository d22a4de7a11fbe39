"""Product records exchanged with the record store and cached as JSON.

Field names follow the camelCase JSON form on the wire and in the cache;
Python code uses the snake_case attribute names.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class Product(BaseModel):
    """A product as stored in the authoritative record store."""

    model_config = {"populate_by_name": True}

    id: str
    name: str
    description: str = ""
    price: float = Field(ge=0)
    category: str
    stock: int = Field(default=0, ge=0)
    is_active: bool = Field(default=True, alias="isActive")
    is_wishlist_status: bool = Field(default=False, alias="isWishlistStatus")

    def to_cache(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ProductInput(BaseModel):
    """Fields supplied when creating a product."""

    model_config = {"extra": "forbid", "populate_by_name": True}

    name: str = Field(min_length=1)
    description: str = ""
    price: float = Field(ge=0)
    category: str = Field(min_length=1)
    stock: int = Field(default=0, ge=0)
    is_active: bool = Field(default=True, alias="isActive")


class ProductUpdate(BaseModel):
    """Partial update; unset fields are left unchanged."""

    model_config = {"extra": "forbid", "populate_by_name": True}

    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    price: float | None = Field(default=None, ge=0)
    category: str | None = Field(default=None, min_length=1)
    stock: int | None = Field(default=None, ge=0)
    is_active: bool | None = Field(default=None, alias="isActive")
    is_wishlist_status: bool | None = Field(default=None, alias="isWishlistStatus")

    def changes(self) -> dict[str, Any]:
        """Fields that were explicitly set, keyed by their JSON names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PriceRange(BaseModel):
    min: float = Field(ge=0)
    max: float = Field(ge=0)

    @property
    def is_valid(self) -> bool:
        return self.min <= self.max


class ProductFilter(BaseModel):
    """Filter applied to product lists and counts."""

    model_config = {"populate_by_name": True}

    category: str | None = None
    search: str | None = None
    is_active: bool | None = Field(default=None, alias="isActive")
    is_wishlist_status: bool | None = Field(default=None, alias="isWishlistStatus")
    price_range: PriceRange | None = Field(default=None, alias="priceRange")

    def to_query(self) -> dict[str, Any]:
        """Normalized filter used in cache keys and repository calls.

        An inverted price range is dropped rather than rejected.
        """
        query = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        if self.price_range is not None and not self.price_range.is_valid:
            query.pop("priceRange", None)
        return query


class ProductPage(BaseModel):
    """One page of a product listing."""

    model_config = {"populate_by_name": True}

    products: list[Product]
    total: int
    page: int
    limit: int
    total_pages: int = Field(alias="totalPages")

    def to_cache(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
