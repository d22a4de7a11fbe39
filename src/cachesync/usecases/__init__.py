"""Product use cases wired to the cache and event layers."""

from cachesync.usecases.models import (
    PriceRange,
    Product,
    ProductFilter,
    ProductInput,
    ProductPage,
    ProductUpdate,
)
from cachesync.usecases.products import (
    CountProducts,
    CreateProduct,
    DeleteProduct,
    GetProduct,
    ListProducts,
    PostCommitHook,
    ProductRepository,
    ToggleWishlist,
    UpdateProduct,
)

__all__ = [
    # Models
    "PriceRange",
    "Product",
    "ProductFilter",
    "ProductInput",
    "ProductPage",
    "ProductUpdate",
    # Use cases
    "CountProducts",
    "CreateProduct",
    "DeleteProduct",
    "GetProduct",
    "ListProducts",
    "PostCommitHook",
    "ProductRepository",
    "ToggleWishlist",
    "UpdateProduct",
]
