"""Cache key schema for cachesync.

Key format: {entity}:{identifier}

Where:
- product:{id}               single product document
- products:{query}           paginated product list for a serialized query
- products:count:{query}     product count for a serialized query
- rate_limit:{client}        request counter for rate-limiting callers
- session:{user_id}          user session payload
- lock:{key}                 advisory lock guarding {key}
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import orjson


class CacheKeys:
    """Cache key generator following consistent naming convention."""

    PRODUCT_PATTERN = "product:*"
    PRODUCT_LIST_PATTERN = "products:*"
    PRODUCT_COUNT_PATTERN = "products:count:*"
    LOCK_PREFIX = "lock"

    @classmethod
    def product(cls, product_id: str) -> str:
        """Key for a single product."""
        return f"product:{product_id}"

    @classmethod
    def product_list(cls, query: Mapping[str, Any]) -> str:
        """Key for a product list page.

        The query is serialized with sorted keys so equal queries share a key.
        """
        return f"products:{cls._serialize_query(query)}"

    @classmethod
    def product_count(cls, query: Mapping[str, Any]) -> str:
        """Key for a product count."""
        return f"products:count:{cls._serialize_query(query)}"

    @classmethod
    def rate_limit(cls, client_id: str) -> str:
        """Key for a rate-limit counter."""
        return f"rate_limit:{client_id}"

    @classmethod
    def session(cls, user_id: str) -> str:
        """Key for a user session."""
        return f"session:{user_id}"

    @classmethod
    def lock(cls, key: str) -> str:
        """Key for the advisory lock guarding ``key``."""
        return f"{cls.LOCK_PREFIX}:{key}"

    @classmethod
    def parse_key(cls, key: str) -> dict[str, str] | None:
        """Parse a cache key into entity and identifier.

        Returns None if the key has no entity separator.
        """
        entity, sep, identifier = key.partition(":")
        if not sep or not entity or not identifier:
            return None
        return {"entity": entity, "identifier": identifier}

    @staticmethod
    def _serialize_query(query: Mapping[str, Any]) -> str:
        return orjson.dumps(dict(query), option=orjson.OPT_SORT_KEYS).decode()
