"""Cache layer for cachesync.

Provides Redis caching with the cache-aside pattern:
- CacheStore: JSON values with graceful degradation when Redis is down
- ConsistencyMonitor: hit/miss/staleness metrics and refresh-ahead
- Invalidation specs mapping record mutations to affected keys
"""

from cachesync.cache.consistency import (
    CacheMetrics,
    ConsistencyMonitor,
    StaleDataCheckResult,
    compute_consistency_score,
)
from cachesync.cache.invalidation import (
    InvalidationEntity,
    InvalidationResult,
    InvalidationSpec,
    apply_invalidation,
)
from cachesync.cache.keys import CacheKeys
from cachesync.cache.redis import RedisConnection
from cachesync.cache.store import CacheStore, with_cache

__all__ = [
    # Core cache
    "CacheKeys",
    "CacheStore",
    "RedisConnection",
    "with_cache",
    # Consistency
    "CacheMetrics",
    "ConsistencyMonitor",
    "StaleDataCheckResult",
    "compute_consistency_score",
    # Invalidation
    "InvalidationEntity",
    "InvalidationResult",
    "InvalidationSpec",
    "apply_invalidation",
]
