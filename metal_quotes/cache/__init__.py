"""Two-tier caching for resolved quotes.

This module provides:
- QuoteCacheManager: Ephemeral (TTL) and durable (last-known-good) tiers
- CacheKeyBuilder: Stable key shapes per tier
- CacheMetrics: Hit/miss/error tracking per tier
- InMemoryStore, SqliteDurableStore: Non-Redis backends
"""

from metal_quotes.cache.manager import (
    CacheKeyBuilder,
    CacheMetrics,
    QuoteCacheManager,
    deserialize,
    serialize,
)
from metal_quotes.cache.stores import (
    DurableStore,
    EphemeralStore,
    InMemoryStore,
    SqliteDurableStore,
)

__all__ = [
    "CacheKeyBuilder",
    "CacheMetrics",
    "DurableStore",
    "EphemeralStore",
    "InMemoryStore",
    "QuoteCacheManager",
    "SqliteDurableStore",
    "deserialize",
    "serialize",
]
