"""Two-tier quote cache.

This module provides the caching layer behind quote resolution:
- An ephemeral cache keyed by symbol with a short TTL, absorbing bursts
- A durable last-known-good store with no expiry, read only when every
  live source fails

The tiers use independent backends with no cross-invalidation. Neither
tier raises on backend failure: reads degrade to a miss, writes are
dropped, and both are logged and counted.
"""

import time
import uuid
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import ValidationError

from metal_quotes.cache.stores import DurableStore, EphemeralStore
from metal_quotes.data.models import Quote

logger = structlog.get_logger(__name__)

DEFAULT_EPHEMERAL_TTL = 60  # seconds
HEALTH_CHECK_TTL = 60


@dataclass
class CacheMetrics:
    """Metrics for one cache tier.

    Attributes:
        hits: Number of cache hits.
        misses: Number of cache misses.
        errors: Number of backend or decode errors.
        total_hit_latency_ms: Total latency for hits in milliseconds.
    """

    hits: int = 0
    misses: int = 0
    errors: int = 0
    total_hit_latency_ms: float = 0.0

    @property
    def total_requests(self) -> int:
        """Total number of cache requests."""
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Cache hit rate as a percentage."""
        if self.total_requests == 0:
            return 0.0
        return (self.hits / self.total_requests) * 100

    @property
    def avg_hit_latency_ms(self) -> float:
        """Average latency for cache hits."""
        if self.hits == 0:
            return 0.0
        return self.total_hit_latency_ms / self.hits

    def record_hit(self, latency_ms: float) -> None:
        """Record a cache hit."""
        self.hits += 1
        self.total_hit_latency_ms += latency_ms

    def record_miss(self) -> None:
        """Record a cache miss."""
        self.misses += 1

    def record_error(self) -> None:
        """Record a cache error."""
        self.errors += 1

    def to_dict(self) -> dict[str, Any]:
        """Convert metrics to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "total_requests": self.total_requests,
            "hit_rate": round(self.hit_rate, 2),
            "avg_hit_latency_ms": round(self.avg_hit_latency_ms, 2),
        }


class CacheKeyBuilder:
    """Builder for stable, collision-free cache keys.

    Symbols are used verbatim: "au0" and "AU0" are different keys.
    """

    PREFIX = "metal_quotes"
    DURABLE_PREFIX = "quote:"

    @classmethod
    def ephemeral(cls, symbol: str) -> str:
        """Key for the short-lived live quote of a symbol."""
        return f"{cls.PREFIX}:live:{symbol}"

    @classmethod
    def durable(cls, symbol: str) -> str:
        """Key for the last-known-good quote of a symbol."""
        return f"{cls.DURABLE_PREFIX}{symbol}"

    @classmethod
    def health(cls, tier: str) -> str:
        """Key used by the health round trip of one tier."""
        return f"{cls.PREFIX}:health:{tier}"


def serialize(quote: Quote) -> str:
    """Serialize a quote for caching.

    Only stored fields are written; staleness is derived on read.
    """
    return quote.model_dump_json()


def deserialize(data: str | bytes) -> Quote:
    """Deserialize a cached quote.

    Raises:
        ValidationError: If the payload does not describe a Quote.
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    return Quote.model_validate_json(data)


def _decode(value: str | bytes | None) -> str | None:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class QuoteCacheManager:
    """Cache manager over an ephemeral and a durable backend.

    Example:
        from redis.asyncio import Redis

        cache = QuoteCacheManager(
            ephemeral=Redis.from_url("redis://localhost:6379"),
            durable=SqliteDurableStore("./data/last_good.db"),
        )
        quote = await cache.get_ephemeral("GC=F")
    """

    def __init__(
        self,
        ephemeral: EphemeralStore,
        durable: DurableStore,
        ephemeral_ttl: int = DEFAULT_EPHEMERAL_TTL,
    ) -> None:
        """Initialize cache manager.

        Args:
            ephemeral: Backend for the short-TTL cache.
            durable: Backend for the last-known-good store.
            ephemeral_ttl: Default TTL in seconds for ephemeral entries.
        """
        self.ephemeral = ephemeral
        self.durable = durable
        self.ephemeral_ttl = ephemeral_ttl
        self.ephemeral_metrics = CacheMetrics()
        self.durable_metrics = CacheMetrics()

    async def _read(
        self,
        store: EphemeralStore | DurableStore,
        key: str,
        metrics: CacheMetrics,
        tier: str,
    ) -> Quote | None:
        try:
            start = time.monotonic()
            data = await store.get(key)
            latency_ms = (time.monotonic() - start) * 1000
        except Exception as e:
            metrics.record_error()
            logger.error("cache_get_error", tier=tier, key=key, error=str(e))
            return None

        if data is None:
            metrics.record_miss()
            logger.debug("cache_miss", tier=tier, key=key)
            return None

        try:
            quote = deserialize(data)
        except (ValidationError, ValueError) as e:
            metrics.record_error()
            logger.warning("cache_corrupt_entry", tier=tier, key=key, error=str(e))
            return None

        metrics.record_hit(latency_ms)
        logger.debug("cache_hit", tier=tier, key=key, latency_ms=round(latency_ms, 2))
        return quote

    async def get_ephemeral(self, symbol: str) -> Quote | None:
        """Get the short-lived cached quote for a symbol.

        Args:
            symbol: Symbol to look up.

        Returns:
            Cached Quote, or None on miss or backend failure.
        """
        return await self._read(
            self.ephemeral,
            CacheKeyBuilder.ephemeral(symbol),
            self.ephemeral_metrics,
            "ephemeral",
        )

    async def set_ephemeral(
        self, symbol: str, quote: Quote, ttl_seconds: int | None = None
    ) -> bool:
        """Cache a quote for a short time.

        Args:
            symbol: Symbol key.
            quote: Quote to cache.
            ttl_seconds: TTL override; defaults to the manager TTL.

        Returns:
            True if stored, False if the backend failed.
        """
        key = CacheKeyBuilder.ephemeral(symbol)
        ttl = ttl_seconds if ttl_seconds is not None else self.ephemeral_ttl
        try:
            await self.ephemeral.setex(key, ttl, serialize(quote))
        except Exception as e:
            self.ephemeral_metrics.record_error()
            logger.error("cache_set_error", tier="ephemeral", key=key, error=str(e))
            return False
        logger.debug("cache_set", tier="ephemeral", key=key, ttl=ttl)
        return True

    async def get_durable(self, symbol: str) -> Quote | None:
        """Get the last-known-good quote for a symbol.

        Args:
            symbol: Symbol to look up.

        Returns:
            Stored Quote, or None if there is no history or the backend failed.
        """
        return await self._read(
            self.durable,
            CacheKeyBuilder.durable(symbol),
            self.durable_metrics,
            "durable",
        )

    async def set_durable(self, symbol: str, quote: Quote) -> bool:
        """Overwrite the last-known-good quote for a symbol.

        Args:
            symbol: Symbol key.
            quote: Freshly resolved quote.

        Returns:
            True if stored, False if the backend failed.
        """
        key = CacheKeyBuilder.durable(symbol)
        try:
            await self.durable.set(key, serialize(quote))
        except Exception as e:
            self.durable_metrics.record_error()
            logger.error("cache_set_error", tier="durable", key=key, error=str(e))
            return False
        logger.debug("cache_set", tier="durable", key=key)
        return True

    async def _ephemeral_round_trip(self, token: str) -> bool:
        key = CacheKeyBuilder.health("ephemeral")
        try:
            await self.ephemeral.setex(key, HEALTH_CHECK_TTL, token)
            value = await self.ephemeral.get(key)
        except Exception as e:
            logger.error("cache_health_check_failed", tier="ephemeral", error=str(e))
            return False
        return _decode(value) == token

    async def _durable_round_trip(self, token: str) -> bool:
        key = CacheKeyBuilder.health("durable")
        try:
            await self.durable.set(key, token)
            value = await self.durable.get(key)
        except Exception as e:
            logger.error("cache_health_check_failed", tier="durable", error=str(e))
            return False
        return _decode(value) == token

    async def health_check(self) -> dict[str, bool]:
        """Write-then-read round trip on each backend independently.

        Returns:
            {"ephemeral": bool, "durable": bool}
        """
        token = uuid.uuid4().hex
        return {
            "ephemeral": await self._ephemeral_round_trip(token),
            "durable": await self._durable_round_trip(token),
        }

    def get_metrics(self) -> dict[str, Any]:
        """Get cache metrics per tier."""
        return {
            "ephemeral": self.ephemeral_metrics.to_dict(),
            "durable": self.durable_metrics.to_dict(),
        }
