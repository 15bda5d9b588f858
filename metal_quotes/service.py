"""Quote service orchestration.

This module provides:
- QuoteService: per-symbol cache -> live resolution -> last-known-good flow
- create_quote_service: builds the service and its backends from Settings

Per symbol:
1. Serve the ephemeral cache entry if present.
2. Otherwise resolve through the fallback chain; on success write both tiers.
3. Otherwise serve the durable last-known-good quote, marked delayed.
4. Otherwise omit the symbol.
"""

import asyncio
from collections.abc import Iterable
from typing import Any

import redis.asyncio as redis
import structlog

from metal_quotes.cache.manager import QuoteCacheManager
from metal_quotes.cache.stores import DurableStore, InMemoryStore, SqliteDurableStore
from metal_quotes.config import Settings, settings
from metal_quotes.data.models import Quote
from metal_quotes.data.router import FallbackResolver
from metal_quotes.data.sources import build_default_chains
from metal_quotes.data.upstream import UpstreamClient
from metal_quotes.resilience.retry import RetryConfig

logger = structlog.get_logger(__name__)

HEALTH_PROBE_TIMEOUT = 5.0  # seconds


class QuoteService:
    """Resolves quotes with caching and last-known-good fallback.

    Example:
        service = await create_quote_service()
        quotes = await service.get_quotes(["GC=F", "au0"])
        await service.close()
    """

    def __init__(
        self,
        resolver: FallbackResolver,
        cache: QuoteCacheManager,
        upstream: UpstreamClient | None = None,
        health_timeout: float = HEALTH_PROBE_TIMEOUT,
    ) -> None:
        """Initialize the service.

        Args:
            resolver: Fallback resolver for live data.
            cache: Two-tier cache manager.
            upstream: Upstream client, used for health probes and closed on shutdown.
            health_timeout: Timeout per upstream health probe in seconds.
        """
        self.resolver = resolver
        self.cache = cache
        self.upstream = upstream
        self.health_timeout = health_timeout
        self._logger = logger.bind(component="quote_service")

    async def get_quote(self, symbol: str) -> Quote | None:
        """Run the cache and resolution pipeline for one symbol.

        Args:
            symbol: Symbol to quote.

        Returns:
            Quote, or None if no live or last-known-good data exists.
        """
        cached = await self.cache.get_ephemeral(symbol)
        if cached is not None:
            self._logger.debug("serving_cached_quote", symbol=symbol)
            return cached

        quote = await self.resolver.resolve(symbol)
        if quote is not None:
            await self.cache.set_ephemeral(symbol, quote)
            await self.cache.set_durable(symbol, quote)
            return quote

        last_good = await self.cache.get_durable(symbol)
        if last_good is not None:
            self._logger.warning(
                "serving_last_known_good",
                symbol=symbol,
                source=last_good.source.value,
                timestamp=last_good.timestamp,
            )
            return last_good.model_copy(update={"is_delayed": True})

        self._logger.error("no_quote_available", symbol=symbol)
        return None

    async def get_quotes(self, symbols: Iterable[str]) -> list[Quote]:
        """Quote several symbols one after another.

        A failure on one symbol never affects the others. Symbols without
        data are omitted; the rest keep their input order.

        Args:
            symbols: Symbols to quote.

        Returns:
            Resolved quotes.
        """
        requested = list(symbols)
        quotes: list[Quote] = []
        for symbol in requested:
            try:
                quote = await self.get_quote(symbol)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._logger.error("symbol_pipeline_error", symbol=symbol, error=str(e))
                continue
            if quote is not None:
                quotes.append(quote)

        self._logger.info("quotes_resolved", requested=len(requested), returned=len(quotes))
        return quotes

    def metrics(self) -> dict[str, Any]:
        """Cache hit and error counters per tier, plus per-source outcomes."""
        return {"cache": self.cache.get_metrics(), "sources": self.resolver.stats}

    async def _probe(self, name: str, probe: Any) -> bool:
        try:
            return bool(await asyncio.wait_for(probe(), timeout=self.health_timeout))
        except TimeoutError:
            self._logger.warning("health_probe_timeout", check=name, timeout=self.health_timeout)
            return False
        except Exception as e:
            self._logger.error("health_probe_failed", check=name, error=str(e))
            return False

    async def health(self) -> dict[str, bool]:
        """Check upstream reachability and both cache tiers.

        Returns:
            {"yahoo": bool, "shfe": bool, "ephemeral": bool, "durable": bool}
        """
        if self.upstream is not None:
            yahoo, shfe, cache = await asyncio.gather(
                self._probe("yahoo", self.upstream.yahoo_health),
                self._probe("shfe", self.upstream.sina_health),
                self.cache.health_check(),
            )
        else:
            yahoo, shfe = False, False
            cache = await self.cache.health_check()

        return {
            "yahoo": yahoo,
            "shfe": shfe,
            "ephemeral": cache["ephemeral"],
            "durable": cache["durable"],
        }

    async def close(self) -> None:
        """Release the upstream client and cache backends."""
        if self.upstream is not None:
            await self.upstream.close()

        stores: list[object] = [self.cache.ephemeral]
        if self.cache.durable is not self.cache.ephemeral:
            stores.append(self.cache.durable)
        for store in stores:
            if isinstance(store, SqliteDurableStore):
                await store.close()
            elif isinstance(store, redis.Redis):
                await store.aclose()

        self._logger.info("quote_service_closed")


async def _create_durable_store(
    config: Settings, redis_client: "redis.Redis | None"
) -> DurableStore:
    backend = config.DURABLE_BACKEND
    if backend == "redis":
        if redis_client is not None:
            return redis_client
        logger.warning("durable_redis_without_url", fallback="memory")
        return InMemoryStore()
    if backend == "memory":
        return InMemoryStore()
    if backend != "sqlite":
        logger.warning("unknown_durable_backend", backend=backend, fallback="sqlite")

    store = SqliteDurableStore(config.DURABLE_DB_PATH)
    try:
        await store.initialize()
    except Exception as e:
        # Left unopened; every durable call then degrades to a miss.
        logger.error("durable_store_init_failed", db_path=config.DURABLE_DB_PATH, error=str(e))
    return store


async def create_quote_service(
    config: Settings | None = None,
    transport: Any | None = None,
) -> QuoteService:
    """Build a QuoteService with backends chosen from settings.

    Args:
        config: Settings to use (defaults to the global settings).
        transport: Optional httpx transport for the upstream client.

    Returns:
        Ready-to-use QuoteService. Call ``close()`` on shutdown.
    """
    config = config or settings

    upstream = UpstreamClient(timeout=config.HTTP_TIMEOUT_SECONDS, transport=transport)
    retry = RetryConfig(
        max_attempts=config.RETRY_ATTEMPTS,
        base_delay=config.RETRY_BACKOFF_SECONDS,
    )
    chains, default_chain = build_default_chains(upstream, retry=retry)
    resolver = FallbackResolver(chains, default_chain=default_chain)

    redis_client = None
    if config.REDIS_URL:
        redis_client = redis.from_url(
            config.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )

    ephemeral = redis_client if redis_client is not None else InMemoryStore()
    durable = await _create_durable_store(config, redis_client)

    cache = QuoteCacheManager(
        ephemeral=ephemeral,
        durable=durable,
        ephemeral_ttl=config.CACHE_TTL_SECONDS,
    )

    logger.info(
        "quote_service_created",
        ephemeral_backend="redis" if redis_client is not None else "memory",
        durable_backend=type(durable).__name__,
        retry_attempts=retry.max_attempts,
    )
    return QuoteService(resolver, cache, upstream=upstream)
