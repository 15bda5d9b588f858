"""Tests for QuoteService orchestration."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from metal_quotes.cache.manager import QuoteCacheManager
from metal_quotes.cache.stores import InMemoryStore, SqliteDurableStore
from metal_quotes.config import Settings
from metal_quotes.data.models import DataSource, Quote
from metal_quotes.data.router import FallbackResolver
from metal_quotes.service import QuoteService, create_quote_service

NOW = 1_705_300_200_000


def make_quote(symbol: str = "GC=F", price: float = 2050.5, **kwargs) -> Quote:
    """Build a quote for tests."""
    return Quote(
        symbol=symbol,
        name=kwargs.pop("name", symbol),
        price=price,
        timestamp=kwargs.pop("timestamp", NOW),
        source=kwargs.pop("source", DataSource.YAHOO),
        **kwargs,
    )


@pytest.fixture
def cache() -> QuoteCacheManager:
    """In-memory two-tier cache."""
    return QuoteCacheManager(InMemoryStore(), InMemoryStore())


@pytest.fixture
def resolver() -> MagicMock:
    """Resolver mock returning nothing by default."""
    mock = MagicMock()
    mock.resolve = AsyncMock(return_value=None)
    return mock


class TestGetQuote:
    """Tests for the per-symbol pipeline."""

    @pytest.mark.asyncio
    async def test_ephemeral_hit_skips_resolution(
        self, cache: QuoteCacheManager, resolver: MagicMock
    ) -> None:
        """Test a cached quote is served without contacting sources."""
        cached = make_quote()
        await cache.set_ephemeral("GC=F", cached)
        service = QuoteService(resolver, cache)

        assert await service.get_quote("GC=F") == cached
        resolver.resolve.assert_not_called()

    @pytest.mark.asyncio
    async def test_live_success_writes_both_tiers(
        self, cache: QuoteCacheManager, resolver: MagicMock
    ) -> None:
        """Test a fresh quote lands in ephemeral and durable tiers."""
        live = make_quote()
        resolver.resolve.return_value = live
        service = QuoteService(resolver, cache)

        assert await service.get_quote("GC=F") == live
        assert await cache.get_ephemeral("GC=F") == live
        assert await cache.get_durable("GC=F") == live

    @pytest.mark.asyncio
    async def test_durable_fallback_forces_delayed(
        self, cache: QuoteCacheManager, resolver: MagicMock
    ) -> None:
        """Test a last-known-good quote is served marked delayed."""
        last_good = make_quote(is_delayed=False)
        await cache.set_durable("GC=F", last_good)
        service = QuoteService(resolver, cache)

        quote = await service.get_quote("GC=F")

        assert quote is not None
        assert quote.is_delayed is True
        assert quote.price == last_good.price
        assert quote.timestamp == last_good.timestamp
        assert quote.source == last_good.source

    @pytest.mark.asyncio
    async def test_failed_resolution_does_not_touch_durable(
        self, cache: QuoteCacheManager, resolver: MagicMock
    ) -> None:
        """Test the durable tier is never overwritten on failure."""
        last_good = make_quote(price=1.0)
        await cache.set_durable("GC=F", last_good)
        service = QuoteService(resolver, cache)

        await service.get_quote("GC=F")

        stored = await cache.get_durable("GC=F")
        assert stored is not None
        assert stored.is_delayed is False
        assert await cache.get_ephemeral("GC=F") is None

    @pytest.mark.asyncio
    async def test_no_data_anywhere(self, cache: QuoteCacheManager, resolver: MagicMock) -> None:
        """Test a symbol with no live or stored data yields None."""
        service = QuoteService(resolver, cache)
        assert await service.get_quote("GC=F") is None

    @pytest.mark.asyncio
    async def test_cache_backend_down_still_resolves(self, resolver: MagicMock) -> None:
        """Test cache failures do not prevent live resolution."""
        broken = MagicMock()
        broken.get = AsyncMock(side_effect=ConnectionError("down"))
        broken.set = AsyncMock(side_effect=ConnectionError("down"))
        broken.setex = AsyncMock(side_effect=ConnectionError("down"))
        live = make_quote()
        resolver.resolve.return_value = live
        service = QuoteService(resolver, QuoteCacheManager(broken, broken))

        assert await service.get_quote("GC=F") == live


class TestGetQuotes:
    """Tests for batch quoting."""

    @pytest.mark.asyncio
    async def test_partial_batch(self, cache: QuoteCacheManager, resolver: MagicMock) -> None:
        """Test only symbols with data are returned."""
        live = make_quote("GC=F")

        async def resolve(symbol: str) -> Quote | None:
            return live if symbol == "GC=F" else None

        resolver.resolve = AsyncMock(side_effect=resolve)
        service = QuoteService(resolver, cache)

        quotes = await service.get_quotes(["GC=F", "SI=F"])

        assert quotes == [live]

    @pytest.mark.asyncio
    async def test_preserves_input_order(
        self, cache: QuoteCacheManager, resolver: MagicMock
    ) -> None:
        """Test results follow the requested order."""

        async def resolve(symbol: str) -> Quote:
            return make_quote(symbol)

        resolver.resolve = AsyncMock(side_effect=resolve)
        service = QuoteService(resolver, cache)

        quotes = await service.get_quotes(["au0", "GC=F", "XAUUSD=X"])

        assert [q.symbol for q in quotes] == ["au0", "GC=F", "XAUUSD=X"]

    @pytest.mark.asyncio
    async def test_exception_isolated_to_symbol(
        self, cache: QuoteCacheManager, resolver: MagicMock
    ) -> None:
        """Test an unexpected error on one symbol leaves the others intact."""

        async def resolve(symbol: str) -> Quote:
            if symbol == "SI=F":
                raise RuntimeError("unexpected")
            return make_quote(symbol)

        resolver.resolve = AsyncMock(side_effect=resolve)
        service = QuoteService(resolver, cache)

        quotes = await service.get_quotes(["GC=F", "SI=F", "au0"])

        assert [q.symbol for q in quotes] == ["GC=F", "au0"]

    @pytest.mark.asyncio
    async def test_cancellation_propagates(
        self, cache: QuoteCacheManager, resolver: MagicMock
    ) -> None:
        """Test cancellation is not swallowed by per-symbol isolation."""
        resolver.resolve = AsyncMock(side_effect=asyncio.CancelledError())
        service = QuoteService(resolver, cache)

        with pytest.raises(asyncio.CancelledError):
            await service.get_quotes(["GC=F"])


class TestHealth:
    """Tests for QuoteService.health."""

    @pytest.mark.asyncio
    async def test_all_checks(self, cache: QuoteCacheManager, resolver: MagicMock) -> None:
        """Test upstream probes and cache checks are combined."""
        upstream = MagicMock()
        upstream.yahoo_health = AsyncMock(return_value=True)
        upstream.sina_health = AsyncMock(return_value=False)
        service = QuoteService(resolver, cache, upstream=upstream)

        assert await service.health() == {
            "yahoo": True,
            "shfe": False,
            "ephemeral": True,
            "durable": True,
        }

    @pytest.mark.asyncio
    async def test_probe_timeout_is_failure(
        self, cache: QuoteCacheManager, resolver: MagicMock
    ) -> None:
        """Test a hanging probe reports unhealthy."""

        async def hang() -> bool:
            await asyncio.sleep(10)
            return True

        upstream = MagicMock()
        upstream.yahoo_health = hang
        upstream.sina_health = AsyncMock(side_effect=RuntimeError("boom"))
        service = QuoteService(resolver, cache, upstream=upstream, health_timeout=0.01)

        checks = await service.health()

        assert checks["yahoo"] is False
        assert checks["shfe"] is False

    @pytest.mark.asyncio
    async def test_without_upstream(self, cache: QuoteCacheManager, resolver: MagicMock) -> None:
        """Test upstream checks fail when no client is configured."""
        service = QuoteService(resolver, cache)
        checks = await service.health()

        assert checks["yahoo"] is False
        assert checks["ephemeral"] is True


class TestMetrics:
    """Tests for QuoteService.metrics."""

    @pytest.mark.asyncio
    async def test_counts_cache_and_sources(self, cache: QuoteCacheManager) -> None:
        """Test cache lookups and source outcomes are counted."""
        resolver = FallbackResolver({})
        service = QuoteService(resolver, cache)

        await service.get_quotes(["GC=F"])

        metrics = service.metrics()
        assert metrics["cache"]["ephemeral"]["misses"] == 1
        assert metrics["cache"]["durable"]["misses"] == 1
        assert metrics["sources"] == {"no_data": 1}

class TestCreateQuoteService:
    """Tests for create_quote_service."""

    @pytest.mark.asyncio
    async def test_memory_backends(self) -> None:
        """Test in-memory backends without Redis."""
        service = await create_quote_service(Settings(DURABLE_BACKEND="memory"))
        try:
            assert isinstance(service.cache.ephemeral, InMemoryStore)
            assert isinstance(service.cache.durable, InMemoryStore)
            assert service.upstream is not None
        finally:
            await service.close()

    @pytest.mark.asyncio
    async def test_sqlite_backend(self, tmp_path) -> None:
        """Test the SQLite durable store is opened."""
        config = Settings(DURABLE_BACKEND="sqlite", DURABLE_DB_PATH=str(tmp_path / "lg.db"))
        service = await create_quote_service(config)
        try:
            assert isinstance(service.cache.durable, SqliteDurableStore)
            assert service.cache.durable.is_open
        finally:
            await service.close()
        assert not service.cache.durable.is_open

    @pytest.mark.asyncio
    async def test_redis_durable_without_url(self) -> None:
        """Test a Redis durable backend without a URL falls back to memory."""
        service = await create_quote_service(Settings(DURABLE_BACKEND="redis"))
        try:
            assert isinstance(service.cache.durable, InMemoryStore)
        finally:
            await service.close()

    @pytest.mark.asyncio
    async def test_retry_settings_applied(self) -> None:
        """Test retry settings reach every source."""
        config = Settings(DURABLE_BACKEND="memory", RETRY_ATTEMPTS=5, RETRY_BACKOFF_SECONDS=0.5)
        service = await create_quote_service(config)
        try:
            chain = service.resolver.chain_for("au0")
            assert [s.name for s in chain] == ["sina", "eastmoney"]
            assert all(s.retry.max_attempts == 5 for s in chain)
            assert all(s.retry.base_delay == 0.5 for s in chain)
        finally:
            await service.close()
