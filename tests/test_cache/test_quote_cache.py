"""Tests for the two-tier quote cache."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

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
from metal_quotes.data.models import DataSource, Quote

NOW = 1_705_300_200_000


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def quote() -> Quote:
    """Sample SHFE quote."""
    return Quote(
        symbol="au0",
        name="SHFE Gold (Spot)",
        price=500.5,
        change=1.5,
        change_percent=0.3,
        timestamp=NOW,
        source=DataSource.SINA,
        is_delayed=True,
    )


@pytest.fixture
def failing_store() -> MagicMock:
    """Backend whose every call raises."""
    store = MagicMock()
    store.get = AsyncMock(side_effect=ConnectionError("backend down"))
    store.set = AsyncMock(side_effect=ConnectionError("backend down"))
    store.setex = AsyncMock(side_effect=ConnectionError("backend down"))
    return store


class TestCacheKeyBuilder:
    """Tests for CacheKeyBuilder."""

    def test_ephemeral_key(self) -> None:
        """Test ephemeral key shape."""
        assert CacheKeyBuilder.ephemeral("GC=F") == "metal_quotes:live:GC=F"

    def test_durable_key(self) -> None:
        """Test durable key shape."""
        assert CacheKeyBuilder.durable("au0") == "quote:au0"

    def test_case_preserved(self) -> None:
        """Test symbol case is significant."""
        assert CacheKeyBuilder.durable("au0") != CacheKeyBuilder.durable("AU0")

    def test_health_keys_per_tier(self) -> None:
        """Test each tier has its own health key."""
        assert CacheKeyBuilder.health("ephemeral") != CacheKeyBuilder.health("durable")


class TestSerialization:
    """Tests for serialize/deserialize."""

    def test_stored_fields_only(self, quote: Quote) -> None:
        """Test staleness is not persisted."""
        data = json.loads(serialize(quote))
        assert "is_stale" not in data
        assert data["source"] == "sina"

    def test_bytes_input(self, quote: Quote) -> None:
        """Test Redis byte responses decode."""
        assert deserialize(serialize(quote).encode("utf-8")) == quote


class TestCacheMetrics:
    """Tests for CacheMetrics."""

    def test_hit_rate(self) -> None:
        """Test hit rate calculation."""
        metrics = CacheMetrics()
        metrics.record_hit(2.0)
        metrics.record_miss()
        metrics.record_error()

        assert metrics.hit_rate == 50.0
        assert metrics.avg_hit_latency_ms == 2.0
        assert metrics.to_dict()["errors"] == 1

    def test_empty(self) -> None:
        """Test an unused tier reports zeros."""
        metrics = CacheMetrics()
        assert metrics.hit_rate == 0.0
        assert metrics.avg_hit_latency_ms == 0.0


class TestInMemoryStore:
    """Tests for InMemoryStore."""

    def test_satisfies_protocols(self) -> None:
        """Test both capability protocols are satisfied."""
        store = InMemoryStore()
        assert isinstance(store, EphemeralStore)
        assert isinstance(store, DurableStore)

    @pytest.mark.asyncio
    async def test_ttl_expiry(self) -> None:
        """Test entries vanish after their TTL."""
        clock = FakeClock()
        store = InMemoryStore(clock=clock)
        await store.setex("k", 60, "v")

        clock.now += 59
        assert await store.get("k") == "v"
        clock.now += 1
        assert await store.get("k") is None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_set_never_expires(self) -> None:
        """Test plain set has no expiry."""
        clock = FakeClock()
        store = InMemoryStore(clock=clock)
        await store.set("k", "v")

        clock.now += 10**9
        assert await store.get("k") == "v"


class TestSqliteDurableStore:
    """Tests for SqliteDurableStore."""

    @pytest.mark.asyncio
    async def test_set_get_overwrite(self, tmp_path) -> None:
        """Test values persist and are overwritten."""
        store = SqliteDurableStore(str(tmp_path / "nested" / "last_good.db"))
        await store.initialize()
        try:
            assert await store.get("quote:au0") is None
            await store.set("quote:au0", "first")
            await store.set("quote:au0", "second")
            assert await store.get("quote:au0") == "second"
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_path) -> None:
        """Test values survive closing and reopening the database."""
        path = str(tmp_path / "last_good.db")
        store = SqliteDurableStore(path)
        await store.initialize()
        await store.set("quote:ag0", "value")
        await store.close()

        reopened = SqliteDurableStore(path)
        await reopened.initialize()
        try:
            assert await reopened.get("quote:ag0") == "value"
        finally:
            await reopened.close()

    @pytest.mark.asyncio
    async def test_uninitialized_raises(self) -> None:
        """Test use before initialize raises."""
        store = SqliteDurableStore(":memory:")
        assert store.is_open is False
        with pytest.raises(RuntimeError):
            await store.get("k")


class TestQuoteCacheManager:
    """Tests for QuoteCacheManager."""

    @pytest.mark.asyncio
    async def test_ephemeral_round_trip(self, quote: Quote) -> None:
        """Test ephemeral set then get."""
        cache = QuoteCacheManager(InMemoryStore(), InMemoryStore())

        assert await cache.get_ephemeral("au0") is None
        assert await cache.set_ephemeral("au0", quote) is True
        assert await cache.get_ephemeral("au0") == quote
        assert cache.ephemeral_metrics.hits == 1
        assert cache.ephemeral_metrics.misses == 1

    @pytest.mark.asyncio
    async def test_ephemeral_ttl(self, quote: Quote) -> None:
        """Test the manager TTL is applied and can be overridden."""
        clock = FakeClock()
        cache = QuoteCacheManager(InMemoryStore(clock=clock), InMemoryStore(), ephemeral_ttl=60)

        await cache.set_ephemeral("au0", quote)
        await cache.set_ephemeral("ag0", quote, ttl_seconds=5)
        clock.now += 10

        assert await cache.get_ephemeral("au0") is not None
        assert await cache.get_ephemeral("ag0") is None

    @pytest.mark.asyncio
    async def test_tiers_are_independent(self, quote: Quote) -> None:
        """Test writing one tier does not populate the other."""
        cache = QuoteCacheManager(InMemoryStore(), InMemoryStore())

        await cache.set_durable("au0", quote)

        assert await cache.get_durable("au0") == quote
        assert await cache.get_ephemeral("au0") is None

    @pytest.mark.asyncio
    async def test_durable_with_sqlite(self, quote: Quote, tmp_path) -> None:
        """Test durable tier over SQLite."""
        durable = SqliteDurableStore(str(tmp_path / "last_good.db"))
        await durable.initialize()
        cache = QuoteCacheManager(InMemoryStore(), durable)
        try:
            await cache.set_durable("au0", quote)
            assert await cache.get_durable("au0") == quote
        finally:
            await durable.close()

    @pytest.mark.asyncio
    async def test_backend_errors_degrade(self, quote: Quote, failing_store: MagicMock) -> None:
        """Test backend failures become misses and dropped writes."""
        cache = QuoteCacheManager(failing_store, failing_store)

        assert await cache.get_ephemeral("au0") is None
        assert await cache.set_ephemeral("au0", quote) is False
        assert await cache.get_durable("au0") is None
        assert await cache.set_durable("au0", quote) is False
        assert cache.ephemeral_metrics.errors == 2
        assert cache.durable_metrics.errors == 2

    @pytest.mark.asyncio
    async def test_uninitialized_sqlite_degrades(self, quote: Quote) -> None:
        """Test an unopened durable store reads as no history."""
        cache = QuoteCacheManager(InMemoryStore(), SqliteDurableStore(":memory:"))

        assert await cache.get_durable("au0") is None
        assert await cache.set_durable("au0", quote) is False

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_miss(self) -> None:
        """Test an undecodable entry is treated as a miss."""
        ephemeral = InMemoryStore()
        await ephemeral.setex(CacheKeyBuilder.ephemeral("au0"), 60, "{not json")
        cache = QuoteCacheManager(ephemeral, InMemoryStore())

        assert await cache.get_ephemeral("au0") is None
        assert cache.ephemeral_metrics.errors == 1

    @pytest.mark.asyncio
    async def test_health_check_all_ok(self) -> None:
        """Test both tiers pass a round trip."""
        cache = QuoteCacheManager(InMemoryStore(), InMemoryStore())
        assert await cache.health_check() == {"ephemeral": True, "durable": True}

    @pytest.mark.asyncio
    async def test_health_check_independent(self, failing_store: MagicMock) -> None:
        """Test a failing tier does not affect the other's result."""
        cache = QuoteCacheManager(failing_store, InMemoryStore())
        assert await cache.health_check() == {"ephemeral": False, "durable": True}

        cache = QuoteCacheManager(InMemoryStore(), failing_store)
        assert await cache.health_check() == {"ephemeral": True, "durable": False}

    @pytest.mark.asyncio
    async def test_health_check_byte_values(self) -> None:
        """Test byte responses from Redis-like backends compare correctly."""
        values: dict[str, bytes] = {}

        async def setex(key: str, ttl: int, value: str) -> bool:  # noqa: ARG001
            values[key] = value.encode()
            return True

        async def get(key: str) -> bytes | None:
            return values.get(key)

        ephemeral = MagicMock()
        ephemeral.setex = setex
        ephemeral.get = get
        cache = QuoteCacheManager(ephemeral, InMemoryStore())

        assert (await cache.health_check())["ephemeral"] is True

    def test_get_metrics(self) -> None:
        """Test metrics are reported per tier."""
        cache = QuoteCacheManager(InMemoryStore(), InMemoryStore())
        metrics = cache.get_metrics()
        assert set(metrics) == {"ephemeral", "durable"}
        assert metrics["ephemeral"]["total_requests"] == 0

    @pytest.mark.asyncio
    async def test_shared_backend_health_keeps_ttl(self) -> None:
        """Test a backend shared by both tiers leaves no unexpiring ephemeral key."""
        clock = FakeClock()
        shared = InMemoryStore(clock=clock)
        cache = QuoteCacheManager(shared, shared)

        assert await cache.health_check() == {"ephemeral": True, "durable": True}

        clock.now += 3600
        assert await shared.get(CacheKeyBuilder.health("ephemeral")) is None
        assert await shared.get(CacheKeyBuilder.health("durable")) is not None
