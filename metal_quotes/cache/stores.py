"""Key-value backends for the quote caches.

The cache manager only needs two narrow capabilities:
- EphemeralStore: ``get`` and ``setex`` (value with TTL)
- DurableStore: ``get`` and ``set`` (value without expiry)

``redis.asyncio.Redis`` satisfies both as-is. This module adds an
in-process store for development and tests, and a SQLite-backed durable
store for single-node deployments.
"""

import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

import aiosqlite
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_DB_PATH = "./data/last_good.db"


@runtime_checkable
class EphemeralStore(Protocol):
    """Store supporting values with a TTL."""

    async def get(self, key: str) -> str | bytes | None: ...

    async def setex(self, key: str, ttl: int, value: str) -> object: ...


@runtime_checkable
class DurableStore(Protocol):
    """Store supporting values without expiry."""

    async def get(self, key: str) -> str | bytes | None: ...

    async def set(self, key: str, value: str) -> object: ...


class InMemoryStore:
    """Dict-backed store with optional per-key expiry.

    Satisfies both EphemeralStore and DurableStore. Expired keys are dropped
    lazily on read.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the store.

        Args:
            clock: Monotonic clock in seconds, injectable for tests.
        """
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._data[key] = (value, self._clock() + ttl)
        return True

    async def set(self, key: str, value: str) -> bool:
        self._data[key] = (value, None)
        return True

    def __len__(self) -> int:
        return len(self._data)


class SqliteDurableStore:
    """SQLite-backed durable key-value store.

    Example:
        store = SqliteDurableStore("./data/last_good.db")
        await store.initialize()
        await store.set("quote:au0", payload)
    """

    def __init__(self, db_path: str | None = None) -> None:
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self._db_path = db_path or DEFAULT_DB_PATH
        self._connection: aiosqlite.Connection | None = None
        self._logger = logger.bind(component="sqlite_durable_store")

    @property
    def is_open(self) -> bool:
        """Whether the connection is open."""
        return self._connection is not None

    async def initialize(self) -> None:
        """Open the database and create the table."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS last_good (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        await self._connection.commit()
        self._logger.info("durable_store_initialized", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("Durable store is not initialized")
        return self._connection

    async def get(self, key: str) -> str | None:
        connection = self._require_connection()
        async with connection.execute(
            "SELECT value FROM last_good WHERE key = ?", (key,)
        ) as cursor:
            row = await cursor.fetchone()
        return str(row[0]) if row else None

    async def set(self, key: str, value: str) -> bool:
        connection = self._require_connection()
        await connection.execute(
            """
            INSERT INTO last_good (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, value, datetime.now(UTC).isoformat()),
        )
        await connection.commit()
        return True
