"""Application configuration settings.

This module provides centralized configuration management using environment
variables with sensible defaults, plus the static symbol catalogue.
"""

import os
from dataclasses import dataclass
from enum import Enum


def _get_bool_env(name: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable.

    Args:
        name: Environment variable name.
        default: Default value if not set.

    Returns:
        Boolean value from environment.
    """
    value = os.getenv(name, "").lower()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    return default


def _get_float_env(name: str, default: float) -> float:
    """Get a float from environment variable, falling back on bad input."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


class AssetClass(str, Enum):
    """Asset class of a supported symbol."""

    FOREX = "forex"
    FUTURES = "futures"


@dataclass(frozen=True)
class SymbolConfig:
    """Static display metadata for a supported symbol."""

    symbol: str
    name: str
    asset_class: AssetClass


SUPPORTED_SYMBOLS: tuple[SymbolConfig, ...] = (
    SymbolConfig("XAUUSD=X", "Gold/USD", AssetClass.FOREX),
    SymbolConfig("XAGUSD=X", "Silver/USD", AssetClass.FOREX),
    SymbolConfig("GC=F", "Gold Futures", AssetClass.FUTURES),
    SymbolConfig("SI=F", "Silver Futures", AssetClass.FUTURES),
    SymbolConfig("au0", "SHFE Gold (Spot)", AssetClass.FUTURES),
    SymbolConfig("ag0", "SHFE Silver (Spot)", AssetClass.FUTURES),
)

# Symbols quoted by the Shanghai Futures Exchange (domestic source chain)
SHFE_SYMBOLS: frozenset[str] = frozenset({"au0", "ag0"})

STALE_DATA_THRESHOLD_MS = 5 * 60 * 1000
SHFE_EXPECTED_DELAY_MS = 15 * 60 * 1000

YAHOO_FINANCE_BASE_URL = "https://query1.finance.yahoo.com/v7/finance/quote"
SINA_BASE_URL = "https://hq.sinajs.cn/list="
EASTMONEY_BASE_URL = "https://push2.eastmoney.com/api/qt/stock/get"

USER_AGENT = "Mozilla/5.0 (compatible; metal-quotes/1.0)"


@dataclass
class Settings:
    """Application settings loaded from environment variables.

    Attributes:
        REDIS_URL: Redis URL for the ephemeral cache. In-memory when unset.
        DURABLE_BACKEND: Last-known-good backend ("sqlite", "redis", "memory").
        DURABLE_DB_PATH: SQLite file for the durable store.
        CACHE_TTL_SECONDS: TTL for ephemeral cache entries.
        RETRY_ATTEMPTS: Attempts per upstream source.
        RETRY_BACKOFF_SECONDS: Base delay for exponential backoff.
        HTTP_TIMEOUT_SECONDS: Timeout for a single upstream request.
        REQUEST_TIMEOUT_SECONDS: Deadline for a whole quotes request.
        LOG_LEVEL: Logging level.
        JSON_LOGS: Render logs as JSON lines.
    """

    REDIS_URL: str | None = None
    DURABLE_BACKEND: str = "sqlite"
    DURABLE_DB_PATH: str = "./data/last_good.db"

    CACHE_TTL_SECONDS: int = 60

    RETRY_ATTEMPTS: int = 3
    RETRY_BACKOFF_SECONDS: float = 1.0

    HTTP_TIMEOUT_SECONDS: float = 10.0
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables.

        Returns:
            Settings instance populated from environment.
        """
        return cls(
            REDIS_URL=os.getenv("REDIS_URL") or None,
            DURABLE_BACKEND=os.getenv("DURABLE_BACKEND", "sqlite").lower(),
            DURABLE_DB_PATH=os.getenv("DURABLE_DB_PATH", "./data/last_good.db"),
            CACHE_TTL_SECONDS=int(_get_float_env("CACHE_TTL_SECONDS", 60)),
            RETRY_ATTEMPTS=int(_get_float_env("RETRY_ATTEMPTS", 3)),
            RETRY_BACKOFF_SECONDS=_get_float_env("RETRY_BACKOFF_SECONDS", 1.0),
            HTTP_TIMEOUT_SECONDS=_get_float_env("HTTP_TIMEOUT_SECONDS", 10.0),
            REQUEST_TIMEOUT_SECONDS=_get_float_env("REQUEST_TIMEOUT_SECONDS", 30.0),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
            JSON_LOGS=_get_bool_env("JSON_LOGS", default=True),
        )


# Global settings instance
settings = Settings.from_env()
