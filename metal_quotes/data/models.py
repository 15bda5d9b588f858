"""Data models for quote resolution.

This module defines the Pydantic models shared by the upstream parsers,
the normalizer and the caching layer.
"""

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from metal_quotes.config import SHFE_EXPECTED_DELAY_MS, STALE_DATA_THRESHOLD_MS


def now_ms() -> int:
    """Current UTC time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class DataSource(str, Enum):
    """Provenance of a quote."""

    YAHOO = "yahoo"
    SINA = "sina"
    EASTMONEY = "eastmoney"

    @property
    def is_structurally_delayed(self) -> bool:
        """Whether the provider reports with a fixed regulatory delay."""
        return self in (DataSource.SINA, DataSource.EASTMONEY)

    @property
    def stale_threshold_ms(self) -> int:
        """Age beyond which a quote from this source counts as stale."""
        if self.is_structurally_delayed:
            return STALE_DATA_THRESHOLD_MS + SHFE_EXPECTED_DELAY_MS
        return STALE_DATA_THRESHOLD_MS


class IntermediateQuote(BaseModel):
    """Provider-agnostic record produced by a response parser.

    Numeric fields are ``None`` when the upstream payload lacks them or
    carries something unparsable; the normalizer fills in defaults.

    Attributes:
        symbol: Symbol as requested.
        price: Last price.
        change: Absolute change from previous close.
        change_percent: Percentage change from previous close.
        timestamp: Quote time in milliseconds since epoch (UTC).
    """

    symbol: str
    price: float | None = None
    change: float | None = None
    change_percent: float | None = None
    timestamp: int | None = None

    @property
    def has_price(self) -> bool:
        """Whether the record carries a usable price."""
        return self.price is not None


class Quote(BaseModel):
    """Canonical quote served to callers.

    Immutable: derive variants with ``model_copy(update=...)``. Staleness is
    not stored; ``is_stale`` is evaluated against the clock on every read.

    Attributes:
        symbol: Symbol (primary key).
        name: Display label.
        price: Last price (0.0 when unavailable).
        change: Absolute change (0.0 when unavailable).
        change_percent: Percentage change (0.0 when unavailable).
        timestamp: Quote time in milliseconds since epoch (UTC).
        source: Provenance tag.
        is_delayed: Structurally delayed source, or served from last-known-good.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    name: str
    price: float = 0.0
    change: float = 0.0
    change_percent: float = 0.0
    timestamp: int
    source: DataSource
    is_delayed: bool = False

    @property
    def age_ms(self) -> int:
        """Milliseconds elapsed since the quote timestamp."""
        return now_ms() - self.timestamp

    @property
    def is_stale(self) -> bool:
        """Whether the quote is older than its source's freshness threshold."""
        return self.age_ms > self.source.stale_threshold_ms

    def to_payload(self) -> dict[str, Any]:
        """Render the wire representation returned by the API."""
        return {
            "symbol": self.symbol,
            "name": self.name,
            "price": self.price,
            "change": self.change,
            "changePercent": self.change_percent,
            "timestamp": self.timestamp,
            "source": self.source.value,
            "isDelayed": self.is_delayed,
            "isStale": self.is_stale,
        }
