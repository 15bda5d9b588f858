"""Conversion of provider records into canonical quotes."""

from collections.abc import Iterable

from metal_quotes.config import SUPPORTED_SYMBOLS, SymbolConfig
from metal_quotes.data.models import DataSource, IntermediateQuote, Quote, now_ms


def stale_threshold_ms(source: DataSource) -> int:
    """Freshness threshold for a source: base, plus the structural delay if any."""
    return source.stale_threshold_ms


def display_name(symbol: str, symbols: Iterable[SymbolConfig] = SUPPORTED_SYMBOLS) -> str:
    """Display label for a symbol; unknown symbols are labelled with themselves."""
    for config in symbols:
        if config.symbol == symbol:
            return config.name
    return symbol


def normalize_quote(
    intermediate: IntermediateQuote,
    source: DataSource,
    *,
    is_delayed: bool = False,
    symbols: Iterable[SymbolConfig] = SUPPORTED_SYMBOLS,
    now: int | None = None,
) -> Quote:
    """Build a canonical Quote from a parsed provider record.

    Args:
        intermediate: Parsed record; absent fields are defaulted here.
        source: Provenance tag.
        is_delayed: Force the delayed flag regardless of source.
        symbols: Symbol catalogue used for the display name.
        now: Clock override (ms) for a missing timestamp.

    Returns:
        Quote with price/change defaults of 0.0 and timestamp defaulting to now.
    """
    timestamp = intermediate.timestamp
    if timestamp is None:
        timestamp = now if now is not None else now_ms()

    return Quote(
        symbol=intermediate.symbol,
        name=display_name(intermediate.symbol, symbols),
        price=intermediate.price if intermediate.price is not None else 0.0,
        change=intermediate.change if intermediate.change is not None else 0.0,
        change_percent=(
            intermediate.change_percent if intermediate.change_percent is not None else 0.0
        ),
        timestamp=timestamp,
        source=source,
        is_delayed=is_delayed or source.is_structurally_delayed,
    )
