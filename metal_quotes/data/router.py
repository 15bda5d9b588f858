"""Source routing with an ordered fallback chain.

This module provides:
- FallbackResolver: tries each source of a symbol's chain in order, each
  under its own retry policy, and normalizes the first usable record.

Sources are queried strictly in sequence; there is no racing. A symbol whose
whole chain exhausts resolves to None, which is a valid "no data" outcome.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence

import structlog

from metal_quotes.data.models import DataSource, IntermediateQuote, Quote
from metal_quotes.data.normalizer import normalize_quote
from metal_quotes.data.sources import QuoteSource
from metal_quotes.errors import NoUsableDataError
from metal_quotes.resilience.retry import retry_with_config

logger = structlog.get_logger(__name__)

Normalizer = Callable[[IntermediateQuote, DataSource], Quote]


class FallbackResolver:
    """Resolves symbols through their fallback chains.

    Example:
        chains, default = build_default_chains(client)
        resolver = FallbackResolver(chains, default_chain=default)
        quote = await resolver.resolve("au0")
        if quote:
            print(f"{quote.symbol}: {quote.price} ({quote.source.value})")
    """

    def __init__(
        self,
        chains: Mapping[str, Sequence[QuoteSource]],
        default_chain: Sequence[QuoteSource] | None = None,
        normalizer: Normalizer = normalize_quote,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the resolver.

        Args:
            chains: Ordered sources per symbol.
            default_chain: Sources for symbols without a dedicated chain.
            normalizer: Converts a parsed record into a Quote.
            sleep: Backoff sleep, injectable for tests.
        """
        self._chains = dict(chains)
        self._default_chain = list(default_chain or [])
        self._normalizer = normalizer
        self._sleep = sleep
        self._logger = logger.bind(component="fallback_resolver")
        self._stats: dict[str, int] = {"no_data": 0}

    @property
    def stats(self) -> dict[str, int]:
        """Get per-source success/exhaustion counters."""
        return self._stats.copy()

    def _bump(self, key: str) -> None:
        self._stats[key] = self._stats.get(key, 0) + 1

    def chain_for(self, symbol: str) -> list[QuoteSource]:
        """Ordered sources configured for a symbol."""
        return list(self._chains.get(symbol, self._default_chain))

    async def _attempt(self, source: QuoteSource, symbol: str) -> IntermediateQuote:
        """Fetch and parse once; an unusable record is a failure."""
        text = await source.fetch(symbol)
        record = source.parse(symbol, text)
        if record is None or not record.has_price:
            raise NoUsableDataError(source=source.name, symbol=symbol)
        return record

    async def resolve(self, symbol: str) -> Quote | None:
        """Resolve one symbol through its chain.

        Args:
            symbol: Symbol to resolve.

        Returns:
            Normalized Quote from the first source that yields a price,
            or None if every source exhausts its retries.
        """
        chain = self.chain_for(symbol)
        if not chain:
            self._logger.warning("no_sources_configured", symbol=symbol)
            self._bump("no_data")
            return None

        for position, source in enumerate(chain):
            try:
                record = await retry_with_config(
                    lambda source=source: self._attempt(source, symbol),
                    source.retry,
                    sleep=self._sleep,
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._bump(f"{source.name}_exhausted")
                has_next = position + 1 < len(chain)
                self._logger.warning(
                    "source_exhausted",
                    symbol=symbol,
                    source=source.name,
                    attempts=source.retry.max_attempts,
                    error=str(e),
                    falling_back=has_next,
                )
                continue

            self._bump(f"{source.name}_success")
            quote = self._normalizer(record, source.data_source)
            self._logger.info(
                "quote_fetched",
                symbol=symbol,
                source=source.name,
                fallback_used=position > 0,
            )
            return quote

        self._bump("no_data")
        self._logger.error("all_sources_failed", symbol=symbol, sources=[s.name for s in chain])
        return None

    async def resolve_many(self, symbols: Iterable[str]) -> list[Quote]:
        """Resolve symbols one after another.

        A failure on one symbol never aborts the others; symbols with no data
        are dropped and the rest keep their input order.
        """
        quotes: list[Quote] = []
        for symbol in symbols:
            try:
                quote = await self.resolve(symbol)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._logger.error("symbol_resolution_error", symbol=symbol, error=str(e))
                continue
            if quote is not None:
                quotes.append(quote)
        return quotes
