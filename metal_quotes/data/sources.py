"""Upstream source definitions and default fallback chains.

A source is data, not a subclass: a fetcher ``(symbol) -> raw text`` paired
with a parser ``(symbol, raw text) -> IntermediateQuote | None``, its own
retry config and the provenance tag stamped on resulting quotes. Chains are
ordered lists of sources, tried first to last.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from metal_quotes.config import SHFE_SYMBOLS, SUPPORTED_SYMBOLS
from metal_quotes.data.models import DataSource, IntermediateQuote
from metal_quotes.data.parsers import (
    parse_eastmoney_response,
    parse_sina_response,
    parse_yahoo_response,
)
from metal_quotes.data.upstream import UpstreamClient
from metal_quotes.resilience.retry import RetryConfig

Fetcher = Callable[[str], Awaitable[str]]
Parser = Callable[[str, str], IntermediateQuote | None]


@dataclass(frozen=True)
class QuoteSource:
    """One upstream source in a fallback chain.

    Attributes:
        name: Source name used in logs and stats.
        data_source: Provenance tag for quotes from this source.
        fetch: Coroutine function returning the raw payload for a symbol.
        parse: Pure parser for that payload.
        retry: Retry policy applied to fetch-and-parse.
    """

    name: str
    data_source: DataSource
    fetch: Fetcher
    parse: Parser
    retry: RetryConfig = field(default_factory=RetryConfig)


def build_default_chains(
    client: UpstreamClient,
    retry: RetryConfig | None = None,
) -> tuple[dict[str, list[QuoteSource]], list[QuoteSource]]:
    """Build the per-symbol chains and the default chain.

    SHFE symbols go Sina then EastMoney; everything else goes to Yahoo.

    Args:
        client: Shared upstream client.
        retry: Retry config applied to every source.

    Returns:
        (chains keyed by symbol, default chain).
    """
    retry = retry or RetryConfig()

    yahoo = QuoteSource(
        name="yahoo",
        data_source=DataSource.YAHOO,
        fetch=client.fetch_yahoo,
        parse=parse_yahoo_response,
        retry=retry,
    )
    sina = QuoteSource(
        name="sina",
        data_source=DataSource.SINA,
        fetch=client.fetch_sina,
        parse=parse_sina_response,
        retry=retry,
    )
    eastmoney = QuoteSource(
        name="eastmoney",
        data_source=DataSource.EASTMONEY,
        fetch=client.fetch_eastmoney,
        parse=parse_eastmoney_response,
        retry=retry,
    )

    chains: dict[str, list[QuoteSource]] = {}
    for config in SUPPORTED_SYMBOLS:
        if config.symbol in SHFE_SYMBOLS:
            chains[config.symbol] = [sina, eastmoney]
        else:
            chains[config.symbol] = [yahoo]

    return chains, [yahoo]
