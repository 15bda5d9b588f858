"""Data layer for upstream quote resolution.

This module provides:
- UpstreamClient: Async HTTP client for Yahoo, Sina and EastMoney
- Parsers: Provider payload -> IntermediateQuote
- FallbackResolver: Ordered fallback chain orchestration
- Data models: Quote, IntermediateQuote, DataSource
"""

from metal_quotes.data.models import DataSource, IntermediateQuote, Quote
from metal_quotes.data.normalizer import normalize_quote
from metal_quotes.data.router import FallbackResolver
from metal_quotes.data.sources import QuoteSource, build_default_chains
from metal_quotes.data.upstream import UpstreamClient

__all__ = [
    "DataSource",
    "FallbackResolver",
    "IntermediateQuote",
    "Quote",
    "QuoteSource",
    "UpstreamClient",
    "build_default_chains",
    "normalize_quote",
]
