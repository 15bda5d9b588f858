"""Metal Quotes - normalized commodity and forex quotes.

Resolves quotes for a small whitelist of precious-metal symbols through
an ordered chain of upstream market-data sources, backed by a short-lived
ephemeral cache and a durable last-known-good store.
"""

__version__ = "1.0.0"
