"""Request validation for quote symbols."""

from metal_quotes.config import SUPPORTED_SYMBOLS
from metal_quotes.errors import SymbolValidationError


def supported_symbols() -> list[str]:
    """All whitelisted symbols in catalogue order."""
    return [config.symbol for config in SUPPORTED_SYMBOLS]


def validate_symbols(symbols: list[str]) -> list[str]:
    """Check symbols against the whitelist.

    Matching is exact and case-sensitive.

    Args:
        symbols: Requested symbols.

    Returns:
        The symbols unchanged.

    Raises:
        SymbolValidationError: If the list is empty or contains unsupported symbols.
    """
    if not symbols:
        raise SymbolValidationError("No symbols provided")

    supported = supported_symbols()
    invalid = [symbol for symbol in symbols if symbol not in supported]
    if invalid:
        raise SymbolValidationError(
            f"Invalid symbols: {', '.join(invalid)}. "
            f"Supported symbols: {', '.join(supported)}",
            invalid=invalid,
        )

    return symbols


def parse_symbols(raw: str | None) -> list[str]:
    """Parse the comma-separated ``symbols`` query parameter.

    An absent or empty parameter selects every supported symbol. Entries are
    trimmed and empty entries dropped before validation.

    Raises:
        SymbolValidationError: If validation fails.
    """
    if not raw:
        return supported_symbols()

    symbols = [part.strip() for part in raw.split(",")]
    return validate_symbols([symbol for symbol in symbols if symbol])
