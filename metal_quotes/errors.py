"""Exception hierarchy for quote resolution.

Exception Hierarchy:
    MetalQuotesError (base)
    ├── UpstreamError - transport, HTTP status or provider-reported failures
    ├── NoUsableDataError - a payload parsed to nothing with a price
    └── SymbolValidationError - request named a symbol outside the whitelist
"""

from typing import Any


class MetalQuotesError(Exception):
    """Base exception for all metal-quotes errors.

    Attributes:
        message: Human-readable error message.
        details: Additional error details.
        recoverable: Whether a retry or fallback may succeed.
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        recoverable: bool = True,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/API responses."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class UpstreamError(MetalQuotesError):
    """An upstream provider call failed.

    Attributes:
        source: Provider name (e.g. "sina").
        status: HTTP status, or 0 for transport errors.
    """

    def __init__(
        self,
        message: str,
        *,
        source: str,
        status: int = 0,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details, recoverable=True)
        self.source = source
        self.status = status

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        base = super().to_dict()
        base.update({"source": self.source, "status": self.status})
        return base


class NoUsableDataError(MetalQuotesError):
    """A provider answered, but with no usable price for the symbol."""

    def __init__(self, *, source: str, symbol: str) -> None:
        super().__init__(
            f"No usable price from {source} for {symbol}",
            details={"source": source, "symbol": symbol},
            recoverable=True,
        )
        self.source = source
        self.symbol = symbol


class SymbolValidationError(MetalQuotesError):
    """Requested symbols are missing or not supported."""

    def __init__(self, message: str, *, invalid: list[str] | None = None) -> None:
        super().__init__(
            message,
            details={"invalid_symbols": invalid or []},
            recoverable=False,
        )
        self.invalid = invalid or []
