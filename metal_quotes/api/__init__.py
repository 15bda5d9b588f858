"""HTTP API for metal quotes.

This module contains:
- Quote and health endpoints
- Symbol whitelist validation
- Health status aggregation
"""

from metal_quotes.api.health import HealthReport, HealthStatus, aggregate_status
from metal_quotes.api.routes import ErrorResponse, app, create_app
from metal_quotes.api.validators import parse_symbols, supported_symbols, validate_symbols

__all__ = [
    "ErrorResponse",
    "HealthReport",
    "HealthStatus",
    "aggregate_status",
    "app",
    "create_app",
    "parse_symbols",
    "supported_symbols",
    "validate_symbols",
]
