"""FastAPI routes for the metal quotes API.

This module provides:
- /api/quotes endpoint serving normalized quotes
- /api/health endpoint reporting upstream and cache health
- CORS configuration
- Error handling
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from metal_quotes import __version__
from metal_quotes.api.health import HealthReport
from metal_quotes.api.validators import parse_symbols
from metal_quotes.config import Settings, settings
from metal_quotes.data.models import now_ms
from metal_quotes.errors import SymbolValidationError
from metal_quotes.logging_config import configure_logging
from metal_quotes.service import QuoteService, create_quote_service

logger = structlog.get_logger(__name__)

CORS_MAX_AGE = 86400  # seconds


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error message")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(),
    )


def get_service(request: Request) -> QuoteService:
    """Get the quote service attached to the application."""
    service: QuoteService | None = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return service


def create_app(
    service: QuoteService | None = None,
    config: Settings | None = None,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: Pre-built quote service. When omitted, one is created from
            settings at startup and closed at shutdown.
        config: Settings (defaults to the global settings).
        cors_origins: Allowed CORS origins (defaults to any).

    Returns:
        Configured FastAPI application.
    """
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(config.LOG_LEVEL, json_logs=config.JSON_LOGS)
        logger.info("application_starting", version=__version__)

        owned = app.state.service is None
        if owned:
            app.state.service = await create_quote_service(config)

        yield

        logger.info("application_shutting_down")
        if owned:
            await app.state.service.close()
            app.state.service = None

    app = FastAPI(
        title="Metal Quotes API",
        version=__version__,
        description="Normalized precious-metal and forex quotes with multi-source fallback.",
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
        max_age=CORS_MAX_AGE,
    )

    @app.exception_handler(SymbolValidationError)
    async def validation_exception_handler(
        request: Request, exc: SymbolValidationError  # noqa: ARG001
    ) -> JSONResponse:
        logger.warning("symbol_validation_error", error=exc.message, invalid=exc.invalid)
        return _error(400, exc.message)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException  # noqa: ARG001
    ) -> JSONResponse:
        return _error(exc.status_code, exc.detail if isinstance(exc.detail, str) else str(exc.detail))

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception  # noqa: ARG001
    ) -> JSONResponse:
        logger.error("unhandled_exception", error=str(exc), exc_info=True)
        return _error(500, "Internal server error")

    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """Register API routes."""

    @app.get("/api/quotes", tags=["Quotes"], response_model=None)
    async def get_quotes(
        request: Request,
        symbols: str | None = Query(
            default=None,
            description="Comma-separated symbols (e.g. XAUUSD=X,au0). Omit for all.",
        ),
    ) -> dict[str, Any] | JSONResponse:
        """Get quotes for the requested symbols.

        Symbols without live or last-known-good data are omitted.
        """
        requested = parse_symbols(symbols)
        service = get_service(request)
        timeout = request.app.state.config.REQUEST_TIMEOUT_SECONDS

        logger.info("processing_quotes_request", symbols=requested)
        try:
            quotes = await asyncio.wait_for(service.get_quotes(requested), timeout=timeout)
        except TimeoutError:
            logger.error("quotes_request_timeout", symbols=requested, timeout=timeout)
            return _error(504, "Request timed out")

        if not quotes:
            return _error(503, "No quotes available")

        logger.info("returning_quotes", count=len(quotes))
        return {
            "quotes": [quote.to_payload() for quote in quotes],
            "timestamp": now_ms(),
        }

    @app.get("/api/health", tags=["Health"], response_model=None)
    async def health(request: Request) -> JSONResponse:
        """Check upstream reachability and both cache tiers."""
        service = get_service(request)
        report = HealthReport.from_checks(await service.health(), metrics=service.metrics())
        return JSONResponse(content=report.to_dict(), status_code=report.status.http_status)


# Default application instance
app = create_app()
