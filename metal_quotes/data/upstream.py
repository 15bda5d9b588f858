"""HTTP clients for upstream quote providers.

One GET per call, returning the raw body. Parsing lives in
``metal_quotes.data.parsers``; retries and fallback live in the router.
"""

from typing import Any

import httpx
import structlog

from metal_quotes.config import (
    EASTMONEY_BASE_URL,
    SINA_BASE_URL,
    USER_AGENT,
    YAHOO_FINANCE_BASE_URL,
)
from metal_quotes.data.models import DataSource
from metal_quotes.errors import UpstreamError

logger = structlog.get_logger(__name__)

SINA_REFERER = "https://finance.sina.com.cn/"
EASTMONEY_REFERER = "https://quote.eastmoney.com/"
YAHOO_REFERER = "https://finance.yahoo.com/"

EASTMONEY_FIELDS = "f43,f44,f45,f46,f47,f48,f49,f50,f51,f52,f86,f169,f170,f2,f3,f4"


def sina_symbol(symbol: str) -> str:
    """Sina futures code for a SHFE symbol."""
    return f"nf_{symbol}"


def eastmoney_secid(symbol: str) -> str:
    """EastMoney security id for a SHFE symbol (market 113)."""
    return f"113.{symbol}"


class UpstreamClient:
    """Async client for the upstream market-data providers.

    Shares one ``httpx.AsyncClient`` across providers. Every request carries
    a fixed User-Agent and a provider-specific Referer.

    Example:
        async with UpstreamClient() as client:
            text = await client.fetch_sina("au0")
    """

    def __init__(
        self,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the upstream client.

        Args:
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._logger = logger.bind(component="upstream_client")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": USER_AGENT},
                timeout=self._timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _get_text(
        self,
        source: DataSource,
        url: str,
        *,
        referer: str,
        params: dict[str, Any] | None = None,
    ) -> str:
        """GET a URL and return the body.

        Raises:
            UpstreamError: On transport errors or non-2xx responses.
        """
        client = await self._get_client()
        self._logger.debug("upstream_request", source=source.value, url=url, params=params)

        try:
            response = await client.get(url, params=params, headers={"Referer": referer})
        except httpx.HTTPError as e:
            self._logger.warning("upstream_transport_error", source=source.value, error=str(e))
            raise UpstreamError(str(e) or type(e).__name__, source=source.value) from e

        if not response.is_success:
            self._logger.warning(
                "upstream_http_error",
                source=source.value,
                status=response.status_code,
                reason=response.reason_phrase,
            )
            raise UpstreamError(
                f"{source.value} API error: {response.status_code}",
                source=source.value,
                status=response.status_code,
            )

        return response.text

    async def fetch_sina(self, symbol: str) -> str:
        """Fetch the raw Sina script payload for a SHFE symbol."""
        return await self._get_text(
            DataSource.SINA,
            f"{SINA_BASE_URL}{sina_symbol(symbol)}",
            referer=SINA_REFERER,
        )

    async def fetch_eastmoney(self, symbol: str) -> str:
        """Fetch the raw EastMoney JSON payload for a SHFE symbol."""
        return await self._get_text(
            DataSource.EASTMONEY,
            EASTMONEY_BASE_URL,
            referer=EASTMONEY_REFERER,
            params={"secid": eastmoney_secid(symbol), "fields": EASTMONEY_FIELDS},
        )

    async def fetch_yahoo(self, symbol: str) -> str:
        """Fetch the raw Yahoo Finance quote JSON for one symbol."""
        return await self._get_text(
            DataSource.YAHOO,
            YAHOO_FINANCE_BASE_URL,
            referer=YAHOO_REFERER,
            params={"symbols": symbol},
        )

    async def yahoo_health(self) -> bool:
        """Probe Yahoo Finance reachability.

        A 400 is expected for a bare request without symbols and still
        counts as reachable.
        """
        client = await self._get_client()
        try:
            response = await client.head(YAHOO_FINANCE_BASE_URL)
        except httpx.HTTPError as e:
            self._logger.error("yahoo_health_check_failed", error=str(e))
            return False
        return response.is_success or response.status_code == 400

    async def sina_health(self) -> bool:
        """Probe Sina reachability with the SHFE gold contract."""
        client = await self._get_client()
        try:
            response = await client.get(
                f"{SINA_BASE_URL}{sina_symbol('au0')}",
                headers={"Referer": SINA_REFERER},
            )
        except httpx.HTTPError as e:
            self._logger.error("sina_health_check_failed", error=str(e))
            return False
        return response.is_success

    async def __aenter__(self) -> "UpstreamClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
