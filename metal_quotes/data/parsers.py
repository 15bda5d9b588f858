"""Response parsers for upstream quote providers.

Each parser is a pure function ``(symbol, raw_text) -> IntermediateQuote | None``.
``None`` means the payload held no quote; it is a normal outcome, not an
error. Malformed numeric values become absent fields rather than NaN.

Formats:
- Sina: ``var hq_str_nf_au0="price,prev_close,...,YYYY-MM-DD,HH:MM:SS,x";``
- EastMoney: ``{"data": {"f43": 50050, ...}}``, optionally ``cb({...})``
- Yahoo: ``{"quoteResponse": {"result": [...], "error": null}}``
"""

import json
import math
import re
from datetime import UTC, datetime
from typing import Any

import structlog

from metal_quotes.data.models import DataSource, IntermediateQuote, now_ms
from metal_quotes.errors import UpstreamError

logger = structlog.get_logger(__name__)

SHANGHAI_UTC_OFFSET_MS = 8 * 60 * 60 * 1000

# Minimum comma-separated fields in a Sina futures payload
SINA_MIN_FIELDS = 8

_SCRIPT_VAR_RE = re.compile(r'var\s+\w+\s*=\s*"(.+)"')
_CALLBACK_RE = re.compile(r"\w+\((.*)\)", re.DOTALL)
_PAREN_RE = re.compile(r"\((.*)\)", re.DOTALL)


def _finite(value: float) -> float | None:
    return value if math.isfinite(value) else None


def _to_float(value: Any) -> float | None:
    """Coerce to float; unparsable, NaN and infinite values become None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return _finite(result)


def shanghai_to_utc_ms(
    year: int, month: int, day: int, hour: int, minute: int, second: int
) -> int:
    """Convert a Shanghai (UTC+8) wall-clock time to UTC epoch milliseconds."""
    naive = datetime(year, month, day, hour, minute, second, tzinfo=UTC)
    return int(naive.timestamp() * 1000) - SHANGHAI_UTC_OFFSET_MS


def unwrap_script_value(text: str) -> str:
    """Extract the quoted value from a script assignment or callback call.

    Falls back to the text itself when neither wrapper is present.
    """
    match = _SCRIPT_VAR_RE.search(text)
    if match:
        return match.group(1)
    match = _CALLBACK_RE.search(text)
    if match:
        return match.group(1).strip().strip("\"'")
    return text


def parse_sina_response(symbol: str, text: str) -> IntermediateQuote | None:
    """Parse a Sina futures quote.

    Args:
        symbol: Requested symbol.
        text: Raw response body.

    Returns:
        IntermediateQuote, or None if the payload has too few fields.
    """
    fields = unwrap_script_value(text).split(",")
    if len(fields) < SINA_MIN_FIELDS:
        logger.warning("sina_insufficient_fields", symbol=symbol, field_count=len(fields))
        return None

    price = _to_float(fields[0])
    prev_close = _to_float(fields[1])

    change: float | None = None
    change_percent: float | None = None
    if price is not None and prev_close is not None:
        change = _finite(price - prev_close)
        if change is not None:
            change_percent = _finite((change / prev_close) * 100) if prev_close != 0 else 0.0

    date_str = fields[-3].strip()
    time_str = fields[-2].strip()
    timestamp: int | None = None
    if date_str and time_str:
        try:
            local = datetime.strptime(f"{date_str} {time_str}", "%Y-%m-%d %H:%M:%S")
            timestamp = shanghai_to_utc_ms(
                local.year, local.month, local.day, local.hour, local.minute, local.second
            )
        except ValueError:
            timestamp = None

    if timestamp is None:
        logger.warning(
            "sina_timestamp_unparsable", symbol=symbol, date=date_str, time=time_str
        )
        timestamp = now_ms()

    return IntermediateQuote(
        symbol=symbol,
        price=price,
        change=change,
        change_percent=change_percent,
        timestamp=timestamp,
    )


def _scaled(data: dict[str, Any], primary: str, fallback: str) -> float | None:
    """Read a x100-scaled integer field, falling back to an unscaled one."""
    value = _to_float(data.get(primary))
    if value is not None:
        return value / 100
    return _to_float(data.get(fallback))


def _parse_compact_timestamp(raw: Any) -> int | None:
    """Parse a 14-digit YYYYMMDDHHMMSS Shanghai timestamp."""
    if raw is None:
        return None
    digits = str(raw)
    if len(digits) != 14 or not digits.isdigit():
        return None
    try:
        return shanghai_to_utc_ms(
            int(digits[0:4]),
            int(digits[4:6]),
            int(digits[6:8]),
            int(digits[8:10]),
            int(digits[10:12]),
            int(digits[12:14]),
        )
    except ValueError:
        return None


def parse_eastmoney_response(symbol: str, text: str) -> IntermediateQuote | None:
    """Parse an EastMoney quote payload.

    Args:
        symbol: Requested symbol.
        text: Raw response body, JSON or a callback-wrapped JSON.

    Returns:
        IntermediateQuote, or None if the payload has no ``data`` object.
    """
    json_text = text
    if "(" in text:
        match = _PAREN_RE.search(text)
        if match:
            json_text = match.group(1)

    try:
        payload = json.loads(json_text)
    except ValueError as e:
        logger.error("eastmoney_invalid_json", symbol=symbol, error=str(e))
        return None

    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        logger.warning("eastmoney_missing_data", symbol=symbol)
        return None

    raw_time = data.get("f86")
    timestamp = _parse_compact_timestamp(raw_time)
    if timestamp is None:
        if raw_time is not None:
            logger.warning("eastmoney_timestamp_unparsable", symbol=symbol, raw=raw_time)
        timestamp = now_ms()

    return IntermediateQuote(
        symbol=symbol,
        price=_scaled(data, "f43", "f2"),
        change=_scaled(data, "f169", "f4"),
        change_percent=_scaled(data, "f170", "f3"),
        timestamp=timestamp,
    )


def parse_yahoo_response(symbol: str, text: str) -> IntermediateQuote | None:
    """Parse a Yahoo Finance v7 quote response.

    Args:
        symbol: Requested symbol.
        text: Raw JSON body.

    Returns:
        IntermediateQuote for the matching result, or None if absent.

    Raises:
        UpstreamError: If Yahoo reports an error in the payload.
    """
    try:
        payload = json.loads(text)
    except ValueError as e:
        logger.error("yahoo_invalid_json", symbol=symbol, error=str(e))
        return None

    response = payload.get("quoteResponse") if isinstance(payload, dict) else None
    if not isinstance(response, dict):
        logger.warning("yahoo_missing_quote_response", symbol=symbol)
        return None

    if response.get("error"):
        raise UpstreamError(
            f"Yahoo Finance returned error: {response['error']}",
            source=DataSource.YAHOO.value,
        )

    for result in response.get("result") or []:
        if result.get("symbol") != symbol:
            continue
        market_time = _to_float(result.get("regularMarketTime"))
        return IntermediateQuote(
            symbol=symbol,
            price=_to_float(result.get("regularMarketPrice")),
            change=_to_float(result.get("regularMarketChange")),
            change_percent=_to_float(result.get("regularMarketChangePercent")),
            timestamp=int(market_time * 1000) if market_time is not None else None,
        )

    logger.warning("yahoo_symbol_not_in_result", symbol=symbol)
    return None
