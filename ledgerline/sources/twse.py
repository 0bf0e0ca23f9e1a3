"""
TWSE - Official exchange intraday feed (free, unauthenticated, ~5s delay).

Usage:
    twse = TwseClient()
    quote = await twse.fetch_quote('2330')
    payload = await twse.lookup('tse_2330.tw')

Every field in a feed row is a string; "-" or "" means no value yet.
Best ask/bid fields hold up to five levels joined by "_".
"""

import asyncio
import logging
import time
from typing import Callable, Optional

import requests

from ledgerline.config.markets import (
    MARKET_INDEX_CODE,
    MARKET_PREFIXES,
    SOURCE_TIMEOUT_SECONDS,
    TWSE_BASE_URL,
    TWSE_QUOTE_PATH,
    TWSE_SUCCESS_CODE,
)
from ledgerline.errors import EmptyQuoteError, QuoteParseError, QuoteSourceError
from ledgerline.models import Quote

logger = logging.getLogger(__name__)

PLACEHOLDER = "-"


def parse_price(raw) -> Optional[float]:
    """Parse a feed price string; None for placeholders and garbage."""
    if raw is None:
        return None
    text = str(raw).replace(",", "").strip()
    if not text or text == PLACEHOLDER:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def first_level(raw) -> Optional[float]:
    """First level of an "_"-joined order book field, if positive."""
    if not raw:
        return None
    return _positive(parse_price(str(raw).split("_")[0]))


def _positive(value: Optional[float]) -> Optional[float]:
    return value if value is not None and value > 0 else None


# Ordered fallback for the current price. First extractor returning a value wins;
# previous close is the last resort and is handled by parse_quote.
PRICE_CHAIN: list[tuple[str, Callable[[dict], Optional[float]]]] = [
    ("last", lambda row: parse_price(row.get("z"))),
    ("trial", lambda row: _positive(parse_price(row.get("pz")))),
    ("ask", lambda row: first_level(row.get("a"))),
    ("bid", lambda row: first_level(row.get("b"))),
    ("open", lambda row: _positive(parse_price(row.get("o")))),
]


def select_price(row: dict) -> tuple[str, float]:
    """
    Pick the current price for a feed row.

    Returns:
        (tier name, price)

    Raises:
        QuoteParseError: previous close is missing, so no quote can be built
    """
    previous_close = parse_price(row.get("y"))
    if previous_close is None:
        raise QuoteParseError(f"No previous close for {row.get('c')}")
    for name, extract in PRICE_CHAIN:
        value = extract(row)
        if value is not None:
            return name, value
    return "previous_close", previous_close


def parse_quote(code: str, row: dict, timestamp: float) -> Quote:
    """Build a quote from one feed row."""
    tier, current_price = select_price(row)
    previous_close = parse_price(row.get("y"))
    logger.debug(f"{code}: price {current_price} from {tier}")
    return Quote.build(
        code=code,
        current_price=current_price,
        previous_close=previous_close,
        timestamp=timestamp,
        ask_price=first_level(row.get("a")),
        source="twse",
    )


class TwseClient:
    """Quote Source 1: the exchange's intraday snapshot endpoint."""

    def __init__(self, session=None, timeout: float = SOURCE_TIMEOUT_SECONDS, clock=time.time):
        self._session = session or requests.Session()
        self._timeout = timeout
        self._clock = clock

    async def lookup(self, market_code: str) -> dict:
        """
        Fetch the raw snapshot for a market-prefixed code (e.g. 'tse_2330.tw').

        Raises:
            EmptyQuoteError: feed answered without data for this code
            QuoteSourceError: network failure, timeout or malformed payload
        """
        params = {"ex_ch": market_code, "json": "1", "delay": "0"}
        try:
            response = await asyncio.to_thread(
                self._session.get, TWSE_BASE_URL + TWSE_QUOTE_PATH, params=params, timeout=self._timeout
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            raise QuoteSourceError(f"TWSE request failed for {market_code}: {e}") from e

        if not isinstance(payload, dict):
            raise QuoteSourceError(f"TWSE returned unexpected payload for {market_code}")
        if payload.get("rtcode") != TWSE_SUCCESS_CODE or not payload.get("msgArray"):
            raise EmptyQuoteError(f"TWSE has no data for {market_code} ({payload.get('rtmessage')})")
        if not isinstance(payload["msgArray"], list):
            raise QuoteParseError(f"TWSE returned a malformed row list for {market_code}")
        return payload

    async def fetch_quote(self, code: str) -> Quote:
        """Resolve a quote, trying each market namespace in turn."""
        for prefix in MARKET_PREFIXES:
            market_code = f"{prefix}_{code}.tw"
            try:
                payload = await self.lookup(market_code)
            except EmptyQuoteError:
                logger.debug(f"TWSE: no data under {market_code}")
                continue
            row = payload["msgArray"][0]
            if not isinstance(row, dict):
                raise QuoteParseError(f"TWSE returned a malformed row for {market_code}")
            quote = parse_quote(code, row, self._clock())
            logger.info(f"TWSE: {code} = {quote.current_price} ({market_code})")
            return quote
        raise EmptyQuoteError(f"TWSE has no data for {code} in any market")

    async def market_snapshot(self) -> Optional[dict]:
        """Index snapshot carrying the exchange date and time, or None if unavailable."""
        try:
            return await self.lookup(MARKET_INDEX_CODE)
        except QuoteSourceError as e:
            logger.warning(f"TWSE: market snapshot unavailable: {e}")
            return None
