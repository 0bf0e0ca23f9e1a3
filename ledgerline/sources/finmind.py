"""
FinMind - Token-gated historical feed (daily closes, dividends, instrument info).

Usage:
    finmind = FinMindClient()
    quote = await finmind.fetch_quote('2330', token)
    result = await finmind.lookup_dividend_events('2330', start, end, token)
    info = await finmind.lookup_instrument_info('0050', token)

Daily closes only: a quote built here has no intraday price and no order book.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

import requests

from ledgerline.config.markets import (
    FINMIND_BASE_URL,
    FINMIND_DIVIDEND_DATASET,
    FINMIND_INFO_DATASET,
    FINMIND_PRICE_DATASET,
    NOT_FOUND_MARKERS,
    PRICE_LOOKBACK_DAYS,
    SOURCE_TIMEOUT_SECONDS,
)
from ledgerline.errors import DividendSourceError, EmptyQuoteError, QuoteParseError, QuoteSourceError
from ledgerline.models import Quote

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DividendQueryResult:
    """Raw dividend rows plus the feed message that came with them."""

    message: str
    rows: list[dict] = field(default_factory=list)

    @property
    def not_found(self) -> bool:
        """The feed says the instrument itself is unknown."""
        text = (self.message or "").lower()
        return not self.rows and any(marker in text for marker in NOT_FOUND_MARKERS)


@dataclass(frozen=True)
class InstrumentInfo:
    code: str
    name: str
    industry: str = ""
    type: str = ""
    is_etf: bool = False


class FinMindClient:
    """Quote Source 2 and the dividend-events source."""

    def __init__(self, session=None, timeout: float = SOURCE_TIMEOUT_SECONDS, clock=time.time):
        self._session = session or requests.Session()
        self._timeout = timeout
        self._clock = clock

    async def _request(self, dataset: str, params: dict, token: str) -> dict:
        """
        Call the data endpoint and return the decoded body.

        Raises:
            requests.RequestException / ValueError: transport or decoding failure
        """
        query = {"dataset": dataset, **params}
        if token:
            query["token"] = token
        response = await asyncio.to_thread(self._session.get, FINMIND_BASE_URL, params=query, timeout=self._timeout)
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"unexpected payload type {type(payload).__name__}")
        return payload

    # -------------------------------------------------------------------------
    # Prices
    # -------------------------------------------------------------------------

    async def lookup_price_series(self, code: str, start: date, end: date, token: str) -> list[dict]:
        """Daily price rows between start and end, oldest first."""
        params = {"data_id": code, "start_date": start.isoformat(), "end_date": end.isoformat()}
        try:
            payload = await self._request(FINMIND_PRICE_DATASET, params, token)
        except (requests.RequestException, ValueError) as e:
            raise QuoteSourceError(f"FinMind price request failed for {code}: {e}") from e

        if payload.get("status") != 200:
            raise QuoteSourceError(f"FinMind price request for {code} returned {payload.get('status')}: {payload.get('msg')}")
        rows = payload.get("data") or []
        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise QuoteParseError(f"FinMind price rows for {code} are malformed")
        return sorted(rows, key=lambda r: str(r.get("date", "")))

    async def fetch_quote(self, code: str, token: str, today: Optional[date] = None) -> Quote:
        """Quote from the last two daily closes of the trailing lookback window."""
        end = today or date.today()
        start = end - timedelta(days=PRICE_LOOKBACK_DAYS)
        rows = await self.lookup_price_series(code, start, end, token)
        if not rows:
            raise EmptyQuoteError(f"FinMind has no prices for {code} since {start}")

        try:
            current_price = float(rows[-1]["close"])
            # A lone data point has no prior close; its open stands in
            previous_close = float(rows[-2]["close"]) if len(rows) > 1 else float(rows[-1]["open"])
        except (KeyError, TypeError, ValueError) as e:
            raise QuoteParseError(f"FinMind price row for {code} is malformed: {e}") from e

        logger.info(f"FinMind: {code} = {current_price} ({rows[-1].get('date')})")
        return Quote.build(
            code=code,
            current_price=current_price,
            previous_close=previous_close,
            timestamp=self._clock(),
            source="finmind",
        )

    # -------------------------------------------------------------------------
    # Dividends
    # -------------------------------------------------------------------------

    async def lookup_dividend_events(self, code: str, start: date, end: date, token: str) -> DividendQueryResult:
        """
        Dividend announcements for an instrument between start and end.

        An empty token is still sent as an anonymous request.

        Raises:
            DividendSourceError: network failure, timeout, malformed payload or error status
        """
        params = {"data_id": code, "start_date": start.isoformat(), "end_date": end.isoformat()}
        try:
            payload = await self._request(FINMIND_DIVIDEND_DATASET, params, token)
        except (requests.RequestException, ValueError) as e:
            raise DividendSourceError(f"FinMind dividend request failed for {code}: {e}") from e

        message = str(payload.get("msg") or "")
        rows = payload.get("data") or []
        if not isinstance(rows, list):
            raise DividendSourceError(f"FinMind dividend rows for {code} are malformed")
        result = DividendQueryResult(message=message, rows=rows)
        if payload.get("status") != 200 and not result.not_found:
            raise DividendSourceError(f"FinMind dividend request for {code} returned {payload.get('status')}: {message}")
        return result

    # -------------------------------------------------------------------------
    # Instrument info
    # -------------------------------------------------------------------------

    async def lookup_instrument_info(self, code: str, token: str = "") -> Optional[InstrumentInfo]:
        """Name and classification for an instrument, or None if unavailable."""
        try:
            payload = await self._request(FINMIND_INFO_DATASET, {"data_id": code}, token)
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"FinMind info request failed for {code}: {e}")
            return None

        data = payload.get("data")
        rows = [r for r in data if isinstance(r, dict) and r.get("stock_id") == code] if isinstance(data, list) else []
        if payload.get("status") != 200 or not rows:
            return None

        row = rows[0]
        industry = row.get("industry_category") or ""
        kind = row.get("type") or ""
        is_etf = "ETF" in industry.upper() or "ETF" in kind.upper() or code.startswith("00")
        return InstrumentInfo(code=code, name=row.get("stock_name") or code, industry=industry, type=kind, is_etf=is_etf)
