"""
PriceResolver - One authoritative quote per instrument per request.

Usage:
    resolver = PriceResolver(cache, twse, finmind, settings)
    quote = await resolver.resolve('2330')                    # None if unavailable
    quote = await resolver.resolve('2330', force_refresh=True)
    quotes = await resolver.resolve_many(['2330', '0050'])

Order of tiers:
    1. fresh cache entry (skipped when forcing a refresh)
    2. exchange intraday feed
    3. historical feed (only when a token is configured)
    4. cache entry of any age, marked stale
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ledgerline.errors import QuoteSourceError
from ledgerline.models import Quote

logger = logging.getLogger(__name__)

Strategy = Callable[[str], Awaitable[Quote]]


class PriceResolver:
    """Resolves quotes through an ordered list of source strategies."""

    def __init__(self, cache, twse, finmind, settings):
        """
        Args:
            cache: PriceCache instance
            twse: Source with async fetch_quote(code)
            finmind: Source with async fetch_quote(code, token)
            settings: Settings instance (reads the historical feed token)
        """
        self._cache = cache
        self._twse = twse
        self._finmind = finmind
        self._settings = settings
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, code: str) -> asyncio.Lock:
        return self._locks.setdefault(code, asyncio.Lock())

    async def strategies(self) -> list[tuple[str, Strategy]]:
        """Source tiers in priority order for the current configuration."""
        # Intraday feed first: it has the real previous close needed for today's P&L
        strategies: list[tuple[str, Strategy]] = [("twse", self._twse.fetch_quote)]
        token = await self._settings.token()
        if token:

            async def from_finmind(code: str) -> Quote:
                return await self._finmind.fetch_quote(code, token)

            strategies.append(("finmind", from_finmind))
        return strategies

    async def resolve(self, code: str, force_refresh: bool = False) -> Optional[Quote]:
        """
        Resolve the current quote for an instrument.

        Cache read, source calls and cache write run under a per-instrument
        lock so concurrent refreshes of one code cannot interleave.

        Returns:
            Quote, or None when no source answered and nothing is cached
        """
        async with self._lock_for(code):
            cached = await self._cache.get(code)
            if cached is not None and not force_refresh and self._cache.is_fresh(cached):
                return cached.to_quote(is_stale=False)

            for name, strategy in await self.strategies():
                try:
                    quote = await strategy(code)
                except QuoteSourceError as e:
                    logger.warning(f"Price source {name} failed for {code}: {e}")
                    continue
                await self._cache.put(quote)
                return quote

            if cached is not None:
                logger.warning(
                    f"All price sources failed for {code}, using cached price from {self._cache.age(cached):.0f}s ago"
                )
                return cached.to_quote(is_stale=True)

            logger.error(f"No price available for {code}")
            return None

    async def resolve_many(self, codes: list[str], force_refresh: bool = False) -> dict[str, Quote]:
        """Resolve several instruments concurrently. Unavailable codes are left out."""
        unique = list(dict.fromkeys(codes))
        quotes = await asyncio.gather(*[self.resolve(code, force_refresh) for code in unique])
        return {code: quote for code, quote in zip(unique, quotes) if quote is not None}
