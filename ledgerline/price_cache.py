"""
PriceCache - Last known-good quote per instrument with a freshness window.

Usage:
    cache = PriceCache(db)
    entry = await cache.get('2330')
    if entry and cache.is_fresh(entry):
        ...
    await cache.put(quote)        # Only after a successful source call
    await cache.invalidate('2330')
    await cache.invalidate()      # All entries

Entries are never expired by the cache itself. Freshness is checked when an
entry is consumed; an old entry stays available as the fallback of last resort.
"""

import logging
import time
from typing import Optional

from ledgerline.config.markets import PRICE_CACHE_FRESH_SECONDS
from ledgerline.models import PriceCacheEntry, Quote

logger = logging.getLogger(__name__)


class PriceCache:
    """Quote cache backed by the price cache store."""

    def __init__(self, db, fresh_seconds: float = PRICE_CACHE_FRESH_SECONDS, clock=time.time):
        """
        Args:
            db: Store with get_price_cache / upsert_price_cache / delete_price_cache
            fresh_seconds: Age below which an entry is served without a network call
            clock: Returns the current unix time
        """
        self._db = db
        self._fresh_seconds = fresh_seconds
        self._clock = clock
        self._hits = 0
        self._misses = 0
        self._fresh_hits = 0

    def now(self) -> float:
        return self._clock()

    def age(self, entry: PriceCacheEntry) -> float:
        """Seconds since the entry was written."""
        return self._clock() - entry.last_update

    def is_fresh(self, entry: PriceCacheEntry) -> bool:
        return self.age(entry) < self._fresh_seconds

    async def get(self, code: str) -> Optional[PriceCacheEntry]:
        """Get the cached entry for an instrument, fresh or not."""
        entry = await self._db.get_price_cache(code)
        if entry is None:
            self._misses += 1
            return None
        self._hits += 1
        if self.is_fresh(entry):
            self._fresh_hits += 1
        return entry

    async def put(self, quote: Quote) -> PriceCacheEntry:
        """Store a freshly resolved quote, stamped with the current time."""
        entry = PriceCacheEntry.from_quote(quote, last_update=self._clock())
        await self._db.upsert_price_cache(entry)
        return entry

    async def invalidate(self, code: Optional[str] = None) -> int:
        """
        Remove one entry, or every entry when code is None.

        Returns the number of entries removed.
        """
        removed = await self._db.delete_price_cache(code)
        logger.info(f"Price cache invalidated ({code or 'all'}): {removed} entries")
        return removed

    def stats(self) -> dict:
        """
        Get cache statistics.

        Returns dict with hits, fresh hits, misses, and hit rate.
        """
        total_requests = self._hits + self._misses
        return {
            "fresh_seconds": self._fresh_seconds,
            "hits": self._hits,
            "fresh_hits": self._fresh_hits,
            "misses": self._misses,
            "hit_rate": self._hits / total_requests if total_requests > 0 else 0.0,
        }

    def reset_stats(self) -> None:
        """Reset hit/miss counters."""
        self._hits = 0
        self._misses = 0
        self._fresh_hits = 0
