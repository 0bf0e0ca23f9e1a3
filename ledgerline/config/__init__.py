"""
Ledgerline Configuration Package

Contains fixed feed endpoints and policy constants.
"""

from ledgerline.config.markets import (
    DIVIDEND_RECHECK_SECONDS,
    MARKET_PREFIXES,
    PRICE_CACHE_FRESH_SECONDS,
    PRICE_LOOKBACK_DAYS,
    SOURCE_TIMEOUT_SECONDS,
)

__all__ = [
    "MARKET_PREFIXES",
    "PRICE_CACHE_FRESH_SECONDS",
    "PRICE_LOOKBACK_DAYS",
    "DIVIDEND_RECHECK_SECONDS",
    "SOURCE_TIMEOUT_SECONDS",
]
