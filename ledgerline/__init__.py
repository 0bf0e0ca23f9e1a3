"""
Ledgerline - Stock transaction ledger with live valuation and dividend attribution.

Usage:
    from ledgerline import Database, Settings, PriceCache, PriceResolver, Portfolio

    db = Database()
    await db.connect()
    settings = Settings(db)

    resolver = PriceResolver(PriceCache(db), TwseClient(), FinMindClient(), settings)
    summary = await Portfolio(db, resolver, settings).summarize()

    reconciler = DividendReconciler(db, FinMindClient())
    await reconciler.reconcile_due(['2330'], await settings.token())
"""

from ledgerline.database import Database
from ledgerline.dividends import DividendReconciler
from ledgerline.models import (
    DividendCalculationRecord,
    DividendEvent,
    DividendType,
    Holding,
    HoldingDetail,
    PortfolioSummary,
    PriceCacheEntry,
    QueryOutcome,
    Quote,
    Side,
    Transaction,
)
from ledgerline.portfolio import Portfolio
from ledgerline.price_cache import PriceCache
from ledgerline.resolver import PriceResolver
from ledgerline.settings import Settings
from ledgerline.sources import FinMindClient, TwseClient

__all__ = [
    "Database",
    "Settings",
    "PriceCache",
    "PriceResolver",
    "Portfolio",
    "DividendReconciler",
    "TwseClient",
    "FinMindClient",
    # Models
    "Transaction",
    "Side",
    "Quote",
    "PriceCacheEntry",
    "DividendEvent",
    "DividendType",
    "DividendCalculationRecord",
    "QueryOutcome",
    "Holding",
    "HoldingDetail",
    "PortfolioSummary",
]
