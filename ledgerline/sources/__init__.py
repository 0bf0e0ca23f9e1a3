"""Quote and dividend source adapters."""

from ledgerline.sources.finmind import DividendQueryResult, FinMindClient, InstrumentInfo
from ledgerline.sources.twse import TwseClient

__all__ = ["TwseClient", "FinMindClient", "DividendQueryResult", "InstrumentInfo"]
