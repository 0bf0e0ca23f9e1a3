"""
Errors raised by quote and dividend sources.

Price resolution treats every TransportError as "try the next tier".
Dividend reconciliation records the failure and re-raises it.
"""


class TransportError(Exception):
    """A source could not be reached or returned an unusable payload."""


class QuoteSourceError(TransportError):
    """A quote source failed for one instrument."""


class EmptyQuoteError(QuoteSourceError):
    """The feed answered but had no row for the requested code."""


class QuoteParseError(QuoteSourceError):
    """The feed row is missing a field required to build a quote."""


class DividendSourceError(TransportError):
    """The dividend events source failed."""
