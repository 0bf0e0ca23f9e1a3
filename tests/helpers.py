"""Shared fakes for the test suite."""

from datetime import datetime
from unittest.mock import MagicMock

from ledgerline.models import Side, Transaction


class FakeClock:
    """Settable clock returning unix seconds."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDateTimeClock:
    """Settable clock returning local datetimes."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_response(payload=None, exc: Exception = None):
    """A requests.Response stand-in whose json() returns payload."""
    response = MagicMock()
    if exc is not None:
        response.json.side_effect = exc
    else:
        response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


def make_session(*responses):
    """
    A requests.Session stand-in returning responses in order.

    Exceptions in the list are raised by get() instead.
    """
    session = MagicMock()
    session.get.side_effect = list(responses)
    return session


def make_tx(code="2330", side=Side.BUY, quantity=1000, price=500.0, when="2024-01-15T10:00:00", **kw):
    return Transaction(
        code=code,
        name=kw.pop("name", f"Stock {code}"),
        side=side,
        quantity=quantity,
        price=price,
        executed_at=datetime.fromisoformat(when),
        **kw,
    )
