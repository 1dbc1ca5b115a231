"""
Execution Engine - Pricing Resolver.

The execution price of a market order is the instrument's
closing price when positive, otherwise its share price.
"""

from decimal import Decimal
from typing import Optional

from .errors import PricingError
from .types import InstrumentSnapshot


def _positive(value: Optional[Decimal]) -> bool:
    return value is not None and value > 0


def resolve_execution_price(snapshot: InstrumentSnapshot) -> Decimal:
    """
    Resolve the price a market order executes at.

    Raises:
        PricingError: neither closing_price nor share_price is positive
    """
    if _positive(snapshot.closing_price):
        return snapshot.closing_price
    if _positive(snapshot.share_price):
        return snapshot.share_price
    raise PricingError(f"Invalid share price for {snapshot.symbol}")


def current_price(snapshot: InstrumentSnapshot) -> Decimal:
    """Valuation price for reporting; zero when the instrument has no price."""
    try:
        return resolve_execution_price(snapshot)
    except PricingError:
        return Decimal("0")
