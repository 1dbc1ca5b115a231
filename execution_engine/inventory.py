"""
Execution Engine - Instrument Inventory & Market Statistics.

============================================================
PURPOSE
============================================================
Per-company available-share counter and rolling trade
statistics.

INVARIANT:
    0 <= available_shares <= total_shares

ON BUY (apply_buy), written together:
    available_shares       -= filled_quantity
    previous_closing_price := closing_price (pre-trade)
    closing_price          := execution_price
    price_change           := execution_price - previous_closing_price
    traded_volume          += filled_quantity
    traded_value           += filled_amount
    snapshot_date          := now

    Every execution becomes the reference price for the next.

WRITERS:
    Two paths mutate a company row: buys and market sync.
    Both lock the row (SELECT ... FOR UPDATE) before writing,
    so neither clobbers the other's fields half-way.

============================================================
"""

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from database.models import Company, MarketSnapshot, utc_now

from .errors import InsufficientInventoryError, NotFoundError
from .types import InstrumentPatch, InstrumentSnapshot


logger = logging.getLogger(__name__)


PRICE_CHANGE_QUANTUM = Decimal("0.01")


def price_delta(new_price: Decimal, reference_price: Optional[Decimal]) -> Decimal:
    """Absolute price change, 2 decimals. No reference means no change."""
    reference = reference_price if reference_price is not None else new_price
    return (Decimal(new_price) - Decimal(reference)).quantize(PRICE_CHANGE_QUANTUM, rounding=ROUND_HALF_UP)


class InstrumentInventory:
    """Instrument operations bound to one session."""

    def __init__(self, session: Session, require_verified: bool = True):
        self._session = session
        self._require_verified = require_verified

    # ---------------------------------------------------------
    # READS
    # ---------------------------------------------------------

    def find_by_symbol(self, symbol: str, lock: bool = False) -> Company:
        """
        Look up a tradable instrument.

        Raises:
            NotFoundError: unknown symbol, or unverified when verification is required
        """
        stmt = select(Company).where(Company.symbol == symbol.strip().upper())
        if self._require_verified:
            stmt = stmt.where(Company.is_verified.is_(True))
        if lock:
            stmt = stmt.with_for_update()

        company = self._session.execute(stmt).scalar_one_or_none()
        if company is None:
            raise NotFoundError(
                "Company not found or not verified"
                if self._require_verified
                else f"Company with symbol '{symbol}' not found"
            )
        return company

    def available_shares(self, company_id: str) -> int:
        value = self._session.execute(
            select(Company.available_shares).where(Company.id == company_id)
        ).scalar_one()
        return int(value)

    @staticmethod
    def ensure_available(snapshot: InstrumentSnapshot, quantity: int) -> None:
        """
        Raises:
            InsufficientInventoryError: fewer than quantity shares available
        """
        if snapshot.available_shares < quantity:
            raise InsufficientInventoryError(quantity, snapshot.available_shares)

    # ---------------------------------------------------------
    # BUY
    # ---------------------------------------------------------

    def apply_buy(
        self,
        snapshot: InstrumentSnapshot,
        filled_quantity: int,
        filled_amount: Decimal,
        execution_price: Decimal,
        executed_at: Optional[datetime] = None,
    ) -> Company:
        """
        Apply a buy's inventory and statistics effects.

        snapshot must come from the locked read in this transaction.

        Raises:
            InsufficientInventoryError: the conditional decrement matched no row
        """
        previous_close = snapshot.closing_price
        if previous_close is None or previous_close <= 0:
            previous_close = execution_price

        result = self._session.execute(
            update(Company)
            .where(
                Company.id == snapshot.id,
                Company.available_shares >= filled_quantity,
            )
            .values(
                available_shares=Company.available_shares - filled_quantity,
                previous_closing_price=previous_close,
                closing_price=execution_price,
                price_change=price_delta(execution_price, previous_close),
                traded_volume=Company.traded_volume + filled_quantity,
                traded_value=Company.traded_value + filled_amount,
                snapshot_date=executed_at or utc_now(),
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            raise InsufficientInventoryError(filled_quantity, self.available_shares(snapshot.id))

        company = self._session.get(Company, snapshot.id)
        self._session.refresh(company)
        logger.info(
            f"Persist companies: updated=1 (symbol={snapshot.symbol} "
            f"available={company.available_shares} close={execution_price})"
        )
        return company

    # ---------------------------------------------------------
    # MARKET SYNC
    # ---------------------------------------------------------

    def apply_market_update(self, symbol: str, patch: InstrumentPatch) -> Company:
        """
        Apply a market-data patch under the instrument's row lock.

        Inventory fields are never touched. A history row is appended.

        Raises:
            NotFoundError: unknown symbol
        """
        company = self.find_by_symbol(symbol, lock=True)

        if patch.snapshot_date is None:
            patch = patch.merge(InstrumentPatch(snapshot_date=utc_now()))

        written = patch.apply_to(company)
        self._session.add(MarketSnapshot(
            company_id=company.id,
            symbol=company.symbol,
            closing_price=company.closing_price,
            previous_closing_price=company.previous_closing_price,
            price_change=company.price_change,
            traded_volume=company.traded_volume,
            traded_value=company.traded_value,
            snapshot_date=company.snapshot_date,
        ))
        self._session.flush()

        logger.info(
            f"Persist companies: updated=1 (market sync symbol={company.symbol} "
            f"fields={sorted(written)})"
        )
        return company
