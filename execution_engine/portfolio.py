"""
Execution Engine - Position Book.

============================================================
PURPOSE
============================================================
Maintains each user's position per instrument with a
weighted-average cost basis.

ON FILL (buy):
    new_quantity       = old_quantity + filled_quantity
    new_total_invested = old_total_invested + filled_amount
    new_average        = new_total_invested / new_quantity

All three fields are written together.

CONCURRENCY:
    The existing row is read FOR UPDATE. A first fill inserts
    inside a SAVEPOINT; if a concurrent first fill won the
    (user, company) unique constraint, the winner's row is
    locked and updated instead.

============================================================
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database.models import Portfolio


logger = logging.getLogger(__name__)


PRICE_QUANTUM = Decimal("0.000001")
MONEY_QUANTUM = Decimal("0.01")


def weighted_average(total_invested: Decimal, quantity: int) -> Decimal:
    """Average cost per share, rounded to the price column scale."""
    return (Decimal(total_invested) / Decimal(quantity)).quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)


class PositionBook:
    """Position operations bound to one session."""

    def __init__(self, session: Session):
        self._session = session

    def get_position(self, user_id: str, company_id: str, lock: bool = False):
        stmt = select(Portfolio).where(
            Portfolio.user_id == user_id,
            Portfolio.company_id == company_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        return self._session.execute(stmt).scalar_one_or_none()

    def list_positions(self, user_id: str) -> List[Portfolio]:
        return list(self._session.execute(
            select(Portfolio)
            .where(Portfolio.user_id == user_id)
            .order_by(Portfolio.total_invested.desc())
        ).scalars())

    def apply_fill(
        self,
        user_id: str,
        company_id: str,
        filled_quantity: int,
        filled_amount: Decimal,
    ) -> Portfolio:
        """
        Record a buy fill against the user's position.

        Args:
            user_id: Position owner
            company_id: Instrument
            filled_quantity: Shares bought (> 0)
            filled_amount: Cash paid for them

        Returns:
            The created or updated position
        """
        if filled_quantity <= 0:
            raise ValueError(f"filled_quantity must be positive, got {filled_quantity}")

        filled_amount = Decimal(filled_amount)
        position = self.get_position(user_id, company_id, lock=True)

        if position is None:
            try:
                with self._session.begin_nested():
                    position = Portfolio(
                        user_id=user_id,
                        company_id=company_id,
                        quantity=filled_quantity,
                        average_buy_price=weighted_average(filled_amount, filled_quantity),
                        total_invested=filled_amount.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP),
                    )
                    self._session.add(position)
                logger.info(
                    f"Persist portfolios: inserted=1 (user={user_id} company={company_id} "
                    f"qty={filled_quantity})"
                )
                return position
            except IntegrityError:
                logger.info(
                    f"Concurrent first fill for user={user_id} company={company_id}, "
                    f"updating existing position"
                )
                position = self.get_position(user_id, company_id, lock=True)

        self._accumulate(position, filled_quantity, filled_amount)
        self._session.flush()
        logger.info(
            f"Persist portfolios: updated=1 (user={user_id} company={company_id} "
            f"qty={position.quantity} avg={position.average_buy_price})"
        )
        return position

    @staticmethod
    def _accumulate(position: Portfolio, filled_quantity: int, filled_amount: Decimal) -> None:
        new_quantity = int(position.quantity) + filled_quantity
        new_total = (Decimal(str(position.total_invested)) + filled_amount).quantize(
            MONEY_QUANTUM, rounding=ROUND_HALF_UP
        )
        position.quantity = new_quantity
        position.total_invested = new_total
        position.average_buy_price = weighted_average(new_total, new_quantity)
