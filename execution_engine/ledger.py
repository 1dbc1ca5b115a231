"""
Execution Engine - Trade Ledger & Transaction Journal.

============================================================
PURPOSE
============================================================
Append-only records of executed trades and the cash
movements they caused.

RULES:
- One insert per record, inside the order's transaction
- Transaction.reference = "TRADE-<trade id>"
- The trading path never updates or deletes these rows

============================================================
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from database.models import (
    Trade,
    TradeStatus,
    TradeType,
    Transaction,
    TransactionStatus,
    TransactionType,
    PriceType,
)


logger = logging.getLogger(__name__)


def trade_reference(trade_id: str) -> str:
    """Cross-reference stored on the cash journal entry."""
    return f"TRADE-{trade_id}"


def _money(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return None if value is None else value.isoformat()


def trade_to_dict(trade: Trade) -> Dict[str, Any]:
    """Serialize a trade row for API responses."""
    return {
        "id": trade.id,
        "userId": trade.user_id,
        "companyId": trade.company_id,
        "type": trade.type,
        "status": trade.status,
        "priceType": trade.price_type,
        "quantity": trade.quantity,
        "requestedPrice": _money(trade.requested_price),
        "executedPrice": _money(trade.executed_price),
        "executedQuantity": trade.executed_quantity,
        "totalAmount": _money(trade.total_amount),
        "fees": _money(trade.fees),
        "idempotencyKey": trade.idempotency_key,
        "executedAt": _iso(trade.executed_at),
        "createdAt": _iso(trade.created_at),
    }


# ============================================================
# TRADE LEDGER
# ============================================================

class TradeLedger:
    """Append-only trade records."""

    def __init__(self, session: Session):
        self._session = session

    def record_trade(
        self,
        user_id: str,
        company_id: str,
        quantity: int,
        price: Decimal,
        total_amount: Decimal,
        executed_at: datetime,
        trade_type: TradeType = TradeType.BUY,
        price_type: PriceType = PriceType.MARKET,
        fees: Decimal = Decimal("0"),
        idempotency_key: Optional[str] = None,
    ) -> Trade:
        """Insert one EXECUTED trade and flush it to get its id."""
        trade = Trade(
            user_id=user_id,
            company_id=company_id,
            type=trade_type.value,
            status=TradeStatus.EXECUTED.value,
            price_type=price_type.value,
            quantity=quantity,
            requested_price=price,
            executed_price=price,
            executed_quantity=quantity,
            total_amount=total_amount,
            fees=fees,
            idempotency_key=idempotency_key,
            executed_at=executed_at,
        )
        self._session.add(trade)
        self._session.flush()
        logger.info(f"Persist trades: inserted=1 (id={trade.id} user={user_id} qty={quantity})")
        return trade

    def find_by_idempotency_key(self, user_id: str, key: str) -> Optional[Trade]:
        return self._session.execute(
            select(Trade).where(Trade.user_id == user_id, Trade.idempotency_key == key)
        ).scalar_one_or_none()

    def list_for_user(self, user_id: str, limit: int = 100) -> List[Trade]:
        """Most recent first."""
        return list(self._session.execute(
            select(Trade)
            .where(Trade.user_id == user_id)
            .order_by(Trade.created_at.desc())
            .limit(limit)
        ).scalars())


# ============================================================
# TRANSACTION JOURNAL
# ============================================================

class TransactionJournal:
    """Append-only cash movements."""

    def __init__(self, session: Session):
        self._session = session

    def record_transaction(
        self,
        user_id: str,
        transaction_type: TransactionType,
        amount: Decimal,
        reference: str,
        description: str,
        details: Optional[Dict[str, Any]] = None,
        status: TransactionStatus = TransactionStatus.COMPLETED,
    ) -> Transaction:
        entry = Transaction(
            user_id=user_id,
            type=transaction_type.value,
            amount=amount,
            status=status.value,
            reference=reference,
            description=description,
            details=details,
        )
        self._session.add(entry)
        self._session.flush()
        logger.info(f"Persist transactions: inserted=1 (reference={reference} amount={amount})")
        return entry

    def record_share_purchase(
        self,
        trade: Trade,
        company_symbol: str,
        price: Decimal,
        amount: Decimal,
        currency: str = "Rwf",
    ) -> Transaction:
        """Journal entry for a buy, snapshotting the trade for audit."""
        return self.record_transaction(
            user_id=trade.user_id,
            transaction_type=TransactionType.BUY_SHARES,
            amount=amount,
            reference=trade_reference(trade.id),
            description=(
                f"Purchase of {trade.quantity} shares of {company_symbol} "
                f"at {currency} {price:.2f} per share"
            ),
            details={
                "tradeId": trade.id,
                "companyId": trade.company_id,
                "companySymbol": company_symbol,
                "quantity": trade.quantity,
                "pricePerShare": float(price),
                "totalAmount": float(trade.total_amount),
                "fees": float(trade.fees or 0),
            },
        )

    def list_for_user(self, user_id: str, limit: int = 10, offset: int = 0) -> List[Transaction]:
        """Most recent first."""
        return list(self._session.execute(
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc())
            .limit(limit)
            .offset(offset)
        ).scalars())

    def count_for_user(self, user_id: str) -> int:
        return self._session.execute(
            select(func.count()).select_from(Transaction).where(Transaction.user_id == user_id)
        ).scalar_one()
