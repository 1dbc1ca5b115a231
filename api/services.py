"""
Database Query Services for the brokerage API.

Read-only views over trades, wallets and positions.
"""
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from database.models import Company, Portfolio, Trade, Transaction, Wallet
from execution_engine.ledger import TradeLedger, TransactionJournal
from execution_engine.portfolio import PositionBook
from execution_engine.pricing import current_price
from execution_engine.types import InstrumentSnapshot


MAX_HISTORY_LIMIT = 500


def _money(value) -> str:
    return str(value if value is not None else Decimal("0"))


def _iso(value):
    return value.isoformat() if value is not None else None


def _percentage(part: float, whole: float) -> float:
    return (part / whole) * 100 if whole > 0 else 0.0


class AccountQueryService:
    def __init__(self, session: Session):
        self.session = session

    # =======================
    # 1. TRADE HISTORY
    # =======================
    def get_trade_history(self, user_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        trades: List[Trade] = TradeLedger(self.session).list_for_user(user_id, limit)

        return [
            {
                "id": t.id,
                "type": t.type,
                "status": t.status,
                "priceType": t.price_type,
                "quantity": t.quantity,
                "executedPrice": _money(t.executed_price) if t.executed_price is not None else None,
                "totalAmount": _money(t.total_amount),
                "fees": _money(t.fees),
                "executedAt": _iso(t.executed_at),
                "createdAt": _iso(t.created_at),
                "company": {"name": t.company.name, "symbol": t.company.symbol},
            }
            for t in trades
        ]

    # =======================
    # 2. WALLET
    # =======================
    def get_wallet_summary(self, user_id: str, limit: int = 10, offset: int = 0) -> Dict[str, Any]:
        wallet = self.session.execute(
            select(Wallet).where(Wallet.user_id == user_id)
        ).scalar_one_or_none()

        # A user without a wallet sees an empty one
        balance = Decimal(str(wallet.balance)) if wallet else Decimal("0.00")
        locked = Decimal(str(wallet.locked_balance)) if wallet else Decimal("0.00")

        journal = TransactionJournal(self.session)
        entries: List[Transaction] = journal.list_for_user(user_id, limit, offset)
        total = journal.count_for_user(user_id)

        return {
            "wallet": {
                "balance": str(balance),
                "lockedBalance": str(locked),
                "availableBalance": str(balance - locked),
            },
            "transactions": [
                {
                    "id": e.id,
                    "type": e.type,
                    "amount": _money(e.amount),
                    "status": e.status,
                    "reference": e.reference,
                    "description": e.description,
                    "metadata": e.details,
                    "createdAt": _iso(e.created_at),
                }
                for e in entries
            ],
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "hasMore": offset + limit < total,
            },
        }

    # =======================
    # 3. PORTFOLIO
    # =======================
    def get_portfolio(self, user_id: str) -> Dict[str, Any]:
        positions: List[Portfolio] = PositionBook(self.session).list_positions(user_id)

        rows = []
        for p in positions:
            company: Company = p.company
            price = float(current_price(InstrumentSnapshot.from_company(company)))
            invested = float(p.total_invested)
            value = price * p.quantity
            profit = value - invested
            rows.append({
                "id": p.id,
                "companyId": company.id,
                "companySymbol": company.symbol,
                "companyName": company.name,
                "sector": company.sector,
                "quantity": p.quantity,
                "averageBuyPrice": float(p.average_buy_price),
                "currentPrice": price,
                "totalInvested": invested,
                "currentValue": value,
                "profitLoss": profit,
                "profitLossPercentage": _percentage(profit, invested),
                "priceChange": _money(company.price_change),
            })

        total_invested = sum(r["totalInvested"] for r in rows)
        total_value = sum(r["currentValue"] for r in rows)
        total_profit = total_value - total_invested

        sectors: Dict[str, float] = {}
        for r in rows:
            sector = r["sector"] or "Unknown"
            sectors[sector] = sectors.get(sector, 0.0) + r["currentValue"]

        return {
            "portfolio": rows,
            "summary": {
                "totalInvested": total_invested,
                "totalCurrentValue": total_value,
                "totalProfitLoss": total_profit,
                "totalProfitLossPercentage": _percentage(total_profit, total_invested),
                "totalHoldings": len(rows),
            },
            "sectorAllocation": [
                {"sector": s, "value": v, "percentage": _percentage(v, total_value)}
                for s, v in sectors.items()
            ],
        }
