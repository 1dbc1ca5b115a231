"""
Execution Engine - Trade Execution Service.

============================================================
PURPOSE
============================================================
Main orchestrator for a market buy.

This is the primary entry point for the Execution Engine.
It receives a BuyOrderRequest from the API layer and runs
the whole order as ONE database transaction.

============================================================
EXECUTION WORKFLOW
============================================================
Outside the transaction:
  1. Validate symbol and quantity (lot size)

Inside the transaction (all or nothing):
  2. Replay check for a repeated idempotency key
  3. Lock the instrument row, resolve the execution price
  4. Check inventory
  5. Lock the wallet row, check funds
  6. Insert trade
  7. Debit wallet (conditional update)
  8. Insert cash journal entry
  9. Create or update the position
 10. Decrement inventory, update market statistics

After commit:
 11. Publish TradeExecutedEvent (best effort, never fails the trade)

LOCK ORDER:
    instrument -> wallet -> position

============================================================
"""

import logging
import threading
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import ExchangeConfig
from database.engine import Database, DatabasePersistenceError
from database.models import IDEMPOTENCY_CONSTRAINT, Trade, utc_now

from .errors import DuplicateOrderError, TradingError
from .inventory import InstrumentInventory
from .ledger import TradeLedger, TransactionJournal, trade_to_dict
from .portfolio import PositionBook
from .pricing import resolve_execution_price
from .state_machine import ExecutionStateMachine
from .types import (
    BuyOrderRequest,
    ExecutionResult,
    ExecutionStage,
    InstrumentSnapshot,
    TradeExecutedEvent,
    TradeType,
)
from .validation import validate_order
from .wallet import WalletLedger


logger = logging.getLogger(__name__)


MONEY_QUANTUM = Decimal("0.01")


class EventPublisher(Protocol):
    """Receives events after the order's transaction has committed."""

    def publish(self, event: TradeExecutedEvent) -> None:
        ...


def order_total(price: Decimal, quantity: int) -> Decimal:
    """price x quantity, rounded to cents."""
    return (Decimal(price) * quantity).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def is_idempotency_conflict(error: DatabasePersistenceError) -> bool:
    """True when the failure is the per-user idempotency key uniqueness check."""
    cause = error.__cause__
    if not isinstance(cause, IntegrityError):
        return False
    message = str(cause.orig)
    # PostgreSQL names the constraint, SQLite names the columns
    return IDEMPOTENCY_CONSTRAINT in message or "trades.idempotency_key" in message


# ============================================================
# TRADE EXECUTION SERVICE
# ============================================================

class TradeExecutionService:
    """
    Executes market buys.

    AUTHORITY BOUNDARIES:
    - CAN: Move cash from wallet to position, consume inventory
    - MUST NOT: Leave a partial write behind on any failure
    - MUST NOT: Let a notification failure affect a committed trade
    """

    def __init__(
        self,
        database: Database,
        exchange_config: Optional[ExchangeConfig] = None,
        publisher: Optional[EventPublisher] = None,
    ):
        """
        Initialize execution service.

        Args:
            database: Open database handle
            exchange_config: Lot size, currency and fee settings
            publisher: Post-commit event sink
        """
        self._database = database
        self._config = exchange_config or ExchangeConfig()
        self._publisher = publisher

        self._stats = {
            "total_executions": 0,
            "successful": 0,
            "rejected": 0,
            "replayed": 0,
        }
        self._stats_lock = threading.Lock()

    @property
    def stats(self):
        with self._stats_lock:
            return dict(self._stats)

    def _count(self, name: str) -> None:
        with self._stats_lock:
            self._stats[name] += 1

    # --------------------------------------------------------
    # EXECUTION
    # --------------------------------------------------------

    def execute_buy(self, request: BuyOrderRequest) -> ExecutionResult:
        """
        Execute a market buy.

        Args:
            request: Order from an authenticated user

        Returns:
            ExecutionResult of the committed trade

        Raises:
            TradingError: the order was rejected; nothing was written
        """
        self._count("total_executions")
        order_ref = request.idempotency_key or f"{request.user_id}:{request.symbol}"

        try:
            validate_order(request, self._config.lot_size)
        except TradingError as e:
            self._count("rejected")
            logger.warning(f"Buy rejected before execution: user={request.user_id} [{e.code}] {e.message}")
            raise

        machine = ExecutionStateMachine(order_ref)

        try:
            result, event = self._execute_in_transaction(request, machine)
        except TradingError as e:
            machine.reject(e.message, e.code)
            self._count("rejected")
            logger.warning(
                f"Buy rejected: user={request.user_id} symbol={request.symbol} "
                f"qty={request.quantity} [{e.code}] {e.message}"
            )
            raise
        except DatabasePersistenceError as e:
            machine.reject(str(e))
            if request.idempotency_key and is_idempotency_conflict(e):
                # A concurrent order with the same key committed first
                return self._replay_after_conflict(request)
            self._count("rejected")
            logger.exception(f"Buy failed: user={request.user_id} symbol={request.symbol}")
            raise
        except Exception:
            machine.reject("unexpected error")
            self._count("rejected")
            logger.exception(f"Buy failed: user={request.user_id} symbol={request.symbol}")
            raise

        if result.replayed:
            self._count("replayed")
            logger.info(f"Buy replayed for idempotency key {request.idempotency_key}: trade={result.trade['id']}")
            return result

        machine.transition_to(ExecutionStage.COMMITTED)
        self._count("successful")
        logger.info(
            f"Trade executed: user={request.user_id} symbol={result.company['symbol']} "
            f"qty={result.quantity} price={result.price_per_share} total={result.total_amount}"
        )

        self._publish(event)
        return result

    def _execute_in_transaction(self, request: BuyOrderRequest, machine: ExecutionStateMachine):
        with self._database.transaction() as session:
            trades = TradeLedger(session)

            if request.idempotency_key:
                existing = trades.find_by_idempotency_key(request.user_id, request.idempotency_key)
                if existing is not None:
                    return self._replay(session, existing, request), None

            inventory = InstrumentInventory(session, self._config.require_verified_company)
            wallets = self._wallets(session)
            positions = PositionBook(session)
            journal = TransactionJournal(session)

            company = inventory.find_by_symbol(request.symbol, lock=True)
            snapshot = InstrumentSnapshot.from_company(company)

            price = resolve_execution_price(snapshot)
            machine.transition_to(ExecutionStage.PRICED, details={"price": str(price)})

            inventory.ensure_available(snapshot, request.quantity)
            machine.transition_to(ExecutionStage.INVENTORY_CHECKED)

            total = order_total(price, request.quantity)
            fees = Decimal(self._config.trading_fee).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)
            charge = total + fees

            wallets.get_wallet(request.user_id, lock=True)
            wallets.ensure_sufficient(request.user_id, charge)
            machine.transition_to(ExecutionStage.FUNDS_CHECKED, details={"charge": str(charge)})

            executed_at = utc_now()
            trade = trades.record_trade(
                user_id=request.user_id,
                company_id=snapshot.id,
                quantity=request.quantity,
                price=price,
                total_amount=total,
                executed_at=executed_at,
                price_type=request.price_type,
                fees=fees,
                idempotency_key=request.idempotency_key,
            )
            new_balance = wallets.debit(request.user_id, charge)
            journal.record_share_purchase(
                trade,
                company_symbol=snapshot.symbol,
                price=price,
                amount=charge,
                currency=self._config.currency,
            )
            positions.apply_fill(request.user_id, snapshot.id, request.quantity, total)
            inventory.apply_buy(snapshot, request.quantity, total, price, executed_at)

            result = ExecutionResult(
                trade=trade_to_dict(trade),
                company={"id": snapshot.id, "symbol": snapshot.symbol, "name": snapshot.name},
                quantity=request.quantity,
                price_per_share=price,
                total_amount=total,
                new_balance=new_balance,
            )
            event = TradeExecutedEvent(
                trade_id=trade.id,
                user_id=request.user_id,
                trade_type=TradeType.BUY,
                company_id=snapshot.id,
                company_symbol=snapshot.symbol,
                company_name=snapshot.name,
                quantity=request.quantity,
                price_per_share=price,
                total_amount=total,
                new_balance=new_balance,
                executed_at=executed_at,
                currency=self._config.currency,
            )
        return result, event

    def _wallets(self, session: Session) -> WalletLedger:
        return WalletLedger(session, self._config.currency)

    # --------------------------------------------------------
    # IDEMPOTENCY
    # --------------------------------------------------------

    def _replay(self, session: Session, trade: Trade, request: BuyOrderRequest) -> ExecutionResult:
        """
        Rebuild the result of an already executed order.

        Raises:
            DuplicateOrderError: the key was used for a different order
        """
        company = trade.company
        if company.symbol != request.symbol.strip().upper() or trade.quantity != request.quantity:
            raise DuplicateOrderError(
                f"Idempotency key '{request.idempotency_key}' was already used for a different order",
                details={"tradeId": trade.id},
            )

        return ExecutionResult(
            trade=trade_to_dict(trade),
            company={"id": company.id, "symbol": company.symbol, "name": company.name},
            quantity=trade.quantity,
            price_per_share=Decimal(str(trade.executed_price)),
            total_amount=Decimal(str(trade.total_amount)),
            new_balance=self._wallets(session).get_balance(request.user_id),
            replayed=True,
        )

    def _replay_after_conflict(self, request: BuyOrderRequest) -> ExecutionResult:
        with self._database.session() as session:
            existing = TradeLedger(session).find_by_idempotency_key(request.user_id, request.idempotency_key)
            if existing is None:
                raise DuplicateOrderError(
                    f"Idempotency key '{request.idempotency_key}' conflicted with a concurrent order"
                )
            result = self._replay(session, existing, request)
        self._count("replayed")
        logger.info(f"Buy replayed after key conflict {request.idempotency_key}: trade={result.trade['id']}")
        return result

    # --------------------------------------------------------
    # POST-COMMIT
    # --------------------------------------------------------

    def _publish(self, event: Optional[TradeExecutedEvent]) -> None:
        if event is None or self._publisher is None:
            return
        try:
            self._publisher.publish(event)
        except Exception as e:
            logger.error(f"Post-commit publish failed for trade {event.trade_id}: {e}")
