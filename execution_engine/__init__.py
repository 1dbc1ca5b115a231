"""
Execution Engine Package.

============================================================
PURPOSE
============================================================
Executes market buy orders against a user's cash wallet and
an instrument's share inventory.

CRITICAL PRINCIPLE:
    "A buy is all or nothing."
    "Trade, debit, journal entry, position and inventory
     commit together or not at all."

AUTHORITY BOUNDARIES:
    CAN:
        - Debit wallets
        - Consume instrument inventory
        - Create and update positions
        - Append trades and cash journal entries

    MUST NOT:
        - Let a wallet go negative
        - Let available shares go negative
        - Fail a committed trade because a notification failed

============================================================
MODULES
============================================================
- types: Requests, snapshots, stages, results, events
- errors: Error taxonomy and codes
- validation: Lot-size validation
- pricing: Execution price resolution
- wallet: Wallet ledger
- portfolio: Position book
- inventory: Instrument inventory and market statistics
- ledger: Trade ledger and transaction journal
- state_machine: Order lifecycle tracking
- execution_service: Main execution orchestrator
- market_sync: External market-data updates

============================================================
"""

from .types import (
    ExecutionStage,
    BuyOrderRequest,
    InstrumentSnapshot,
    ExecutionResult,
    TradeExecutedEvent,
    InstrumentPatch,
)

from .errors import (
    ErrorCategory,
    ErrorCodeInfo,
    ERROR_CODES,
    get_error_info,
    TradingError,
    ValidationError,
    NotFoundError,
    PricingError,
    InsufficientFundsError,
    InsufficientInventoryError,
    DuplicateOrderError,
    InvalidStateTransitionError,
)

from .validation import DEFAULT_LOT_SIZE, MAX_IDEMPOTENCY_KEY_LENGTH, validate_quantity, validate_order
from .pricing import resolve_execution_price, current_price
from .wallet import WalletLedger
from .portfolio import PositionBook, weighted_average
from .inventory import InstrumentInventory, price_delta
from .ledger import TradeLedger, TransactionJournal, trade_reference, trade_to_dict
from .state_machine import ExecutionStateMachine, StateTransitionEvent, VALID_TRANSITIONS
from .execution_service import TradeExecutionService, EventPublisher, is_idempotency_conflict, order_total
from .market_sync import MarketSyncService, MarketSyncResult


__all__ = [
    # Types
    "ExecutionStage",
    "BuyOrderRequest",
    "InstrumentSnapshot",
    "ExecutionResult",
    "TradeExecutedEvent",
    "InstrumentPatch",
    # Errors
    "ErrorCategory",
    "ErrorCodeInfo",
    "ERROR_CODES",
    "get_error_info",
    "TradingError",
    "ValidationError",
    "NotFoundError",
    "PricingError",
    "InsufficientFundsError",
    "InsufficientInventoryError",
    "DuplicateOrderError",
    "InvalidStateTransitionError",
    # Validation & pricing
    "DEFAULT_LOT_SIZE",
    "MAX_IDEMPOTENCY_KEY_LENGTH",
    "validate_quantity",
    "validate_order",
    "resolve_execution_price",
    "current_price",
    # Ledgers
    "WalletLedger",
    "PositionBook",
    "weighted_average",
    "InstrumentInventory",
    "price_delta",
    "TradeLedger",
    "TransactionJournal",
    "trade_reference",
    "trade_to_dict",
    # Orchestration
    "ExecutionStateMachine",
    "StateTransitionEvent",
    "VALID_TRANSITIONS",
    "TradeExecutionService",
    "EventPublisher",
    "order_total",
    "is_idempotency_conflict",
    "MarketSyncService",
    "MarketSyncResult",
]
