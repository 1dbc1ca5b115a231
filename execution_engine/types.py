"""
Execution Engine - Types.

============================================================
PURPOSE
============================================================
Type definitions shared by the trade execution components.

- BuyOrderRequest: what the caller asks for
- InstrumentSnapshot: in-transaction read of an instrument
- ExecutionStage: order state machine states
- ExecutionResult: what a committed buy returns
- TradeExecutedEvent: post-commit side-effect payload
- InstrumentPatch: typed partial update of an instrument

============================================================
"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from database.models import (
    PriceType,
    TradeStatus,
    TradeType,
    TransactionStatus,
    TransactionType,
)


# ============================================================
# ORDER LIFECYCLE STATES
# ============================================================

class ExecutionStage(Enum):
    """
    Buy order lifecycle state.

    State Machine:

    VALIDATED
        │
        ▼
    PRICED
        │
        ▼
    INVENTORY_CHECKED
        │
        ▼
    FUNDS_CHECKED
        │
        ▼
    COMMITTED

    Any non-terminal state can transition to REJECTED.
    Market orders have no PENDING state.
    """

    VALIDATED = "VALIDATED"
    """Quantity passed lot-size validation."""

    PRICED = "PRICED"
    """Instrument found and execution price resolved."""

    INVENTORY_CHECKED = "INVENTORY_CHECKED"
    """Enough shares are available."""

    FUNDS_CHECKED = "FUNDS_CHECKED"
    """Wallet covers the order total."""

    COMMITTED = "COMMITTED"
    """All writes committed."""

    REJECTED = "REJECTED"
    """Order failed; nothing was written."""

    def is_terminal(self) -> bool:
        return self in (ExecutionStage.COMMITTED, ExecutionStage.REJECTED)


# ============================================================
# ORDER REQUEST
# ============================================================

@dataclass(frozen=True)
class BuyOrderRequest:
    """A market buy order from an authenticated user."""

    user_id: str
    """Authenticated user."""

    symbol: str
    """Instrument symbol."""

    quantity: int
    """Shares requested."""

    price_type: PriceType = PriceType.MARKET
    """Only MARKET orders exist."""

    idempotency_key: Optional[str] = None
    """Client-supplied key that makes resubmission safe."""


# ============================================================
# INSTRUMENT SNAPSHOT
# ============================================================

@dataclass(frozen=True)
class InstrumentSnapshot:
    """
    Values of an instrument row read inside the order's transaction.

    Price resolution and inventory checks both use this one read.
    """

    id: str
    symbol: str
    name: str
    share_price: Optional[Decimal]
    closing_price: Optional[Decimal]
    previous_closing_price: Optional[Decimal]
    available_shares: int
    total_shares: int

    @classmethod
    def from_company(cls, company) -> "InstrumentSnapshot":
        return cls(
            id=company.id,
            symbol=company.symbol,
            name=company.name,
            share_price=_to_decimal(company.share_price),
            closing_price=_to_decimal(company.closing_price),
            previous_closing_price=_to_decimal(company.previous_closing_price),
            available_shares=int(company.available_shares or 0),
            total_shares=int(company.total_shares or 0),
        )


def _to_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))


# ============================================================
# EXECUTION RESULT
# ============================================================

@dataclass
class ExecutionResult:
    """Outcome of a committed buy."""

    trade: Dict[str, Any]
    """Serialized trade row."""

    company: Dict[str, str]
    """id, symbol, name."""

    quantity: int
    price_per_share: Decimal
    total_amount: Decimal
    new_balance: Decimal

    replayed: bool = False
    """True when returned for a repeated idempotency key."""

    @property
    def message(self) -> str:
        return f"Successfully purchased {self.quantity} shares of {self.company['symbol']}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trade": self.trade,
            "company": dict(self.company),
            "transaction": {
                "quantity": self.quantity,
                "pricePerShare": float(self.price_per_share),
                "totalAmount": float(self.total_amount),
            },
            "newBalance": str(self.new_balance),
        }


# ============================================================
# POST-COMMIT EVENT
# ============================================================

@dataclass(frozen=True)
class TradeExecutedEvent:
    """Published after a buy commits. Consumers must not affect the trade."""

    trade_id: str
    user_id: str
    trade_type: TradeType
    company_id: str
    company_symbol: str
    company_name: str
    quantity: int
    price_per_share: Decimal
    total_amount: Decimal
    new_balance: Decimal
    executed_at: datetime
    currency: str = "Rwf"


# ============================================================
# INSTRUMENT PATCH
# ============================================================

@dataclass(frozen=True)
class InstrumentPatch:
    """
    Partial update of an instrument's market fields.

    None means "leave unchanged". Patches are combined with merge()
    and written with apply_to(), never by ad hoc attribute setting.
    """

    share_price: Optional[Decimal] = None
    closing_price: Optional[Decimal] = None
    previous_closing_price: Optional[Decimal] = None
    price_change: Optional[Decimal] = None
    traded_volume: Optional[Decimal] = None
    traded_value: Optional[Decimal] = None
    snapshot_date: Optional[datetime] = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def changes(self) -> Dict[str, Any]:
        """Fields that are set."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    def merge(self, other: "InstrumentPatch") -> "InstrumentPatch":
        """Combine two patches; fields set on other win."""
        return replace(self, **other.changes())

    def apply_to(self, company) -> Dict[str, Any]:
        """
        Write set fields onto a company row.

        A new closing price also becomes the share price unless the
        patch sets share_price itself.

        Returns:
            The values written
        """
        changes = self.changes()
        if "closing_price" in changes and "share_price" not in changes:
            changes["share_price"] = changes["closing_price"]
        for name, value in changes.items():
            setattr(company, name, value)
        return changes


__all__ = [
    "ExecutionStage",
    "BuyOrderRequest",
    "InstrumentSnapshot",
    "ExecutionResult",
    "TradeExecutedEvent",
    "InstrumentPatch",
    "PriceType",
    "TradeStatus",
    "TradeType",
    "TransactionStatus",
    "TransactionType",
]
