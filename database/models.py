"""
Database ORM Models - All Tables.

============================================================
BROKERAGE DATABASE SCHEMA
============================================================

Tables:
- users: Account holders (provisioned externally)
- wallets: One cash wallet per user
- companies: Listed instruments, inventory and market stats
- portfolios: Per-user per-instrument positions
- trades: Append-only trade ledger
- transactions: Append-only cash journal
- notifications: Best-effort user notifications
- market_snapshots: History of market-sync updates

Money columns are Numeric; never Float.

PRICE CHANGE UNIT:
    companies.price_change and market_snapshots.price_change
    hold an ABSOLUTE price delta in the exchange currency,
    rounded to 2 decimals. Percentages are derived on read.

============================================================
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, Column, DateTime, ForeignKey,
    Index, Integer, JSON, Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .engine import Base


# =============================================================
# HELPER FUNCTIONS
# =============================================================

def generate_uuid():
    """Generate a new UUID."""
    return str(uuid.uuid4())


def utc_now():
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


MONEY = Numeric(18, 2)
PRICE = Numeric(18, 6)
STAT = Numeric(24, 2)

IDEMPOTENCY_CONSTRAINT = "uq_trade_user_idempotency_key"


# =============================================================
# ENUMS
# =============================================================

class TradeType(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"


class TradeStatus(str, enum.Enum):
    EXECUTED = "EXECUTED"
    PENDING = "PENDING"
    REJECTED = "REJECTED"


class PriceType(str, enum.Enum):
    MARKET = "MARKET"


class TransactionType(str, enum.Enum):
    BUY_SHARES = "BUY_SHARES"
    SELL_SHARES = "SELL_SHARES"
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class NotificationType(str, enum.Enum):
    TRADE = "TRADE"
    WALLET = "WALLET"
    SYSTEM = "SYSTEM"


# =============================================================
# 1. USERS TABLE
# =============================================================

class User(Base):
    """
    Account holder.

    Source: account provisioning (external)
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(255), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    wallet = relationship("Wallet", back_populates="user", uselist=False)


# =============================================================
# 2. WALLETS TABLE
# =============================================================

class Wallet(Base):
    """
    Cash wallet. balance never drops below zero.

    Mutated by: execution_engine.wallet.WalletLedger
    """
    __tablename__ = "wallets"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, unique=True)
    balance = Column(MONEY, nullable=False, default=0)
    locked_balance = Column(MONEY, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    user = relationship("User", back_populates="wallet")

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_wallet_balance_non_negative"),
        CheckConstraint("locked_balance >= 0", name="ck_wallet_locked_non_negative"),
    )


# =============================================================
# 3. COMPANIES TABLE
# =============================================================

class Company(Base):
    """
    Listed instrument with share inventory and rolling market stats.

    Mutated by:
    - execution_engine.inventory.InstrumentInventory.apply_buy
    - execution_engine.inventory.InstrumentInventory.apply_market_update
    Both take the row lock first.
    """
    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    symbol = Column(String(20), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    sector = Column(String(100), nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)

    # Pricing
    share_price = Column(PRICE, nullable=True)
    closing_price = Column(PRICE, nullable=True)
    previous_closing_price = Column(PRICE, nullable=True)
    price_change = Column(MONEY, nullable=True)  # absolute delta, 2dp

    # Inventory
    total_shares = Column(BigInteger, nullable=False, default=0)
    available_shares = Column(BigInteger, nullable=False, default=0)

    # Market statistics
    traded_volume = Column(STAT, nullable=False, default=0)
    traded_value = Column(STAT, nullable=False, default=0)
    snapshot_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        CheckConstraint("available_shares >= 0", name="ck_company_available_non_negative"),
        CheckConstraint("available_shares <= total_shares", name="ck_company_available_le_total"),
    )


# =============================================================
# 4. PORTFOLIOS TABLE
# =============================================================

class Portfolio(Base):
    """
    Position of one user in one instrument.

    total_invested == quantity * average_buy_price (within rounding).
    """
    __tablename__ = "portfolios"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    average_buy_price = Column(PRICE, nullable=False, default=0)
    total_invested = Column(MONEY, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    company = relationship("Company")

    __table_args__ = (
        UniqueConstraint("user_id", "company_id", name="uq_portfolio_user_company"),
        CheckConstraint("quantity >= 0", name="ck_portfolio_quantity_non_negative"),
    )


# =============================================================
# 5. TRADES TABLE (append-only)
# =============================================================

class Trade(Base):
    """
    One executed order. Never updated after insert.
    """
    __tablename__ = "trades"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)

    type = Column(String(10), nullable=False)
    status = Column(String(10), nullable=False)
    price_type = Column(String(10), nullable=False, default=PriceType.MARKET.value)

    quantity = Column(Integer, nullable=False)
    requested_price = Column(PRICE, nullable=True)
    executed_price = Column(PRICE, nullable=True)
    executed_quantity = Column(Integer, nullable=True)
    total_amount = Column(MONEY, nullable=False)
    fees = Column(MONEY, nullable=False, default=0)

    idempotency_key = Column(String(128), nullable=True)

    executed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)

    company = relationship("Company")

    __table_args__ = (
        UniqueConstraint("user_id", "idempotency_key", name=IDEMPOTENCY_CONSTRAINT),
        Index("idx_trades_user_created", "user_id", "created_at"),
    )


# =============================================================
# 6. TRANSACTIONS TABLE (append-only cash journal)
# =============================================================

class Transaction(Base):
    """
    Cash movement. reference points back to the trade ("TRADE-<id>").
    """
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    amount = Column(MONEY, nullable=False)
    status = Column(String(20), nullable=False)
    reference = Column(String(100), nullable=True, index=True)
    description = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)


# =============================================================
# 7. NOTIFICATIONS TABLE
# =============================================================

class Notification(Base):
    """
    Informational message for a user. Outside the trade's atomic unit.
    """
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False, default=NotificationType.SYSTEM.value)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)


# =============================================================
# 8. MARKET SNAPSHOTS TABLE
# =============================================================

class MarketSnapshot(Base):
    """
    One market-sync update applied to a company.
    """
    __tablename__ = "market_snapshots"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    symbol = Column(String(20), nullable=False)
    closing_price = Column(PRICE, nullable=True)
    previous_closing_price = Column(PRICE, nullable=True)
    price_change = Column(MONEY, nullable=True)
    traded_volume = Column(STAT, nullable=True)
    traded_value = Column(STAT, nullable=True)
    snapshot_date = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
