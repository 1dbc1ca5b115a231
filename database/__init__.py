"""
Database Package Initialization.

============================================================
BROKERAGE DATABASE PERSISTENCE LAYER
============================================================

Provides the storage-connection handle (Database), the ORM
schema, and persistence exceptions.

REQUIRED:
- Every write happens inside Database.transaction()
- Every failure raises a hard exception
- All transactions are explicit with commit/rollback

============================================================
"""

from .engine import (
    Base,
    Database,
    DatabasePersistenceError,
    DatabaseConnectionError,
    DatabaseInitializationError,
)

from .models import (
    # Enums
    TradeType,
    TradeStatus,
    PriceType,
    TransactionType,
    TransactionStatus,
    NotificationType,
    # Tables
    User,
    Wallet,
    Company,
    Portfolio,
    Trade,
    Transaction,
    Notification,
    MarketSnapshot,
)


__all__ = [
    "Base",
    "Database",
    "DatabasePersistenceError",
    "DatabaseConnectionError",
    "DatabaseInitializationError",
    "TradeType",
    "TradeStatus",
    "PriceType",
    "TransactionType",
    "TransactionStatus",
    "NotificationType",
    "User",
    "Wallet",
    "Company",
    "Portfolio",
    "Trade",
    "Transaction",
    "Notification",
    "MarketSnapshot",
]
