"""
Execution Engine - Wallet Ledger.

============================================================
PURPOSE
============================================================
Reads and debits a user's cash wallet inside the caller's
transaction.

INVARIANT:
    balance >= 0 after every committed transaction.

CONCURRENCY:
    The debit is a single conditional UPDATE

        UPDATE wallets SET balance = balance - :amount
        WHERE user_id = :user AND balance >= :amount

    so two concurrent debits can never both pass a stale
    balance check. Zero affected rows means insufficient funds.

============================================================
"""

import logging
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from database.models import Wallet, utc_now

from .errors import InsufficientFundsError, NotFoundError


logger = logging.getLogger(__name__)


class WalletLedger:
    """Wallet operations bound to one session."""

    def __init__(self, session: Session, currency: str = "Rwf"):
        self._session = session
        self._currency = currency

    def get_wallet(self, user_id: str, lock: bool = False) -> Wallet:
        """
        Load a user's wallet.

        Args:
            user_id: Wallet owner
            lock: Take a row lock (SELECT ... FOR UPDATE)

        Raises:
            NotFoundError: user has no wallet
        """
        stmt = select(Wallet).where(Wallet.user_id == user_id)
        if lock:
            stmt = stmt.with_for_update()
        wallet = self._session.execute(stmt).scalar_one_or_none()
        if wallet is None:
            raise NotFoundError(
                "Wallet not found. Please contact support.",
                code="NFD_WALLET",
            )
        return wallet

    def get_balance(self, user_id: str) -> Decimal:
        """
        Current committed-or-own-transaction balance, read from the row.

        Raises:
            NotFoundError: user has no wallet
        """
        balance = self._session.execute(
            select(Wallet.balance).where(Wallet.user_id == user_id)
        ).scalar_one_or_none()
        if balance is None:
            raise NotFoundError(
                "Wallet not found. Please contact support.",
                code="NFD_WALLET",
            )
        return Decimal(str(balance))

    def ensure_sufficient(self, user_id: str, amount: Decimal) -> Decimal:
        """
        Check the balance covers amount.

        Returns:
            The balance read

        Raises:
            InsufficientFundsError
        """
        balance = self.get_balance(user_id)
        if balance < amount:
            raise InsufficientFundsError(amount, balance, self._currency)
        return balance

    def debit(self, user_id: str, amount: Decimal) -> Decimal:
        """
        Atomically decrement the balance.

        Returns:
            New balance

        Raises:
            InsufficientFundsError: balance < amount (nothing written)
            NotFoundError: user has no wallet
        """
        if amount < 0:
            raise ValueError(f"Debit amount must not be negative, got {amount}")

        result = self._session.execute(
            update(Wallet)
            .where(Wallet.user_id == user_id, Wallet.balance >= amount)
            .values(balance=Wallet.balance - amount, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            available = self.get_balance(user_id)
            raise InsufficientFundsError(amount, available, self._currency)

        new_balance = self.get_balance(user_id)
        logger.info(f"Persist wallets: updated=1 (user={user_id} debit={amount} balance={new_balance})")
        return new_balance
