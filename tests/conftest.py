"""
Shared fixtures.

Integration tests run against a file-backed SQLite database in
tmp_path, so several threads can open their own connections.
"""

from decimal import Decimal
from typing import List, Optional

import pytest

from core.config import DatabaseConfig, ExchangeConfig
from database.engine import Database
from database.models import Company, User, Wallet
from execution_engine.execution_service import TradeExecutionService
from execution_engine.types import TradeExecutedEvent
from execution_engine.wallet import WalletLedger


class RecordingPublisher:
    """Collects published events."""

    def __init__(self):
        self.events: List[TradeExecutedEvent] = []

    def publish(self, event: TradeExecutedEvent) -> None:
        self.events.append(event)


@pytest.fixture
def database(tmp_path):
    db = Database(DatabaseConfig(url=f"sqlite:///{tmp_path / 'brokerage.db'}"))
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def make_user(database):
    counter = {"n": 0}

    def _make(balance="10000", email: Optional[str] = None, full_name="Test Investor", wallet=True) -> str:
        counter["n"] += 1
        with database.transaction() as session:
            user = User(email=email or f"investor{counter['n']}@example.com", full_name=full_name)
            session.add(user)
            session.flush()
            if wallet:
                session.add(Wallet(user_id=user.id, balance=Decimal(balance), locked_balance=Decimal("0")))
            return user.id

    return _make


@pytest.fixture
def make_company(database):
    def _make(
        symbol="ACME",
        closing_price="50",
        share_price="48",
        available=1000,
        total=None,
        verified=True,
        sector="Banking",
        name=None,
    ) -> str:
        with database.transaction() as session:
            company = Company(
                symbol=symbol,
                name=name or f"{symbol} Holdings",
                sector=sector,
                is_verified=verified,
                share_price=Decimal(share_price) if share_price is not None else None,
                closing_price=Decimal(closing_price) if closing_price is not None else None,
                total_shares=total if total is not None else available,
                available_shares=available,
                traded_volume=Decimal("0"),
                traded_value=Decimal("0"),
            )
            session.add(company)
            session.flush()
            return company.id

    return _make


@pytest.fixture
def exchange_config():
    return ExchangeConfig()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def service(database, exchange_config, publisher):
    return TradeExecutionService(database, exchange_config, publisher)


@pytest.fixture
def fetch(database):
    """Fresh, detached copy of one row by primary key."""
    def _fetch(model, ident):
        with database.session() as session:
            row = session.get(model, ident)
            if row is not None:
                session.expunge(row)
            return row

    return _fetch


@pytest.fixture
def balance_of(database):
    def _balance(user_id) -> Decimal:
        with database.session() as session:
            return WalletLedger(session).get_balance(user_id)

    return _balance


@pytest.fixture
def row_counts(database):
    def _counts():
        return database.get_table_row_counts(["trades", "transactions", "portfolios", "wallets", "companies"])

    return _counts
