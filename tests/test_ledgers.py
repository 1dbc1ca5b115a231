"""
Tests for the storage-bound components.

Tests cover:
- Wallet ledger reads and conditional debit
- Position book weighted average and first-fill insert
- Instrument inventory lookup, preconditions and buy statistics
- Trade ledger and transaction journal records
- Append-only trades and journal across buys, rejections and faults
"""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import text

from database.models import Company, Trade, TradeStatus, Transaction, TransactionType
from execution_engine.errors import InsufficientFundsError, InsufficientInventoryError, NotFoundError
from execution_engine.inventory import InstrumentInventory, price_delta
from execution_engine.ledger import TradeLedger, TransactionJournal, trade_reference, trade_to_dict
from execution_engine.portfolio import PositionBook, weighted_average
from execution_engine.types import BuyOrderRequest, InstrumentSnapshot
from execution_engine.wallet import WalletLedger


# =============================================================
# TEST: Wallet Ledger
# =============================================================

class TestWalletLedger:
    """Balance reads and the conditional debit."""

    def test_get_balance(self, database, make_user):
        user_id = make_user(balance="2500.50")
        with database.session() as session:
            assert WalletLedger(session).get_balance(user_id) == Decimal("2500.50")

    def test_missing_wallet(self, database, make_user):
        user_id = make_user(wallet=False)
        with database.session() as session:
            with pytest.raises(NotFoundError) as exc:
                WalletLedger(session).get_wallet(user_id)
        assert exc.value.code == "NFD_WALLET"
        assert "Wallet not found" in exc.value.message

    def test_ensure_sufficient_message_names_amounts(self, database, make_user):
        user_id = make_user(balance="100")
        with database.session() as session:
            with pytest.raises(InsufficientFundsError) as exc:
                WalletLedger(session).ensure_sufficient(user_id, Decimal("5000"))
        assert "Required: Rwf 5000.00" in exc.value.message
        assert "Available: Rwf 100.00" in exc.value.message

    def test_debit_returns_new_balance(self, database, make_user, balance_of):
        user_id = make_user(balance="10000")
        with database.transaction() as session:
            assert WalletLedger(session).debit(user_id, Decimal("2500")) == Decimal("7500")
        assert balance_of(user_id) == Decimal("7500")

    def test_debit_exact_balance_leaves_zero(self, database, make_user, balance_of):
        user_id = make_user(balance="5000")
        with database.transaction() as session:
            WalletLedger(session).debit(user_id, Decimal("5000"))
        assert balance_of(user_id) == Decimal("0")

    def test_debit_over_balance_writes_nothing(self, database, make_user, balance_of):
        user_id = make_user(balance="100")
        with pytest.raises(InsufficientFundsError):
            with database.transaction() as session:
                WalletLedger(session).debit(user_id, Decimal("100.01"))
        assert balance_of(user_id) == Decimal("100")

    def test_negative_debit_refused(self, database, make_user):
        user_id = make_user()
        with database.session() as session:
            with pytest.raises(ValueError):
                WalletLedger(session).debit(user_id, Decimal("-1"))


# =============================================================
# TEST: Position Book
# =============================================================

class TestWeightedAverage:
    def test_simple(self):
        assert weighted_average(Decimal("12000"), 200) == Decimal("60")

    def test_rounds_to_six_places(self):
        assert weighted_average(Decimal("100"), 3) == Decimal("33.333333")


class TestPositionBook:
    """Positions accumulate quantity and cost basis together."""

    def test_first_fill_creates_position(self, database, make_user, make_company):
        user_id = make_user()
        company_id = make_company()
        with database.transaction() as session:
            position = PositionBook(session).apply_fill(user_id, company_id, 100, Decimal("5000"))
            assert position.quantity == 100
        with database.session() as session:
            position = PositionBook(session).get_position(user_id, company_id)
            assert position.quantity == 100
            assert Decimal(position.total_invested) == Decimal("5000")
            assert Decimal(position.average_buy_price) == Decimal("50")

    def test_second_fill_updates_weighted_average(self, database, make_user, make_company):
        user_id = make_user()
        company_id = make_company()
        with database.transaction() as session:
            PositionBook(session).apply_fill(user_id, company_id, 100, Decimal("5000"))
        with database.transaction() as session:
            PositionBook(session).apply_fill(user_id, company_id, 100, Decimal("7000"))
        with database.session() as session:
            positions = PositionBook(session).list_positions(user_id)
            assert len(positions) == 1
            assert positions[0].quantity == 200
            assert Decimal(positions[0].total_invested) == Decimal("12000")
            assert Decimal(positions[0].average_buy_price) == Decimal("60")

    def test_first_fill_race_updates_existing_position(self, database, make_user, make_company):
        user_id = make_user()
        company_id = make_company()
        with database.transaction() as session:
            PositionBook(session).apply_fill(user_id, company_id, 100, Decimal("5000"))

        # The first read misses the row another writer just committed
        real_get_position = PositionBook.get_position
        reads = []

        def stale_first_read(book, *args, **kwargs):
            reads.append(kwargs.get("lock"))
            if len(reads) == 1:
                return None
            return real_get_position(book, *args, **kwargs)

        with patch.object(PositionBook, "get_position", stale_first_read):
            with database.transaction() as session:
                PositionBook(session).apply_fill(user_id, company_id, 100, Decimal("7000"))

        assert len(reads) == 2
        with database.session() as session:
            positions = PositionBook(session).list_positions(user_id)
            assert len(positions) == 1
            assert positions[0].quantity == 200
            assert Decimal(positions[0].total_invested) == Decimal("12000")
            assert Decimal(positions[0].average_buy_price) == Decimal("60")

    def test_zero_fill_refused(self, database):
        with database.session() as session:
            with pytest.raises(ValueError):
                PositionBook(session).apply_fill("u", "c", 0, Decimal("0"))

    def test_positions_ordered_by_total_invested(self, database, make_user, make_company):
        user_id = make_user()
        small = make_company(symbol="SML")
        large = make_company(symbol="LRG")
        with database.transaction() as session:
            book = PositionBook(session)
            book.apply_fill(user_id, small, 100, Decimal("1000"))
            book.apply_fill(user_id, large, 100, Decimal("9000"))
        with database.session() as session:
            ordered = [p.company_id for p in PositionBook(session).list_positions(user_id)]
        assert ordered == [large, small]


# =============================================================
# TEST: Instrument Inventory
# =============================================================

class TestInstrumentInventory:
    """Lookup, availability and post-buy statistics."""

    def test_find_by_symbol_normalizes(self, database, make_company):
        company_id = make_company(symbol="ACME")
        with database.session() as session:
            assert InstrumentInventory(session).find_by_symbol(" acme ").id == company_id

    def test_unknown_symbol(self, database):
        with database.session() as session:
            with pytest.raises(NotFoundError, match="Company not found or not verified"):
                InstrumentInventory(session).find_by_symbol("NOPE")

    def test_unverified_hidden_when_required(self, database, make_company):
        make_company(symbol="UNV", verified=False)
        with database.session() as session:
            with pytest.raises(NotFoundError):
                InstrumentInventory(session, require_verified=True).find_by_symbol("UNV")
            assert InstrumentInventory(session, require_verified=False).find_by_symbol("UNV").symbol == "UNV"

    def test_ensure_available_reports_shortfall(self, database, make_company):
        make_company(available=50)
        with database.session() as session:
            snap = InstrumentSnapshot.from_company(InstrumentInventory(session).find_by_symbol("ACME"))
        with pytest.raises(InsufficientInventoryError) as exc:
            InstrumentInventory.ensure_available(snap, 100)
        assert exc.value.shortfall == 50
        assert "Requested 100" in exc.value.message
        assert "only 50 available" in exc.value.message

    def test_apply_buy_updates_inventory_and_statistics(self, database, make_company, fetch):
        company_id = make_company(closing_price="50", available=1000)
        executed_at = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)
        with database.transaction() as session:
            inventory = InstrumentInventory(session)
            snap = InstrumentSnapshot.from_company(inventory.find_by_symbol("ACME", lock=True))
            inventory.apply_buy(snap, 100, Decimal("5500"), Decimal("55"), executed_at)

        company = fetch(Company, company_id)
        assert company.available_shares == 900
        assert Decimal(company.closing_price) == Decimal("55")
        assert Decimal(company.previous_closing_price) == Decimal("50")
        assert Decimal(company.price_change) == Decimal("5.00")
        assert Decimal(company.traded_volume) == Decimal("100")
        assert Decimal(company.traded_value) == Decimal("5500")
        assert company.snapshot_date is not None

    def test_apply_buy_conditional_decrement(self, database, make_company, fetch):
        company_id = make_company(available=1000)
        with database.session() as session:
            stale = InstrumentSnapshot.from_company(InstrumentInventory(session).find_by_symbol("ACME"))

        # Another writer consumed most of the inventory after the snapshot
        with database.transaction() as session:
            session.get(Company, company_id).available_shares = 50

        with pytest.raises(InsufficientInventoryError):
            with database.transaction() as session:
                InstrumentInventory(session).apply_buy(stale, 100, Decimal("5000"), Decimal("50"))
        assert fetch(Company, company_id).available_shares == 50


class TestPriceDelta:
    def test_rounds_half_up(self):
        assert price_delta(Decimal("50.125"), Decimal("50")) == Decimal("0.13")

    def test_negative_change(self):
        assert price_delta(Decimal("45"), Decimal("50")) == Decimal("-5.00")

    def test_no_reference(self):
        assert price_delta(Decimal("45"), None) == Decimal("0.00")


# =============================================================
# TEST: Trade Ledger & Transaction Journal
# =============================================================

class TestLedgers:
    """Append-only trade and cash records."""

    def _record(self, database, user_id, company_id, key=None):
        with database.transaction() as session:
            trade = TradeLedger(session).record_trade(
                user_id=user_id,
                company_id=company_id,
                quantity=100,
                price=Decimal("50"),
                total_amount=Decimal("5000"),
                executed_at=datetime.now(timezone.utc),
                idempotency_key=key,
            )
            entry = TransactionJournal(session).record_share_purchase(
                trade, company_symbol="ACME", price=Decimal("50"), amount=Decimal("5000")
            )
            return trade.id, entry.id

    def test_trade_is_executed_with_full_fill(self, database, make_user, make_company, fetch):
        trade_id, _ = self._record(database, make_user(), make_company())
        trade = fetch(Trade, trade_id)
        assert trade.status == TradeStatus.EXECUTED.value
        assert trade.executed_quantity == trade.quantity == 100
        assert Decimal(trade.requested_price) == Decimal(trade.executed_price) == Decimal("50")
        assert Decimal(trade.fees) == Decimal("0")

    def test_journal_entry_references_trade(self, database, make_user, make_company, fetch):
        trade_id, entry_id = self._record(database, make_user(), make_company())
        entry = fetch(Transaction, entry_id)
        assert entry.type == TransactionType.BUY_SHARES.value
        assert entry.reference == trade_reference(trade_id) == f"TRADE-{trade_id}"
        assert entry.description == "Purchase of 100 shares of ACME at Rwf 50.00 per share"
        assert entry.details["tradeId"] == trade_id
        assert entry.details["pricePerShare"] == 50.0

    def test_find_by_idempotency_key(self, database, make_user, make_company):
        user_id = make_user()
        trade_id, _ = self._record(database, user_id, make_company(), key="order-1")
        with database.session() as session:
            ledger = TradeLedger(session)
            assert ledger.find_by_idempotency_key(user_id, "order-1").id == trade_id
            assert ledger.find_by_idempotency_key(user_id, "order-2") is None

    def test_journal_pagination(self, database, make_user, make_company):
        user_id = make_user()
        company_id = make_company()
        for _ in range(3):
            self._record(database, user_id, company_id)
        with database.session() as session:
            journal = TransactionJournal(session)
            assert journal.count_for_user(user_id) == 3
            assert len(journal.list_for_user(user_id, limit=2)) == 2
            assert len(journal.list_for_user(user_id, limit=2, offset=2)) == 1

    def test_trade_to_dict(self, database, make_user, make_company, fetch):
        trade_id, _ = self._record(database, make_user(), make_company())
        data = trade_to_dict(fetch(Trade, trade_id))
        assert data["id"] == trade_id
        assert data["type"] == "BUY"
        assert data["status"] == "EXECUTED"
        assert data["quantity"] == 100
        assert Decimal(data["totalAmount"]) == Decimal("5000")


class TestAppendOnly:
    """The trading path only ever inserts trades and journal entries."""

    @staticmethod
    def _rows(database):
        with database.session() as session:
            return {
                table: {
                    row["id"]: dict(row)
                    for row in session.execute(text(f"SELECT * FROM {table}")).mappings()
                }
                for table in ("trades", "transactions")
            }

    def _assert_earlier_rows_unchanged(self, before, after):
        for table, rows in before.items():
            assert len(after[table]) >= len(rows)
            for row_id, row in rows.items():
                assert after[table][row_id] == row

    def test_rows_only_accumulate(self, database, service, make_user, make_company):
        user_id = make_user(balance="20000")
        make_company(available=10000, total=10000)

        service.execute_buy(BuyOrderRequest(user_id=user_id, symbol="ACME", quantity=100))
        first = self._rows(database)
        assert len(first["trades"]) == len(first["transactions"]) == 1

        service.execute_buy(BuyOrderRequest(user_id=user_id, symbol="ACME", quantity=100))
        second = self._rows(database)
        self._assert_earlier_rows_unchanged(first, second)
        assert len(second["trades"]) == len(second["transactions"]) == 2

        with pytest.raises(InsufficientFundsError):
            service.execute_buy(BuyOrderRequest(user_id=user_id, symbol="ACME", quantity=1000))
        after_rejection = self._rows(database)
        assert after_rejection == second

        with patch(
            "execution_engine.execution_service.InstrumentInventory.apply_buy",
            side_effect=RuntimeError("disk on fire"),
        ):
            with pytest.raises(RuntimeError):
                service.execute_buy(BuyOrderRequest(user_id=user_id, symbol="ACME", quantity=100))
        after_fault = self._rows(database)
        assert after_fault == second

        service.execute_buy(BuyOrderRequest(user_id=user_id, symbol="ACME", quantity=100))
        third = self._rows(database)
        self._assert_earlier_rows_unchanged(second, third)
        assert len(third["trades"]) == len(third["transactions"]) == 3
