"""
Tests for post-commit side effects.

Tests cover:
- In-app notification writer (create, list, mark read)
- Trade confirmation email payload and formatting
- Dispatcher failure isolation
- End-to-end: a broken handler never affects a committed trade
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from core.config import DispatchConfig, EmailConfig, ExchangeConfig
from execution_engine.execution_service import TradeExecutionService
from execution_engine.types import BuyOrderRequest, TradeExecutedEvent, TradeType
from notifications.dispatcher import PostCommitDispatcher
from notifications.in_app import NotificationWriter
from notifications.mailer import EmailNotifier, TradeEmailFormatter, build_trade_confirmation


def make_event(user_id="u-1", **overrides):
    values = dict(
        trade_id="t-1",
        user_id=user_id,
        trade_type=TradeType.BUY,
        company_id="c-1",
        company_symbol="ACME",
        company_name="Acme Bank",
        quantity=100,
        price_per_share=Decimal("50"),
        total_amount=Decimal("5000.00"),
        new_balance=Decimal("5000.00"),
        executed_at=datetime(2026, 3, 2, tzinfo=timezone.utc),
    )
    values.update(overrides)
    return TradeExecutedEvent(**values)


# =============================================================
# TEST: In-app notifications
# =============================================================

class TestNotificationWriter:
    def test_notify_and_list(self, database, make_user):
        user_id = make_user()
        writer = NotificationWriter(database)

        writer.notify_trade(make_event(user_id))
        listing = writer.list_for_user(user_id)

        assert listing["unreadCount"] == 1
        note = listing["notifications"][0]
        assert note["title"] == "Trade Executed"
        assert note["message"] == "You bought 100 shares of ACME at Rwf 50.00 per share"
        assert note["data"]["tradeId"] == "t-1"
        assert note["isRead"] is False

    def test_mark_read_is_owner_scoped(self, database, make_user):
        owner = make_user()
        other = make_user()
        writer = NotificationWriter(database)
        note_id = writer.notify_trade(make_event(owner))

        assert writer.mark_read(other, note_id) is False
        assert writer.list_for_user(owner)["unreadCount"] == 1

        assert writer.mark_read(owner, note_id) is True
        assert writer.list_for_user(owner)["unreadCount"] == 0

    def test_list_is_capped(self, database, make_user):
        user_id = make_user()
        writer = NotificationWriter(database)
        for i in range(3):
            writer.notify_trade(make_event(user_id, trade_id=f"t-{i}"))
        assert len(writer.list_for_user(user_id, limit=2)["notifications"]) == 2


# =============================================================
# TEST: Email
# =============================================================

class TestTradeEmail:
    def test_payload_fields(self):
        payload = build_trade_confirmation(make_event(), "a@example.com", "Ada Investor")
        assert payload == {
            "email": "a@example.com",
            "fullName": "Ada Investor",
            "tradeType": "BUY",
            "companySymbol": "ACME",
            "companyName": "Acme Bank",
            "quantity": 100,
            "pricePerShare": 50.0,
            "totalAmount": 5000.0,
            "newBalance": "5000.00",
            "currency": "Rwf",
        }

    def test_subject_and_html(self):
        payload = build_trade_confirmation(make_event(), "a@example.com", "Ada <Investor>")
        assert TradeEmailFormatter.subject(payload) == "Trade Confirmation - Purchase of ACME"
        body = TradeEmailFormatter.format_html(payload)
        assert "Acme Bank (ACME)" in body
        assert "Rwf 5000.00" in body
        assert "Ada &lt;Investor&gt;" in body

    def test_disabled_without_relay(self, database, make_user):
        notifier = EmailNotifier(database, EmailConfig())
        assert notifier.enabled is False
        assert notifier.notify_trade(make_event(make_user())) is False

    def test_unreachable_relay_returns_false(self, database):
        notifier = EmailNotifier(database, EmailConfig(api_url="http://127.0.0.1:9/send", timeout_seconds=2))
        payload = build_trade_confirmation(make_event(), "a@example.com", "Ada")
        assert asyncio.run(notifier.send_trade_confirmation(payload)) is False

    def test_unknown_recipient_not_sent(self, database):
        notifier = EmailNotifier(database, EmailConfig(api_url="http://127.0.0.1:9/send"))
        assert notifier.notify_trade(make_event("missing-user")) is False


# =============================================================
# TEST: Dispatcher
# =============================================================

class TestPostCommitDispatcher:
    def test_inline_delivers_to_every_handler(self):
        first, second = MagicMock(), MagicMock()
        dispatcher = PostCommitDispatcher([first, second], DispatchConfig(inline=True))
        event = make_event()

        dispatcher.publish(event)

        first.assert_called_once_with(event)
        second.assert_called_once_with(event)

    def test_failing_handler_is_isolated(self):
        broken = MagicMock(side_effect=RuntimeError("smtp down"))
        healthy = MagicMock()
        dispatcher = PostCommitDispatcher([broken, healthy], DispatchConfig(inline=True))

        dispatcher.publish(make_event())

        healthy.assert_called_once()
        assert dispatcher.stats["failed"] == 1
        assert dispatcher.stats["delivered"] == 1

    def test_background_delivery(self):
        handler = MagicMock()
        dispatcher = PostCommitDispatcher([handler], DispatchConfig(max_workers=1))

        futures = dispatcher.publish(make_event())
        for future in futures:
            future.result(timeout=5)
        dispatcher.shutdown()

        handler.assert_called_once()

    def test_publish_after_shutdown_does_not_raise(self):
        dispatcher = PostCommitDispatcher([MagicMock()], DispatchConfig(max_workers=1))
        dispatcher.shutdown()
        assert dispatcher.publish(make_event()) == []
        assert dispatcher.stats["failed"] == 1

    def test_counters_survive_parallel_delivery(self):
        healthy = MagicMock()
        broken = MagicMock(side_effect=RuntimeError("relay down"))
        dispatcher = PostCommitDispatcher([healthy, broken], DispatchConfig(max_workers=8))

        futures = []
        for i in range(200):
            futures.extend(dispatcher.publish(make_event(trade_id=f"t-{i}")))
        for future in futures:
            future.result(timeout=5)
        dispatcher.shutdown()

        assert dispatcher.stats == {"published": 200, "delivered": 200, "failed": 200}


class TestNotificationFailureIsolation:
    """A committed trade stays committed whatever the side effects do."""

    def test_trade_survives_broken_notification(self, database, make_user, make_company, balance_of, row_counts):
        broken = MagicMock(side_effect=RuntimeError("notifications table locked"))
        dispatcher = PostCommitDispatcher([broken], DispatchConfig(inline=True))
        service = TradeExecutionService(database, ExchangeConfig(), dispatcher)
        user_id = make_user(balance="10000")
        make_company()

        result = service.execute_buy(BuyOrderRequest(user_id=user_id, symbol="ACME", quantity=100))

        assert result.quantity == 100
        broken.assert_called_once()
        assert balance_of(user_id) == Decimal("5000")
        assert row_counts()["trades"] == 1

    def test_trade_creates_notification(self, database, make_user, make_company):
        writer = NotificationWriter(database)
        dispatcher = PostCommitDispatcher([writer], DispatchConfig(inline=True))
        service = TradeExecutionService(database, ExchangeConfig(), dispatcher)
        user_id = make_user()
        make_company()

        service.execute_buy(BuyOrderRequest(user_id=user_id, symbol="ACME", quantity=100))

        assert writer.list_for_user(user_id)["unreadCount"] == 1
