"""
Trade Confirmation Email.

============================================================
PURPOSE
============================================================
Send a trade confirmation email through an HTTP mail relay.

PRINCIPLES:
- Notification-only; runs after the trade committed
- Disabled unless EMAIL_API_URL is configured
- A failed send is logged, never raised to the trade

============================================================
"""

import asyncio
import html
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import aiohttp
from sqlalchemy import select

from core.config import EmailConfig
from database.engine import Database
from database.models import TradeType, User
from execution_engine.types import TradeExecutedEvent


logger = logging.getLogger(__name__)


# ============================================================
# PAYLOAD
# ============================================================

def build_trade_confirmation(
    event: TradeExecutedEvent,
    email: str,
    full_name: str,
) -> Dict[str, Any]:
    """Fields a trade confirmation needs."""
    return {
        "email": email,
        "fullName": full_name,
        "tradeType": event.trade_type.value,
        "companySymbol": event.company_symbol,
        "companyName": event.company_name,
        "quantity": event.quantity,
        "pricePerShare": float(event.price_per_share),
        "totalAmount": float(event.total_amount),
        "newBalance": str(event.new_balance),
        "currency": event.currency,
    }


# ============================================================
# EMAIL FORMATTER
# ============================================================

class TradeEmailFormatter:
    """Formats trade confirmations as HTML email."""

    TRADE_COLORS = {
        TradeType.BUY.value: "#10b981",
        TradeType.SELL.value: "#ef4444",
    }

    @staticmethod
    def trade_label(trade_type: str) -> str:
        return "Purchase" if trade_type == TradeType.BUY.value else "Sale"

    @classmethod
    def subject(cls, payload: Dict[str, Any]) -> str:
        return f"Trade Confirmation - {cls.trade_label(payload['tradeType'])} of {payload['companySymbol']}"

    @classmethod
    def format_html(cls, payload: Dict[str, Any]) -> str:
        label = cls.trade_label(payload["tradeType"])
        color = cls.TRADE_COLORS.get(payload["tradeType"], "#004B5B")
        currency = html.escape(payload["currency"])

        rows = [
            ("Company", f"{html.escape(payload['companyName'])} ({html.escape(payload['companySymbol'])})"),
            ("Quantity", f"{payload['quantity']} shares"),
            ("Price per Share", f"{currency} {payload['pricePerShare']:.2f}"),
            ("Total Amount", f"{currency} {payload['totalAmount']:.2f}"),
            ("New Wallet Balance", f"{currency} {float(payload['newBalance']):.2f}"),
        ]
        detail_rows = "\n".join(
            f'<tr><td style="color:#6b7280">{name}:</td><td><b>{value}</b></td></tr>'
            for name, value in rows
        )

        return "\n".join([
            "<html><body style=\"font-family: Arial, sans-serif; color: #333\">",
            "<h1>Trade Executed Successfully</h1>",
            f"<p>Your {label.lower()} order has been completed</p>",
            f"<p>Dear {html.escape(payload['fullName'])},</p>",
            f'<h3 style="color:{color}">{label} Order</h3>',
            f"<table>{detail_rows}</table>",
            "<p>You can view your updated portfolio and transaction history in your dashboard.</p>",
            f"<p>&copy; {datetime.now().year} Broker Platform. This is an automated message.</p>",
            "</body></html>",
        ])


# ============================================================
# EMAIL NOTIFIER
# ============================================================

class EmailNotifier:
    """
    Sends trade confirmations to the mail relay.

    Looks up the recipient's address from the users table.
    """

    def __init__(self, database: Database, config: Optional[EmailConfig] = None):
        self._database = database
        self._config = config or EmailConfig()
        self._formatter = TradeEmailFormatter()
        self._enabled = self._config.enabled

        if self._enabled:
            logger.info("EmailNotifier enabled")
        else:
            logger.warning("EmailNotifier NOT configured - check EMAIL_API_URL")

    @property
    def enabled(self) -> bool:
        return self._enabled

    def __call__(self, event: TradeExecutedEvent) -> bool:
        return self.notify_trade(event)

    def notify_trade(self, event: TradeExecutedEvent) -> bool:
        """
        Send a confirmation for one trade.

        Returns True if the relay accepted it.
        """
        if not self._enabled:
            return False

        recipient = self._recipient(event.user_id)
        if recipient is None:
            logger.warning(f"No email address for user {event.user_id}, confirmation not sent")
            return False

        payload = build_trade_confirmation(event, *recipient)
        return asyncio.run(self.send_trade_confirmation(payload))

    def _recipient(self, user_id: str):
        with self._database.session() as session:
            row = session.execute(
                select(User.email, User.full_name).where(User.id == user_id)
            ).one_or_none()
        if row is None or not row.email:
            return None
        return row.email, row.full_name or ""

    async def send_trade_confirmation(self, payload: Dict[str, Any]) -> bool:
        """POST the message to the relay."""
        message = {
            "from": self._config.sender,
            "to": payload["email"],
            "subject": self._formatter.subject(payload),
            "html": self._formatter.format_html(payload),
            "trade": payload,
        }
        headers = {}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"

        timeout = aiohttp.ClientTimeout(total=self._config.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self._config.api_url, json=message, headers=headers) as response:
                    if response.status < 300:
                        logger.info(f"Trade confirmation email sent to: {payload['email']}")
                        return True
                    body = await response.text()
                    logger.error(f"Email relay error: {response.status} - {body}")
                    return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Error sending trade confirmation email: {e}")
            return False
