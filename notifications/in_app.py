"""
In-App Notification Writer.

Creates a notification row for a committed trade. Runs in its
own transaction after the trade has committed, so a failure
here never touches the trade.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update

from database.engine import Database
from database.models import Notification, NotificationType, TradeType
from execution_engine.types import TradeExecutedEvent


logger = logging.getLogger(__name__)


DEFAULT_NOTIFICATION_LIMIT = 50


def notification_to_dict(notification: Notification) -> Dict[str, Any]:
    return {
        "id": notification.id,
        "userId": notification.user_id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "data": notification.data,
        "isRead": notification.is_read,
        "createdAt": notification.created_at.isoformat() if notification.created_at else None,
    }


class NotificationWriter:
    """Writes and reads a user's in-app notifications."""

    def __init__(self, database: Database):
        self._database = database

    def __call__(self, event: TradeExecutedEvent) -> None:
        self.notify_trade(event)

    def notify_trade(self, event: TradeExecutedEvent) -> str:
        """
        Record a trade notification.

        Returns:
            Notification id
        """
        verb = "bought" if event.trade_type == TradeType.BUY else "sold"
        notification = Notification(
            user_id=event.user_id,
            type=NotificationType.TRADE.value,
            title="Trade Executed",
            message=(
                f"You {verb} {event.quantity} shares of {event.company_symbol} "
                f"at {event.currency} {event.price_per_share:.2f} per share"
            ),
            data={
                "tradeId": event.trade_id,
                "companySymbol": event.company_symbol,
                "quantity": event.quantity,
                "totalAmount": float(event.total_amount),
            },
        )
        with self._database.transaction() as session:
            session.add(notification)
            session.flush()
            notification_id = notification.id

        logger.info(f"Persist notifications: inserted=1 (user={event.user_id} trade={event.trade_id})")
        return notification_id

    def list_for_user(self, user_id: str, limit: int = DEFAULT_NOTIFICATION_LIMIT) -> Dict[str, Any]:
        """Latest notifications and the unread count."""
        with self._database.session() as session:
            rows: List[Notification] = list(session.execute(
                select(Notification)
                .where(Notification.user_id == user_id)
                .order_by(Notification.created_at.desc())
                .limit(limit)
            ).scalars())
            unread = session.execute(
                select(func.count())
                .select_from(Notification)
                .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            ).scalar_one()
            return {
                "notifications": [notification_to_dict(n) for n in rows],
                "unreadCount": unread,
            }

    def mark_read(self, user_id: str, notification_id: Optional[str]) -> bool:
        """
        Mark one of the user's notifications read.

        Returns:
            False if no such notification belongs to the user
        """
        if not notification_id:
            return False
        with self._database.transaction() as session:
            result = session.execute(
                update(Notification)
                .where(Notification.id == notification_id, Notification.user_id == user_id)
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1
