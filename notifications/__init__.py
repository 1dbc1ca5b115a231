"""
Notifications Package.

Post-commit side effects of executed trades.
"""

from .dispatcher import PostCommitDispatcher, EventHandler
from .in_app import NotificationWriter, notification_to_dict, DEFAULT_NOTIFICATION_LIMIT
from .mailer import EmailNotifier, TradeEmailFormatter, build_trade_confirmation


__all__ = [
    "PostCommitDispatcher",
    "EventHandler",
    "NotificationWriter",
    "notification_to_dict",
    "DEFAULT_NOTIFICATION_LIMIT",
    "EmailNotifier",
    "TradeEmailFormatter",
    "build_trade_confirmation",
]
