"""
Notification dispatcher.

Notifications are written in the same database transaction as the event that
caused them and handed to the external delivery system only after commit.
Delivery is fire-and-forget: a failing sink never affects the money movement.
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from bankcore.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)


class NotificationSink:
    """Delivery channel (push, SMS, ...) implemented outside this service."""

    def deliver(self, notification: Notification) -> None:
        raise NotImplementedError


class LoggingNotificationSink(NotificationSink):
    def deliver(self, notification: Notification) -> None:
        logger.info(
            "Notification #%s %s for account %s: %s",
            notification.id, notification.type.value, notification.account_id, notification.title,
        )


class NotificationDispatcher:
    def __init__(self, sink: Optional[NotificationSink] = None):
        self.sink = sink or LoggingNotificationSink()

    def enqueue(
        self,
        db: Session,
        account_id: int,
        type: NotificationType,
        title: str,
        content: str,
        amount: Optional[int] = None,
        related_transaction_id: Optional[int] = None,
    ) -> Notification:
        """Add a notification to the caller's pending database transaction."""
        notification = Notification(
            account_id=account_id,
            type=type,
            title=title,
            content=content,
            amount=amount,
            related_transaction_id=related_transaction_id,
            is_read=False,
        )
        db.add(notification)
        return notification

    def publish(self, notifications: Iterable[Notification]) -> List[Notification]:
        """Hand committed notifications to the sink; returns those delivered."""
        delivered = []
        for notification in notifications:
            try:
                self.sink.deliver(notification)
            except Exception:
                logger.exception("Delivery of notification #%s failed", notification.id)
                continue
            delivered.append(notification)
        return delivered


dispatcher = NotificationDispatcher()
