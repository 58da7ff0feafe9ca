"""
Pydantic schemas for notifications.
"""

from datetime import datetime
from typing import Optional

from bankcore.models.notification import NotificationType
from bankcore.schemas.common import CamelModel


class NotificationResponse(CamelModel):
    notification_id: int
    type: NotificationType
    title: str
    content: str
    related_transaction_id: Optional[int]
    amount: Optional[int]
    is_read: bool
    read_at: Optional[datetime]
    created_at: datetime

    @classmethod
    def from_notification(cls, notification):
        return cls(
            notification_id=notification.id,
            type=notification.type,
            title=notification.title,
            content=notification.content,
            related_transaction_id=notification.related_transaction_id,
            amount=notification.amount,
            is_read=notification.is_read,
            read_at=notification.read_at,
            created_at=notification.created_at,
        )


class UnreadCountResponse(CamelModel):
    count: int
