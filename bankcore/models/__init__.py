"""
Database models package.
"""

from bankcore.models.account import Account, AccountStatus
from bankcore.models.transaction import Transaction, TransactionStatus, TransactionType
from bankcore.models.qr_payment import QrPayment, QrPaymentStatus
from bankcore.models.scheduled_transfer import ScheduledTransfer, ScheduleStatus
from bankcore.models.favorite import Favorite
from bankcore.models.notification import Notification, NotificationType
from bankcore.models.idempotency import IdempotencyRecord, IdempotencyStatus

__all__ = [
    "Account",
    "AccountStatus",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "QrPayment",
    "QrPaymentStatus",
    "ScheduledTransfer",
    "ScheduleStatus",
    "Favorite",
    "Notification",
    "NotificationType",
    "IdempotencyRecord",
    "IdempotencyStatus",
]
