"""
Notification database model.
Created as a side effect of ledger and scheduler events; only read state changes afterwards.
"""

from sqlalchemy import Column, String, BigInteger, DateTime, Integer, Boolean, ForeignKey, Enum as SQLEnum
import enum

from bankcore.core.formatting import utcnow
from bankcore.database import Base


class NotificationType(enum.Enum):
    TRANSFER_SENT = "TRANSFER_SENT"
    TRANSFER_RECEIVED = "TRANSFER_RECEIVED"
    TRANSFER_FAILED = "TRANSFER_FAILED"
    QR_PAYMENT_SENT = "QR_PAYMENT_SENT"
    QR_PAYMENT_RECEIVED = "QR_PAYMENT_RECEIVED"
    QR_PAYMENT_FAILED = "QR_PAYMENT_FAILED"
    SCHEDULED_TRANSFER_EXECUTED = "SCHEDULED_TRANSFER_EXECUTED"
    SCHEDULED_TRANSFER_FAILED = "SCHEDULED_TRANSFER_FAILED"
    DEPOSIT = "DEPOSIT"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    type = Column(SQLEnum(NotificationType), nullable=False)
    title = Column(String(100), nullable=False)
    content = Column(String(500), nullable=False)
    amount = Column(BigInteger, nullable=True)
    related_transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<Notification(id={self.id}, account={self.account_id}, type={self.type}, read={self.is_read})>"
