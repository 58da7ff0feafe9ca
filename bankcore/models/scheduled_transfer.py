"""
Scheduled transfer model.
A future-dated transfer executed exactly once by the scheduler.
"""

from sqlalchemy import Column, String, BigInteger, DateTime, Integer, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
import enum

from bankcore.core.formatting import utcnow
from bankcore.database import Base


class ScheduleStatus(enum.Enum):
    """
    PENDING -> EXECUTING -> EXECUTED | FAILED, or PENDING -> CANCELLED.
    EXECUTING is the scheduler's claim and is never shown as terminal.
    """
    PENDING = "PENDING"
    EXECUTING = "EXECUTING"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class ScheduledTransfer(Base):
    __tablename__ = "scheduled_transfers"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    to_account_number = Column(String(12), nullable=False)
    amount = Column(BigInteger, nullable=False)
    description = Column(String(200), nullable=True)
    scheduled_at = Column(DateTime, nullable=False, index=True)
    status = Column(SQLEnum(ScheduleStatus), nullable=False, default=ScheduleStatus.PENDING, index=True)
    claim_token = Column(String(36), nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    executed_at = Column(DateTime, nullable=True)
    failure_reason = Column(String(50), nullable=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True)
    # Simple password generation the owner authorised the schedule with
    simple_password_version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    account = relationship("Account", foreign_keys=[account_id])

    def __repr__(self):
        return f"<ScheduledTransfer(id={self.id}, account={self.account_id}, amount={self.amount}, status={self.status})>"
