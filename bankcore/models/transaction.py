"""
Transaction database model.
Append-only audit trail of every ledger mutation attempt.
"""

from sqlalchemy import Column, String, BigInteger, DateTime, Integer, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
import enum

from bankcore.core.formatting import utcnow
from bankcore.database import Base


class TransactionType(enum.Enum):
    """Kinds of balance-changing operations."""
    TRANSFER = "TRANSFER"
    QR_PAYMENT = "QR_PAYMENT"
    SCHEDULED_TRANSFER = "SCHEDULED_TRANSFER"
    DEPOSIT = "DEPOSIT"
    SELF_DEPOSIT = "SELF_DEPOSIT"


class TransactionStatus(enum.Enum):
    """Transaction status states."""
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Transaction(Base):
    """
    Transaction table - one row per ledger mutation attempt, never updated.
    """
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(SQLEnum(TransactionType), nullable=False, index=True)
    from_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    to_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True, index=True)
    amount = Column(BigInteger, nullable=False)
    status = Column(SQLEnum(TransactionStatus), nullable=False)
    description = Column(String(500), nullable=True)
    failure_reason = Column(String(50), nullable=True)
    # Initiator's balance once the attempt settled
    balance_after = Column(BigInteger, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    # Relationships
    from_account = relationship(
        "Account",
        foreign_keys=[from_account_id],
        back_populates="sent_transactions"
    )
    to_account = relationship(
        "Account",
        foreign_keys=[to_account_id],
        back_populates="received_transactions"
    )

    def __repr__(self):
        return (
            f"<Transaction(id={self.id}, type={self.type}, from={self.from_account_id}, "
            f"to={self.to_account_id}, amount={self.amount}, status={self.status})>"
        )
