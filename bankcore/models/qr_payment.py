"""
QR payment intent model.
A seller-issued, single-use payment capability identified by an opaque code.
"""

from sqlalchemy import Column, String, BigInteger, DateTime, Integer, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
import enum

from bankcore.core.formatting import utcnow
from bankcore.database import Base


class QrPaymentStatus(enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    EXPIRED = "EXPIRED"


class QrPayment(Base):
    __tablename__ = "qr_payments"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), unique=True, index=True, nullable=False)
    seller_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    buyer_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True)
    amount = Column(BigInteger, nullable=False)
    description = Column(String(200), nullable=True)
    status = Column(SQLEnum(QrPaymentStatus), nullable=False, default=QrPaymentStatus.PENDING, index=True)
    expires_at = Column(DateTime, nullable=False)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    seller_account = relationship("Account", foreign_keys=[seller_account_id])
    buyer_account = relationship("Account", foreign_keys=[buyer_account_id])

    def __repr__(self):
        return f"<QrPayment(id={self.id}, seller={self.seller_account_id}, amount={self.amount}, status={self.status})>"
