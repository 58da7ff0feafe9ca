"""
Idempotency record model.
Caches the result or the recorded failure of a mutating request under
(account, operation, key).
"""

from sqlalchemy import Column, String, Text, DateTime, Integer, UniqueConstraint, Enum as SQLEnum
import enum

from bankcore.core.formatting import utcnow
from bankcore.database import Base


class IdempotencyStatus(enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    # Failed after committing a FAILED ledger row; the error is replayed
    FAILED = "FAILED"


class IdempotencyRecord(Base):
    __tablename__ = "idempotency_records"
    __table_args__ = (
        UniqueConstraint("account_id", "operation", "idempotency_key", name="uq_idempotency_scope"),
    )

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, nullable=False)
    operation = Column(String(50), nullable=False)
    idempotency_key = Column(String(100), nullable=False)
    status = Column(SQLEnum(IdempotencyStatus), nullable=False, default=IdempotencyStatus.IN_PROGRESS)
    response_body = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<IdempotencyRecord(account={self.account_id}, op={self.operation}, status={self.status})>"
