"""
Account database model.
Represents bank accounts in the system.
"""

from sqlalchemy import Column, String, BigInteger, DateTime, Integer, CheckConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
import enum

from bankcore.core.formatting import utcnow
from bankcore.database import Base


class AccountStatus(enum.Enum):
    """Account status states."""
    ACTIVE = "ACTIVE"
    LOCKED = "LOCKED"


class Account(Base):
    """
    Account table - stores balances and the simple-password verifier.

    Balances are integers in won and are only changed by the ledger while
    the account lock is held. ``version`` is bumped on every flush so a
    writer holding a stale row fails instead of overwriting.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    account_number = Column(String(12), unique=True, index=True, nullable=False)
    owner_name = Column(String(100), nullable=False)
    balance = Column(BigInteger, nullable=False, default=0)
    status = Column(SQLEnum(AccountStatus), nullable=False, default=AccountStatus.ACTIVE)
    simple_password_hash = Column(String(100), nullable=True)
    simple_password_version = Column(Integer, nullable=False, default=0)
    failed_password_attempts = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationship to transactions
    sent_transactions = relationship(
        "Transaction",
        foreign_keys="Transaction.from_account_id",
        back_populates="from_account"
    )
    received_transactions = relationship(
        "Transaction",
        foreign_keys="Transaction.to_account_id",
        back_populates="to_account"
    )

    @property
    def is_locked(self) -> bool:
        return self.status == AccountStatus.LOCKED

    def __repr__(self):
        return f"<Account(id={self.id}, number={self.account_number}, balance={self.balance})>"
