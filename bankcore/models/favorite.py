"""
Favorite database model.
Saved transfer recipients; the target account may disappear later.
"""

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, UniqueConstraint

from bankcore.core.formatting import utcnow
from bankcore.database import Base


class Favorite(Base):
    __tablename__ = "favorites"
    __table_args__ = (
        UniqueConstraint("account_id", "account_number", name="uq_favorites_owner_target"),
    )

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    account_number = Column(String(12), nullable=False)
    nickname = Column(String(50), nullable=False)
    memo = Column(String(200), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Favorite(id={self.id}, owner={self.account_id}, target={self.account_number})>"
