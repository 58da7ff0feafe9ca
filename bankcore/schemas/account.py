"""
Pydantic schemas for Account API requests and responses.
"""

from pydantic import AliasChoices, Field, ConfigDict
from datetime import datetime
from typing import Optional

from bankcore.models.account import AccountStatus
from bankcore.core.config import settings
from bankcore.schemas.common import AccountNumber, CamelModel


class AccountCreate(CamelModel):
    """Schema for provisioning a new account."""
    owner_name: str = Field(..., min_length=1, max_length=100, description="Account owner name")
    initial_balance: int = Field(default=0, ge=0, le=settings.MAX_AMOUNT, description="Initial balance in won")
    account_number: Optional[str] = Field(None, description="12-digit account number; generated when omitted")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "ownerName": "Kim Minsu",
                "initialBalance": 10000
            }
        }
    )


class AccountResponse(CamelModel):
    """Schema for account response."""
    account_id: int
    account_number: AccountNumber
    owner_name: str
    balance: int
    status: AccountStatus
    created_at: datetime

    @classmethod
    def from_account(cls, account):
        return cls(
            account_id=account.id,
            account_number=account.account_number,
            owner_name=account.owner_name,
            balance=account.balance,
            status=account.status,
            created_at=account.created_at,
        )


class AccountOwnerResponse(CamelModel):
    account_number: AccountNumber
    owner_name: str


class AccountLockRequest(CamelModel):
    simple_password: Optional[str] = Field(None, description="6-digit simple password")


class AccountUnlockRequest(CamelModel):
    """Unlock body; older clients send the PIN as ``password``."""
    simple_password: str = Field(
        ...,
        validation_alias=AliasChoices("simplePassword", "password", "simple_password"),
        description="6-digit simple password",
    )


class AccountLockStatusResponse(CamelModel):
    is_locked: bool
    status: AccountStatus
    failed_password_attempts: int


class SelfDepositRequest(CamelModel):
    amount: int = Field(..., gt=0, le=settings.MAX_AMOUNT, description="Deposit amount in won")
    simple_password: str
    description: Optional[str] = Field(None, max_length=200)


class SelfDepositResponse(CamelModel):
    transaction_id: int
    account_number: AccountNumber
    amount: int
    balance_after: int
    description: Optional[str]
    deposited_at: datetime
