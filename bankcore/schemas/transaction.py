"""
Pydantic schemas for transfer requests and transaction history.
"""

from pydantic import Field, ConfigDict
from datetime import datetime
from typing import Optional

from bankcore.models.transaction import TransactionStatus, TransactionType
from bankcore.core.config import settings
from bankcore.schemas.common import AccountNumber, CamelModel


class TransferRequest(CamelModel):
    """Schema for initiating a transfer."""
    to_account_number: str = Field(..., min_length=12, max_length=14, description="Destination account number")
    amount: int = Field(..., gt=0, le=settings.MAX_AMOUNT, description="Transfer amount in won")
    simple_password: str = Field(..., description="6-digit simple password")
    description: Optional[str] = Field(None, max_length=200, description="Optional transfer description")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "toAccountNumber": "1234-5678-9012",
                "amount": 3000,
                "simplePassword": "123456",
                "description": "Dinner"
            }
        }
    )


class TransferResponse(CamelModel):
    transaction_id: int
    from_account: AccountNumber
    to_account: AccountNumber
    to_account_owner: str
    amount: int
    description: Optional[str]
    status: TransactionStatus
    created_at: datetime
    balance_after: int


class TransactionResponse(CamelModel):
    """Schema for one row of the caller's transaction history."""
    transaction_id: int
    type: TransactionType
    amount: int
    from_account: AccountNumber
    to_account: Optional[AccountNumber]
    counterparty_name: Optional[str]
    description: Optional[str]
    status: TransactionStatus
    failure_reason: Optional[str] = None
    created_at: datetime
