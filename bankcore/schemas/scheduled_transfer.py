"""
Pydantic schemas for scheduled transfers.
"""

from pydantic import Field
from datetime import datetime
from typing import Optional

from bankcore.models.scheduled_transfer import ScheduleStatus
from bankcore.schemas.common import AccountNumber, CamelModel


class ScheduledTransferRequest(CamelModel):
    to_account_number: str = Field(..., min_length=12, max_length=14)
    amount: int = Field(..., gt=0, description="Amount in won, at most 1,000,000")
    simple_password: str
    description: Optional[str] = Field(None, max_length=200)
    scheduled_at: datetime = Field(..., description="ISO-8601; naive values are UTC")


class ScheduledTransferResponse(CamelModel):
    schedule_id: int
    from_account: AccountNumber
    to_account_number: AccountNumber
    amount: int
    description: Optional[str]
    scheduled_at: datetime
    status: ScheduleStatus
    executed_at: Optional[datetime]
    failure_reason: Optional[str] = None
    transaction_id: Optional[int] = None
    created_at: datetime
