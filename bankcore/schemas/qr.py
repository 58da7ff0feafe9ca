"""
Pydantic schemas for QR payments.
"""

from pydantic import Field
from datetime import datetime
from typing import Optional

from bankcore.models.qr_payment import QrPaymentStatus
from bankcore.core.config import settings
from bankcore.schemas.common import AccountNumber, CamelModel


class QrGenerateRequest(CamelModel):
    amount: int = Field(..., gt=0, le=settings.MAX_AMOUNT, description="Amount the buyer will pay, in won")
    description: Optional[str] = Field(None, max_length=200)


class QrGenerateResponse(CamelModel):
    qr_payment_id: int
    qr_code: str
    amount: int
    description: Optional[str]
    status: QrPaymentStatus
    expires_at: datetime
    created_at: datetime


class QrPayRequest(CamelModel):
    qr_code: str = Field(..., min_length=1, max_length=64)
    simple_password: str


class QrPayResponse(CamelModel):
    qr_payment_id: int
    transaction_id: int
    buyer_account: AccountNumber
    seller_account: AccountNumber
    seller_name: str
    amount: int
    description: Optional[str]
    status: QrPaymentStatus
    paid_at: datetime
    balance_after: int
