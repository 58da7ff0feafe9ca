"""
Pydantic schemas package.
"""

from bankcore.schemas.common import Page, ErrorResponse
from bankcore.schemas.account import (
    AccountCreate,
    AccountResponse,
    AccountOwnerResponse,
    AccountLockRequest,
    AccountLockStatusResponse,
    AccountUnlockRequest,
    SelfDepositRequest,
    SelfDepositResponse,
)
from bankcore.schemas.transaction import TransferRequest, TransferResponse, TransactionResponse
from bankcore.schemas.qr import QrGenerateRequest, QrGenerateResponse, QrPayRequest, QrPayResponse
from bankcore.schemas.scheduled_transfer import ScheduledTransferRequest, ScheduledTransferResponse
from bankcore.schemas.favorite import FavoriteRequest, FavoriteUpdateRequest, FavoriteResponse
from bankcore.schemas.notification import NotificationResponse, UnreadCountResponse
from bankcore.schemas.simple_password import (
    SimplePasswordRegisterRequest,
    SimplePasswordChangeRequest,
    SimplePasswordVerifyRequest,
    SimplePasswordVerifyResponse,
    SimplePasswordResponse,
)

__all__ = [
    "Page",
    "ErrorResponse",
    "AccountCreate",
    "AccountResponse",
    "AccountOwnerResponse",
    "AccountLockRequest",
    "AccountLockStatusResponse",
    "AccountUnlockRequest",
    "SelfDepositRequest",
    "SelfDepositResponse",
    "TransferRequest",
    "TransferResponse",
    "TransactionResponse",
    "QrGenerateRequest",
    "QrGenerateResponse",
    "QrPayRequest",
    "QrPayResponse",
    "ScheduledTransferRequest",
    "ScheduledTransferResponse",
    "FavoriteRequest",
    "FavoriteUpdateRequest",
    "FavoriteResponse",
    "NotificationResponse",
    "UnreadCountResponse",
    "SimplePasswordRegisterRequest",
    "SimplePasswordChangeRequest",
    "SimplePasswordVerifyRequest",
    "SimplePasswordVerifyResponse",
    "SimplePasswordResponse",
]
