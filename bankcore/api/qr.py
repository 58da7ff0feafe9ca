"""
QR payment API endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from bankcore.api.deps import idempotency_key, run_idempotent
from bankcore.core.security import get_current_account_id
from bankcore.database import get_db
from bankcore.schemas.qr import QrGenerateRequest, QrGenerateResponse, QrPayRequest, QrPayResponse
from bankcore.services.transfer_engine import transfer_engine

router = APIRouter(prefix="/qr", tags=["QR Payments"])


@router.post("/generate", response_model=QrGenerateResponse, status_code=status.HTTP_201_CREATED)
def generate_qr(
    request: QrGenerateRequest,
    response: Response,
    account_id: int = Depends(get_current_account_id),
    key: Optional[str] = Depends(idempotency_key),
    db: Session = Depends(get_db)
):
    """
    Issue a single-use payment code for the caller (the seller), valid for 10 minutes.
    """
    return run_idempotent(
        db, response, account_id, "qr_generate", key,
        lambda: transfer_engine.generate_qr(db, account_id, request.amount, request.description),
        QrGenerateResponse,
    )


@router.post("/pay", response_model=QrPayResponse)
def pay_qr(
    request: QrPayRequest,
    response: Response,
    account_id: int = Depends(get_current_account_id),
    key: Optional[str] = Depends(idempotency_key),
    db: Session = Depends(get_db)
):
    """
    Pay a QR code as the buyer. A code can be paid once.
    """
    return run_idempotent(
        db, response, account_id, "qr_pay", key,
        lambda: transfer_engine.qr_pay(db, account_id, request.qr_code, request.simple_password),
        QrPayResponse,
    )
