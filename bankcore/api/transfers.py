"""
Transfer API endpoints.
Handles account-to-account transfers by account number.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from bankcore.api.deps import idempotency_key, run_idempotent
from bankcore.core.security import get_current_account_id
from bankcore.database import get_db
from bankcore.schemas.transaction import TransferRequest, TransferResponse
from bankcore.services.transfer_engine import transfer_engine

router = APIRouter(prefix="/transfers", tags=["Transfers"])


@router.post("", response_model=TransferResponse, status_code=status.HTTP_201_CREATED)
def create_transfer(
    transfer_data: TransferRequest,
    response: Response,
    account_id: int = Depends(get_current_account_id),
    key: Optional[str] = Depends(idempotency_key),
    db: Session = Depends(get_db)
):
    """
    Send money from the caller's account.

    Implements:
    - Atomicity: both balances and the transaction row commit together or not at all
    - Idempotency: a repeated `Idempotency-Key` returns the first result
    - Concurrency: per-account locks taken in ascending id order

    - **toAccountNumber**: Destination, 12 digits with or without hyphens
    - **amount**: At least 100 won
    - **simplePassword**: 6-digit simple password
    - **description**: Optional transfer description
    """
    return run_idempotent(
        db, response, account_id, "transfer", key,
        lambda: transfer_engine.transfer(
            db,
            account_id,
            transfer_data.to_account_number,
            transfer_data.amount,
            transfer_data.simple_password,
            transfer_data.description,
        ),
        TransferResponse,
    )
