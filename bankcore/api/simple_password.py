"""
Simple password API endpoints.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from bankcore.core.security import get_current_account_id
from bankcore.database import get_db
from bankcore.schemas.simple_password import (
    SimplePasswordRegisterRequest,
    SimplePasswordChangeRequest,
    SimplePasswordVerifyRequest,
    SimplePasswordVerifyResponse,
    SimplePasswordResponse,
)
from bankcore.services import ledger, simple_password

router = APIRouter(tags=["Simple Password"])


@router.post(
    "/simple-password/register",
    response_model=SimplePasswordResponse,
    status_code=status.HTTP_201_CREATED,
)
def register_simple_password(
    request: SimplePasswordRegisterRequest,
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    """
    Register the 6-digit simple password used to authorise money movement.
    """
    simple_password.register(db, account_id, request.simple_password, request.simple_password_confirm)
    return SimplePasswordResponse(has_simple_password=True, message="Simple password registered")


@router.post("/simple-password/verify", response_model=SimplePasswordVerifyResponse)
def verify_simple_password(
    request: SimplePasswordVerifyRequest,
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    """
    Check the simple password. A mismatch counts towards the lockout limit
    and is reported as an error, not as `valid: false`.
    """
    simple_password.verify(db, account_id, request.simple_password)
    return SimplePasswordVerifyResponse(valid=True)


@router.get("/simple-password/status", response_model=SimplePasswordResponse)
def simple_password_status(
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    registered = simple_password.has_simple_password(ledger.get_account(db, account_id))
    message = "Simple password is registered" if registered else "Simple password is not registered"
    return SimplePasswordResponse(has_simple_password=registered, message=message)


@router.patch("/auth/simple-password", response_model=SimplePasswordResponse)
def change_simple_password(
    request: SimplePasswordChangeRequest,
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    """
    Change the simple password. Pending scheduled transfers authorised with
    the previous one will fail when they come due.
    """
    simple_password.change(
        db,
        account_id,
        request.current_simple_password,
        request.new_simple_password,
        request.new_simple_password_confirm,
    )
    return SimplePasswordResponse(has_simple_password=True, message="Simple password changed")
