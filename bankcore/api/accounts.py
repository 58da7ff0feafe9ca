"""
Account API endpoints.
Handles provisioning, owner lookup, self deposit and account locking.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from bankcore.api.deps import idempotency_key, run_idempotent
from bankcore.core.security import get_current_account_id, require_provisioning_key
from bankcore.database import get_db
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
from bankcore.services import accounts, ledger
from bankcore.services.transfer_engine import transfer_engine

router = APIRouter(prefix="/accounts", tags=["Accounts"])


def _lock_status(account) -> AccountLockStatusResponse:
    return AccountLockStatusResponse(
        is_locked=account.is_locked,
        status=account.status,
        failed_password_attempts=account.failed_password_attempts,
    )


@router.post(
    "",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_provisioning_key)],
)
def create_account(
    account_data: AccountCreate,
    db: Session = Depends(get_db)
):
    """
    Provision a new account. Requires the X-Provisioning-Key header.

    - **ownerName**: Name of the account owner
    - **initialBalance**: Starting balance in won, credited as a deposit (default: 0)
    - **accountNumber**: Optional 12-digit number; generated when omitted
    """
    account = accounts.provision_account(
        db,
        owner_name=account_data.owner_name,
        initial_balance=account_data.initial_balance,
        account_number=account_data.account_number,
    )
    return AccountResponse.from_account(account)


@router.get("/me", response_model=AccountResponse)
def get_my_account(
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    """
    Get the caller's account and balance.
    """
    return AccountResponse.from_account(ledger.get_account(db, account_id))


@router.get("/lock-status", response_model=AccountLockStatusResponse)
def get_lock_status(
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    return _lock_status(ledger.get_account(db, account_id))


@router.post("/lock", response_model=AccountLockStatusResponse)
def lock_account(
    request: Optional[AccountLockRequest] = None,
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    """
    Lock the caller's account.

    The body is optional; when a simple password is sent it must match.
    """
    simple_password = request.simple_password if request is not None else None
    return _lock_status(accounts.lock_account(db, account_id, simple_password))


@router.post("/unlock", response_model=AccountLockStatusResponse)
def unlock_account(
    request: AccountUnlockRequest,
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    """
    Unlock the caller's account and reset the failed attempt counter.
    """
    return _lock_status(accounts.unlock_account(db, account_id, request.simple_password))


@router.post("/deposit", response_model=SelfDepositResponse)
def self_deposit(
    request: SelfDepositRequest,
    response: Response,
    account_id: int = Depends(get_current_account_id),
    key: Optional[str] = Depends(idempotency_key),
    db: Session = Depends(get_db)
):
    """
    Deposit money into the caller's own account.

    - **amount**: At least 1,000 won
    - **simplePassword**: 6-digit simple password
    - **description**: Optional memo
    """
    return run_idempotent(
        db, response, account_id, "self_deposit", key,
        lambda: transfer_engine.self_deposit(
            db, account_id, request.amount, request.simple_password, request.description
        ),
        SelfDepositResponse,
    )


@router.get("/{account_number}", response_model=AccountOwnerResponse)
def get_account_owner(
    account_number: str,
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    """
    Look up the owner of an account number before transferring to it.
    Hyphens are optional.
    """
    account = ledger.get_account_by_number(db, account_number)
    return AccountOwnerResponse(account_number=account.account_number, owner_name=account.owner_name)
