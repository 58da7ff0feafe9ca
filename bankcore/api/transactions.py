"""
Transaction history API endpoints.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, joinedload

from bankcore.core.exceptions import Forbidden, InvalidRequestError, NotFound
from bankcore.core.security import get_current_account_id
from bankcore.database import get_db
from bankcore.models.transaction import Transaction, TransactionStatus, TransactionType
from bankcore.schemas.common import Page
from bankcore.schemas.transaction import TransactionResponse

router = APIRouter(prefix="/transactions", tags=["Transactions"])


def _visible_to(account_id: int):
    # FAILED attempts are shown to the initiator only
    return or_(
        Transaction.from_account_id == account_id,
        and_(
            Transaction.to_account_id == account_id,
            Transaction.status == TransactionStatus.COMPLETED,
        ),
    )


def _to_response(txn: Transaction, account_id: int) -> TransactionResponse:
    if txn.from_account_id == account_id:
        counterparty = txn.to_account
    else:
        counterparty = txn.from_account
    return TransactionResponse(
        transaction_id=txn.id,
        type=txn.type,
        amount=txn.amount,
        from_account=txn.from_account.account_number,
        to_account=txn.to_account.account_number if txn.to_account is not None else None,
        counterparty_name=counterparty.owner_name if counterparty is not None else None,
        description=txn.description,
        status=txn.status,
        failure_reason=txn.failure_reason,
        created_at=txn.created_at,
    )


@router.get("/filter", response_model=Page[TransactionResponse])
def filter_transactions(
    type: Optional[TransactionType] = Query(None),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=100),
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    """
    Get the caller's transactions (sent and received), newest first.

    - **type**: Optional transaction type
    - **startDate** / **endDate**: Optional inclusive UTC date range (YYYY-MM-DD)
    - **page** / **size**: Zero-based page number and page size
    """
    if start_date and end_date and start_date > end_date:
        raise InvalidRequestError("startDate must not be after endDate")

    query = db.query(Transaction).filter(_visible_to(account_id))
    if type is not None:
        query = query.filter(Transaction.type == type)
    if start_date is not None:
        query = query.filter(Transaction.created_at >= datetime.combine(start_date, time.min))
    if end_date is not None:
        query = query.filter(Transaction.created_at < datetime.combine(end_date + timedelta(days=1), time.min))

    total = query.count()
    transactions = query.options(
        joinedload(Transaction.from_account),
        joinedload(Transaction.to_account),
    ).order_by(
        Transaction.created_at.desc(), Transaction.id.desc()
    ).offset(page * size).limit(size).all()

    content = [_to_response(txn, account_id) for txn in transactions]
    return Page[TransactionResponse].build(content, total, page, size)


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: int,
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    """
    Get one transaction. Only the parties can see it.
    """
    txn = db.get(Transaction, transaction_id)
    if txn is None:
        raise NotFound(f"Transaction {transaction_id} not found")

    is_initiator = txn.from_account_id == account_id
    is_recipient = txn.to_account_id == account_id and txn.status == TransactionStatus.COMPLETED
    if not (is_initiator or is_recipient):
        raise Forbidden("Transaction belongs to another account")
    return _to_response(txn, account_id)
