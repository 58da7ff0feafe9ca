"""
Scheduled transfer API endpoints.
Execution happens in the background worker; these endpoints only create, read and cancel.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from bankcore.api.deps import idempotency_key, run_idempotent
from bankcore.core.security import get_current_account_id
from bankcore.database import get_db
from bankcore.schemas.common import Page
from bankcore.schemas.scheduled_transfer import ScheduledTransferRequest, ScheduledTransferResponse
from bankcore.services import scheduler

router = APIRouter(prefix="/scheduled-transfers", tags=["Scheduled Transfers"])


@router.post("", response_model=ScheduledTransferResponse, status_code=status.HTTP_201_CREATED)
def create_scheduled_transfer(
    request: ScheduledTransferRequest,
    response: Response,
    account_id: int = Depends(get_current_account_id),
    key: Optional[str] = Depends(idempotency_key),
    db: Session = Depends(get_db)
):
    """
    Schedule a transfer between 1 minute and 1 year from now.

    - **scheduledAt**: ISO-8601 timestamp; values without an offset are UTC
    - **amount**: At most 1,000,000 won
    """
    def create():
        schedule = scheduler.create_schedule(
            db,
            account_id,
            request.to_account_number,
            request.amount,
            request.simple_password,
            request.description,
            request.scheduled_at,
        )
        return scheduler.to_response(db, schedule)

    return run_idempotent(db, response, account_id, "schedule_create", key, create, ScheduledTransferResponse)


@router.get("", response_model=Page[ScheduledTransferResponse])
def list_scheduled_transfers(
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=100),
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    """
    List the caller's scheduled transfers, latest scheduled time first.
    """
    items, total = scheduler.list_schedules(db, account_id, page, size)
    content = [scheduler.to_response(db, item) for item in items]
    return Page[ScheduledTransferResponse].build(content, total, page, size)


@router.get("/{schedule_id}", response_model=ScheduledTransferResponse)
def get_scheduled_transfer(
    schedule_id: int,
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    return scheduler.to_response(db, scheduler.get_schedule(db, schedule_id, account_id))


@router.delete("/{schedule_id}", response_model=ScheduledTransferResponse)
def cancel_scheduled_transfer(
    schedule_id: int,
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    """
    Cancel a PENDING scheduled transfer. Returns 409 once it is executing or finished.
    """
    return scheduler.to_response(db, scheduler.cancel_schedule(db, schedule_id, account_id))
