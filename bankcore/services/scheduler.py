"""
Scheduled transfers: creation, cancellation and the execution sweep.

Every state change of a schedule is a conditional UPDATE on ``status``:

- claim:   PENDING   -> EXECUTING  (sets a fresh claim token)
- execute: EXECUTING -> EXECUTED   (same token, committed with the ledger row)
- fail:    EXECUTING -> FAILED     (same token)
- cancel:  PENDING   -> CANCELLED  (owner only)

Whoever flips PENDING first wins, so concurrent sweeps, retries and a cancel
racing an execution can never both take effect.
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from bankcore.core.config import settings
from bankcore.core.exceptions import (
    AccountLocked,
    BankingError,
    Busy,
    Conflict,
    Forbidden,
    InvalidRequestError,
    NotFound,
)
from bankcore.core.formatting import format_account_number, to_utc_naive, utcnow
from bankcore.database import SessionLocal
from bankcore.models.account import Account
from bankcore.models.notification import NotificationType
from bankcore.models.scheduled_transfer import ScheduledTransfer, ScheduleStatus
from bankcore.schemas.scheduled_transfer import ScheduledTransferResponse
from bankcore.services import ledger, simple_password
from bankcore.services.guard import purge_expired_idempotency_records
from bankcore.services.transfer_engine import TransferEngine, expire_qr_payments, transfer_engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------- requests

def create_schedule(
    db: Session,
    account_id: int,
    to_account_number: str,
    amount: int,
    simple_password_value: str,
    description: Optional[str],
    scheduled_at: datetime,
    now: Optional[datetime] = None,
) -> ScheduledTransfer:
    now = now or utcnow()
    scheduled_at = to_utc_naive(scheduled_at)

    earliest = now + timedelta(seconds=settings.SCHEDULE_MIN_LEAD_SECONDS)
    latest = now + timedelta(days=settings.SCHEDULE_MAX_LEAD_DAYS)
    if scheduled_at < earliest:
        raise InvalidRequestError("Scheduled time must be at least 1 minute from now")
    if scheduled_at > latest:
        raise InvalidRequestError("Scheduled time must be within 1 year")
    if amount <= 0 or amount > settings.MAX_SCHEDULED_TRANSFER_AMOUNT:
        raise InvalidRequestError(
            f"Scheduled transfer amount must be between 1 and {settings.MAX_SCHEDULED_TRANSFER_AMOUNT:,} KRW"
        )

    source = ledger.get_account(db, account_id)
    target = ledger.get_account_by_number(db, to_account_number)
    if source.id == target.id:
        raise InvalidRequestError("Cannot transfer to the same account")
    if source.is_locked:
        raise AccountLocked()
    account = simple_password.verify(db, source.id, simple_password_value)

    schedule = ScheduledTransfer(
        account_id=account_id,
        to_account_number=target.account_number,
        amount=amount,
        description=description,
        scheduled_at=scheduled_at,
        status=ScheduleStatus.PENDING,
        simple_password_version=account.simple_password_version,
        created_at=now,
    )
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    logger.info("Scheduled transfer #%s created by account %s for %s", schedule.id, account_id, scheduled_at.isoformat())
    return schedule


def get_schedule(db: Session, schedule_id: int, owner_account_id: int) -> ScheduledTransfer:
    schedule = db.get(ScheduledTransfer, schedule_id)
    if schedule is None:
        raise NotFound(f"Scheduled transfer {schedule_id} not found")
    if schedule.account_id != owner_account_id:
        raise Forbidden("Scheduled transfer belongs to another account")
    return schedule


def list_schedules(db: Session, account_id: int, page: int = 0, size: int = 20):
    query = db.query(ScheduledTransfer).filter(ScheduledTransfer.account_id == account_id)
    total = query.count()
    items = query.order_by(
        ScheduledTransfer.scheduled_at.desc(), ScheduledTransfer.id.desc()
    ).offset(page * size).limit(size).all()
    return items, total


def cancel_schedule(db: Session, schedule_id: int, owner_account_id: int) -> ScheduledTransfer:
    cancelled = db.query(ScheduledTransfer).filter(
        ScheduledTransfer.id == schedule_id,
        ScheduledTransfer.account_id == owner_account_id,
        ScheduledTransfer.status == ScheduleStatus.PENDING,
    ).update({ScheduledTransfer.status: ScheduleStatus.CANCELLED}, synchronize_session=False)
    db.commit()

    schedule = get_schedule(db, schedule_id, owner_account_id)
    db.refresh(schedule)
    if cancelled != 1:
        raise Conflict(f"Scheduled transfer is {schedule.status.value} and can no longer be cancelled")
    logger.info("Scheduled transfer #%s cancelled by account %s", schedule_id, owner_account_id)
    return schedule


# ---------------------------------------------------------------------- execution

@dataclass
class SweepResult:
    claimed: int = 0
    executed: int = 0
    failed: int = 0
    released: int = 0


def claim_schedule(db: Session, schedule_id: int, now: datetime) -> Optional[str]:
    """Atomically take ownership of a due schedule; returns the claim token or None."""
    token = str(uuid.uuid4())
    claimed = db.query(ScheduledTransfer).filter(
        ScheduledTransfer.id == schedule_id,
        ScheduledTransfer.status == ScheduleStatus.PENDING,
        ScheduledTransfer.scheduled_at <= now,
    ).update(
        {
            ScheduledTransfer.status: ScheduleStatus.EXECUTING,
            ScheduledTransfer.claim_token: token,
            ScheduledTransfer.claimed_at: utcnow(),
        },
        synchronize_session=False,
    )
    db.commit()
    return token if claimed == 1 else None


def _release_claim(db: Session, schedule_id: int, claim_token: str) -> None:
    db.rollback()
    db.query(ScheduledTransfer).filter(
        ScheduledTransfer.id == schedule_id,
        ScheduledTransfer.status == ScheduleStatus.EXECUTING,
        ScheduledTransfer.claim_token == claim_token,
    ).update(
        {
            ScheduledTransfer.status: ScheduleStatus.PENDING,
            ScheduledTransfer.claim_token: None,
            ScheduledTransfer.claimed_at: None,
        },
        synchronize_session=False,
    )
    db.commit()


def _fail_schedule(db: Session, engine: TransferEngine, schedule_id: int, claim_token: str,
                   error: BankingError) -> bool:
    db.rollback()
    transaction_id = error.transaction.id if error.transaction is not None else None
    failed = db.query(ScheduledTransfer).filter(
        ScheduledTransfer.id == schedule_id,
        ScheduledTransfer.status == ScheduleStatus.EXECUTING,
        ScheduledTransfer.claim_token == claim_token,
    ).update(
        {
            ScheduledTransfer.status: ScheduleStatus.FAILED,
            ScheduledTransfer.failure_reason: error.kind,
            ScheduledTransfer.transaction_id: transaction_id,
        },
        synchronize_session=False,
    )
    if failed != 1:
        db.commit()
        return False

    schedule = db.get(ScheduledTransfer, schedule_id)
    db.refresh(schedule)
    notification = engine.dispatcher.enqueue(
        db,
        schedule.account_id,
        NotificationType.SCHEDULED_TRANSFER_FAILED,
        "Scheduled transfer failed",
        f"{schedule.amount:,} KRW to {format_account_number(schedule.to_account_number)} "
        f"was not sent: {error.message}",
        amount=schedule.amount,
        related_transaction_id=transaction_id,
    )
    db.commit()
    engine.dispatcher.publish([notification])
    return True


def execute_claimed(db: Session, engine: TransferEngine, schedule_id: int, claim_token: str) -> str:
    """
    Run one claimed schedule through the transfer engine.

    Returns ``"executed"``, ``"failed"``, ``"released"`` (lock busy, back to
    PENDING for the next sweep) or ``"lost"`` (the claim was taken over).
    Unexpected errors leave the row EXECUTING for ``recover_stale_claims``.
    """
    try:
        engine.execute_scheduled(db, schedule_id, claim_token)
    except Busy:
        logger.info("Scheduled transfer #%s hit a busy account, retrying next sweep", schedule_id)
        _release_claim(db, schedule_id, claim_token)
        return "released"
    except Conflict:
        db.rollback()
        logger.warning("Scheduled transfer #%s: claim lost to another worker", schedule_id)
        return "lost"
    except BankingError as exc:
        if not _fail_schedule(db, engine, schedule_id, claim_token, exc):
            logger.warning("Scheduled transfer #%s: claim lost before recording failure", schedule_id)
            return "lost"
        logger.warning("Scheduled transfer #%s failed: %s", schedule_id, exc.kind)
        return "failed"
    logger.info("Scheduled transfer #%s executed", schedule_id)
    return "executed"


def run_due_transfers(
    session_factory=None,
    engine: Optional[TransferEngine] = None,
    now: Optional[datetime] = None,
    batch_size: Optional[int] = None,
    stop_event: Optional[threading.Event] = None,
) -> SweepResult:
    """
    Execute every PENDING schedule due at ``now``.

    Safe to run on several workers at once: each row is executed only by the
    worker whose claim succeeded. ``stop_event`` is checked between rows,
    never between a claim and its execution.
    """
    session_factory = session_factory or SessionLocal
    engine = engine or transfer_engine
    now = now or utcnow()
    batch_size = batch_size or settings.SCHEDULER_BATCH_SIZE
    result = SweepResult()

    db = session_factory()
    try:
        due_ids = [
            row.id for row in db.query(ScheduledTransfer.id).filter(
                ScheduledTransfer.status == ScheduleStatus.PENDING,
                ScheduledTransfer.scheduled_at <= now,
            ).order_by(ScheduledTransfer.scheduled_at, ScheduledTransfer.id).limit(batch_size).all()
        ]
        db.rollback()

        for schedule_id in due_ids:
            if stop_event is not None and stop_event.is_set():
                logger.info("Scheduled transfer sweep stopped early")
                break
            token = claim_schedule(db, schedule_id, now)
            if token is None:
                continue
            result.claimed += 1
            try:
                outcome = execute_claimed(db, engine, schedule_id, token)
            except Exception:
                db.rollback()
                logger.exception("Scheduled transfer #%s left for recovery", schedule_id)
                continue
            if outcome == "executed":
                result.executed += 1
            elif outcome == "failed":
                result.failed += 1
            elif outcome == "released":
                result.released += 1
    finally:
        db.close()

    if result.claimed:
        logger.info(
            "Scheduled transfer sweep: claimed=%d executed=%d failed=%d released=%d",
            result.claimed, result.executed, result.failed, result.released,
        )
    return result


def recover_stale_claims(session_factory=None, now: Optional[datetime] = None) -> int:
    """
    Return schedules stuck in EXECUTING (worker died mid-run) to PENDING.

    No ledger row exists for them: EXECUTED commits together with the ledger
    mutation, and a late worker's finalisation fails on the cleared token.
    """
    session_factory = session_factory or SessionLocal
    now = now or utcnow()
    cutoff = now - timedelta(seconds=settings.SCHEDULER_CLAIM_TIMEOUT_SECONDS)

    db = session_factory()
    try:
        recovered = db.query(ScheduledTransfer).filter(
            ScheduledTransfer.status == ScheduleStatus.EXECUTING,
            ScheduledTransfer.claimed_at <= cutoff,
        ).update(
            {
                ScheduledTransfer.status: ScheduleStatus.PENDING,
                ScheduledTransfer.claim_token: None,
                ScheduledTransfer.claimed_at: None,
            },
            synchronize_session=False,
        )
        db.commit()
    finally:
        db.close()

    if recovered:
        logger.warning("Recovered %d stale scheduled transfer claims", recovered)
    return recovered


# ---------------------------------------------------------------------- worker

class ScheduledTransferWorker:
    """Background jobs: transfer sweep, claim recovery, QR expiry, idempotency purge."""

    def __init__(self, session_factory=None, engine: Optional[TransferEngine] = None,
                 interval_seconds: Optional[int] = None):
        self.session_factory = session_factory or SessionLocal
        self.engine = engine or transfer_engine
        self.interval_seconds = interval_seconds or settings.SCHEDULER_INTERVAL_SECONDS
        self._stop = threading.Event()

        jobstores = {
            'default': MemoryJobStore()
        }
        executors = {
            'default': ThreadPoolExecutor(max_workers=2)
        }
        job_defaults = {
            'coalesce': True,  # Collapse missed runs into one
            'max_instances': 1,
            'misfire_grace_time': self.interval_seconds,
        }
        self.scheduler = BackgroundScheduler(
            jobstores=jobstores,
            executors=executors,
            job_defaults=job_defaults,
            timezone='UTC'
        )

    def setup_jobs(self):
        self.scheduler.add_job(
            self.sweep_due_transfers,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="sweep_scheduled_transfers",
            name="Execute Due Scheduled Transfers",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.recover_stale_claims,
            trigger=IntervalTrigger(seconds=max(self.interval_seconds, settings.SCHEDULER_CLAIM_TIMEOUT_SECONDS // 2)),
            id="recover_stale_claims",
            name="Recover Stale Scheduled Transfer Claims",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.expire_qr_payments,
            trigger=IntervalTrigger(minutes=1),
            id="expire_qr_payments",
            name="Expire QR Payment Intents",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.purge_idempotency_records,
            trigger=IntervalTrigger(hours=1),
            id="purge_idempotency_records",
            name="Purge Expired Idempotency Records",
            replace_existing=True,
        )

    def start(self):
        self._stop.clear()
        self.setup_jobs()
        self.scheduler.start()
        logger.info("Scheduled transfer worker started (interval %ss)", self.interval_seconds)

    def shutdown(self, wait: bool = True):
        self._stop.set()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
        logger.info("Scheduled transfer worker stopped")

    def sweep_due_transfers(self) -> SweepResult:
        return run_due_transfers(self.session_factory, self.engine, stop_event=self._stop)

    def recover_stale_claims(self) -> int:
        return recover_stale_claims(self.session_factory)

    def expire_qr_payments(self) -> int:
        db = self.session_factory()
        try:
            return expire_qr_payments(db)
        finally:
            db.close()

    def purge_idempotency_records(self) -> int:
        db = self.session_factory()
        try:
            return purge_expired_idempotency_records(db)
        finally:
            db.close()


def to_response(db: Session, schedule: ScheduledTransfer) -> ScheduledTransferResponse:
    owner = db.get(Account, schedule.account_id)
    return ScheduledTransferResponse(
        schedule_id=schedule.id,
        from_account=owner.account_number,
        to_account_number=schedule.to_account_number,
        amount=schedule.amount,
        description=schedule.description,
        scheduled_at=schedule.scheduled_at,
        status=schedule.status,
        executed_at=schedule.executed_at,
        failure_reason=schedule.failure_reason,
        transaction_id=schedule.transaction_id,
        created_at=schedule.created_at,
    )
