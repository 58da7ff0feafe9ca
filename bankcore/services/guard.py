"""
Idempotency and concurrency guard.

Two independent mechanisms:

- ``AccountLockRegistry`` serialises balance mutations per account inside
  this process. Locks for a multi-account operation are taken in ascending
  account id so two transfers moving money in opposite directions between
  the same pair cannot deadlock. Acquisition is bounded and raises ``Busy``.
- ``IdempotencyGuard`` deduplicates retried requests by caching the first
  outcome under (account, operation, key) for ``IDEMPOTENCY_TTL_HOURS``.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import timedelta
from typing import Callable, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bankcore.core.config import settings
from bankcore.core.exceptions import BankingError, Busy, InvalidRequestError
from bankcore.core.formatting import utcnow
from bankcore.models.idempotency import IdempotencyRecord, IdempotencyStatus
from bankcore.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT", bound=BaseModel)

MAX_IDEMPOTENCY_KEY_LENGTH = 100


class AccountLockRegistry:
    """Exclusive in-process lock per account id."""

    def __init__(self, timeout: Optional[float] = None):
        self._locks = {}
        self._registry_lock = threading.Lock()
        self.timeout = timeout

    def _lock_for(self, account_id: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = self._locks[account_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, *account_ids: int):
        """Hold the locks of every given account, acquired in ascending id order."""
        timeout = settings.LOCK_TIMEOUT_SECONDS if self.timeout is None else self.timeout
        acquired = []
        try:
            for account_id in sorted(set(account_ids)):
                lock = self._lock_for(account_id)
                if not lock.acquire(timeout=timeout):
                    logger.warning("Lock wait on account %s exceeded %.1fs", account_id, timeout)
                    raise Busy(f"Account {account_id} is busy, retry later")
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


account_locks = AccountLockRegistry()


class IdempotencyGuard:
    """Executes a mutating operation at most once per idempotency key."""

    def execute(
        self,
        db: Session,
        account_id: int,
        operation: str,
        key: Optional[str],
        fn: Callable[[], ResultT],
        schema: Type[ResultT],
    ) -> Tuple[ResultT, bool]:
        """
        Run ``fn`` unless the same key was already completed.

        Returns ``(result, replayed)``. Without a key the request is not
        deduplicated.

        A failure that committed a FAILED ledger row is cached like a result
        and raised again on replay, flagged ``replayed``. Any other failure
        committed nothing, so the key is released and a retry executes again.
        """
        if not key:
            return fn(), False
        if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
            raise InvalidRequestError(
                f"Idempotency key must be at most {MAX_IDEMPOTENCY_KEY_LENGTH} characters"
            )

        record_id, cached_status, cached_body = self._reserve(db, account_id, operation, key)
        if cached_status == IdempotencyStatus.FAILED:
            logger.info("Replaying failed %s for account %s from idempotency cache", operation, account_id)
            error = BankingError.from_dict(ErrorResponse.model_validate_json(cached_body).model_dump())
            error.replayed = True
            raise error
        if cached_status == IdempotencyStatus.COMPLETED:
            logger.info("Replaying %s for account %s from idempotency cache", operation, account_id)
            return schema.model_validate_json(cached_body), True

        try:
            result = fn()
        except BankingError as exc:
            if exc.transaction is None:
                self._release(db, record_id)
            else:
                self._fail(db, record_id, exc)
            raise
        except Exception:
            self._release(db, record_id)
            raise

        self._complete(db, record_id, result)
        return result, False

    def _reserve(self, db: Session, account_id: int, operation: str, key: str):
        """Insert an IN_PROGRESS record, or return ``(id, status, body)`` of the existing one."""
        now = utcnow()
        ttl = timedelta(hours=settings.IDEMPOTENCY_TTL_HOURS)
        lease_cutoff = now - timedelta(seconds=settings.IDEMPOTENCY_LEASE_SECONDS)
        # One retry covers a record that expired or was released between our
        # insert attempt and the lookup.
        for _ in range(2):
            db.add(IdempotencyRecord(
                account_id=account_id,
                operation=operation,
                idempotency_key=key,
                status=IdempotencyStatus.IN_PROGRESS,
                created_at=now,
                expires_at=now + ttl,
            ))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
            else:
                return self._find(db, account_id, operation, key).id, None, None

            existing = self._find(db, account_id, operation, key)
            if existing is None:
                continue
            if existing.expires_at <= now:
                db.query(IdempotencyRecord).filter(
                    IdempotencyRecord.id == existing.id,
                    IdempotencyRecord.expires_at <= now,
                ).delete(synchronize_session=False)
                db.commit()
                continue
            if existing.status == IdempotencyStatus.IN_PROGRESS:
                if existing.created_at > lease_cutoff:
                    raise Busy("A request with this idempotency key is still in progress")
                # Holder died before finishing; take the key over
                logger.warning(
                    "Idempotency record %s for %s held past its lease, releasing", existing.id, operation
                )
                db.query(IdempotencyRecord).filter(
                    IdempotencyRecord.id == existing.id,
                    IdempotencyRecord.status == IdempotencyStatus.IN_PROGRESS,
                    IdempotencyRecord.created_at <= lease_cutoff,
                ).delete(synchronize_session=False)
                db.commit()
                continue
            return existing.id, existing.status, existing.response_body

        raise Busy("Could not reserve idempotency key, retry later")

    @staticmethod
    def _find(db: Session, account_id: int, operation: str, key: str) -> Optional[IdempotencyRecord]:
        return db.query(IdempotencyRecord).filter(
            IdempotencyRecord.account_id == account_id,
            IdempotencyRecord.operation == operation,
            IdempotencyRecord.idempotency_key == key,
        ).populate_existing().first()

    @staticmethod
    def _complete(db: Session, record_id: int, result: BaseModel) -> None:
        db.query(IdempotencyRecord).filter(IdempotencyRecord.id == record_id).update(
            {
                IdempotencyRecord.status: IdempotencyStatus.COMPLETED,
                IdempotencyRecord.response_body: result.model_dump_json(by_alias=True),
            },
            synchronize_session=False,
        )
        db.commit()

    @staticmethod
    def _fail(db: Session, record_id: int, error: BankingError) -> None:
        db.rollback()
        try:
            db.query(IdempotencyRecord).filter(
                IdempotencyRecord.id == record_id,
                IdempotencyRecord.status == IdempotencyStatus.IN_PROGRESS,
            ).update(
                {
                    IdempotencyRecord.status: IdempotencyStatus.FAILED,
                    IdempotencyRecord.response_body: ErrorResponse(**error.to_dict()).model_dump_json(),
                },
                synchronize_session=False,
            )
            db.commit()
        except Exception:
            # Key stays blocked until its lease runs out
            db.rollback()
            logger.exception("Could not record failure on idempotency record %s", record_id)

    @staticmethod
    def _release(db: Session, record_id: int) -> None:
        db.rollback()
        try:
            db.query(IdempotencyRecord).filter(
                IdempotencyRecord.id == record_id,
                IdempotencyRecord.status == IdempotencyStatus.IN_PROGRESS,
            ).delete(synchronize_session=False)
            db.commit()
        except Exception:
            # Key stays blocked until its lease runs out
            db.rollback()
            logger.exception("Could not release idempotency record %s", record_id)


def purge_expired_idempotency_records(db: Session, now=None) -> int:
    """Delete cached results older than the retention window."""
    now = now or utcnow()
    deleted = db.query(IdempotencyRecord).filter(
        IdempotencyRecord.expires_at <= now
    ).delete(synchronize_session=False)
    db.commit()
    if deleted:
        logger.info("Purged %d expired idempotency records", deleted)
    return deleted


idempotency_guard = IdempotencyGuard()
