"""
Ledger store: account balances and the append-only transaction log.

Every balance change goes through ``apply_transfer`` or ``apply_deposit``.
Both take the in-process account locks first, then re-read the rows
(``SELECT ... FOR UPDATE`` on PostgreSQL), check funds and status only after
the locks are held, and commit the balance change together with exactly one
Transaction row. A ``before_commit`` hook lets callers add their own state
transition (QR intent paid, schedule executed) to the same database
transaction.
"""

import logging
from typing import Callable, Dict, Iterable, Optional

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from bankcore.core.config import settings
from bankcore.core.exceptions import (
    AccountLocked,
    AccountNotFound,
    BankingError,
    Busy,
    InsufficientFunds,
    InvalidRequestError,
)
from bankcore.core.formatting import format_account_number, normalize_account_number
from bankcore.database import is_postgresql
from bankcore.models.account import Account
from bankcore.models.transaction import Transaction, TransactionStatus, TransactionType
from bankcore.services.guard import account_locks

logger = logging.getLogger(__name__)

BeforeCommit = Callable[[Session, Transaction], None]

# PostgreSQL lock_not_available
_PG_LOCK_TIMEOUT = "55P03"


def get_account(db: Session, account_id: int) -> Account:
    account = db.get(Account, account_id)
    if account is None:
        raise AccountNotFound(f"Account {account_id} not found")
    return account


def get_account_by_number(db: Session, account_number: str) -> Account:
    number = normalize_account_number(account_number)
    account = db.query(Account).filter(Account.account_number == number).first()
    if account is None:
        raise AccountNotFound(f"Account {format_account_number(number)} not found")
    return account


def find_account_by_number(db: Session, account_number: str) -> Optional[Account]:
    return db.query(Account).filter(Account.account_number == account_number).first()


def load_for_update(db: Session, account_ids: Iterable[int]) -> Dict[int, Account]:
    """
    Re-read accounts whose in-process locks are held by the caller.

    ``populate_existing`` discards any copy the session loaded before the
    lock was taken.
    """
    if is_postgresql(db):
        timeout_ms = int(settings.LOCK_TIMEOUT_SECONDS * 1000)
        db.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))

    locked = {}
    for account_id in sorted(set(account_ids)):
        account = db.query(Account).filter(
            Account.id == account_id
        ).populate_existing().with_for_update().first()
        if account is None:
            raise AccountNotFound(f"Account {account_id} not found")
        locked[account_id] = account
    return locked


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidRequestError("Amount must be a positive whole number of won")
    if amount > settings.MAX_AMOUNT:
        raise InvalidRequestError(f"Amount must be at most {settings.MAX_AMOUNT:,} won")


def _is_lock_timeout(exc: OperationalError) -> bool:
    if getattr(exc.orig, "pgcode", None) == _PG_LOCK_TIMEOUT:
        return True
    return "database is locked" in str(exc.orig)


def apply_transfer(
    db: Session,
    from_account_id: int,
    to_account_id: int,
    amount: int,
    *,
    txn_type: TransactionType = TransactionType.TRANSFER,
    description: Optional[str] = None,
    before_commit: Optional[BeforeCommit] = None,
) -> Transaction:
    """
    Move ``amount`` from one account to another, all-or-nothing.

    Raises ``AccountLocked`` or ``InsufficientFunds`` (checked under lock; a
    FAILED transaction is recorded and attached to the error),
    ``AccountNotFound``, or ``Busy`` when a lock cannot be obtained in time.
    """
    _check_amount(amount)
    if from_account_id == to_account_id:
        raise InvalidRequestError("Cannot transfer to the same account")

    with account_locks.hold(from_account_id, to_account_id):
        try:
            locked = load_for_update(db, [from_account_id, to_account_id])
            source = locked[from_account_id]
            target = locked[to_account_id]

            if source.is_locked:
                raise AccountLocked(f"Account {format_account_number(source.account_number)} is locked")
            if target.is_locked:
                raise AccountLocked(f"Account {format_account_number(target.account_number)} is locked")
            if source.balance < amount:
                raise InsufficientFunds(
                    f"Insufficient funds. Balance: {source.balance}, Required: {amount}"
                )

            # Execute transfer (atomic operation within database transaction)
            source.balance -= amount
            target.balance += amount

            transaction = Transaction(
                type=txn_type,
                from_account_id=from_account_id,
                to_account_id=to_account_id,
                amount=amount,
                status=TransactionStatus.COMPLETED,
                description=description,
                balance_after=source.balance,
            )
            db.add(transaction)
            db.flush()

            if before_commit is not None:
                before_commit(db, transaction)

            db.commit()
        except (AccountLocked, InsufficientFunds) as exc:
            db.rollback()
            exc.transaction = _record_failure(
                db, txn_type, from_account_id, to_account_id, amount, description, exc
            )
            logger.warning(
                "%s %s -> %s of %d rejected: %s",
                txn_type.value, from_account_id, to_account_id, amount, exc.kind,
            )
            raise
        except BankingError:
            db.rollback()
            raise
        except StaleDataError as exc:
            db.rollback()
            raise Busy("Account was modified concurrently, retry later") from exc
        except OperationalError as exc:
            db.rollback()
            if _is_lock_timeout(exc):
                raise Busy("Account is busy, retry later") from exc
            raise
        except Exception:
            db.rollback()
            logger.exception("Unexpected error applying %s %s -> %s", txn_type.value, from_account_id, to_account_id)
            raise

    logger.info(
        "%s #%s completed: %s -> %s amount=%d",
        txn_type.value, transaction.id, from_account_id, to_account_id, amount,
    )
    return transaction


def apply_deposit(
    db: Session,
    account_id: int,
    amount: int,
    *,
    txn_type: TransactionType = TransactionType.DEPOSIT,
    description: Optional[str] = None,
    before_commit: Optional[BeforeCommit] = None,
) -> Transaction:
    """Credit a single account under its lock and append one Transaction."""
    _check_amount(amount)

    with account_locks.hold(account_id):
        try:
            account = load_for_update(db, [account_id])[account_id]
            if account.is_locked:
                raise AccountLocked(f"Account {format_account_number(account.account_number)} is locked")

            account.balance += amount
            transaction = Transaction(
                type=txn_type,
                from_account_id=account_id,
                to_account_id=None,
                amount=amount,
                status=TransactionStatus.COMPLETED,
                description=description,
                balance_after=account.balance,
            )
            db.add(transaction)
            db.flush()

            if before_commit is not None:
                before_commit(db, transaction)

            db.commit()
        except AccountLocked as exc:
            db.rollback()
            exc.transaction = _record_failure(db, txn_type, account_id, None, amount, description, exc)
            raise
        except BankingError:
            db.rollback()
            raise
        except StaleDataError as exc:
            db.rollback()
            raise Busy("Account was modified concurrently, retry later") from exc
        except OperationalError as exc:
            db.rollback()
            if _is_lock_timeout(exc):
                raise Busy("Account is busy, retry later") from exc
            raise
        except Exception:
            db.rollback()
            logger.exception("Unexpected error applying %s to %s", txn_type.value, account_id)
            raise

    logger.info("%s #%s completed: account=%s amount=%d", txn_type.value, transaction.id, account_id, amount)
    return transaction


def _record_failure(
    db: Session,
    txn_type: TransactionType,
    from_account_id: int,
    to_account_id: Optional[int],
    amount: int,
    description: Optional[str],
    error: BankingError,
) -> Transaction:
    """Append the FAILED audit row; called with the account locks still held."""
    source = db.get(Account, from_account_id)
    failed = Transaction(
        type=txn_type,
        from_account_id=from_account_id,
        to_account_id=to_account_id,
        amount=amount,
        status=TransactionStatus.FAILED,
        description=description,
        failure_reason=error.kind,
        balance_after=source.balance,
    )
    db.add(failed)
    db.commit()
    return failed
