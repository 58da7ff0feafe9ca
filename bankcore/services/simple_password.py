"""
Simple password (6-digit transaction PIN) management and verification.

Consecutive mismatches are counted on the account; reaching
``SIMPLE_PASSWORD_MAX_ATTEMPTS`` locks the account. Every write happens
under the account lock so concurrent wrong guesses cannot lose a count.
"""

import logging

from sqlalchemy.orm import Session

from bankcore.core.config import settings
from bankcore.core.exceptions import (
    AccountLocked,
    Conflict,
    InvalidRequestError,
    SimplePasswordMismatch,
    SimplePasswordNotRegistered,
)
from bankcore.core.formatting import is_valid_simple_password
from bankcore.core.security import check_simple_password, hash_simple_password
from bankcore.models.account import Account, AccountStatus
from bankcore.models.notification import NotificationType
from bankcore.services import notifications
from bankcore.services.guard import account_locks
from bankcore.services.ledger import load_for_update

logger = logging.getLogger(__name__)


def require_format(simple_password, field: str = "simplePassword") -> None:
    if not is_valid_simple_password(simple_password):
        raise InvalidRequestError(f"{field} must be exactly 6 digits")


def has_simple_password(account: Account) -> bool:
    return account.simple_password_hash is not None


def register(db: Session, account_id: int, simple_password: str, simple_password_confirm: str) -> Account:
    require_format(simple_password)
    if simple_password != simple_password_confirm:
        raise InvalidRequestError("Simple password confirmation does not match")

    hashed = hash_simple_password(simple_password)
    with account_locks.hold(account_id):
        account = load_for_update(db, [account_id])[account_id]
        if has_simple_password(account):
            db.rollback()
            raise Conflict("Simple password is already registered")
        account.simple_password_hash = hashed
        account.simple_password_version += 1
        account.failed_password_attempts = 0
        db.commit()

    logger.info("Simple password registered for account %s", account_id)
    return account


def change(
    db: Session,
    account_id: int,
    current_simple_password: str,
    new_simple_password: str,
    new_simple_password_confirm: str,
) -> Account:
    require_format(new_simple_password, "newSimplePassword")
    if new_simple_password != new_simple_password_confirm:
        raise InvalidRequestError("New simple password confirmation does not match")
    if new_simple_password == current_simple_password:
        raise InvalidRequestError("New simple password must differ from the current one")

    verify(db, account_id, current_simple_password)

    hashed = hash_simple_password(new_simple_password)
    with account_locks.hold(account_id):
        account = load_for_update(db, [account_id])[account_id]
        account.simple_password_hash = hashed
        # Pending scheduled transfers authorised with the old PIN stop being executable
        account.simple_password_version += 1
        account.failed_password_attempts = 0
        db.commit()

    logger.info("Simple password changed for account %s", account_id)
    return account


def verify(db: Session, account_id: int, simple_password: str) -> Account:
    """
    Check the PIN of an ACTIVE account.

    Raises ``SimplePasswordMismatch`` (counting the attempt),
    ``SimplePasswordNotRegistered`` or ``AccountLocked``.
    """
    require_format(simple_password)

    locked_now = False
    pending = []
    with account_locks.hold(account_id):
        account = load_for_update(db, [account_id])[account_id]
        if not has_simple_password(account):
            db.rollback()
            raise SimplePasswordNotRegistered()
        if account.is_locked:
            db.rollback()
            raise AccountLocked()

        if check_simple_password(simple_password, account.simple_password_hash):
            if account.failed_password_attempts:
                account.failed_password_attempts = 0
            db.commit()
            return account

        account.failed_password_attempts += 1
        attempts = account.failed_password_attempts
        if attempts >= settings.SIMPLE_PASSWORD_MAX_ATTEMPTS:
            account.status = AccountStatus.LOCKED
            locked_now = True
            pending.append(notifications.dispatcher.enqueue(
                db,
                account_id,
                NotificationType.ACCOUNT_LOCKED,
                "Account locked",
                f"Your account was locked after {attempts} incorrect simple password attempts.",
            ))
        db.commit()

    notifications.dispatcher.publish(pending)
    if locked_now:
        logger.warning("Account %s locked after %d simple password mismatches", account_id, attempts)
        raise SimplePasswordMismatch(
            f"Simple password does not match. The account has been locked after {attempts} attempts"
        )
    raise SimplePasswordMismatch(
        f"Simple password does not match ({attempts}/{settings.SIMPLE_PASSWORD_MAX_ATTEMPTS})"
    )
