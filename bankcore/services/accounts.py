"""
Account provisioning and owner-initiated lock/unlock.
"""

import logging
import secrets
import string
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bankcore.core.config import settings
from bankcore.core.exceptions import (
    AccountLocked,
    Conflict,
    SimplePasswordMismatch,
    SimplePasswordNotRegistered,
)
from bankcore.core.formatting import normalize_account_number
from bankcore.core.security import check_simple_password
from bankcore.models.account import Account, AccountStatus
from bankcore.services import ledger, simple_password
from bankcore.services.guard import account_locks
from bankcore.services.transfer_engine import transfer_engine

logger = logging.getLogger(__name__)

ACCOUNT_NUMBER_ATTEMPTS = 10


def generate_account_number() -> str:
    return "".join(secrets.choice(string.digits) for _ in range(12))


def provision_account(
    db: Session,
    owner_name: str,
    initial_balance: int = 0,
    account_number: Optional[str] = None,
) -> Account:
    """
    Open an ACTIVE account with a unique 12-digit number.

    A positive initial balance is credited as a DEPOSIT transaction so the
    ledger stays the only writer of balances.
    """
    if account_number is not None:
        number = normalize_account_number(account_number)
        if ledger.find_account_by_number(db, number) is not None:
            raise Conflict(f"Account number {number} is already in use")
        candidates = [number]
    else:
        candidates = [generate_account_number() for _ in range(ACCOUNT_NUMBER_ATTEMPTS)]

    account = None
    for number in candidates:
        account = Account(
            account_number=number,
            owner_name=owner_name,
            balance=0,
            status=AccountStatus.ACTIVE,
        )
        db.add(account)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            account = None
            continue
        break

    if account is None:
        raise Conflict("Could not allocate an account number, retry later")
    db.refresh(account)
    logger.info("Account %s provisioned for %s", account.id, owner_name)

    if initial_balance > 0:
        transfer_engine.deposit(db, account.id, initial_balance, description="Initial deposit")
        db.refresh(account)
    return account


def lock_account(db: Session, account_id: int, simple_password_value: Optional[str] = None) -> Account:
    """Owner-requested lock; a simple password, when given, must match."""
    if simple_password_value is not None:
        simple_password.verify(db, account_id, simple_password_value)
    with account_locks.hold(account_id):
        account = ledger.load_for_update(db, [account_id])[account_id]
        account.status = AccountStatus.LOCKED
        db.commit()
    logger.info("Account %s locked by its owner", account_id)
    return account


def unlock_account(db: Session, account_id: int, simple_password_value: str) -> Account:
    """
    Return a LOCKED account to ACTIVE.

    Wrong passwords keep counting on the same failure counter. Once it
    reaches ``SIMPLE_PASSWORD_UNLOCK_ATTEMPT_LIMIT`` the account can no longer
    be unlocked with the simple password. A match resets the counter.
    """
    simple_password.require_format(simple_password_value)
    if not ledger.get_account(db, account_id).is_locked:
        # Nothing to unlock; check the PIN with the regular lockout rules
        return simple_password.verify(db, account_id, simple_password_value)

    limit = settings.SIMPLE_PASSWORD_UNLOCK_ATTEMPT_LIMIT
    with account_locks.hold(account_id):
        account = ledger.load_for_update(db, [account_id])[account_id]
        if not simple_password.has_simple_password(account):
            db.rollback()
            raise SimplePasswordNotRegistered()
        if account.failed_password_attempts >= limit:
            db.rollback()
            raise AccountLocked("Too many failed attempts, contact support to unlock the account")
        if not check_simple_password(simple_password_value, account.simple_password_hash):
            account.failed_password_attempts += 1
            attempts = account.failed_password_attempts
            db.commit()
            logger.warning("Unlock of account %s refused (%d/%d)", account_id, attempts, limit)
            raise SimplePasswordMismatch(f"Simple password does not match ({attempts}/{limit})")
        account.status = AccountStatus.ACTIVE
        account.failed_password_attempts = 0
        db.commit()
    logger.info("Account %s unlocked", account_id)
    return account
