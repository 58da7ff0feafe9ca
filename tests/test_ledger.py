"""
Service-level tests for the ledger store and the idempotency/concurrency guard.
"""

import threading
from datetime import timedelta

import pytest

from bankcore.core.config import settings
from bankcore.core.exceptions import AccountLocked, Busy, InsufficientFunds, InvalidRequestError
from bankcore.core.formatting import utcnow
from bankcore.models.account import Account, AccountStatus
from bankcore.models.idempotency import IdempotencyRecord, IdempotencyStatus
from bankcore.models.transaction import Transaction, TransactionStatus, TransactionType
from bankcore.schemas.common import CamelModel
from bankcore.services import ledger
from bankcore.services.accounts import provision_account
from bankcore.services.guard import (
    AccountLockRegistry,
    IdempotencyGuard,
    account_locks,
    purge_expired_idempotency_records,
)


class EchoResult(CamelModel):
    call_number: int


@pytest.fixture
def two_accounts(db_session):
    first = provision_account(db_session, "First", initial_balance=10000)
    second = provision_account(db_session, "Second", initial_balance=5000)
    return first.id, second.id


def total_balance(db):
    db.expire_all()
    return sum(account.balance for account in db.query(Account).all())


# ==================== LEDGER TESTS ====================

def test_apply_transfer_conserves_money(db_session, two_accounts):
    """Test a transfer moves money without creating or destroying any."""
    first_id, second_id = two_accounts
    before = total_balance(db_session)

    txn = ledger.apply_transfer(db_session, first_id, second_id, 2500, description="Split bill")

    assert txn.status == TransactionStatus.COMPLETED
    assert txn.balance_after == 7500
    assert total_balance(db_session) == before
    assert db_session.get(Account, second_id).balance == 7500


def test_apply_transfer_insufficient_funds_records_failure(db_session, two_accounts):
    """Test an overdraft is rejected under lock and leaves one FAILED row."""
    first_id, second_id = two_accounts

    with pytest.raises(InsufficientFunds) as excinfo:
        ledger.apply_transfer(db_session, second_id, first_id, 5001)

    failed = excinfo.value.transaction
    assert failed is not None
    assert failed.status == TransactionStatus.FAILED
    assert failed.failure_reason == "InsufficientFunds"
    assert failed.balance_after == 5000
    db_session.expire_all()
    assert db_session.get(Account, second_id).balance == 5000


@pytest.mark.parametrize("amount", [0, -1])
def test_apply_transfer_rejects_non_positive_amount(db_session, two_accounts, amount):
    first_id, second_id = two_accounts
    with pytest.raises(InvalidRequestError):
        ledger.apply_transfer(db_session, first_id, second_id, amount)


def test_before_commit_failure_rolls_back_transfer(db_session, two_accounts):
    """Test an error raised by the hook undoes the balance change."""
    first_id, second_id = two_accounts

    def refuse(session, txn):
        raise InvalidRequestError("hook refused")

    with pytest.raises(InvalidRequestError):
        ledger.apply_transfer(db_session, first_id, second_id, 1000, before_commit=refuse)

    db_session.expire_all()
    assert db_session.get(Account, first_id).balance == 10000
    assert db_session.get(Account, second_id).balance == 5000
    assert db_session.query(Transaction).filter(Transaction.type == TransactionType.TRANSFER).count() == 0


def test_lock_timeout_raises_busy(db_session, two_accounts, monkeypatch):
    """Test a held account lock turns into Busy instead of waiting forever."""
    first_id, second_id = two_accounts
    monkeypatch.setattr(account_locks, "timeout", 0.1)

    held = threading.Event()
    release = threading.Event()

    def holder():
        with account_locks.hold(second_id):
            held.set()
            release.wait(5)

    thread = threading.Thread(target=holder)
    thread.start()
    try:
        held.wait(5)
        with pytest.raises(Busy):
            ledger.apply_transfer(db_session, first_id, second_id, 1000)
    finally:
        release.set()
        thread.join()

    db_session.expire_all()
    assert db_session.get(Account, first_id).balance == 10000
    assert db_session.query(Transaction).filter(Transaction.type == TransactionType.TRANSFER).count() == 0


def test_deposit_to_locked_account_fails(db_session, two_accounts):
    first_id, _ = two_accounts
    account = db_session.get(Account, first_id)
    account.status = AccountStatus.LOCKED
    db_session.commit()

    with pytest.raises(AccountLocked) as excinfo:
        ledger.apply_deposit(db_session, first_id, 1000)
    assert excinfo.value.transaction.status == TransactionStatus.FAILED


# ==================== LOCK REGISTRY TESTS ====================

def test_lock_registry_orders_acquisition():
    """Test opposite-order requests for the same pair both complete."""
    registry = AccountLockRegistry(timeout=5)
    finished = []

    def take(first, second):
        for _ in range(200):
            with registry.hold(first, second):
                pass
        finished.append((first, second))

    threads = [
        threading.Thread(target=take, args=(1, 2)),
        threading.Thread(target=take, args=(2, 1)),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(10)
    assert len(finished) == 2


def test_lock_registry_releases_on_error():
    registry = AccountLockRegistry(timeout=0.1)
    with pytest.raises(RuntimeError):
        with registry.hold(7):
            raise RuntimeError("boom")
    with registry.hold(7):
        pass


# ==================== IDEMPOTENCY TESTS ====================

def test_idempotent_replay_skips_execution(db_session, two_accounts):
    """Test a completed key returns the cached result without calling again."""
    first_id, _ = two_accounts
    guard = IdempotencyGuard()
    calls = []

    def operation():
        calls.append(1)
        return EchoResult(call_number=len(calls))

    first, replayed_first = guard.execute(db_session, first_id, "echo", "key-1", operation, EchoResult)
    second, replayed_second = guard.execute(db_session, first_id, "echo", "key-1", operation, EchoResult)

    assert (replayed_first, replayed_second) == (False, True)
    assert first == second == EchoResult(call_number=1)
    assert len(calls) == 1


def test_idempotency_without_key_always_executes(db_session, two_accounts):
    first_id, _ = two_accounts
    guard = IdempotencyGuard()
    calls = []

    def operation():
        calls.append(1)
        return EchoResult(call_number=len(calls))

    guard.execute(db_session, first_id, "echo", None, operation, EchoResult)
    guard.execute(db_session, first_id, "echo", None, operation, EchoResult)
    assert len(calls) == 2


def test_idempotency_key_released_after_failure(db_session, two_accounts):
    """Test a failed execution leaves no record behind."""
    first_id, _ = two_accounts
    guard = IdempotencyGuard()

    def failing():
        raise InsufficientFunds()

    with pytest.raises(InsufficientFunds):
        guard.execute(db_session, first_id, "echo", "key-2", failing, EchoResult)
    assert db_session.query(IdempotencyRecord).count() == 0

    result, replayed = guard.execute(
        db_session, first_id, "echo", "key-2", lambda: EchoResult(call_number=9), EchoResult
    )
    assert (result.call_number, replayed) == (9, False)


def test_in_progress_key_is_busy(db_session, two_accounts):
    """Test a concurrent duplicate of an unfinished request is told to retry."""
    first_id, _ = two_accounts
    now = utcnow()
    db_session.add(IdempotencyRecord(
        account_id=first_id,
        operation="echo",
        idempotency_key="key-3",
        status=IdempotencyStatus.IN_PROGRESS,
        created_at=now,
        expires_at=now + timedelta(hours=24),
    ))
    db_session.commit()

    with pytest.raises(Busy):
        IdempotencyGuard().execute(
            db_session, first_id, "echo", "key-3", lambda: EchoResult(call_number=1), EchoResult
        )


def test_expired_key_executes_again(db_session, two_accounts):
    """Test a cached result past its retention window is not replayed."""
    first_id, _ = two_accounts
    guard = IdempotencyGuard()
    guard.execute(db_session, first_id, "echo", "key-4", lambda: EchoResult(call_number=1), EchoResult)

    db_session.query(IdempotencyRecord).update(
        {IdempotencyRecord.expires_at: utcnow() - timedelta(seconds=1)}, synchronize_session=False
    )
    db_session.commit()

    result, replayed = guard.execute(
        db_session, first_id, "echo", "key-4", lambda: EchoResult(call_number=2), EchoResult
    )
    assert (result.call_number, replayed) == (2, False)


def test_purge_expired_records(db_session, two_accounts):
    first_id, _ = two_accounts
    guard = IdempotencyGuard()
    guard.execute(db_session, first_id, "echo", "old", lambda: EchoResult(call_number=1), EchoResult)
    guard.execute(db_session, first_id, "echo", "new", lambda: EchoResult(call_number=2), EchoResult)

    db_session.query(IdempotencyRecord).filter(IdempotencyRecord.idempotency_key == "old").update(
        {IdempotencyRecord.expires_at: utcnow() - timedelta(seconds=1)}, synchronize_session=False
    )
    db_session.commit()

    assert purge_expired_idempotency_records(db_session) == 1
    assert [r.idempotency_key for r in db_session.query(IdempotencyRecord).all()] == ["new"]


def test_overlong_idempotency_key_rejected(db_session, two_accounts):
    first_id, _ = two_accounts
    with pytest.raises(InvalidRequestError):
        IdempotencyGuard().execute(
            db_session, first_id, "echo", "k" * 101, lambda: EchoResult(call_number=1), EchoResult
        )


def test_recorded_failure_replayed_without_rerun(db_session, two_accounts):
    """Test a failure that left a FAILED row is cached and raised again on replay."""
    first_id, second_id = two_accounts
    guard = IdempotencyGuard()
    calls = []

    def overdraw():
        calls.append(1)
        return ledger.apply_transfer(db_session, second_id, first_id, 5001)

    with pytest.raises(InsufficientFunds) as first:
        guard.execute(db_session, second_id, "transfer", "key-5", overdraw, EchoResult)
    with pytest.raises(InsufficientFunds) as second:
        guard.execute(db_session, second_id, "transfer", "key-5", overdraw, EchoResult)

    assert len(calls) == 1
    assert (first.value.replayed, second.value.replayed) == (False, True)
    assert second.value.message == first.value.message
    assert db_session.query(IdempotencyRecord).one().status == IdempotencyStatus.FAILED
    assert db_session.query(Transaction).filter(
        Transaction.status == TransactionStatus.FAILED
    ).count() == 1


def test_in_progress_key_past_lease_is_taken_over(db_session, two_accounts):
    """Test a record left behind by a crashed request stops blocking its key."""
    first_id, _ = two_accounts
    started = utcnow() - timedelta(seconds=settings.IDEMPOTENCY_LEASE_SECONDS + 1)
    db_session.add(IdempotencyRecord(
        account_id=first_id,
        operation="echo",
        idempotency_key="key-6",
        status=IdempotencyStatus.IN_PROGRESS,
        created_at=started,
        expires_at=started + timedelta(hours=24),
    ))
    db_session.commit()

    result, replayed = IdempotencyGuard().execute(
        db_session, first_id, "echo", "key-6", lambda: EchoResult(call_number=1), EchoResult
    )
    assert (result.call_number, replayed) == (1, False)
    assert db_session.query(IdempotencyRecord).one().status == IdempotencyStatus.COMPLETED


def test_apply_transfer_rejects_amount_above_limit(db_session, two_accounts):
    """Test an oversized amount fails validation and records nothing."""
    first_id, second_id = two_accounts
    with pytest.raises(InvalidRequestError):
        ledger.apply_transfer(db_session, first_id, second_id, settings.MAX_AMOUNT + 1)
    assert db_session.query(Transaction).filter(Transaction.type == TransactionType.TRANSFER).count() == 0
