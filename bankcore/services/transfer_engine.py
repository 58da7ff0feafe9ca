"""
Transfer engine: validated, atomic money movement.

Public operations check their input before any lock is taken, verify the
simple password, and then delegate the balance change to the ledger. The
notifications for a successful movement are written in the same database
transaction as the ledger row; a failure detected under lock notifies the
initiator after the FAILED row is recorded.
"""

import logging
import secrets
from datetime import timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from bankcore.core.config import settings
from bankcore.core.exceptions import (
    AccountLocked,
    BankingError,
    Conflict,
    InvalidRequestError,
    NotFound,
    QrAlreadyUsed,
    QrExpired,
    SimplePasswordMismatch,
)
from bankcore.core.formatting import format_account_number, utcnow
from bankcore.models.notification import Notification, NotificationType
from bankcore.models.qr_payment import QrPayment, QrPaymentStatus
from bankcore.models.scheduled_transfer import ScheduledTransfer, ScheduleStatus
from bankcore.models.transaction import Transaction, TransactionType
from bankcore.schemas.account import SelfDepositResponse
from bankcore.schemas.qr import QrGenerateResponse, QrPayResponse
from bankcore.schemas.transaction import TransferResponse
from bankcore.services import ledger, notifications, simple_password

logger = logging.getLogger(__name__)

# 24 random bytes -> 32 url-safe characters, 192 bits of entropy
QR_CODE_BYTES = 24


def _won(amount: int) -> str:
    return f"{amount:,} KRW"


class TransferEngine:

    def __init__(self, dispatcher: Optional[notifications.NotificationDispatcher] = None):
        self._dispatcher = dispatcher

    @property
    def dispatcher(self) -> notifications.NotificationDispatcher:
        return self._dispatcher or notifications.dispatcher

    # ------------------------------------------------------------------ transfer

    def transfer(
        self,
        db: Session,
        from_account_id: int,
        to_account_number: str,
        amount: int,
        simple_password_value: str,
        description: Optional[str] = None,
    ) -> TransferResponse:
        """
        Send money to another account identified by its account number.

        Validation order: minimum amount, account number format, destination
        exists, not the own account, source not locked, simple password.
        """
        if amount < settings.MIN_TRANSFER_AMOUNT:
            raise InvalidRequestError(f"Minimum transfer amount is {_won(settings.MIN_TRANSFER_AMOUNT)}")

        source = ledger.get_account(db, from_account_id)
        target = ledger.get_account_by_number(db, to_account_number)
        if source.id == target.id:
            raise InvalidRequestError("Cannot transfer to the same account")
        if source.is_locked:
            raise AccountLocked()
        simple_password.verify(db, source.id, simple_password_value)

        source_number, source_name = source.account_number, source.owner_name
        target_id, target_number, target_name = target.id, target.account_number, target.owner_name

        pending: List[Notification] = []

        def notify(session: Session, txn: Transaction) -> None:
            pending.append(self.dispatcher.enqueue(
                session, from_account_id, NotificationType.TRANSFER_SENT,
                "Transfer sent",
                f"{_won(amount)} sent to {target_name} ({format_account_number(target_number)})",
                amount=amount, related_transaction_id=txn.id,
            ))
            pending.append(self.dispatcher.enqueue(
                session, target_id, NotificationType.TRANSFER_RECEIVED,
                "Money received",
                f"{_won(amount)} received from {source_name}",
                amount=amount, related_transaction_id=txn.id,
            ))

        try:
            txn = ledger.apply_transfer(
                db, from_account_id, target_id, amount,
                txn_type=TransactionType.TRANSFER,
                description=description,
                before_commit=notify,
            )
        except BankingError as exc:
            self._notify_failure(db, from_account_id, NotificationType.TRANSFER_FAILED, "Transfer failed", amount, exc)
            raise
        self.dispatcher.publish(pending)

        return TransferResponse(
            transaction_id=txn.id,
            from_account=source_number,
            to_account=target_number,
            to_account_owner=target_name,
            amount=txn.amount,
            description=txn.description,
            status=txn.status,
            created_at=txn.created_at,
            balance_after=txn.balance_after,
        )

    # ------------------------------------------------------------------ QR

    def generate_qr(
        self,
        db: Session,
        seller_account_id: int,
        amount: int,
        description: Optional[str] = None,
    ) -> QrGenerateResponse:
        if amount < settings.MIN_QR_AMOUNT:
            raise InvalidRequestError(f"Minimum QR payment amount is {_won(settings.MIN_QR_AMOUNT)}")
        seller = ledger.get_account(db, seller_account_id)
        if seller.is_locked:
            raise AccountLocked()

        now = utcnow()
        intent = QrPayment(
            code=secrets.token_urlsafe(QR_CODE_BYTES),
            seller_account_id=seller.id,
            amount=amount,
            description=description,
            status=QrPaymentStatus.PENDING,
            created_at=now,
            expires_at=now + timedelta(minutes=settings.QR_EXPIRY_MINUTES),
        )
        db.add(intent)
        db.commit()
        db.refresh(intent)
        logger.info("QR payment #%s issued by account %s for %d", intent.id, seller.id, amount)

        return QrGenerateResponse(
            qr_payment_id=intent.id,
            qr_code=intent.code,
            amount=intent.amount,
            description=intent.description,
            status=intent.status,
            expires_at=intent.expires_at,
            created_at=intent.created_at,
        )

    def qr_pay(
        self,
        db: Session,
        buyer_account_id: int,
        qr_code: str,
        simple_password_value: str,
    ) -> QrPayResponse:
        """
        Pay a seller's QR intent.

        The PENDING -> PAID flip is a compare-and-set executed inside the
        ledger transaction, so it commits together with the transfer or not
        at all. A PAID code is reported as used even after it expired.
        """
        intent = db.query(QrPayment).filter(QrPayment.code == qr_code).first()
        if intent is None:
            raise NotFound("QR code not found")
        self._check_payable(db, intent)
        if intent.seller_account_id == buyer_account_id:
            raise InvalidRequestError("Cannot pay your own QR code")

        buyer = ledger.get_account(db, buyer_account_id)
        seller = ledger.get_account(db, intent.seller_account_id)
        if buyer.is_locked:
            raise AccountLocked()
        simple_password.verify(db, buyer.id, simple_password_value)

        intent_id, amount, description = intent.id, intent.amount, intent.description
        buyer_number, buyer_name = buyer.account_number, buyer.owner_name
        seller_id, seller_number, seller_name = seller.id, seller.account_number, seller.owner_name
        paid_at = utcnow()
        pending: List[Notification] = []

        def mark_paid(session: Session, txn: Transaction) -> None:
            claimed = session.query(QrPayment).filter(
                QrPayment.id == intent_id,
                QrPayment.status == QrPaymentStatus.PENDING,
                QrPayment.expires_at > paid_at,
            ).update(
                {
                    QrPayment.status: QrPaymentStatus.PAID,
                    QrPayment.paid_at: paid_at,
                    QrPayment.buyer_account_id: buyer_account_id,
                    QrPayment.transaction_id: txn.id,
                },
                synchronize_session=False,
            )
            if claimed != 1:
                current = session.query(QrPayment.status).filter(QrPayment.id == intent_id).scalar()
                if current == QrPaymentStatus.PAID:
                    raise QrAlreadyUsed()
                raise QrExpired()

            pending.append(self.dispatcher.enqueue(
                session, buyer_account_id, NotificationType.QR_PAYMENT_SENT,
                "QR payment completed",
                f"{_won(amount)} paid to {seller_name}",
                amount=amount, related_transaction_id=txn.id,
            ))
            pending.append(self.dispatcher.enqueue(
                session, seller_id, NotificationType.QR_PAYMENT_RECEIVED,
                "QR payment received",
                f"{_won(amount)} received from {buyer_name}",
                amount=amount, related_transaction_id=txn.id,
            ))

        try:
            txn = ledger.apply_transfer(
                db, buyer_account_id, seller_id, amount,
                txn_type=TransactionType.QR_PAYMENT,
                description=description,
                before_commit=mark_paid,
            )
        except BankingError as exc:
            self._notify_failure(db, buyer_account_id, NotificationType.QR_PAYMENT_FAILED, "QR payment failed", amount, exc)
            raise
        self.dispatcher.publish(pending)

        return QrPayResponse(
            qr_payment_id=intent_id,
            transaction_id=txn.id,
            buyer_account=buyer_number,
            seller_account=seller_number,
            seller_name=seller_name,
            amount=amount,
            description=description,
            status=QrPaymentStatus.PAID,
            paid_at=paid_at,
            balance_after=txn.balance_after,
        )

    def _check_payable(self, db: Session, intent: QrPayment) -> None:
        if intent.status == QrPaymentStatus.PAID:
            raise QrAlreadyUsed()
        if intent.status == QrPaymentStatus.EXPIRED:
            raise QrExpired()
        now = utcnow()
        if intent.expires_at <= now:
            db.query(QrPayment).filter(
                QrPayment.id == intent.id,
                QrPayment.status == QrPaymentStatus.PENDING,
            ).update({QrPayment.status: QrPaymentStatus.EXPIRED}, synchronize_session=False)
            db.commit()
            raise QrExpired()

    # ------------------------------------------------------------------ deposit

    def self_deposit(
        self,
        db: Session,
        account_id: int,
        amount: int,
        simple_password_value: str,
        description: Optional[str] = None,
    ) -> SelfDepositResponse:
        if amount < settings.MIN_SELF_DEPOSIT_AMOUNT:
            raise InvalidRequestError(f"Minimum deposit amount is {_won(settings.MIN_SELF_DEPOSIT_AMOUNT)}")
        account = ledger.get_account(db, account_id)
        if account.is_locked:
            raise AccountLocked()
        simple_password.verify(db, account.id, simple_password_value)
        account_number = account.account_number

        txn = self.deposit(
            db, account_id, amount,
            txn_type=TransactionType.SELF_DEPOSIT,
            description=description,
        )
        return SelfDepositResponse(
            transaction_id=txn.id,
            account_number=account_number,
            amount=txn.amount,
            balance_after=txn.balance_after,
            description=txn.description,
            deposited_at=txn.created_at,
        )

    def deposit(
        self,
        db: Session,
        account_id: int,
        amount: int,
        txn_type: TransactionType = TransactionType.DEPOSIT,
        description: Optional[str] = None,
    ) -> Transaction:
        """Credit an account and notify its owner."""
        pending: List[Notification] = []

        def notify(session: Session, txn: Transaction) -> None:
            pending.append(self.dispatcher.enqueue(
                session, account_id, NotificationType.DEPOSIT,
                "Deposit completed",
                f"{_won(amount)} deposited. Balance {_won(txn.balance_after)}",
                amount=amount, related_transaction_id=txn.id,
            ))

        txn = ledger.apply_deposit(
            db, account_id, amount,
            txn_type=txn_type,
            description=description,
            before_commit=notify,
        )
        self.dispatcher.publish(pending)
        return txn

    # ------------------------------------------------------------------ scheduled

    def execute_scheduled(self, db: Session, schedule_id: int, claim_token: str) -> Transaction:
        """
        Execute a claimed schedule without a fresh PIN.

        The PIN generation captured at creation must still be current. The
        EXECUTING -> EXECUTED transition is conditioned on the claim token and
        commits with the ledger row, so a schedule is never EXECUTED without
        its transaction nor the other way round.
        """
        schedule = db.get(ScheduledTransfer, schedule_id)
        if schedule is None:
            raise NotFound(f"Scheduled transfer {schedule_id} not found")

        source = ledger.get_account(db, schedule.account_id)
        target = ledger.get_account_by_number(db, schedule.to_account_number)
        if source.id == target.id:
            raise InvalidRequestError("Cannot transfer to the same account")
        if source.simple_password_version != schedule.simple_password_version:
            raise SimplePasswordMismatch("Simple password was changed after the transfer was scheduled")
        if source.is_locked:
            raise AccountLocked()

        owner_id, amount = source.id, schedule.amount
        source_name = source.owner_name
        target_id, target_number, target_name = target.id, target.account_number, target.owner_name
        pending: List[Notification] = []

        def mark_executed(session: Session, txn: Transaction) -> None:
            finished = session.query(ScheduledTransfer).filter(
                ScheduledTransfer.id == schedule_id,
                ScheduledTransfer.status == ScheduleStatus.EXECUTING,
                ScheduledTransfer.claim_token == claim_token,
            ).update(
                {
                    ScheduledTransfer.status: ScheduleStatus.EXECUTED,
                    ScheduledTransfer.executed_at: utcnow(),
                    ScheduledTransfer.transaction_id: txn.id,
                },
                synchronize_session=False,
            )
            if finished != 1:
                raise Conflict(f"Claim on scheduled transfer {schedule_id} was lost")

            pending.append(self.dispatcher.enqueue(
                session, owner_id, NotificationType.SCHEDULED_TRANSFER_EXECUTED,
                "Scheduled transfer completed",
                f"{_won(amount)} sent to {target_name} ({format_account_number(target_number)})",
                amount=amount, related_transaction_id=txn.id,
            ))
            pending.append(self.dispatcher.enqueue(
                session, target_id, NotificationType.TRANSFER_RECEIVED,
                "Money received",
                f"{_won(amount)} received from {source_name}",
                amount=amount, related_transaction_id=txn.id,
            ))

        txn = ledger.apply_transfer(
            db, owner_id, target_id, amount,
            txn_type=TransactionType.SCHEDULED_TRANSFER,
            description=schedule.description,
            before_commit=mark_executed,
        )
        self.dispatcher.publish(pending)
        return txn

    # ------------------------------------------------------------------ helpers

    def _notify_failure(
        self,
        db: Session,
        account_id: int,
        type: NotificationType,
        title: str,
        amount: int,
        error: BankingError,
    ) -> None:
        """Notify the initiator of an attempt the ledger recorded as FAILED."""
        if error.transaction is None:
            return
        notification = self.dispatcher.enqueue(
            db, account_id, type, title, error.message,
            amount=amount, related_transaction_id=error.transaction.id,
        )
        db.commit()
        self.dispatcher.publish([notification])


def expire_qr_payments(db: Session, now=None) -> int:
    """Flip PENDING intents past their expiry to EXPIRED."""
    now = now or utcnow()
    expired = db.query(QrPayment).filter(
        QrPayment.status == QrPaymentStatus.PENDING,
        QrPayment.expires_at <= now,
    ).update({QrPayment.status: QrPaymentStatus.EXPIRED}, synchronize_session=False)
    db.commit()
    if expired:
        logger.info("Expired %d QR payment intents", expired)
    return expired


transfer_engine = TransferEngine()
