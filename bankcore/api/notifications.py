"""
Notification API endpoints.
Read state is kept on the server; clients only render it.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from bankcore.core.exceptions import Forbidden, NotFound
from bankcore.core.formatting import utcnow
from bankcore.core.security import get_current_account_id
from bankcore.database import get_db
from bankcore.models.notification import Notification
from bankcore.schemas.common import Page
from bankcore.schemas.notification import NotificationResponse, UnreadCountResponse

router = APIRouter(prefix="/notifications", tags=["Notifications"])


def _page(query, page: int, size: int) -> Page[NotificationResponse]:
    total = query.count()
    items = query.order_by(
        Notification.created_at.desc(), Notification.id.desc()
    ).offset(page * size).limit(size).all()
    content = [NotificationResponse.from_notification(item) for item in items]
    return Page[NotificationResponse].build(content, total, page, size)


def _get_owned(db: Session, notification_id: int, account_id: int) -> Notification:
    notification = db.get(Notification, notification_id)
    if notification is None:
        raise NotFound(f"Notification {notification_id} not found")
    if notification.account_id != account_id:
        raise Forbidden("Notification belongs to another account")
    return notification


@router.get("", response_model=Page[NotificationResponse])
def list_notifications(
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=100),
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    """
    List the caller's notifications, newest first.
    """
    query = db.query(Notification).filter(Notification.account_id == account_id)
    return _page(query, page, size)


@router.get("/unread", response_model=Page[NotificationResponse])
def list_unread_notifications(
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=100),
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    query = db.query(Notification).filter(
        Notification.account_id == account_id,
        Notification.is_read.is_(False)
    )
    return _page(query, page, size)


@router.get("/unread/count", response_model=UnreadCountResponse)
def count_unread_notifications(
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    count = db.query(Notification).filter(
        Notification.account_id == account_id,
        Notification.is_read.is_(False)
    ).count()
    return UnreadCountResponse(count=count)


@router.patch("/read-all", response_model=UnreadCountResponse)
def mark_all_read(
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    """
    Mark every unread notification as read. Returns how many changed.
    """
    updated = db.query(Notification).filter(
        Notification.account_id == account_id,
        Notification.is_read.is_(False)
    ).update(
        {Notification.is_read: True, Notification.read_at: utcnow()},
        synchronize_session=False
    )
    db.commit()
    return UnreadCountResponse(count=updated)


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: int,
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    """
    Mark one notification as read. Already-read notifications keep their first read time.
    """
    notification = _get_owned(db, notification_id, account_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        db.commit()
        db.refresh(notification)
    return NotificationResponse.from_notification(notification)


@router.delete("/read-all", status_code=status.HTTP_204_NO_CONTENT)
def delete_read_notifications(
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    """
    Delete every notification the caller has already read.
    """
    db.query(Notification).filter(
        Notification.account_id == account_id,
        Notification.is_read.is_(True)
    ).delete(synchronize_session=False)
    db.commit()
    return None


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: int,
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    notification = _get_owned(db, notification_id, account_id)
    db.delete(notification)
    db.commit()
    return None
