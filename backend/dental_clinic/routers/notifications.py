from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from dental_clinic.db.session import get_db
from dental_clinic.deps import get_current_user
from dental_clinic.errors import NotFoundError
from dental_clinic.models.notification import Notification
from dental_clinic.models.user import User
from dental_clinic.schemas.notification import NotificationOut

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _visible_to(user: User):
    return or_(
        Notification.target_user_id == user.id,
        Notification.target_role == user.role.value,
    )


@router.get("", response_model=list[NotificationOut])
def list_notifications(
    unread: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    stmt = select(Notification).where(_visible_to(user))
    if unread:
        stmt = stmt.where(Notification.read_at.is_(None))
    return list(db.scalars(stmt.order_by(Notification.id.desc()).limit(limit)))


@router.post("/{notification_id}/read", response_model=NotificationOut)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    notification = db.scalar(
        select(Notification).where(Notification.id == notification_id, _visible_to(user))
    )
    if not notification:
        raise NotFoundError("Notification not found")
    if notification.read_at is None:
        notification.read_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(notification)
    return notification
