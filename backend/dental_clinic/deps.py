import logging
from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from dental_clinic.core.security import decode_access_token
from dental_clinic.core.settings import settings
from dental_clinic.db.session import SessionLocal, get_db
from dental_clinic.models.user import Role, User
from dental_clinic.services.context import Actor, SchedulerContext, utc_now
from dental_clinic.services.notifications import DatabaseNotifier, NotificationChannel

scheduler_logger = logging.getLogger("dental_clinic.scheduler")


def get_current_user(
    db: Session = Depends(get_db), authorization: str | None = Header(default=None)
) -> User:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    user_id = decode_access_token(token, secret=settings.secret_key, alg=settings.jwt_alg)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = db.scalar(select(User).where(User.id == user_id))
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inactive user")
    return user


def require_roles(*roles: str):
    def _inner(user: User = Depends(get_current_user)) -> User:
        if user.role.value not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return user

    return _inner


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != Role.admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return user


def get_notifier() -> NotificationChannel:
    return DatabaseNotifier(SessionLocal)


def get_clock() -> Callable[[], datetime]:
    return utc_now


def get_scheduler_context(
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    notifier: NotificationChannel = Depends(get_notifier),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> SchedulerContext:
    return SchedulerContext(
        db=db,
        actor=Actor.from_user(user),
        notifier=notifier,
        logger=scheduler_logger,
        clock=clock,
        tz=ZoneInfo(settings.clinic_timezone),
        default_minutes=settings.default_appointment_minutes,
        granularity_minutes=settings.slot_granularity_minutes,
        request_id=request.headers.get("x-request-id"),
        ip_address=request.client.host if request.client else None,
    )
