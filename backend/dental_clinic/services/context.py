from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from dental_clinic.models.appointment import BookingSource
from dental_clinic.models.user import Role, User
from dental_clinic.services.intervals import DEFAULT_DURATION_MINUTES, as_utc
from dental_clinic.services.notifications import NotificationChannel, send_best_effort


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Actor:
    """The caller as resolved by the identity layer; trusted, not re-authenticated."""

    user_id: int
    role: Role
    email: str | None = None

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(user_id=user.id, role=user.role, email=user.email)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin

    @property
    def booking_source(self) -> BookingSource:
        if self.role == Role.admin:
            return BookingSource.admin
        if self.role == Role.dentist:
            return BookingSource.dentist
        return BookingSource.user


@dataclass
class SchedulerContext:
    """Everything one scheduling request needs, built explicitly per request."""

    db: Session
    actor: Actor
    notifier: NotificationChannel
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("dental_clinic.scheduler"))
    clock: Callable[[], datetime] = utc_now
    tz: ZoneInfo = field(default_factory=lambda: ZoneInfo("UTC"))
    default_minutes: int = DEFAULT_DURATION_MINUTES
    granularity_minutes: int = 5
    request_id: str | None = None
    ip_address: str | None = None

    def now(self) -> datetime:
        return as_utc(self.clock())

    def notify(self, **kwargs: Any) -> bool:
        return send_best_effort(self.notifier, self.logger, **kwargs)

    def log_extra(self, **values: Any) -> dict[str, Any]:
        extra = {"request_id": self.request_id, "actor_id": self.actor.user_id}
        extra.update(values)
        return extra
