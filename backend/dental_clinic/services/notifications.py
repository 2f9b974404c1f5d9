from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

from sqlalchemy.orm import Session

from dental_clinic.models.notification import Notification

NEW_APPOINTMENT = "appointment.new"
APPOINTMENT_UPDATED = "appointment.updated"


class NotificationChannel(Protocol):
    def notify(
        self,
        *,
        kind: str,
        message: str,
        payload: dict[str, Any] | None = None,
        user_id: int | None = None,
        role: str | None = None,
    ) -> None:
        raise NotImplementedError


class DatabaseNotifier:
    """Stores notifications as inbox rows, in a session of its own.

    Booking transactions are committed before this runs and never share its
    session, so a failed insert here cannot undo a booking.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def notify(
        self,
        *,
        kind: str,
        message: str,
        payload: dict[str, Any] | None = None,
        user_id: int | None = None,
        role: str | None = None,
    ) -> None:
        if user_id is None and role is None:
            raise ValueError("A notification needs a target user or role")
        db = self._session_factory()
        try:
            db.add(
                Notification(
                    target_user_id=user_id,
                    target_role=role,
                    kind=kind,
                    message=message,
                    payload=payload,
                )
            )
            db.commit()
        finally:
            db.close()


def send_best_effort(channel: NotificationChannel, logger: logging.Logger, **kwargs: Any) -> bool:
    try:
        channel.notify(**kwargs)
    except Exception:
        logger.warning(
            "Notification %s could not be delivered",
            kwargs.get("kind"),
            exc_info=True,
            extra={"appointment_id": (kwargs.get("payload") or {}).get("appointment_id")},
        )
        return False
    return True
