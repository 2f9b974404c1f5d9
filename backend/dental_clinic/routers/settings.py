from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import delete
from sqlalchemy.orm import Session

from dental_clinic.db.session import get_db
from dental_clinic.deps import get_current_user, require_admin
from dental_clinic.errors import InvalidRequestError
from dental_clinic.models.practice_schedule import PracticeClosure, PracticeHour, PracticeOverride
from dental_clinic.models.user import User
from dental_clinic.schemas.practice_schedule import (
    PracticeClosureIn,
    PracticeHourIn,
    PracticeOverrideIn,
    PracticeScheduleOut,
    PracticeScheduleUpdate,
)
from dental_clinic.services.audit import log_event
from dental_clinic.services.context import Actor
from dental_clinic.services.schedule import load_schedule

router = APIRouter(prefix="/settings", tags=["settings"])


def _schedule_out(db: Session) -> dict:
    schedule = load_schedule(db)
    return {"hours": schedule.hours, "closures": schedule.closures, "overrides": schedule.overrides}


@router.get("/schedule", response_model=PracticeScheduleOut)
def get_schedule(
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    return _schedule_out(db)


def _validate_hours(entries: list[PracticeHourIn]) -> None:
    days = [entry.day_of_week for entry in entries]
    if len(days) != len(set(days)):
        raise InvalidRequestError("Each day_of_week may appear only once")
    for entry in entries:
        if entry.is_closed:
            continue
        if not entry.start_time or not entry.end_time:
            raise InvalidRequestError("Open days require start_time and end_time")
        if entry.end_time <= entry.start_time:
            raise InvalidRequestError("end_time must be after start_time")


def _validate_closures(entries: list[PracticeClosureIn]) -> None:
    for entry in entries:
        if entry.end_date < entry.start_date:
            raise InvalidRequestError("Closure end_date must be after start_date")


def _validate_overrides(entries: list[PracticeOverrideIn]) -> None:
    for entry in entries:
        if entry.is_closed:
            continue
        if entry.start_time and entry.end_time and entry.end_time <= entry.start_time:
            raise InvalidRequestError("Override end_time must be after start_time")


@router.put("/schedule", response_model=PracticeScheduleOut)
def update_schedule(
    payload: PracticeScheduleUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    _validate_hours(payload.hours)
    _validate_closures(payload.closures)
    _validate_overrides(payload.overrides)

    db.execute(delete(PracticeHour))
    db.execute(delete(PracticeClosure))
    db.execute(delete(PracticeOverride))

    for entry in payload.hours:
        db.add(
            PracticeHour(
                day_of_week=entry.day_of_week,
                start_time=None if entry.is_closed else entry.start_time,
                end_time=None if entry.is_closed else entry.end_time,
                is_closed=entry.is_closed,
            )
        )
    for entry in payload.closures:
        db.add(
            PracticeClosure(
                start_date=entry.start_date,
                end_date=entry.end_date,
                reason=entry.reason,
            )
        )
    for entry in payload.overrides:
        db.add(
            PracticeOverride(
                date=entry.date,
                start_time=None if entry.is_closed else entry.start_time,
                end_time=None if entry.is_closed else entry.end_time,
                is_closed=entry.is_closed,
                reason=entry.reason,
            )
        )
    log_event(
        db,
        actor=Actor.from_user(admin),
        action="schedule.updated",
        entity_type="schedule",
        entity_id="clinic",
        after_data=payload.model_dump(mode="json"),
    )
    db.commit()
    return _schedule_out(db)
