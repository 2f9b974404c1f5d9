from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from dental_clinic.models.practice_schedule import (
    DentistHour,
    PracticeClosure,
    PracticeHour,
    PracticeOverride,
)
from dental_clinic.services.intervals import Interval

DEFAULT_HOURS = [
    (0, time(9, 0), time(17, 0), False),
    (1, time(9, 0), time(17, 0), False),
    (2, time(9, 0), time(17, 0), False),
    (3, time(9, 0), time(17, 0), False),
    (4, time(9, 0), time(17, 0), False),
    (5, None, None, True),
    (6, None, None, True),
]

OUTSIDE_HOURS = "Appointment falls outside working hours."


@dataclass
class Schedule:
    hours: list[PracticeHour]
    closures: list[PracticeClosure] = field(default_factory=list)
    overrides: list[PracticeOverride] = field(default_factory=list)
    dentist_hours: list[DentistHour] = field(default_factory=list)


def default_hours() -> list[PracticeHour]:
    return [
        PracticeHour(day_of_week=day, start_time=start, end_time=end, is_closed=closed)
        for day, start, end, closed in DEFAULT_HOURS
    ]


def ensure_default_hours(db: Session) -> bool:
    existing = db.scalar(select(PracticeHour.id))
    if existing:
        return False
    db.add_all(default_hours())
    db.commit()
    return True


def load_schedule(db: Session, dentist_id: int | None = None) -> Schedule:
    hours = list(db.scalars(select(PracticeHour).order_by(PracticeHour.day_of_week)))
    if not hours:
        hours = default_hours()
    closures = list(db.scalars(select(PracticeClosure).order_by(PracticeClosure.start_date)))
    overrides = list(db.scalars(select(PracticeOverride).order_by(PracticeOverride.date)))
    dentist_hours: list[DentistHour] = []
    if dentist_id is not None:
        dentist_hours = list(
            db.scalars(
                select(DentistHour)
                .where(DentistHour.dentist_id == dentist_id)
                .order_by(DentistHour.day_of_week)
            )
        )
    return Schedule(hours=hours, closures=closures, overrides=overrides, dentist_hours=dentist_hours)


def _is_date_closed(target: date, closures: list[PracticeClosure]) -> PracticeClosure | None:
    for closure in closures:
        if closure.start_date <= target <= closure.end_date:
            return closure
    return None


def get_practice_window(target: date, schedule: Schedule) -> tuple[time | None, time | None, str | None]:
    override = next((item for item in schedule.overrides if item.date == target), None)
    if override:
        if override.is_closed:
            reason = override.reason or "Clinic closed (override)."
            return None, None, reason
        if override.start_time and override.end_time:
            return override.start_time, override.end_time, None

    closure = _is_date_closed(target, schedule.closures)
    if closure:
        reason = closure.reason or "Clinic closed (holiday)."
        return None, None, reason

    weekday = target.weekday()
    dentist_day = {row.day_of_week: row for row in schedule.dentist_hours}.get(weekday)
    if dentist_day is not None:
        if not dentist_day.is_available:
            return None, None, "Dentist is not available on this day."
        if dentist_day.start_time and dentist_day.end_time:
            return dentist_day.start_time, dentist_day.end_time, None

    day_hours = {row.day_of_week: row for row in schedule.hours}.get(weekday)
    if not day_hours or day_hours.is_closed:
        return None, None, "Clinic closed."
    if not day_hours.start_time or not day_hours.end_time:
        return None, None, "Clinic hours not configured."
    return day_hours.start_time, day_hours.end_time, None


def local_day_bounds(target: date, schedule: Schedule, tz: ZoneInfo) -> tuple[datetime, datetime] | None:
    day_start, day_end, _reason = get_practice_window(target, schedule)
    if not day_start or not day_end:
        return None
    return (
        datetime.combine(target, day_start, tzinfo=tz),
        datetime.combine(target, day_end, tzinfo=tz),
    )


def validate_appointment_window(interval: Interval, schedule: Schedule, tz: ZoneInfo) -> tuple[bool, str | None]:
    start_local = interval.start.astimezone(tz)
    end_local = interval.end.astimezone(tz)
    if start_local.date() != end_local.date():
        return False, "Appointments must start and end on the same day."

    day_start, day_end, reason = get_practice_window(start_local.date(), schedule)
    if not day_start or not day_end:
        return False, reason or "Clinic closed."

    if start_local.time() < day_start or end_local.time() > day_end:
        return False, OUTSIDE_HOURS

    return True, None
