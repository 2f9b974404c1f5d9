from __future__ import annotations

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from dental_clinic.models.appointment import LIVE_STATUSES, Appointment
from dental_clinic.services.intervals import (
    DEFAULT_DURATION_MINUTES,
    Interval,
    align_up,
    as_utc,
    compute_interval,
    is_aligned,
    overlaps,
)
from dental_clinic.services.schedule import Schedule, local_day_bounds


def live_overlap_condition(dentist_id: int, interval: Interval):
    # SQL form of intervals.overlaps over half-open [starts_at, ends_at)
    return and_(
        Appointment.dentist_id == dentist_id,
        Appointment.status.in_(LIVE_STATUSES),
        Appointment.starts_at < interval.end,
        Appointment.ends_at > interval.start,
    )


def find_conflict(
    db: Session,
    dentist_id: int,
    interval: Interval,
    *,
    exclude_id: int | None = None,
) -> Appointment | None:
    stmt = select(Appointment).where(live_overlap_condition(dentist_id, interval))
    if exclude_id is not None:
        stmt = stmt.where(Appointment.id != exclude_id)
    return db.scalars(stmt.order_by(Appointment.starts_at.asc()).limit(1)).first()


def check_availability(
    db: Session,
    dentist_id: int,
    starts_at: datetime,
    duration_minutes: int | None = None,
    *,
    default_minutes: int = DEFAULT_DURATION_MINUTES,
) -> bool:
    interval = compute_interval(starts_at, duration_minutes, default_minutes)
    return find_conflict(db, dentist_id, interval) is None


def list_live_appointments(db: Session, dentist_id: int, window: Interval) -> list[Appointment]:
    stmt = (
        select(Appointment)
        .where(live_overlap_condition(dentist_id, window))
        .order_by(Appointment.starts_at.asc())
    )
    return list(db.scalars(stmt))


def list_free_slots(
    db: Session,
    *,
    dentist_id: int,
    day: date,
    duration_minutes: int,
    schedule: Schedule,
    tz: ZoneInfo,
    step_minutes: int,
    now: datetime,
    granularity_minutes: int = 5,
) -> list[datetime]:
    """Bookable start times for one dentist on one local day.

    Candidates step by ``step_minutes`` from the first booking-grid boundary at
    or after opening time, counted in the clinic timezone. They must end by
    closing time, must not be in the past and must not overlap a live booking.
    """
    bounds = local_day_bounds(day, schedule, tz)
    if bounds is None:
        return []
    day_start, day_end = (as_utc(value) for value in bounds)
    if day_end <= day_start:
        return []

    booked = [
        Interval(appt.starts_at, appt.ends_at)
        for appt in list_live_appointments(db, dentist_id, Interval(day_start, day_end))
    ]
    now = as_utc(now)
    step = timedelta(minutes=step_minutes)
    length = timedelta(minutes=duration_minutes)

    free: list[datetime] = []
    cursor = align_up(day_start, granularity_minutes, tz)
    while cursor + length <= day_end:
        candidate = Interval(cursor, cursor + length)
        if (
            cursor >= now
            and is_aligned(cursor, granularity_minutes, tz)
            and not any(overlaps(candidate, taken) for taken in booked)
        ):
            free.append(cursor)
        cursor += step
    return free
