from datetime import date, datetime
from typing import Callable
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from dental_clinic.core.settings import settings
from dental_clinic.db.session import get_db
from dental_clinic.deps import get_clock, require_admin
from dental_clinic.errors import InvalidRequestError
from dental_clinic.models.dentist import Specialization
from dental_clinic.models.user import User
from dental_clinic.schemas.appointment import AvailabilityOut, FreeSlotsOut
from dental_clinic.schemas.dentist import DentistCreate, DentistOut, DentistUpdate
from dental_clinic.schemas.practice_schedule import DentistHourIn, DentistHourOut
from dental_clinic.services import availability, catalog
from dental_clinic.services.context import Actor
from dental_clinic.services.intervals import compute_interval
from dental_clinic.services.schedule import load_schedule

router = APIRouter(prefix="/dentists", tags=["dentists"])


def _duration_for(db: Session, service_id: int | None, duration_minutes: int | None) -> int:
    if service_id is not None:
        return catalog.get_service(db, service_id).duration_minutes
    return duration_minutes or settings.default_appointment_minutes


@router.get("", response_model=list[DentistOut])
def list_dentists(
    specialization: Specialization | None = Query(default=None),
    db: Session = Depends(get_db),
):
    return catalog.list_dentists(db, specialization=specialization)


@router.post("", response_model=DentistOut, status_code=status.HTTP_201_CREATED)
def create_dentist(
    payload: DentistCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return catalog.create_dentist(
        db,
        actor=Actor.from_user(admin),
        email=payload.email,
        full_name=payload.full_name,
        password=payload.temp_password,
        phone=payload.phone,
        specialization=payload.specialization,
        license_number=payload.license_number,
        years_of_experience=payload.years_of_experience,
        bio=payload.bio,
        consultation_fee=payload.consultation_fee,
    )


@router.get("/{dentist_id}", response_model=DentistOut)
def get_dentist(dentist_id: int, db: Session = Depends(get_db)):
    return catalog.get_dentist(db, dentist_id)


@router.patch("/{dentist_id}", response_model=DentistOut)
def update_dentist(
    dentist_id: int,
    payload: DentistUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    dentist = catalog.get_dentist(db, dentist_id)
    return catalog.update_dentist(
        db,
        actor=Actor.from_user(admin),
        dentist=dentist,
        changes=payload.model_dump(exclude_unset=True),
    )


@router.put("/{dentist_id}/hours", response_model=list[DentistHourOut])
def replace_hours(
    dentist_id: int,
    payload: list[DentistHourIn],
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    dentist = catalog.get_dentist(db, dentist_id)
    return catalog.replace_dentist_hours(db, actor=Actor.from_user(admin), dentist=dentist, entries=payload)


@router.get("/{dentist_id}/availability", response_model=AvailabilityOut)
def check_availability(
    dentist_id: int,
    starts_at: datetime,
    duration_minutes: int | None = Query(default=None, ge=1, le=240),
    service_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    dentist = catalog.get_dentist(db, dentist_id)
    minutes = _duration_for(db, service_id, duration_minutes)
    try:
        interval = compute_interval(starts_at, minutes)
    except ValueError as exc:
        raise InvalidRequestError(str(exc)) from None
    available = availability.check_availability(db, dentist.id, interval.start, minutes)
    return AvailabilityOut(
        dentist_id=dentist.id,
        starts_at=interval.start,
        ends_at=interval.end,
        available=available,
        reason=None if available else "Time slot is not available",
    )


@router.get("/{dentist_id}/slots", response_model=FreeSlotsOut)
def free_slots(
    dentist_id: int,
    day: date = Query(alias="date"),
    duration_minutes: int | None = Query(default=None, ge=5, le=240),
    service_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    dentist = catalog.get_dentist(db, dentist_id)
    minutes = _duration_for(db, service_id, duration_minutes)
    slots = availability.list_free_slots(
        db,
        dentist_id=dentist.id,
        day=day,
        duration_minutes=minutes,
        schedule=load_schedule(db, dentist_id=dentist.id),
        tz=ZoneInfo(settings.clinic_timezone),
        step_minutes=settings.slot_step_minutes,
        now=clock(),
        granularity_minutes=settings.slot_granularity_minutes,
    )
    return FreeSlotsOut(dentist_id=dentist.id, date=day, duration_minutes=minutes, slots=slots)
