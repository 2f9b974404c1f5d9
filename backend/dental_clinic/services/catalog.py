from __future__ import annotations

from typing import Any, Iterable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dental_clinic.errors import ConflictError, InvalidRequestError, NotFoundError
from dental_clinic.models.dentist import Dentist, Specialization
from dental_clinic.models.practice_schedule import DentistHour
from dental_clinic.models.service import Service, ServiceCategory
from dental_clinic.models.user import Role
from dental_clinic.services.audit import log_event, snapshot_model
from dental_clinic.services.context import Actor
from dental_clinic.services.users import create_user, get_user_by_email


def list_dentists(
    db: Session,
    *,
    specialization: Specialization | None = None,
    include_inactive: bool = False,
) -> list[Dentist]:
    stmt = select(Dentist).where(Dentist.deleted_at.is_(None))
    if not include_inactive:
        stmt = stmt.where(Dentist.is_active.is_(True))
    if specialization is not None:
        stmt = stmt.where(Dentist.specialization == specialization)
    return list(db.scalars(stmt.order_by(Dentist.id)).unique())


def get_dentist(db: Session, dentist_id: int) -> Dentist:
    dentist = db.get(Dentist, dentist_id)
    if not dentist or dentist.is_deleted:
        raise NotFoundError("Dentist not found")
    return dentist


def create_dentist(
    db: Session,
    *,
    actor: Actor,
    email: str,
    full_name: str,
    password: str,
    license_number: str,
    specialization: Specialization = Specialization.general,
    years_of_experience: int = 0,
    bio: str | None = None,
    consultation_fee: Any = 0,
    phone: str | None = None,
) -> Dentist:
    """Create the dentist's login and profile together."""
    if get_user_by_email(db, email):
        raise ConflictError("Email already exists")
    if db.scalar(select(Dentist.id).where(Dentist.license_number == license_number)):
        raise ConflictError("License number already registered")

    user = create_user(
        db,
        email=email,
        password=password,
        full_name=full_name,
        phone=phone,
        role=Role.dentist,
        commit=False,
    )
    dentist = Dentist(
        user_id=user.id,
        specialization=specialization,
        license_number=license_number,
        years_of_experience=years_of_experience,
        bio=bio,
        consultation_fee=consultation_fee,
    )
    db.add(dentist)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Dentist already exists") from None
    log_event(
        db,
        actor=actor,
        action="dentist.created",
        entity_type="dentist",
        entity_id=str(dentist.id),
        after_obj=dentist,
    )
    db.commit()
    db.refresh(dentist)
    return dentist


def update_dentist(db: Session, *, actor: Actor, dentist: Dentist, changes: dict[str, Any]) -> Dentist:
    if not changes:
        raise InvalidRequestError("No valid fields to update")
    before_data = snapshot_model(dentist)
    for key, value in changes.items():
        setattr(dentist, key, value)
    log_event(
        db,
        actor=actor,
        action="dentist.updated",
        entity_type="dentist",
        entity_id=str(dentist.id),
        before_data=before_data,
        after_obj=dentist,
    )
    db.commit()
    db.refresh(dentist)
    return dentist


def replace_dentist_hours(
    db: Session,
    *,
    actor: Actor,
    dentist: Dentist,
    entries: Iterable[Any],
) -> list[DentistHour]:
    entries = list(entries)
    seen: set[int] = set()
    for entry in entries:
        if entry.day_of_week in seen:
            raise InvalidRequestError("Each day_of_week may appear only once")
        seen.add(entry.day_of_week)
        if not entry.is_available:
            continue
        if not entry.start_time or not entry.end_time:
            raise InvalidRequestError("Working days require start_time and end_time")
        if entry.end_time <= entry.start_time:
            raise InvalidRequestError("end_time must be after start_time")

    db.execute(delete(DentistHour).where(DentistHour.dentist_id == dentist.id))
    rows = [
        DentistHour(
            dentist_id=dentist.id,
            day_of_week=entry.day_of_week,
            start_time=entry.start_time if entry.is_available else None,
            end_time=entry.end_time if entry.is_available else None,
            is_available=entry.is_available,
        )
        for entry in entries
    ]
    db.add_all(rows)
    log_event(
        db,
        actor=actor,
        action="dentist.hours_replaced",
        entity_type="dentist",
        entity_id=str(dentist.id),
        after_data={"days": sorted(seen)},
    )
    db.commit()
    db.expire(dentist, ["hours"])
    return list(dentist.hours)


def list_services(
    db: Session,
    *,
    category: ServiceCategory | None = None,
    include_inactive: bool = False,
) -> list[Service]:
    stmt = select(Service)
    if not include_inactive:
        stmt = stmt.where(Service.is_active.is_(True))
    if category is not None:
        stmt = stmt.where(Service.category == category)
    return list(db.scalars(stmt.order_by(Service.name)))


def get_service(db: Session, service_id: int) -> Service:
    service = db.get(Service, service_id)
    if not service:
        raise NotFoundError("Service not found")
    return service


def create_service(db: Session, *, actor: Actor, **fields: Any) -> Service:
    if db.scalar(select(Service.id).where(Service.name == fields.get("name"))):
        raise ConflictError("Service name already exists")
    service = Service(**fields)
    db.add(service)
    db.flush()
    log_event(
        db,
        actor=actor,
        action="service.created",
        entity_type="service",
        entity_id=str(service.id),
        after_obj=service,
    )
    db.commit()
    db.refresh(service)
    return service


def update_service(db: Session, *, actor: Actor, service: Service, changes: dict[str, Any]) -> Service:
    if not changes:
        raise InvalidRequestError("No valid fields to update")
    before_data = snapshot_model(service)
    for key, value in changes.items():
        setattr(service, key, value)
    log_event(
        db,
        actor=actor,
        action="service.updated",
        entity_type="service",
        entity_id=str(service.id),
        before_data=before_data,
        after_obj=service,
    )
    db.commit()
    db.refresh(service)
    return service
