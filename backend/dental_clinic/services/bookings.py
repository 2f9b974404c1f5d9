"""Creating and moving appointments.

This module and ``services.lifecycle`` are the only writers of appointment
rows. Double-booking is prevented by the ``appointment_slots`` unique
constraint: each live appointment claims one row per grid cell it occupies,
inserted in the same transaction as the appointment itself. The availability
lookup done beforehand only produces a friendlier early error; when two
requests race past it, the database rejects the second insert and the
IntegrityError is reported as a conflict.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from dental_clinic.errors import (
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from dental_clinic.models.appointment import (
    Appointment,
    AppointmentStatus,
    PaymentStatus,
)
from dental_clinic.models.appointment_slot import AppointmentSlot
from dental_clinic.models.dentist import Dentist
from dental_clinic.models.service import Service
from dental_clinic.models.user import Role, User
from dental_clinic.services.audit import log_event, snapshot_model
from dental_clinic.services.availability import find_conflict
from dental_clinic.services.context import SchedulerContext
from dental_clinic.services.intervals import Interval, as_utc, compute_interval, is_aligned, slot_starts
from dental_clinic.services.notifications import NEW_APPOINTMENT
from dental_clinic.services.schedule import load_schedule, validate_appointment_window

SLOT_UNAVAILABLE = "Time slot is not available"
PAST_START = "Cannot book appointments in the past"
IDEMPOTENCY_MISMATCH = "Idempotency key was already used for a different booking"

PATIENT_EDITABLE = frozenset({"symptoms", "notes"})
DENTIST_EDITABLE = frozenset({"notes", "clinical_notes"})
ADMIN_EDITABLE = frozenset({"notes", "clinical_notes", "price", "payment_status"})


def _resolve_patient(ctx: SchedulerContext, patient_id: int | None) -> int:
    actor = ctx.actor
    if actor.role == Role.patient:
        if patient_id is not None and patient_id != actor.user_id:
            raise ForbiddenError("Patients can only book appointments for themselves")
        return actor.user_id
    if patient_id is None:
        raise InvalidRequestError("patient_id is required when booking on behalf of a patient")
    patient = ctx.db.get(User, patient_id)
    if not patient or not patient.is_active or patient.role != Role.patient:
        raise NotFoundError("Patient not found")
    return patient.id


def _find_by_idempotency_key(ctx: SchedulerContext, patient_id: int, key: str) -> Appointment | None:
    return ctx.db.scalar(
        select(Appointment).where(
            Appointment.patient_id == patient_id,
            Appointment.idempotency_key == key,
        )
    )


def _replay(
    ctx: SchedulerContext,
    existing: Appointment,
    *,
    dentist_id: int,
    starts_at: datetime,
    service_id: int | None,
) -> Appointment:
    if (
        existing.dentist_id != dentist_id
        or existing.service_id != service_id
        or as_utc(existing.starts_at) != as_utc(starts_at)
    ):
        raise ConflictError(IDEMPOTENCY_MISMATCH, conflicting_id=existing.id)
    ctx.logger.info(
        "Replayed booking for idempotency key",
        extra=ctx.log_extra(appointment_id=existing.id),
    )
    return existing


def _validate_slot(ctx: SchedulerContext, dentist_id: int, interval: Interval) -> None:
    if interval.start < ctx.now():
        raise InvalidRequestError(PAST_START)
    schedule = load_schedule(ctx.db, dentist_id=dentist_id)
    ok, reason = validate_appointment_window(interval, schedule, ctx.tz)
    if not ok:
        raise InvalidRequestError(reason or "Appointment falls outside working hours.")
    if not is_aligned(interval.start, ctx.granularity_minutes, ctx.tz):
        raise InvalidRequestError(
            f"Start time must fall on a {ctx.granularity_minutes}-minute boundary"
        )


def _claim_slots(ctx: SchedulerContext, appt: Appointment, interval: Interval) -> None:
    for slot_start in slot_starts(interval, ctx.granularity_minutes, ctx.tz):
        ctx.db.add(AppointmentSlot(appointment=appt, dentist_id=appt.dentist_id, slot_start=slot_start))


def _is_slot_violation(exc: IntegrityError) -> bool:
    return "appointment_slots" in str(exc.orig)


def _is_idempotency_violation(exc: IntegrityError) -> bool:
    return "idempotency" in str(exc.orig)


def create_booking(
    ctx: SchedulerContext,
    *,
    dentist_id: int,
    starts_at: datetime,
    service_id: int | None = None,
    patient_id: int | None = None,
    notes: str | None = None,
    symptoms: str | None = None,
    idempotency_key: str | None = None,
) -> Appointment:
    patient_id = _resolve_patient(ctx, patient_id)
    if idempotency_key:
        existing = _find_by_idempotency_key(ctx, patient_id, idempotency_key)
        if existing is not None:
            return _replay(
                ctx, existing, dentist_id=dentist_id, starts_at=starts_at, service_id=service_id
            )

    dentist = ctx.db.get(Dentist, dentist_id)
    if not dentist or not dentist.is_bookable:
        raise NotFoundError("Dentist not found")

    service = None
    if service_id is not None:
        service = ctx.db.get(Service, service_id)
        if not service or not service.is_active:
            raise NotFoundError("Service not found")

    try:
        interval = compute_interval(
            starts_at, service.duration_minutes if service else None, ctx.default_minutes
        )
    except ValueError as exc:
        raise InvalidRequestError(str(exc)) from None
    _validate_slot(ctx, dentist.id, interval)

    conflict = find_conflict(ctx.db, dentist.id, interval)
    if conflict is not None:
        ctx.logger.info(
            "Booking rejected by availability check",
            extra=ctx.log_extra(dentist_id=dentist.id, appointment_id=conflict.id),
        )
        raise ConflictError(SLOT_UNAVAILABLE, conflicting_id=conflict.id)

    price: Decimal | None = service.price if service else dentist.consultation_fee
    appt = Appointment(
        patient_id=patient_id,
        dentist_id=dentist.id,
        service_id=service.id if service else None,
        starts_at=interval.start,
        ends_at=interval.end,
        status=AppointmentStatus.pending,
        payment_status=PaymentStatus.pending,
        notes=notes,
        symptoms=symptoms,
        price=price,
        created_by=ctx.actor.booking_source,
        created_by_user_id=ctx.actor.user_id,
        idempotency_key=idempotency_key,
    )
    ctx.db.add(appt)
    _claim_slots(ctx, appt, interval)
    try:
        ctx.db.flush()
    except IntegrityError as exc:
        ctx.db.rollback()
        if idempotency_key and _is_idempotency_violation(exc):
            existing = _find_by_idempotency_key(ctx, patient_id, idempotency_key)
            if existing is not None:
                return _replay(
                    ctx, existing, dentist_id=dentist_id, starts_at=starts_at, service_id=service_id
                )
        if not _is_slot_violation(exc):
            raise
        ctx.logger.info(
            "Booking rejected by slot constraint",
            extra=ctx.log_extra(dentist_id=dentist.id),
        )
        raise ConflictError(SLOT_UNAVAILABLE) from None

    log_event(
        ctx.db,
        actor=ctx.actor,
        action="appointment.created",
        entity_type="appointment",
        entity_id=str(appt.id),
        after_obj=appt,
        request_id=ctx.request_id,
        ip_address=ctx.ip_address,
    )
    ctx.db.commit()
    ctx.db.refresh(appt)
    ctx.logger.info(
        "Appointment booked",
        extra=ctx.log_extra(appointment_id=appt.id, dentist_id=appt.dentist_id, status=appt.status.value),
    )

    payload = {
        "appointment_id": appt.id,
        "dentist_id": appt.dentist_id,
        "patient_id": appt.patient_id,
        "starts_at": appt.starts_at.isoformat(),
        "ends_at": appt.ends_at.isoformat(),
    }
    message = f"New appointment on {appt.starts_at:%Y-%m-%d %H:%M} UTC"
    ctx.notify(kind=NEW_APPOINTMENT, message=message, payload=payload, user_id=dentist.user_id)
    ctx.notify(kind=NEW_APPOINTMENT, message=message, payload=payload, role=Role.admin.value)
    return appt


def get_booking(ctx: SchedulerContext, appointment_id: int) -> Appointment:
    appt = ctx.db.get(Appointment, appointment_id)
    if not appt:
        raise NotFoundError("Booking not found")
    return appt


def can_view(ctx: SchedulerContext, appt: Appointment) -> bool:
    actor = ctx.actor
    if actor.is_admin:
        return True
    if actor.role == Role.dentist:
        return appt.dentist is not None and appt.dentist.user_id == actor.user_id
    return appt.patient_id == actor.user_id


def reschedule_booking(ctx: SchedulerContext, appointment_id: int, *, starts_at: datetime) -> Appointment:
    appt = get_booking(ctx, appointment_id)
    if not ctx.actor.is_admin:
        raise ForbiddenError("Only administrators can reschedule bookings")
    if not appt.is_live:
        raise InvalidRequestError("Only pending or confirmed bookings can be rescheduled")

    interval = compute_interval(starts_at, appt.duration_minutes)
    _validate_slot(ctx, appt.dentist_id, interval)
    conflict = find_conflict(ctx.db, appt.dentist_id, interval, exclude_id=appt.id)
    if conflict is not None:
        raise ConflictError(SLOT_UNAVAILABLE, conflicting_id=conflict.id)

    before_data = snapshot_model(appt)
    ctx.db.execute(
        delete(AppointmentSlot)
        .where(AppointmentSlot.appointment_id == appt.id)
        .execution_options(synchronize_session="fetch")
    )
    appt.starts_at = interval.start
    appt.ends_at = interval.end
    for slot_start in slot_starts(interval, ctx.granularity_minutes, ctx.tz):
        ctx.db.add(AppointmentSlot(appointment_id=appt.id, dentist_id=appt.dentist_id, slot_start=slot_start))
    try:
        ctx.db.flush()
    except IntegrityError as exc:
        ctx.db.rollback()
        if not _is_slot_violation(exc):
            raise
        raise ConflictError(SLOT_UNAVAILABLE) from None

    log_event(
        ctx.db,
        actor=ctx.actor,
        action="appointment.rescheduled",
        entity_type="appointment",
        entity_id=str(appt.id),
        before_data=before_data,
        after_obj=appt,
        request_id=ctx.request_id,
        ip_address=ctx.ip_address,
    )
    ctx.db.commit()
    ctx.db.refresh(appt)
    ctx.notify(
        kind="appointment.rescheduled",
        message=f"Your appointment has been moved to {appt.starts_at:%Y-%m-%d %H:%M} UTC",
        payload={"appointment_id": appt.id, "starts_at": appt.starts_at.isoformat()},
        user_id=appt.patient_id,
    )
    return appt


def _editable_fields(ctx: SchedulerContext, appt: Appointment) -> frozenset[str]:
    actor = ctx.actor
    if actor.is_admin:
        return ADMIN_EDITABLE
    if actor.role == Role.dentist and appt.dentist and appt.dentist.user_id == actor.user_id:
        return DENTIST_EDITABLE
    if actor.role == Role.patient and appt.patient_id == actor.user_id:
        if appt.status == AppointmentStatus.pending:
            return PATIENT_EDITABLE
        return frozenset()
    raise ForbiddenError("You do not have permission to modify this booking")


def update_booking_details(ctx: SchedulerContext, appointment_id: int, changes: dict[str, Any]) -> Appointment:
    appt = get_booking(ctx, appointment_id)
    allowed = _editable_fields(ctx, appt)
    updates = {key: value for key, value in changes.items() if key in allowed}
    if not updates:
        raise InvalidRequestError("No valid fields to update")
    price = updates.get("price")
    if price is not None and Decimal(str(price)) < 0:
        raise InvalidRequestError("Price must be non-negative")

    before_data = snapshot_model(appt)
    for key, value in updates.items():
        setattr(appt, key, value)
    log_event(
        ctx.db,
        actor=ctx.actor,
        action="appointment.updated",
        entity_type="appointment",
        entity_id=str(appt.id),
        before_data=before_data,
        after_obj=appt,
        request_id=ctx.request_id,
        ip_address=ctx.ip_address,
    )
    ctx.db.commit()
    ctx.db.refresh(appt)
    return appt


def list_bookings(
    ctx: SchedulerContext,
    *,
    status: AppointmentStatus | None = None,
    dentist_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Appointment], int]:
    """Bookings visible to the actor, newest start first, with the total count."""
    actor = ctx.actor
    stmt = select(Appointment)
    if actor.role == Role.patient:
        stmt = stmt.where(Appointment.patient_id == actor.user_id)
    elif actor.role == Role.dentist:
        stmt = stmt.join(Dentist, Dentist.id == Appointment.dentist_id).where(Dentist.user_id == actor.user_id)
    if status is not None:
        stmt = stmt.where(Appointment.status == status)
    if dentist_id is not None:
        stmt = stmt.where(Appointment.dentist_id == dentist_id)
    if date_from is not None:
        stmt = stmt.where(Appointment.starts_at >= datetime.combine(date_from, time.min, tzinfo=ctx.tz))
    if date_to is not None:
        stmt = stmt.where(
            Appointment.starts_at < datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=ctx.tz)
        )

    total = int(ctx.db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0)
    items = list(
        ctx.db.scalars(
            stmt.order_by(Appointment.starts_at.desc(), Appointment.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
    )
    return items, total
