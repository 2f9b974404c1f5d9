from __future__ import annotations

from sqlalchemy import delete, update

from dental_clinic.errors import ForbiddenError, InvalidTransitionError
from dental_clinic.models.appointment import TERMINAL_STATUSES, Appointment, AppointmentStatus
from dental_clinic.models.appointment_slot import AppointmentSlot
from dental_clinic.models.user import Role
from dental_clinic.services.audit import log_event, snapshot_model
from dental_clinic.services.bookings import get_booking
from dental_clinic.services.context import Actor, SchedulerContext
from dental_clinic.services.notifications import APPOINTMENT_UPDATED

ADMIN = "admin"
OWNER = "owner"
DENTIST = "dentist"

S = AppointmentStatus

TRANSITIONS: dict[tuple[AppointmentStatus, AppointmentStatus], frozenset[str]] = {
    (S.pending, S.confirmed): frozenset({ADMIN}),
    (S.pending, S.cancelled): frozenset({OWNER, ADMIN}),
    (S.confirmed, S.completed): frozenset({DENTIST}),
    (S.confirmed, S.no_show): frozenset({DENTIST}),
    (S.confirmed, S.cancelled): frozenset({OWNER, ADMIN}),
}


def allowed_targets(current: AppointmentStatus) -> list[AppointmentStatus]:
    return [target for (source, target) in TRANSITIONS if source == current]


def _actor_capacities(actor: Actor, appt: Appointment) -> set[str]:
    capacities: set[str] = set()
    if actor.role == Role.admin:
        capacities.add(ADMIN)
    if actor.role == Role.patient and appt.patient_id == actor.user_id:
        capacities.add(OWNER)
    if actor.role == Role.dentist and appt.dentist is not None and appt.dentist.user_id == actor.user_id:
        capacities.add(DENTIST)
    return capacities


def transition_status(
    ctx: SchedulerContext,
    appointment_id: int,
    new_status: AppointmentStatus,
    *,
    reason: str | None = None,
) -> Appointment:
    appt = get_booking(ctx, appointment_id)
    current = appt.status

    permitted = TRANSITIONS.get((current, new_status))
    if permitted is None:
        if current in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"Booking is {current.value} and can no longer change status")
        raise InvalidTransitionError(f"Cannot change status from {current.value} to {new_status.value}")
    if not permitted & _actor_capacities(ctx.actor, appt):
        raise ForbiddenError("You do not have permission to make this status change")

    before_data = snapshot_model(appt)
    values: dict = {"status": new_status}
    if new_status == S.cancelled:
        values["cancelled_at"] = ctx.now()
        values["cancelled_by_user_id"] = ctx.actor.user_id
        values["cancel_reason"] = reason

    # compare-and-set: a concurrent transition that got there first leaves no row to update
    result = ctx.db.execute(
        update(Appointment)
        .where(Appointment.id == appt.id, Appointment.status == current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        ctx.db.rollback()
        raise InvalidTransitionError("Booking status changed concurrently; reload and try again")

    if new_status in TERMINAL_STATUSES:
        ctx.db.execute(
            delete(AppointmentSlot)
            .where(AppointmentSlot.appointment_id == appt.id)
            .execution_options(synchronize_session="fetch")
        )

    ctx.db.flush()
    ctx.db.refresh(appt)
    log_event(
        ctx.db,
        actor=ctx.actor,
        action=f"appointment.{new_status.value.lower()}",
        entity_type="appointment",
        entity_id=str(appt.id),
        before_data=before_data,
        after_obj=appt,
        request_id=ctx.request_id,
        ip_address=ctx.ip_address,
    )
    ctx.db.commit()
    ctx.db.refresh(appt)
    ctx.logger.info(
        "Appointment status changed",
        extra=ctx.log_extra(appointment_id=appt.id, dentist_id=appt.dentist_id, status=new_status.value),
    )

    ctx.notify(
        kind=APPOINTMENT_UPDATED,
        message=f"Your appointment has been {new_status.value.lower().replace('_', '-')}",
        payload={
            "appointment_id": appt.id,
            "previous_status": current.value,
            "status": new_status.value,
        },
        user_id=appt.patient_id,
    )
    return appt


def cancel_booking(ctx: SchedulerContext, appointment_id: int, *, reason: str | None = None) -> Appointment:
    return transition_status(ctx, appointment_id, AppointmentStatus.cancelled, reason=reason)
