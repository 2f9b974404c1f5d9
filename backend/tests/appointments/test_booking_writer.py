import threading
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import func, select

from dental_clinic.db.session import SessionLocal
from dental_clinic.errors import ConflictError, ForbiddenError, InvalidRequestError, NotFoundError
from dental_clinic.models import Appointment, AppointmentSlot, AppointmentStatus, AuditLog, BookingSource, Role
from dental_clinic.services import bookings
from dental_clinic.services.availability import check_availability, list_free_slots
from dental_clinic.services.notifications import NEW_APPOINTMENT
from dental_clinic.services.schedule import load_schedule

THURSDAY_10 = datetime(2024, 2, 15, 10, 0, tzinfo=timezone.utc)


def appointment_count(db) -> int:
    db.expire_all()
    return db.scalar(select(func.count(Appointment.id)))


@pytest.fixture
def patient(make_user):
    return make_user(Role.patient)


@pytest.fixture
def dentist(make_dentist):
    return make_dentist()


def test_booking_derives_end_price_and_provenance(make_ctx, patient, dentist, make_service):
    service = make_service(duration_minutes=60, price="120.00")
    appt = bookings.create_booking(
        make_ctx(patient), dentist_id=dentist.id, service_id=service.id, starts_at=THURSDAY_10
    )
    assert appt.status == AppointmentStatus.pending
    assert appt.ends_at == THURSDAY_10 + timedelta(hours=1)
    assert appt.price == Decimal("120.00")
    assert appt.created_by == BookingSource.user
    assert appt.patient_id == patient.id
    assert appt.cancelled_at is None


def test_booking_without_service_uses_default_duration_and_fee(make_ctx, patient, make_dentist):
    dentist = make_dentist(consultation_fee="75.00")
    appt = bookings.create_booking(make_ctx(patient), dentist_id=dentist.id, starts_at=THURSDAY_10)
    assert appt.ends_at == THURSDAY_10 + timedelta(minutes=60)
    assert appt.price == Decimal("75.00")
    assert appt.service_id is None


def test_booking_claims_one_slot_per_grid_cell(db, make_ctx, patient, dentist, make_service):
    service = make_service(duration_minutes=30)
    appt = bookings.create_booking(make_ctx(patient), dentist_id=dentist.id, service_id=service.id, starts_at=THURSDAY_10)
    slots = db.scalars(select(AppointmentSlot).where(AppointmentSlot.appointment_id == appt.id)).all()
    assert len(slots) == 6


def test_unknown_dentist_is_not_found(make_ctx, patient):
    with pytest.raises(NotFoundError, match="Dentist not found"):
        bookings.create_booking(make_ctx(patient), dentist_id=999, starts_at=THURSDAY_10)


def test_inactive_dentist_is_not_found(make_ctx, patient, make_dentist):
    dentist = make_dentist(is_active=False)
    with pytest.raises(NotFoundError):
        bookings.create_booking(make_ctx(patient), dentist_id=dentist.id, starts_at=THURSDAY_10)


def test_soft_deleted_dentist_is_not_found(db, make_ctx, patient, dentist, clock):
    dentist.deleted_at = clock.now
    db.commit()
    assert dentist.is_deleted
    with pytest.raises(NotFoundError, match="Dentist not found"):
        bookings.create_booking(make_ctx(patient), dentist_id=dentist.id, starts_at=THURSDAY_10)


def test_inactive_service_is_not_found(make_ctx, patient, dentist, make_service):
    service = make_service(is_active=False)
    with pytest.raises(NotFoundError, match="Service not found"):
        bookings.create_booking(make_ctx(patient), dentist_id=dentist.id, service_id=service.id, starts_at=THURSDAY_10)


def test_dentist_is_checked_before_start_time(make_ctx, patient, clock):
    past = clock.now - timedelta(days=1)
    with pytest.raises(NotFoundError):
        bookings.create_booking(make_ctx(patient), dentist_id=999, starts_at=past)


def test_past_start_is_rejected(make_ctx, patient, dentist, clock):
    with pytest.raises(InvalidRequestError, match="Cannot book appointments in the past"):
        bookings.create_booking(make_ctx(patient), dentist_id=dentist.id, starts_at=clock.now - timedelta(hours=1))


def test_outside_hours_is_rejected(make_ctx, patient, dentist):
    with pytest.raises(InvalidRequestError, match="outside working hours"):
        bookings.create_booking(make_ctx(patient), dentist_id=dentist.id, starts_at=THURSDAY_10.replace(hour=16, minute=30))


def test_misaligned_start_is_rejected(make_ctx, patient, dentist):
    with pytest.raises(InvalidRequestError, match="5-minute boundary"):
        bookings.create_booking(make_ctx(patient), dentist_id=dentist.id, starts_at=THURSDAY_10.replace(minute=2))


def test_overlapping_booking_conflicts(db, make_ctx, make_user, dentist, make_service):
    first_patient = make_user(Role.patient)
    second_patient = make_user(Role.patient)
    s1 = make_service(duration_minutes=60, price="120.00")
    s2 = make_service(duration_minutes=30, price="60.00")
    bookings.create_booking(make_ctx(first_patient), dentist_id=dentist.id, service_id=s1.id, starts_at=THURSDAY_10)

    with pytest.raises(ConflictError, match="Time slot is not available"):
        bookings.create_booking(
            make_ctx(second_patient),
            dentist_id=dentist.id,
            service_id=s2.id,
            starts_at=THURSDAY_10 + timedelta(minutes=30),
        )
    assert appointment_count(db) == 1


def test_back_to_back_bookings_succeed(db, make_ctx, patient, dentist):
    ctx = make_ctx(patient)
    bookings.create_booking(ctx, dentist_id=dentist.id, starts_at=THURSDAY_10)
    bookings.create_booking(ctx, dentist_id=dentist.id, starts_at=THURSDAY_10 + timedelta(hours=1))
    assert appointment_count(db) == 2


def test_other_dentist_is_independent(db, make_ctx, patient, make_dentist):
    first, second = make_dentist(), make_dentist()
    ctx = make_ctx(patient)
    bookings.create_booking(ctx, dentist_id=first.id, starts_at=THURSDAY_10)
    bookings.create_booking(ctx, dentist_id=second.id, starts_at=THURSDAY_10)
    assert appointment_count(db) == 2


def test_storage_rejects_overlap_when_precheck_is_skipped(db, make_ctx, patient, dentist, monkeypatch):
    monkeypatch.setattr(bookings, "find_conflict", lambda *args, **kwargs: None)
    ctx = make_ctx(patient)
    bookings.create_booking(ctx, dentist_id=dentist.id, starts_at=THURSDAY_10)

    with pytest.raises(ConflictError):
        bookings.create_booking(ctx, dentist_id=dentist.id, starts_at=THURSDAY_10 + timedelta(minutes=15))
    assert appointment_count(db) == 1


def test_concurrent_bookings_have_exactly_one_winner(make_user, dentist, clock, notifier, monkeypatch):
    from dental_clinic.services.context import Actor, SchedulerContext

    monkeypatch.setattr(bookings, "find_conflict", lambda *args, **kwargs: None)
    patients = [make_user(Role.patient) for _ in range(4)]
    barrier = threading.Barrier(len(patients))
    outcomes: list[str] = []
    lock = threading.Lock()

    def attempt(user):
        session = SessionLocal()
        ctx = SchedulerContext(db=session, actor=Actor(user_id=user.id, role=Role.patient), notifier=notifier, clock=clock)
        try:
            barrier.wait()
            bookings.create_booking(ctx, dentist_id=dentist.id, starts_at=THURSDAY_10)
            result = "booked"
        except ConflictError:
            result = "conflict"
        finally:
            session.close()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt, args=(user,)) for user in patients]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert sorted(outcomes) == ["booked", "conflict", "conflict", "conflict"]


def test_cancelled_booking_frees_the_slot(db, make_ctx, patient, dentist):
    from dental_clinic.services.lifecycle import cancel_booking

    ctx = make_ctx(patient)
    appt = bookings.create_booking(ctx, dentist_id=dentist.id, starts_at=THURSDAY_10)
    cancel_booking(ctx, appt.id)
    assert check_availability(db, dentist.id, THURSDAY_10, 60)
    again = bookings.create_booking(ctx, dentist_id=dentist.id, starts_at=THURSDAY_10)
    assert again.id != appt.id


def test_notifications_go_to_dentist_and_admins(make_ctx, patient, dentist, notifier):
    appt = bookings.create_booking(make_ctx(patient), dentist_id=dentist.id, starts_at=THURSDAY_10)
    assert [call["kind"] for call in notifier.sent] == [NEW_APPOINTMENT, NEW_APPOINTMENT]
    assert notifier.sent[0]["user_id"] == dentist.user_id
    assert notifier.sent[1]["role"] == "admin"
    assert notifier.sent[0]["payload"]["appointment_id"] == appt.id


def test_notification_failure_does_not_fail_booking(db, make_ctx, patient, dentist, notifier):
    notifier.fail = True
    appt = bookings.create_booking(make_ctx(patient), dentist_id=dentist.id, starts_at=THURSDAY_10)
    assert appt.id is not None
    assert appointment_count(db) == 1


def test_booking_writes_audit_entry(db, make_ctx, patient, dentist):
    appt = bookings.create_booking(make_ctx(patient), dentist_id=dentist.id, starts_at=THURSDAY_10)
    entry = db.scalar(select(AuditLog).where(AuditLog.entity_id == str(appt.id)))
    assert entry.action == "appointment.created"
    assert entry.actor_user_id == patient.id
    assert entry.after_json["status"] == "PENDING"


def test_idempotency_key_replays_original_booking(db, make_ctx, patient, dentist):
    ctx = make_ctx(patient)
    first = bookings.create_booking(ctx, dentist_id=dentist.id, starts_at=THURSDAY_10, idempotency_key="abc-123")
    second = bookings.create_booking(ctx, dentist_id=dentist.id, starts_at=THURSDAY_10, idempotency_key="abc-123")
    assert first.id == second.id
    assert appointment_count(db) == 1


@pytest.mark.parametrize("changed", ["starts_at", "dentist_id"])
def test_reused_idempotency_key_with_different_request_conflicts(db, make_ctx, patient, dentist, make_dentist, changed):
    ctx = make_ctx(patient)
    first = bookings.create_booking(ctx, dentist_id=dentist.id, starts_at=THURSDAY_10, idempotency_key="abc-123")
    request = {"dentist_id": dentist.id, "starts_at": THURSDAY_10}
    request[changed] = make_dentist().id if changed == "dentist_id" else THURSDAY_10 + timedelta(hours=2)
    with pytest.raises(ConflictError, match="different booking") as excinfo:
        bookings.create_booking(ctx, idempotency_key="abc-123", **request)
    assert excinfo.value.conflicting_id == first.id
    assert appointment_count(db) == 1


def test_patient_cannot_book_for_someone_else(make_ctx, make_user, dentist):
    patient = make_user(Role.patient)
    other = make_user(Role.patient)
    with pytest.raises(ForbiddenError):
        bookings.create_booking(make_ctx(patient), dentist_id=dentist.id, starts_at=THURSDAY_10, patient_id=other.id)


def test_admin_books_on_behalf_of_patient(make_ctx, make_user, dentist):
    admin = make_user(Role.admin)
    patient = make_user(Role.patient)
    appt = bookings.create_booking(make_ctx(admin), dentist_id=dentist.id, starts_at=THURSDAY_10, patient_id=patient.id)
    assert appt.patient_id == patient.id
    assert appt.created_by == BookingSource.admin
    assert appt.created_by_user_id == admin.id


def test_admin_must_name_a_patient(make_ctx, make_user, dentist):
    admin = make_user(Role.admin)
    with pytest.raises(InvalidRequestError):
        bookings.create_booking(make_ctx(admin), dentist_id=dentist.id, starts_at=THURSDAY_10)
    with pytest.raises(NotFoundError, match="Patient not found"):
        bookings.create_booking(make_ctx(admin), dentist_id=dentist.id, starts_at=THURSDAY_10, patient_id=admin.id)


def test_reschedule_moves_slots(db, make_ctx, make_user, dentist):
    admin = make_user(Role.admin)
    patient = make_user(Role.patient)
    appt = bookings.create_booking(make_ctx(patient), dentist_id=dentist.id, starts_at=THURSDAY_10)

    moved = bookings.reschedule_booking(make_ctx(admin), appt.id, starts_at=THURSDAY_10 + timedelta(minutes=30))
    assert moved.starts_at == THURSDAY_10 + timedelta(minutes=30)
    assert moved.ends_at == THURSDAY_10 + timedelta(minutes=90)
    assert check_availability(db, dentist.id, THURSDAY_10, 30)
    assert not check_availability(db, dentist.id, THURSDAY_10 + timedelta(minutes=60), 30)


def test_reschedule_into_taken_slot_conflicts(make_ctx, make_user, dentist):
    admin = make_user(Role.admin)
    patient = make_user(Role.patient)
    ctx = make_ctx(patient)
    first = bookings.create_booking(ctx, dentist_id=dentist.id, starts_at=THURSDAY_10)
    bookings.create_booking(ctx, dentist_id=dentist.id, starts_at=THURSDAY_10 + timedelta(hours=2))

    with pytest.raises(ConflictError):
        bookings.reschedule_booking(make_ctx(admin), first.id, starts_at=THURSDAY_10 + timedelta(minutes=90))


def test_only_admin_can_reschedule(make_ctx, patient, dentist):
    ctx = make_ctx(patient)
    appt = bookings.create_booking(ctx, dentist_id=dentist.id, starts_at=THURSDAY_10)
    with pytest.raises(ForbiddenError):
        bookings.reschedule_booking(ctx, appt.id, starts_at=THURSDAY_10 + timedelta(hours=2))


def test_patient_edits_symptoms_while_pending(make_ctx, patient, dentist):
    ctx = make_ctx(patient)
    appt = bookings.create_booking(ctx, dentist_id=dentist.id, starts_at=THURSDAY_10)
    updated = bookings.update_booking_details(ctx, appt.id, {"symptoms": "Toothache", "price": 0})
    assert updated.symptoms == "Toothache"
    assert updated.price == dentist.consultation_fee


def test_unrelated_patient_cannot_edit(make_ctx, make_user, dentist):
    owner = make_user(Role.patient)
    stranger = make_user(Role.patient)
    appt = bookings.create_booking(make_ctx(owner), dentist_id=dentist.id, starts_at=THURSDAY_10)
    with pytest.raises(ForbiddenError):
        bookings.update_booking_details(make_ctx(stranger), appt.id, {"notes": "hi"})


def test_empty_edit_is_invalid(make_ctx, patient, dentist):
    ctx = make_ctx(patient)
    appt = bookings.create_booking(ctx, dentist_id=dentist.id, starts_at=THURSDAY_10)
    with pytest.raises(InvalidRequestError, match="No valid fields"):
        bookings.update_booking_details(ctx, appt.id, {"clinical_notes": "not mine"})


def test_first_listed_slot_is_bookable_in_clinic_timezone(db, make_ctx, patient, dentist, clock):
    kolkata = ZoneInfo("Asia/Kolkata")
    ctx = make_ctx(patient)
    ctx.tz = kolkata
    ctx.granularity_minutes = 60
    free = list_free_slots(
        db,
        dentist_id=dentist.id,
        day=date(2024, 2, 15),
        duration_minutes=60,
        schedule=load_schedule(db, dentist_id=dentist.id),
        tz=kolkata,
        step_minutes=60,
        now=clock.now,
        granularity_minutes=60,
    )
    # 09:00 local opening
    assert free[0] == datetime(2024, 2, 15, 3, 30, tzinfo=timezone.utc)

    appt = bookings.create_booking(ctx, dentist_id=dentist.id, starts_at=free[0])
    assert appt.starts_at == free[0]
    slots = db.scalars(select(AppointmentSlot).where(AppointmentSlot.appointment_id == appt.id)).all()
    assert [slot.slot_start for slot in slots] == [free[0]]
