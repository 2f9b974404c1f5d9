from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from dental_clinic.errors import ForbiddenError, InvalidTransitionError, NotFoundError
from dental_clinic.models import AppointmentSlot, AppointmentStatus, Role
from dental_clinic.services import bookings, lifecycle
from dental_clinic.services.notifications import APPOINTMENT_UPDATED

THURSDAY_10 = datetime(2024, 2, 15, 10, 0, tzinfo=timezone.utc)
S = AppointmentStatus


@pytest.fixture
def people(make_user, make_dentist):
    dentist = make_dentist()
    return {
        "admin": make_user(Role.admin),
        "patient": make_user(Role.patient),
        "stranger": make_user(Role.patient),
        "dentist_user": dentist.user,
        "other_dentist_user": make_dentist().user,
        "dentist": dentist,
    }


@pytest.fixture
def booking(make_ctx, people):
    return bookings.create_booking(make_ctx(people["patient"]), dentist_id=people["dentist"].id, starts_at=THURSDAY_10)


def slot_count(db, appointment_id: int) -> int:
    return db.scalar(select(func.count(AppointmentSlot.id)).where(AppointmentSlot.appointment_id == appointment_id))


def test_allowed_targets_follow_the_table():
    assert lifecycle.allowed_targets(S.pending) == [S.confirmed, S.cancelled]
    assert sorted(lifecycle.allowed_targets(S.confirmed)) == sorted([S.completed, S.no_show, S.cancelled])
    for terminal in (S.cancelled, S.completed, S.no_show):
        assert lifecycle.allowed_targets(terminal) == []


def test_admin_confirms_then_dentist_completes(db, make_ctx, people, booking, notifier):
    confirmed = lifecycle.transition_status(make_ctx(people["admin"]), booking.id, S.confirmed)
    assert confirmed.status == S.confirmed
    assert confirmed.cancelled_at is None
    assert slot_count(db, booking.id) == 12

    completed = lifecycle.transition_status(make_ctx(people["dentist_user"]), booking.id, S.completed)
    assert completed.status == S.completed
    assert completed.cancelled_at is None
    assert slot_count(db, booking.id) == 0

    updates = [call for call in notifier.sent if call["kind"] == APPOINTMENT_UPDATED]
    assert [call["payload"]["status"] for call in updates] == ["CONFIRMED", "COMPLETED"]
    assert all(call["user_id"] == people["patient"].id for call in updates)


def test_patient_cannot_confirm(make_ctx, people, booking):
    with pytest.raises(ForbiddenError):
        lifecycle.transition_status(make_ctx(people["patient"]), booking.id, S.confirmed)


def test_dentist_cannot_complete_pending(make_ctx, people, booking):
    with pytest.raises(InvalidTransitionError):
        lifecycle.transition_status(make_ctx(people["dentist_user"]), booking.id, S.completed)


def test_only_assigned_dentist_marks_no_show(make_ctx, people, booking):
    lifecycle.transition_status(make_ctx(people["admin"]), booking.id, S.confirmed)
    with pytest.raises(ForbiddenError):
        lifecycle.transition_status(make_ctx(people["other_dentist_user"]), booking.id, S.no_show)
    no_show = lifecycle.transition_status(make_ctx(people["dentist_user"]), booking.id, S.no_show)
    assert no_show.status == S.no_show


def test_owner_cancels_and_timestamp_is_set(db, make_ctx, people, booking, clock):
    cancelled = lifecycle.cancel_booking(make_ctx(people["patient"]), booking.id, reason="Feeling better")
    assert cancelled.status == S.cancelled
    assert cancelled.cancelled_at == clock.now
    assert cancelled.cancel_reason == "Feeling better"
    assert cancelled.cancelled_by_user_id == people["patient"].id
    assert slot_count(db, booking.id) == 0


def test_stranger_cannot_cancel(make_ctx, people, booking):
    with pytest.raises(ForbiddenError):
        lifecycle.cancel_booking(make_ctx(people["stranger"]), booking.id)


def test_admin_cancels_confirmed(make_ctx, people, booking):
    lifecycle.transition_status(make_ctx(people["admin"]), booking.id, S.confirmed)
    cancelled = lifecycle.cancel_booking(make_ctx(people["admin"]), booking.id)
    assert cancelled.status == S.cancelled


def finish(make_ctx, people, booking_id: int, terminal: AppointmentStatus) -> None:
    admin = make_ctx(people["admin"])
    if terminal == S.cancelled:
        lifecycle.cancel_booking(admin, booking_id)
        return
    lifecycle.transition_status(admin, booking_id, S.confirmed)
    lifecycle.transition_status(make_ctx(people["dentist_user"]), booking_id, terminal)


@pytest.mark.parametrize("terminal", [S.cancelled, S.completed, S.no_show])
@pytest.mark.parametrize("target", [S.pending, S.confirmed, S.completed, S.cancelled, S.no_show])
def test_terminal_states_are_final(db, make_ctx, people, booking, terminal, target):
    finish(make_ctx, people, booking.id, terminal)
    with pytest.raises(InvalidTransitionError, match="no longer change status"):
        lifecycle.transition_status(make_ctx(people["admin"]), booking.id, target)
    db.expire_all()
    assert bookings.get_booking(make_ctx(people["admin"]), booking.id).status == terminal


def test_unknown_booking_is_not_found(make_ctx, people):
    with pytest.raises(NotFoundError):
        lifecycle.transition_status(make_ctx(people["admin"]), 4242, S.confirmed)


def test_losing_a_concurrent_transition_is_rejected(db, make_ctx, people, booking, monkeypatch):
    from dental_clinic.db.session import SessionLocal

    stale_ctx = make_ctx(people["admin"])
    stale = bookings.get_booking(stale_ctx, booking.id)
    assert stale.status == S.pending

    other = SessionLocal()
    try:
        lifecycle.cancel_booking(make_ctx(people["patient"], session=other), booking.id)
    finally:
        other.close()

    # the stale session still believes the booking is pending
    monkeypatch.setattr(lifecycle, "get_booking", lambda ctx, appointment_id: stale)
    with pytest.raises(InvalidTransitionError, match="concurrently"):
        lifecycle.transition_status(stale_ctx, booking.id, S.confirmed)


def test_notification_failure_does_not_undo_transition(db, make_ctx, people, booking, notifier):
    notifier.fail = True
    confirmed = lifecycle.transition_status(make_ctx(people["admin"]), booking.id, S.confirmed)
    db.expire_all()
    assert confirmed.status == S.confirmed
